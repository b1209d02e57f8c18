# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Tests for pubkit.batch: sequential and concurrent multi-registry runs."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from pubkit.batch import BatchOutcome, BatchPolicy, BatchPublisher
from pubkit.config import PublishConfig
from pubkit.confirm import AutoConfirmer
from pubkit.errors import E, PubkitError
from pubkit.logging import configure_logging
from pubkit.options import PublishOptions
from pubkit.orchestrator import Publisher

from tests._fakes import FakeBackend, FakeHookRunner, FakeLocator, FakeScanner, InFlight

configure_logging(quiet=True)


def _factory(
    project_dir: Path,
    backends: dict[str, FakeBackend],
    confirmer: AutoConfirmer | None = None,
) -> Callable[[str], Publisher]:
    locator = FakeLocator(backends)
    confirmer = confirmer or AutoConfirmer()

    def build(_registry: str) -> Publisher:
        return Publisher(
            project_dir,
            config=PublishConfig(),
            locator=locator,
            scanner=FakeScanner(),
            confirmer=confirmer,
            hook_runner=FakeHookRunner(),
        )

    return build


class TestBatchPolicy:
    """BatchPolicy validation."""

    def test_rejects_zero_concurrency(self) -> None:
        """max_concurrency must be at least 1."""
        with pytest.raises(ValueError):
            BatchPolicy(max_concurrency=0)

    def test_defaults(self) -> None:
        """Concurrent, stop on error, three at a time."""
        policy = BatchPolicy()
        if policy.sequential or policy.continue_on_error or policy.max_concurrency != 3:
            raise AssertionError(f'Unexpected defaults: {policy}')


class TestBatchOutcome:
    """BatchOutcome helpers."""

    def test_success_needs_no_failures_or_skips(self) -> None:
        """Any failure or skip makes the batch unsuccessful."""
        if not BatchOutcome(succeeded=['npm']).success:
            raise AssertionError('All succeeded should be success')
        if BatchOutcome(succeeded=['npm'], skipped=['pypi']).success:
            raise AssertionError('A skipped registry is not success')

    def test_summary(self) -> None:
        """Summary counts each bucket."""
        outcome = BatchOutcome(succeeded=['npm'], failed={'pypi': 'boom'}, skipped=['crates'])
        if outcome.summary() != '1 published, 1 skipped, 1 failed':
            raise AssertionError(f'Unexpected summary: {outcome.summary()}')
        if BatchOutcome().summary() != 'no registries processed':
            raise AssertionError('Empty summary mismatch')


class TestSequential:
    """Sequential batches."""

    async def test_failure_skips_the_rest(self, tmp_path: Path) -> None:
        """npm fails, so crates is never attempted."""
        backends = {'npm': FakeBackend('npm', publish_ok=False), 'crates': FakeBackend('crates')}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(['npm', 'crates'], BatchPolicy(sequential=True))

        if outcome.succeeded or list(outcome.failed) != ['npm'] or outcome.skipped != ['crates']:
            raise AssertionError(f'Unexpected outcome: {outcome}')
        if backends['crates'].calls:
            raise AssertionError(f'crates should not run: {backends["crates"].calls}')
        if outcome.success:
            raise AssertionError('Batch with a failure is not a success')

    async def test_continue_on_error(self, tmp_path: Path) -> None:
        """With continue_on_error every registry is attempted."""
        backends = {'npm': FakeBackend('npm', publish_ok=False), 'crates': FakeBackend('crates')}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(['npm', 'crates'], BatchPolicy(sequential=True, continue_on_error=True))
        if outcome.succeeded != ['crates'] or list(outcome.failed) != ['npm'] or outcome.skipped:
            raise AssertionError(f'Unexpected outcome: {outcome}')

    async def test_order_is_preserved(self, tmp_path: Path) -> None:
        """Registries run in the order given."""
        order: list[str] = []
        backends = {name: FakeBackend(name) for name in ('pypi', 'npm', 'crates')}

        base = _factory(tmp_path, backends)

        def build(registry: str) -> Publisher:
            order.append(registry)
            return base(registry)

        outcome = await BatchPublisher(tmp_path, publisher_factory=build).publish(
            ['pypi', 'npm', 'crates'],
            BatchPolicy(sequential=True),
        )
        if order != ['pypi', 'npm', 'crates'] or outcome.succeeded != order:
            raise AssertionError(f'Unexpected order: {order} / {outcome.succeeded}')

    async def test_sequential_keeps_interactive_options(self, tmp_path: Path) -> None:
        """Sequential batches may prompt the operator."""
        confirmer = AutoConfirmer()
        backends = {'npm': FakeBackend('npm')}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends, confirmer))
        await batch.publish(['npm'], BatchPolicy(sequential=True))
        if len(confirmer.prompts) != 1:
            raise AssertionError(f'Expected one prompt, got {confirmer.prompts}')


class TestConcurrent:
    """Concurrent batches."""

    async def test_all_succeed(self, tmp_path: Path) -> None:
        """Three registries, two at a time, all published."""
        backends = {name: FakeBackend(name, publish_delay=0.01) for name in ('npm', 'pypi', 'crates')}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(
            ['npm', 'pypi', 'crates'],
            BatchPolicy(max_concurrency=2, continue_on_error=True),
        )
        if sorted(outcome.succeeded) != ['crates', 'npm', 'pypi'] or outcome.failed or outcome.skipped:
            raise AssertionError(f'Unexpected outcome: {outcome}')
        if set(outcome.results) != {'npm', 'pypi', 'crates'}:
            raise AssertionError(f'Missing results: {list(outcome.results)}')

    async def test_concurrency_bound(self, tmp_path: Path) -> None:
        """No more than max_concurrency publishes overlap."""
        in_flight = InFlight()
        names = ('npm', 'pypi', 'crates', 'homebrew')
        backends = {name: FakeBackend(name, publish_delay=0.02, in_flight=in_flight) for name in names}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(list(names), BatchPolicy(max_concurrency=2))
        if len(outcome.succeeded) != 4:
            raise AssertionError(f'Expected 4 successes, got {outcome}')
        if in_flight.peak > 2:
            raise AssertionError(f'Peak concurrency {in_flight.peak} exceeded 2')

    async def test_failure_skips_queued(self, tmp_path: Path) -> None:
        """With one slot, registries queued behind a failure are skipped."""
        backends = {
            'npm': FakeBackend('npm', publish_ok=False),
            'pypi': FakeBackend('pypi'),
            'crates': FakeBackend('crates'),
        }
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(['npm', 'pypi', 'crates'], BatchPolicy(max_concurrency=1))
        if list(outcome.failed) != ['npm'] or outcome.skipped != ['pypi', 'crates']:
            raise AssertionError(f'Unexpected outcome: {outcome}')

    async def test_cancel_in_flight(self, tmp_path: Path) -> None:
        """A failure asks running attempts to stop at their next boundary."""
        backends = {
            'npm': FakeBackend('npm', errors=['name is invalid']),
            'pypi': FakeBackend('pypi', validate_delay=0.2),
        }
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(['npm', 'pypi'], BatchPolicy(max_concurrency=2, cancel_in_flight=True))
        if outcome.failed.get('pypi') != 'cancelled':
            raise AssertionError(f'pypi should be cancelled: {outcome.failed}')
        if 'publish' in backends['pypi'].calls:
            raise AssertionError('Cancelled attempt must not publish')

    async def test_in_flight_finishes_by_default(self, tmp_path: Path) -> None:
        """Without cancel_in_flight a running attempt completes."""
        backends = {
            'npm': FakeBackend('npm', errors=['name is invalid']),
            'pypi': FakeBackend('pypi', validate_delay=0.05),
        }
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(['npm', 'pypi'], BatchPolicy(max_concurrency=2))
        if outcome.succeeded != ['pypi']:
            raise AssertionError(f'pypi should finish: {outcome}')

    async def test_forces_non_interactive(self, tmp_path: Path) -> None:
        """Concurrent attempts never prompt."""
        confirmer = AutoConfirmer(answer=False)
        backends = {'npm': FakeBackend('npm'), 'pypi': FakeBackend('pypi')}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends, confirmer))
        outcome = await batch.publish(['npm', 'pypi'], BatchPolicy(options=PublishOptions(non_interactive=False)))
        if not outcome.success or confirmer.prompts:
            raise AssertionError(f'Unexpected outcome: {outcome} / {confirmer.prompts}')

    async def test_exception_counts_as_failure(self, tmp_path: Path) -> None:
        """An attempt that raises is a failure with the error text."""
        backends = {'npm': FakeBackend('npm')}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(['npm', 'maven'], BatchPolicy(continue_on_error=True))
        if outcome.succeeded != ['npm'] or "No backend for registry 'maven'" not in outcome.failed.get('maven', ''):
            raise AssertionError(f'Unexpected outcome: {outcome}')


class TestBatchInputs:
    """Input handling shared by both modes."""

    async def test_empty_list(self, tmp_path: Path) -> None:
        """No registries is a configuration error."""
        with pytest.raises(PubkitError) as exc_info:
            await BatchPublisher(tmp_path).publish([])
        if exc_info.value.code != E.CONFIG_INVALID_VALUE:
            raise AssertionError(f'Expected CONFIG_INVALID_VALUE, got {exc_info.value.code}')

    async def test_duplicates_run_once(self, tmp_path: Path) -> None:
        """A registry listed twice is published once."""
        backends = {'npm': FakeBackend('npm')}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        outcome = await batch.publish(['npm', 'npm'], BatchPolicy(sequential=True))
        if outcome.succeeded != ['npm'] or backends['npm'].calls.count('publish') != 1:
            raise AssertionError(f'Unexpected outcome: {outcome} / {backends["npm"].calls}')

    async def test_registry_passed_to_each_attempt(self, tmp_path: Path) -> None:
        """Each attempt targets its own registry."""
        backends = {'npm': FakeBackend('npm'), 'pypi': FakeBackend('pypi')}
        batch = BatchPublisher(tmp_path, publisher_factory=_factory(tmp_path, backends))
        await batch.publish(['npm', 'pypi'], BatchPolicy(options=PublishOptions(tag='beta')))
        for name, backend in backends.items():
            sent = backend.publish_options[0]
            if sent.registry != name or sent.tag != 'beta':
                raise AssertionError(f'{name}: unexpected options {sent}')
