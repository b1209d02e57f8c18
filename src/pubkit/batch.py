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

"""Multi-registry publish orchestrator.

Publishes the same project to several registries, either one after
another or as a bounded fan-out, and folds the per-registry outcomes
into one :class:`BatchOutcome`.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Sequential          │ One registry at a time, in the order given.   │
    │                     │ A failure stops the rest unless told not to.  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Semaphore           │ At most N registries publishing at once.      │
    │                     │ Others wait in line for a free slot.          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Skipped             │ Never started because an earlier registry     │
    │                     │ failed and continue_on_error is off.          │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ cancel_in_flight    │ Also ask running attempts to stop at their    │
    │                     │ next stage boundary after a failure.          │
    └─────────────────────┴────────────────────────────────────────────────┘

Concurrent mode::

    registries ──→ task per registry ──→ Semaphore(max_concurrency)
                                              │
                           stop flag set? ─yes─→ skipped
                                              │ no
                                              ▼
                                   Publisher.publish(non_interactive)
                                              │
                              failure ──→ stop flag (+ cancel event)
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path

from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger
from pubkit.options import PublishOptions
from pubkit.orchestrator import PublishOutcome, Publisher

logger = get_logger(__name__)

PublisherFactory = Callable[[str], Publisher]


@dataclass(frozen=True)
class BatchPolicy:
    """How a batch is scheduled.

    Attributes:
        sequential: Publish one registry at a time, in order.
        continue_on_error: Keep going after a registry fails.
        max_concurrency: Upper bound on concurrent attempts.
        options: Options shared by every attempt; ``registry`` is
            replaced per attempt.
        cancel_in_flight: After a failure, also stop attempts that are
            already running (at their next stage boundary).
    """

    sequential: bool = False
    continue_on_error: bool = False
    max_concurrency: int = 3
    options: PublishOptions = field(default_factory=PublishOptions)
    cancel_in_flight: bool = False

    def __post_init__(self) -> None:
        """Validate ``max_concurrency``."""
        if self.max_concurrency < 1:
            raise ValueError(f'max_concurrency must be >= 1, got {self.max_concurrency}')


@dataclass(frozen=True)
class BatchOutcome:
    """Aggregate of one batch.

    Attributes:
        succeeded: Registries that published, in submission order.
        failed: Registry to error text.
        skipped: Registries never attempted.
        results: Registry to outcome, for every attempt that produced one.
    """

    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    results: dict[str, PublishOutcome] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """Whether every registry published."""
        return not self.failed and not self.skipped

    def summary(self) -> str:
        """Return a human-readable summary."""
        parts = []
        if self.succeeded:
            parts.append(f'{len(self.succeeded)} published')
        if self.skipped:
            parts.append(f'{len(self.skipped)} skipped')
        if self.failed:
            parts.append(f'{len(self.failed)} failed')
        return ', '.join(parts) if parts else 'no registries processed'


def _error_text(result: PublishOutcome | BaseException) -> str:
    if isinstance(result, PubkitError):
        return result.message
    if isinstance(result, BaseException):
        return str(result) or type(result).__name__
    return '; '.join(result.errors) or 'publish failed'


class BatchPublisher:
    """Publishes one project to several registries.

    Args:
        project_dir: Project root.
        publisher_factory: Builds the :class:`Publisher` for a registry.
            Defaults to a plain ``Publisher(project_dir)``.
    """

    def __init__(self, project_dir: Path, *, publisher_factory: PublisherFactory | None = None) -> None:
        """Bind to a project."""
        self.project_dir = project_dir
        self._factory = publisher_factory or (lambda _registry: Publisher(project_dir))

    async def publish(self, registries: list[str], policy: BatchPolicy | None = None) -> BatchOutcome:
        """Publish to every registry in ``registries``.

        Raises:
            PubkitError: ``CONFIG_INVALID_VALUE`` if ``registries`` is empty.
        """
        if not registries:
            raise PubkitError(
                E.CONFIG_INVALID_VALUE,
                'No registries given for a batch publish.',
                hint='Pass at least one registry, e.g. --registries npm,pypi.',
            )
        policy = policy or BatchPolicy()
        registries = list(dict.fromkeys(registries))
        logger.info(
            'batch_start',
            registries=registries,
            sequential=policy.sequential,
            concurrency=policy.max_concurrency,
        )
        if policy.sequential:
            results = await self._sequential(registries, policy)
        else:
            results = await self._concurrent(registries, policy)

        outcome = self._aggregate(registries, results)
        logger.info(
            'batch_complete',
            summary=outcome.summary(),
            succeeded=outcome.succeeded,
            failed=list(outcome.failed),
            skipped=outcome.skipped,
        )
        return outcome

    async def _attempt(self, registry: str, options: PublishOptions, cancel: asyncio.Event | None) -> PublishOutcome:
        publisher = self._factory(registry)
        return await publisher.publish(replace(options, registry=registry), cancel=cancel)

    async def _sequential(
        self,
        registries: list[str],
        policy: BatchPolicy,
    ) -> dict[str, PublishOutcome | BaseException | None]:
        results: dict[str, PublishOutcome | BaseException | None] = dict.fromkeys(registries)
        for registry in registries:
            try:
                result: PublishOutcome | BaseException = await self._attempt(registry, policy.options, None)
            except Exception as exc:  # noqa: BLE001 - recorded as this registry's failure
                result = exc
            results[registry] = result
            failed = isinstance(result, BaseException) or not result.success
            if failed and not policy.continue_on_error:
                logger.warning('batch_stopping', registry=registry, error=_error_text(result))
                break
        return results

    async def _concurrent(
        self,
        registries: list[str],
        policy: BatchPolicy,
    ) -> dict[str, PublishOutcome | BaseException | None]:
        semaphore = asyncio.Semaphore(policy.max_concurrency)
        stop = asyncio.Event()
        cancel = asyncio.Event() if policy.cancel_in_flight else None
        options = replace(policy.options, non_interactive=True)

        async def _one(registry: str) -> PublishOutcome | None:
            async with semaphore:
                if stop.is_set():
                    logger.info('batch_registry_skipped', registry=registry)
                    return None
                try:
                    result = await self._attempt(registry, options, cancel)
                except Exception:
                    if not policy.continue_on_error:
                        stop.set()
                        if cancel is not None:
                            cancel.set()
                    raise
                if not result.success and not policy.continue_on_error:
                    stop.set()
                    if cancel is not None:
                        cancel.set()
                return result

        tasks = [asyncio.create_task(_one(registry), name=f'publish-{registry}') for registry in registries]
        done = await asyncio.gather(*tasks, return_exceptions=True)
        return dict(zip(registries, done, strict=True))

    def _aggregate(
        self,
        registries: list[str],
        results: dict[str, PublishOutcome | BaseException | None],
    ) -> BatchOutcome:
        succeeded: list[str] = []
        failed: dict[str, str] = {}
        skipped: list[str] = []
        outcomes: dict[str, PublishOutcome] = {}
        for registry in registries:
            result = results.get(registry)
            if result is None:
                skipped.append(registry)
                continue
            if isinstance(result, BaseException):
                failed[registry] = _error_text(result)
            else:
                outcomes[registry] = result
                if result.success:
                    succeeded.append(registry)
                    continue
                failed[registry] = _error_text(result)
            logger.error('batch_registry_failed', registry=registry, error=failed[registry])
        return BatchOutcome(succeeded=succeeded, failed=failed, skipped=skipped, results=outcomes)


__all__ = [
    'BatchOutcome',
    'BatchPolicy',
    'BatchPublisher',
]
