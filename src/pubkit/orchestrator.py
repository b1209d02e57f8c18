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

"""Single-registry publish orchestrator.

Drives one publish attempt through the workflow stages, persisting the
state file at every boundary so an interrupted run can be resumed.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Publisher           │ The pilot for one flight: checks the plane,   │
    │                     │ asks the tower, takes off, confirms landing.  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ PublishOutcome      │ The flight report. Always produced once a     │
    │                     │ backend is chosen, success or not.            │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Security gate       │ A secrets scan before anything leaves the     │
    │                     │ machine. Interactive runs must approve hits.  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Cancel event        │ A "please stop" flag checked between stages.  │
    │                     │ Never interrupts an upload in progress.       │
    └─────────────────────┴────────────────────────────────────────────────┘

Stage flow::

    start ─→ detect ─→ [pre_build] ─→ security gate ─→ validate
         ─→ simulate ─→ confirm ─→ [pre_publish] ─→ publish
         ─→ verify ─→ [post_publish] ─→ success

    any failure after detect ─→ FAILED ─→ [on_error] ─→ PublishOutcome

Usage::

    from pubkit.options import PublishOptions
    from pubkit.orchestrator import Publisher

    outcome = await Publisher(project_dir).publish(PublishOptions(registry='npm'))
    if not outcome.success:
        print(outcome.errors)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path

from pubkit.analytics import AnalyticsSink
from pubkit.backends.base import Backend
from pubkit.backends.locator import BackendLocator
from pubkit.config import PublishConfig, load_config
from pubkit.confirm import Confirmer, TerminalConfirmer
from pubkit.errors import E, ErrorCode, PubkitError
from pubkit.hooks import HookReport, run_hooks
from pubkit.logging import get_logger, registry_context
from pubkit.observer import PublishObserver
from pubkit.options import PublishOptions
from pubkit.scanner import Scanner, SecretsScanner, format_report
from pubkit.state import DEFAULT_SESSION, WorkflowStage, WorkflowState, find_resumable

logger = get_logger(__name__)

HookRunner = Callable[..., Awaitable[HookReport]]
StateFactory = Callable[[Path, str | None], WorkflowState]

STAGE_SUCCESS = 'SUCCESS'
STAGE_FAILED = 'FAILED'
STAGE_DRY_RUN = 'DRY_RUN'


@dataclass(frozen=True)
class PublishOutcome:
    """Result of one publish attempt.

    Attributes:
        success: Whether the attempt reached its goal.
        registry: Registry the attempt targeted.
        package_name: Package name from validation metadata.
        version: Version that was (or would have been) published.
        published_at: When the publish completed, for real publishes.
        verification_url: Public package URL, when known.
        errors: Why the attempt failed.
        warnings: Non-fatal problems encountered along the way.
        duration: Wall-clock seconds for the attempt.
        stage: ``SUCCESS``, ``FAILED`` or ``DRY_RUN``.
        error_code: Typed classification of the failure, when known.
    """

    success: bool
    registry: str
    package_name: str = ''
    version: str = ''
    published_at: datetime | None = None
    verification_url: str | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duration: float = 0.0
    stage: str = STAGE_FAILED
    error_code: ErrorCode | None = None

    def summary(self) -> str:
        """Return a one-line human-readable summary."""
        target = f'{self.package_name or "package"}@{self.version or "?"} → {self.registry or "?"}'
        if self.stage == STAGE_DRY_RUN:
            return f'{target}: dry run passed ({self.duration:.1f}s)'
        if self.success:
            url = f' {self.verification_url}' if self.verification_url else ''
            return f'{target}: published in {self.duration:.1f}s{url}'
        reason = self.errors[0] if self.errors else 'unknown error'
        return f'{target}: failed ({reason})'


class _StageFailure(PubkitError):
    """Internal: an attempt failed at a stage after the backend was chosen."""

    def __init__(self, code: ErrorCode, errors: list[str]) -> None:
        super().__init__(code, '; '.join(errors))
        self.errors = errors


@dataclass
class _Attempt:
    """Mutable bookkeeping for one :meth:`Publisher.publish` call."""

    registry: str = ''
    package_name: str = ''
    version: str = ''
    verification_url: str | None = None
    warnings: list[str] = field(default_factory=list)

    def variables(self) -> dict[str, str]:
        return {
            'VERSION': self.version,
            'PACKAGE_NAME': self.package_name,
            'REGISTRY': self.registry,
            'VERIFICATION_URL': self.verification_url or '',
        }


class Publisher:
    """Runs one publish attempt against a single registry.

    Every collaborator is injectable; the defaults are the production
    implementations.

    Args:
        project_dir: Project root.
        config: Loaded configuration (default: :func:`load_config`).
        locator: Backend locator.
        scanner: Secrets scanner (default: configured from
            ``[security]``).
        confirmer: Operator confirmation (default: terminal prompt).
        hook_runner: Hook executor (default: :func:`run_hooks`).
        analytics: Sink receiving every outcome.
        observer: Progress observer.
        state_factory: Builds the :class:`WorkflowState` for a session.
        clock: Monotonic time source used for durations.
    """

    def __init__(
        self,
        project_dir: Path,
        *,
        config: PublishConfig | None = None,
        locator: BackendLocator | None = None,
        scanner: Scanner | None = None,
        confirmer: Confirmer | None = None,
        hook_runner: HookRunner = run_hooks,
        analytics: AnalyticsSink | None = None,
        observer: PublishObserver | None = None,
        state_factory: StateFactory = WorkflowState,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Wire collaborators."""
        self.project_dir = project_dir
        self.config = config if config is not None else load_config(project_dir)
        self.locator = locator or BackendLocator()
        self.scanner = scanner or SecretsScanner(self.config.security.ignore_patterns)
        self.confirmer = confirmer or TerminalConfirmer()
        self.hook_runner = hook_runner
        self.analytics = analytics
        self.observer = observer or PublishObserver()
        self.state_factory = state_factory
        self.clock = clock

    async def publish(self, options: PublishOptions, *, cancel: asyncio.Event | None = None) -> PublishOutcome:
        """Run one attempt.

        Args:
            options: What the caller asked for.
            cancel: Optional event; once set, the attempt stops at the
                next stage boundary before publishing.

        Returns:
            A :class:`PublishOutcome` for every attempt that got as far
            as choosing a backend.

        Raises:
            PubkitError: ``NO_RESUMABLE_STATE`` / ``STATE_AMBIGUOUS`` /
                ``STATE_CORRUPTED`` when resuming fails,
                ``REGISTRY_NOT_DETECTED`` or ``REGISTRY_UNKNOWN`` when no
                backend can be chosen.
        """
        started = self.clock()
        options, state = await self._start(options)
        attempt = _Attempt(registry=options.registry or '')

        # Detection.
        await self._transition(state, attempt, WorkflowStage.DETECTING)
        try:
            registry = await self._select_registry(options)
            attempt.registry = registry
            backend = self.locator.load(registry, self.project_dir)
        except PubkitError as exc:
            await self._transition(state, attempt, WorkflowStage.FAILED, {'error': exc.message})
            raise

        options = replace(self.config.effective_options(options, registry), registry=registry)
        logger.info('registry_selected', registry=registry, backend=backend.name, resume=options.resume)

        try:
            with registry_context(registry):
                outcome = await self._run(backend, options, state, attempt, started, cancel)
        except Exception as exc:  # noqa: BLE001 - every failure after detection becomes an outcome
            if isinstance(exc, _StageFailure):
                code, errors = exc.code, exc.errors
            elif isinstance(exc, PubkitError):
                code, errors = exc.code, [exc.message]
            else:
                logger.exception('publish_unexpected_error', registry=registry)
                code, errors = E.PUBLISH_FAILED, [str(exc)]
            outcome = await self._fail(options, state, attempt, started, code, errors)

        await self._record(outcome)
        self.observer.on_complete(outcome)
        return outcome

    async def _start(self, options: PublishOptions) -> tuple[PublishOptions, WorkflowState]:
        """Restore or reset the session state for this attempt."""
        if not options.resume:
            state = self.state_factory(self.project_dir, options.registry)
            await asyncio.to_thread(state.clear)
            await asyncio.to_thread(state.transition, WorkflowStage.INITIAL)
            return options, state

        registry = options.registry
        if registry is None:
            sessions = await asyncio.to_thread(find_resumable, self.project_dir)
            if not sessions:
                raise PubkitError(E.NO_RESUMABLE_STATE, f'No interrupted publish found in {self.project_dir}.')
            if len(sessions) > 1:
                names = ', '.join(key for key, _ in sessions)
                raise PubkitError(
                    E.STATE_AMBIGUOUS,
                    f'Several interrupted publishes found: {names}.',
                    hint='Pass --registry to choose which one to resume.',
                )
            key, _ = sessions[0]
            registry = None if key == DEFAULT_SESSION else key

        state = self.state_factory(self.project_dir, registry)
        if not await asyncio.to_thread(state.restore) or not state.can_resume():
            raise PubkitError(
                E.NO_RESUMABLE_STATE,
                f'No interrupted publish found for {registry or "the default session"}.',
                registry=registry,
            )
        if options.registry is None and state.snapshot.registry:
            options = replace(options, registry=state.snapshot.registry)
        logger.info('publish_resuming', registry=options.registry, stage=state.stage.value)
        return options, state

    async def _select_registry(self, options: PublishOptions) -> str:
        """Pick the registry: override, then first detection, then ``default_registry``."""
        candidates = await asyncio.to_thread(self.locator.detect, self.project_dir)
        if not candidates:
            raise PubkitError(
                E.REGISTRY_NOT_DETECTED,
                f'No supported package manifest found in {self.project_dir}.',
                registry=options.registry,
            )
        return options.registry or candidates[0].registry_type or self.config.default_registry or ''

    async def _run(
        self,
        backend: Backend,
        options: PublishOptions,
        state: WorkflowState,
        attempt: _Attempt,
        started: float,
        cancel: asyncio.Event | None,
    ) -> PublishOutcome:
        """Stages from the pre_build hooks through success."""
        interactive = self.config.interactive(options)
        simulate_only = self.config.simulate_only(options)

        await self._hooks('pre_build', options, attempt, fatal=True)
        self._check_cancel(cancel)

        # Security gate.
        if self.config.security.secrets_scanning:
            report = await asyncio.to_thread(self.scanner.scan, self.project_dir)
            if report.has_findings:
                summary = format_report(report)
                if interactive:
                    if not await self.confirmer.confirm(f'{summary}\nPublish anyway?'):
                        raise _StageFailure(E.SECRETS_DETECTED, [f'Potential secrets detected: {summary}'])
                else:
                    self._warn(attempt, f'{len(report.findings)} potential secret(s) detected')
        self._check_cancel(cancel)

        # Validation.
        await self._transition(state, attempt, WorkflowStage.VALIDATING, {'registry': attempt.registry})
        validation = await backend.validate()
        attempt.package_name = validation.metadata.get('package_name', '')
        attempt.version = validation.metadata.get('version', '')
        for warning in validation.warnings:
            self._warn(attempt, str(warning))
        if not validation.valid:
            raise _StageFailure(E.VALIDATION_FAILED, [str(issue) for issue in validation.errors] or ['invalid'])
        self._check_cancel(cancel)

        # Simulation.
        if not simulate_only and not options.resume and self.config.publish.dry_run != 'never':
            await self._transition(state, attempt, WorkflowStage.SIMULATING_PUBLISH)
            simulation = await backend.simulate_publish()
            if not simulation.success:
                raise _StageFailure(E.PUBLISH_FAILED, simulation.errors or ['simulated publish failed'])
            self._check_cancel(cancel)

        if simulate_only:
            logger.info('dry_run_complete', registry=attempt.registry, version=attempt.version)
            await asyncio.to_thread(state.clear)
            return self._outcome(attempt, started, success=True, stage=STAGE_DRY_RUN)

        # Confirmation.
        if interactive and not options.resume and self.config.publish.confirm:
            await self._transition(state, attempt, WorkflowStage.CONFIRMING)
            prompt = f'Publish {attempt.package_name}@{attempt.version} to {attempt.registry}?'
            if not await self.confirmer.confirm(prompt):
                raise _StageFailure(E.CANCELLED, ['operator cancelled'])
            self._check_cancel(cancel)

        await self._hooks('pre_publish', options, attempt, fatal=True)
        if options.hooks_only:
            logger.info('hooks_only_complete', registry=attempt.registry)
            await asyncio.to_thread(state.clear)
            return self._outcome(attempt, started, success=True, stage=STAGE_DRY_RUN)
        self._check_cancel(cancel)

        # Publish. No automatic retry: a repeated upload is not idempotent.
        await self._transition(state, attempt, WorkflowStage.PUBLISHING, {'version': attempt.version})
        receipt = await backend.publish(options)
        if not receipt.success:
            code = receipt.code or E.PUBLISH_FAILED
            raise _StageFailure(code, [receipt.error or receipt.output.strip()[-500:] or 'publish failed'])
        attempt.version = receipt.version or attempt.version
        attempt.verification_url = receipt.url
        published_at = datetime.now(UTC)

        # Verification.
        if self.config.publish.verify:
            await self._transition(state, attempt, WorkflowStage.VERIFYING)
            try:
                verification = await backend.verify()
            except Exception as exc:  # noqa: BLE001 - verification never fails a completed publish
                self._warn(attempt, f'verification failed: {exc}')
            else:
                if verification.verified:
                    attempt.verification_url = verification.url or attempt.verification_url
                else:
                    self._warn(attempt, f'verification failed: {verification.error or "version not visible yet"}')

        await self._hooks('post_publish', options, attempt, fatal=False)

        await self._transition(state, attempt, WorkflowStage.SUCCESS)
        logger.info(
            'publish_succeeded',
            registry=attempt.registry,
            package=attempt.package_name,
            version=attempt.version,
            elapsed=round(state.elapsed(), 3),
        )
        return self._outcome(attempt, started, success=True, stage=STAGE_SUCCESS, published_at=published_at)

    async def _fail(
        self,
        options: PublishOptions,
        state: WorkflowState,
        attempt: _Attempt,
        started: float,
        code: ErrorCode,
        errors: list[str],
    ) -> PublishOutcome:
        """Record a failure, run the on_error hooks, and build the outcome."""
        message = '; '.join(errors)
        logger.error('publish_failed', registry=attempt.registry, code=code.value, error=message)
        await self._transition(state, attempt, WorkflowStage.FAILED, {'error': message})
        if not options.skip_hooks:
            try:
                report = await self.hook_runner(
                    self.config.hooks,
                    'on_error',
                    project_dir=self.project_dir,
                    variables={**attempt.variables(), 'ERROR_MESSAGE': message},
                )
            except PubkitError as exc:
                logger.warning('on_error_hook_rejected', registry=attempt.registry, error=exc.message)
            else:
                if not report.success:
                    logger.warning('on_error_hook_failed', registry=attempt.registry, failed=report.failed)
        return self._outcome(attempt, started, success=False, stage=STAGE_FAILED, errors=errors, error_code=code)

    async def _hooks(self, phase: str, options: PublishOptions, attempt: _Attempt, *, fatal: bool) -> None:
        """Run one hook phase; a failure raises when ``fatal``, else warns."""
        if options.skip_hooks:
            return
        report = await self.hook_runner(
            self.config.hooks,
            phase,
            project_dir=self.project_dir,
            variables=attempt.variables(),
        )
        if report.success:
            return
        message = f'{phase} hook failed: {", ".join(report.failed)}'
        if fatal:
            raise _StageFailure(E.HOOK_FAILED, [message])
        self._warn(attempt, message)

    async def _transition(
        self,
        state: WorkflowState,
        attempt: _Attempt,
        stage: WorkflowStage,
        metadata: dict[str, str] | None = None,
    ) -> None:
        await asyncio.to_thread(state.transition, stage, metadata)
        self.observer.on_stage(attempt.registry, stage)

    def _check_cancel(self, cancel: asyncio.Event | None) -> None:
        if cancel is not None and cancel.is_set():
            raise _StageFailure(E.CANCELLED, ['cancelled'])

    def _warn(self, attempt: _Attempt, message: str) -> None:
        attempt.warnings.append(message)
        logger.warning('publish_warning', registry=attempt.registry, warning=message)
        self.observer.on_warning(attempt.registry, message)

    def _outcome(
        self,
        attempt: _Attempt,
        started: float,
        *,
        success: bool,
        stage: str,
        published_at: datetime | None = None,
        errors: list[str] | None = None,
        error_code: ErrorCode | None = None,
    ) -> PublishOutcome:
        return PublishOutcome(
            success=success,
            registry=attempt.registry,
            package_name=attempt.package_name,
            version=attempt.version,
            published_at=published_at,
            verification_url=attempt.verification_url,
            errors=list(errors or []),
            warnings=list(attempt.warnings),
            duration=self.clock() - started,
            stage=stage,
            error_code=error_code,
        )

    async def _record(self, outcome: PublishOutcome) -> None:
        if self.analytics is None:
            return
        try:
            await asyncio.to_thread(self.analytics.record, outcome)
        except (OSError, PubkitError) as exc:
            logger.warning('analytics_record_failed', registry=outcome.registry, error=str(exc))


__all__ = [
    'STAGE_DRY_RUN',
    'STAGE_FAILED',
    'STAGE_SUCCESS',
    'PublishOutcome',
    'Publisher',
]
