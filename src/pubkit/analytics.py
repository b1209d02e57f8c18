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

"""Publish history and statistics.

Every completed attempt is appended to
``<project>/.package-publisher/analytics.json``. ``pubkit stats`` reads
it back, filters, and aggregates per registry.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ AnalyticsRecord     │ One row in the logbook: which registry, which │
    │                     │ version, did it work, how long it took.       │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ PublishStatistics   │ The logbook summary: success rate, average    │
    │                     │ time, and the same per registry.              │
    └─────────────────────┴────────────────────────────────────────────────┘

:meth:`AnalyticsStore.record` is synchronous, so concurrent attempts in
one event loop append one at a time.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger
from pubkit.state import write_atomic

if TYPE_CHECKING:
    from pubkit.orchestrator import PublishOutcome

logger = get_logger(__name__)

ANALYTICS_DIRNAME = '.package-publisher'
ANALYTICS_FILENAME = 'analytics.json'


@dataclass(frozen=True)
class AnalyticsRecord:
    """One recorded attempt."""

    id: str
    registry: str
    package_name: str
    version: str
    success: bool
    duration: float
    timestamp: str
    stage: str
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    verification_url: str | None = None

    @property
    def when(self) -> datetime:
        """:attr:`timestamp` parsed as an aware datetime."""
        return datetime.fromisoformat(self.timestamp)


@dataclass(frozen=True)
class RegistryStatistics:
    """Aggregates for one registry."""

    attempts: int
    successes: int
    failures: int
    success_rate: float
    average_duration: float


@dataclass(frozen=True)
class PublishStatistics:
    """Aggregates over a filtered set of records."""

    total_attempts: int = 0
    success_count: int = 0
    failure_count: int = 0
    success_rate: float = 0.0
    average_duration: float = 0.0
    by_registry: dict[str, RegistryStatistics] = field(default_factory=dict)
    first: str | None = None
    last: str | None = None


@runtime_checkable
class AnalyticsSink(Protocol):
    """Receives one outcome per completed attempt."""

    def record(self, outcome: PublishOutcome) -> object:
        """Persist ``outcome``."""
        ...


def _rate(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole else 0.0


class AnalyticsStore:
    """JSON-file :class:`AnalyticsSink` with query helpers.

    Args:
        project_dir: Project root; the store lives in
            ``.package-publisher/analytics.json`` under it.
    """

    def __init__(self, project_dir: Path) -> None:
        """Bind to the project's analytics file."""
        self.path = project_dir / ANALYTICS_DIRNAME / ANALYTICS_FILENAME
        self._lock = threading.Lock()

    def load(self) -> list[AnalyticsRecord]:
        """Read every record; an absent file means no history.

        Raises:
            PubkitError: ``ANALYTICS_CORRUPTED`` if the file is malformed.
        """
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
            return [AnalyticsRecord(**item) for item in data['records']]
        except (json.JSONDecodeError, KeyError, TypeError) as exc:
            raise PubkitError(E.ANALYTICS_CORRUPTED, f'{self.path} is malformed: {exc}') from exc

    def record(self, outcome: PublishOutcome) -> AnalyticsRecord:
        """Append ``outcome`` to the history."""
        when = outcome.published_at or datetime.now(UTC)
        entry = AnalyticsRecord(
            id=uuid.uuid4().hex,
            registry=outcome.registry,
            package_name=outcome.package_name,
            version=outcome.version,
            success=outcome.success,
            duration=outcome.duration,
            timestamp=when.isoformat(),
            stage=outcome.stage,
            error='; '.join(outcome.errors) or None,
            warnings=list(outcome.warnings),
            verification_url=outcome.verification_url,
        )
        # Concurrent attempts record from worker threads.
        with self._lock:
            records = self.load()
            records.append(entry)
            payload: dict[str, Any] = {'version': 1, 'records': [asdict(r) for r in records]}
            write_atomic(self.path, json.dumps(payload, indent=2) + '\n', prefix='.analytics-')
        logger.debug('analytics_recorded', registry=entry.registry, success=entry.success)
        return entry

    def records(
        self,
        *,
        registry: str | None = None,
        package_name: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        success_only: bool = False,
        failures_only: bool = False,
        limit: int | None = None,
    ) -> list[AnalyticsRecord]:
        """Return matching records, newest first."""
        found = self.load()
        if registry:
            found = [r for r in found if r.registry == registry]
        if package_name:
            found = [r for r in found if r.package_name == package_name]
        if since is not None:
            found = [r for r in found if r.when >= since]
        if until is not None:
            found = [r for r in found if r.when <= until]
        if success_only:
            found = [r for r in found if r.success]
        if failures_only:
            found = [r for r in found if not r.success]
        found.sort(key=lambda r: r.when, reverse=True)
        if limit is not None and limit > 0:
            found = found[:limit]
        return found

    def statistics(self, **filters: Any) -> PublishStatistics:  # noqa: ANN401 - same filters as records()
        """Aggregate the records selected by ``filters``."""
        found = self.records(**filters)
        if not found:
            return PublishStatistics()

        by_registry: dict[str, RegistryStatistics] = {}
        for name in sorted({r.registry for r in found}):
            group = [r for r in found if r.registry == name]
            ok = sum(1 for r in group if r.success)
            by_registry[name] = RegistryStatistics(
                attempts=len(group),
                successes=ok,
                failures=len(group) - ok,
                success_rate=_rate(ok, len(group)),
                average_duration=sum(r.duration for r in group) / len(group),
            )

        successes = sum(1 for r in found if r.success)
        stamps = sorted(r.when for r in found)
        return PublishStatistics(
            total_attempts=len(found),
            success_count=successes,
            failure_count=len(found) - successes,
            success_rate=_rate(successes, len(found)),
            average_duration=sum(r.duration for r in found) / len(found),
            by_registry=by_registry,
            first=stamps[0].isoformat(),
            last=stamps[-1].isoformat(),
        )


__all__ = [
    'ANALYTICS_DIRNAME',
    'ANALYTICS_FILENAME',
    'AnalyticsRecord',
    'AnalyticsSink',
    'AnalyticsStore',
    'PublishStatistics',
    'RegistryStatistics',
]
