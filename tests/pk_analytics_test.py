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

"""Tests for pubkit.analytics module."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pubkit.analytics import AnalyticsSink, AnalyticsStore
from pubkit.errors import E, PubkitError
from pubkit.logging import configure_logging
from pubkit.orchestrator import PublishOutcome

configure_logging(quiet=True)

_T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _outcome(
    registry: str,
    *,
    success: bool = True,
    duration: float = 2.0,
    at: datetime | None = None,
    package: str = 'demo',
) -> PublishOutcome:
    return PublishOutcome(
        success=success,
        registry=registry,
        package_name=package,
        version='1.0.0',
        published_at=at,
        errors=[] if success else ['rejected'],
        duration=duration,
        stage='SUCCESS' if success else 'FAILED',
    )


def _seed(store: AnalyticsStore) -> None:
    store.record(_outcome('npm', at=_T0, duration=1.0))
    store.record(_outcome('npm', success=False, at=_T0 + timedelta(hours=1), duration=3.0))
    store.record(_outcome('pypi', at=_T0 + timedelta(hours=2), duration=2.0, package='other'))
    store.record(_outcome('npm', at=_T0 + timedelta(hours=3), duration=2.0))


class TestRecord:
    """AnalyticsStore.record() and load()."""

    def test_is_a_sink(self, tmp_path: Path) -> None:
        """The store satisfies the sink protocol."""
        if not isinstance(AnalyticsStore(tmp_path), AnalyticsSink):
            raise AssertionError('AnalyticsStore should be an AnalyticsSink')

    def test_empty_history(self, tmp_path: Path) -> None:
        """No file means no records."""
        if AnalyticsStore(tmp_path).load():
            raise AssertionError('Expected no records')

    def test_record_persists(self, tmp_path: Path) -> None:
        """A recorded outcome is written with a version envelope."""
        store = AnalyticsStore(tmp_path)
        entry = store.record(_outcome('npm', success=False, at=_T0))
        data = json.loads(store.path.read_text(encoding='utf-8'))
        if data['version'] != 1 or len(data['records']) != 1:
            raise AssertionError(f'Unexpected file: {data}')
        if entry.error != 'rejected' or entry.when != _T0:
            raise AssertionError(f'Unexpected entry: {entry}')

    def test_ids_unique(self, tmp_path: Path) -> None:
        """Every record gets its own id."""
        store = AnalyticsStore(tmp_path)
        _seed(store)
        ids = [r.id for r in store.load()]
        if len(set(ids)) != len(ids):
            raise AssertionError(f'Duplicate ids: {ids}')

    async def test_concurrent_records_are_all_kept(self, tmp_path: Path) -> None:
        """Records written from worker threads at once all survive."""
        store = AnalyticsStore(tmp_path)
        registries = [f'reg{i}' for i in range(8)]
        await asyncio.gather(*(asyncio.to_thread(store.record, _outcome(r, at=_T0)) for r in registries))
        kept = sorted(r.registry for r in store.load())
        if kept != sorted(registries):
            raise AssertionError(f'Lost records: {kept}')

    def test_dry_run_without_publish_time(self, tmp_path: Path) -> None:
        """Outcomes without published_at are stamped with the current time."""
        store = AnalyticsStore(tmp_path)
        before = datetime.now(UTC)
        entry = store.record(PublishOutcome(success=True, registry='npm', stage='DRY_RUN'))
        if entry.when < before:
            raise AssertionError(f'Timestamp in the past: {entry.timestamp}')

    def test_corrupted_file(self, tmp_path: Path) -> None:
        """A malformed file raises ANALYTICS_CORRUPTED."""
        store = AnalyticsStore(tmp_path)
        store.path.parent.mkdir(parents=True)
        store.path.write_text('{"records": [{"nope": 1}]}', encoding='utf-8')
        with pytest.raises(PubkitError) as exc_info:
            store.load()
        if exc_info.value.code != E.ANALYTICS_CORRUPTED:
            raise AssertionError(f'Expected ANALYTICS_CORRUPTED, got {exc_info.value.code}')


class TestQuery:
    """AnalyticsStore.records() filters."""

    def test_newest_first(self, tmp_path: Path) -> None:
        """Records come back newest first."""
        store = AnalyticsStore(tmp_path)
        _seed(store)
        stamps = [r.when for r in store.records()]
        if stamps != sorted(stamps, reverse=True):
            raise AssertionError(f'Not newest first: {stamps}')

    def test_filters(self, tmp_path: Path) -> None:
        """Registry, package, time window and success filters compose."""
        store = AnalyticsStore(tmp_path)
        _seed(store)
        if len(store.records(registry='npm')) != 3:
            raise AssertionError('registry filter')
        if len(store.records(package_name='other')) != 1:
            raise AssertionError('package filter')
        if len(store.records(since=_T0 + timedelta(minutes=30), until=_T0 + timedelta(hours=2))) != 2:
            raise AssertionError('time window filter')
        if len(store.records(registry='npm', failures_only=True)) != 1:
            raise AssertionError('failures_only filter')
        if len(store.records(success_only=True)) != 3:
            raise AssertionError('success_only filter')

    def test_limit(self, tmp_path: Path) -> None:
        """limit keeps the newest N."""
        store = AnalyticsStore(tmp_path)
        _seed(store)
        latest = store.records(limit=1)
        if len(latest) != 1 or latest[0].when != _T0 + timedelta(hours=3):
            raise AssertionError(f'Unexpected: {latest}')


class TestStatistics:
    """AnalyticsStore.statistics()."""

    def test_empty(self, tmp_path: Path) -> None:
        """No records, zeroed statistics."""
        stats = AnalyticsStore(tmp_path).statistics()
        if stats.total_attempts or stats.success_rate or stats.first is not None:
            raise AssertionError(f'Unexpected: {stats}')

    def test_aggregates(self, tmp_path: Path) -> None:
        """Totals, rate, average duration and per-registry breakdown."""
        store = AnalyticsStore(tmp_path)
        _seed(store)
        stats = store.statistics()
        if (stats.total_attempts, stats.success_count, stats.failure_count) != (4, 3, 1):
            raise AssertionError(f'Unexpected counts: {stats}')
        if stats.success_rate != 75.0 or stats.average_duration != 2.0:
            raise AssertionError(f'Unexpected rate or duration: {stats}')
        npm = stats.by_registry['npm']
        if (npm.attempts, npm.successes, npm.failures) != (3, 2, 1):
            raise AssertionError(f'Unexpected npm stats: {npm}')
        if stats.first != _T0.isoformat() or stats.last != (_T0 + timedelta(hours=3)).isoformat():
            raise AssertionError(f'Unexpected window: {stats.first} .. {stats.last}')

    def test_filtered(self, tmp_path: Path) -> None:
        """Filters apply before aggregation."""
        store = AnalyticsStore(tmp_path)
        _seed(store)
        stats = store.statistics(registry='pypi')
        if stats.total_attempts != 1 or list(stats.by_registry) != ['pypi']:
            raise AssertionError(f'Unexpected: {stats}')
