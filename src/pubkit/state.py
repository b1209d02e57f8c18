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

"""Resumable workflow state for a single publish attempt.

Each (project, registry) pair owns one JSON state file under
``<project>/.publish-state/``. The file is rewritten after every stage
transition so an interrupted publish can pick up where it stopped.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ WorkflowStage       │ Where the publish is right now: validating,   │
    │                     │ publishing, verifying, ...                    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ StageTransition     │ One line in the flight log: "moved from A to  │
    │                     │ B at time T". Never edited, only appended.    │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Atomic save         │ Write to a temp file first, then rename.      │
    │                     │ If we crash mid-write, the old file is fine.  │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Session key         │ One state file per registry, so npm and PyPI  │
    │                     │ publishing at once never clobber each other.  │
    └─────────────────────┴────────────────────────────────────────────────┘

Stage flow::

    INITIAL → DETECTING → VALIDATING → SIMULATING_PUBLISH → CONFIRMING
            → PUBLISHING → VERIFYING → SUCCESS
                          (any stage) → FAILED

Usage::

    from pubkit.state import WorkflowStage, WorkflowState

    state = WorkflowState(project_dir, registry='npm')
    state.clear()
    state.transition(WorkflowStage.INITIAL)
    state.transition(WorkflowStage.VALIDATING, {'registry': 'npm'})

    # After a crash:
    resumed = WorkflowState(project_dir, registry='npm')
    if resumed.restore() and resumed.can_resume():
        ...
"""

from __future__ import annotations

import json
import os
import re
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger

logger = get_logger(__name__)

STATE_DIRNAME = '.publish-state'
DEFAULT_SESSION = 'default'

_SAFE_KEY_RE = re.compile(r'[^A-Za-z0-9._-]')


class WorkflowStage(str, Enum):
    """Stage of a single publish attempt."""

    INITIAL = 'initial'
    DETECTING = 'detecting'
    VALIDATING = 'validating'
    SIMULATING_PUBLISH = 'simulating_publish'
    CONFIRMING = 'confirming'
    PUBLISHING = 'publishing'
    VERIFYING = 'verifying'
    SUCCESS = 'success'
    FAILED = 'failed'
    ROLLED_BACK = 'rolled_back'


NON_RESUMABLE_STAGES: frozenset[WorkflowStage] = frozenset({
    WorkflowStage.INITIAL,
    WorkflowStage.SUCCESS,
    WorkflowStage.FAILED,
})


@dataclass(frozen=True)
class StageTransition:
    """One recorded stage change.

    Attributes:
        from_stage: Stage before the transition.
        to_stage: Stage after the transition.
        timestamp: Seconds since the epoch.
        metadata: Free-form context attached to the transition.
    """

    from_stage: WorkflowStage
    to_stage: WorkflowStage
    timestamp: float
    metadata: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            'from': self.from_stage.value,
            'to': self.to_stage.value,
            'timestamp': self.timestamp,
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageTransition:
        """Deserialize from :meth:`to_dict` output.

        Raises:
            KeyError: If a required field is missing.
            ValueError: If a stage value is unknown.
        """
        return cls(
            from_stage=WorkflowStage(data['from']),
            to_stage=WorkflowStage(data['to']),
            timestamp=float(data['timestamp']),
            metadata={str(k): str(v) for k, v in (data.get('metadata') or {}).items()},
        )


@dataclass
class WorkflowSnapshot:
    """Durable view of one attempt.

    Attributes:
        stage: Current stage.
        registry: Registry the attempt targets, once known.
        version: Package version, once known.
        transitions: Every transition, in the order it happened.
        last_error: Most recent error text, if any.
    """

    stage: WorkflowStage = WorkflowStage.INITIAL
    registry: str = ''
    version: str = ''
    transitions: list[StageTransition] = field(default_factory=list)
    last_error: str = ''

    @property
    def resumable(self) -> bool:
        """Whether an attempt in this stage may be resumed."""
        return self.stage not in NON_RESUMABLE_STAGES

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {
            'stage': self.stage.value,
            'registry': self.registry,
            'version': self.version,
            'transitions': [t.to_dict() for t in self.transitions],
            'resumable': self.resumable,
            'last_error': self.last_error,
        }


def session_key(registry: str | None) -> str:
    """Return the file-safe session key for ``registry``."""
    if not registry:
        return DEFAULT_SESSION
    return _SAFE_KEY_RE.sub('_', registry)


def state_path(project_dir: Path, registry: str | None = None) -> Path:
    """Return the state file path for a (project, registry) pair."""
    return project_dir / STATE_DIRNAME / f'{session_key(registry)}.json'


def write_atomic(path: Path, content: str, *, prefix: str) -> None:
    """Write ``content`` to ``path`` so readers never see a partial file.

    The content goes to a temp file in the same directory which then
    replaces ``path`` with :func:`os.replace`.

    Raises:
        OSError: If the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=prefix, suffix='.tmp')
    closed = False
    try:
        os.write(fd, content.encode('utf-8'))
        os.close(fd)
        closed = True
        os.replace(tmp_path, path)
    except BaseException:
        if not closed:
            os.close(fd)
        Path(tmp_path).unlink(missing_ok=True)
        raise


class WorkflowState:
    """Persisted state machine for one (project, registry) attempt.

    Every mutation goes through :meth:`transition` and is saved before
    it returns. Storage errors propagate to the caller.

    Args:
        project_dir: Project root; the state directory lives inside it.
        registry: Registry this session belongs to. ``None`` selects the
            ``default`` session used before a registry is known.
        clock: Time source, seconds since the epoch.
    """

    def __init__(
        self,
        project_dir: Path,
        registry: str | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Bind the state to its file without touching the disk."""
        self.project_dir = project_dir
        self.path = state_path(project_dir, registry)
        self._clock = clock
        self.snapshot = WorkflowSnapshot(registry=registry or '')

    @property
    def stage(self) -> WorkflowStage:
        """Current stage."""
        return self.snapshot.stage

    @property
    def transitions(self) -> list[StageTransition]:
        """Recorded transitions (a copy)."""
        return list(self.snapshot.transitions)

    def transition(self, to: WorkflowStage, metadata: dict[str, str] | None = None) -> StageTransition:
        """Move to ``to``, record the change, and persist.

        Recognized metadata keys (``registry``, ``version``, ``error``)
        are also copied into the snapshot. The in-memory snapshot changes
        only once the write succeeds.

        Returns:
            The recorded :class:`StageTransition`.

        Raises:
            OSError: If the state file cannot be written.
        """
        meta = {k: str(v) for k, v in (metadata or {}).items()}
        record = StageTransition(
            from_stage=self.snapshot.stage,
            to_stage=to,
            timestamp=self._clock(),
            metadata=meta,
        )
        current = self.snapshot
        updated = WorkflowSnapshot(
            stage=to,
            registry=meta.get('registry', current.registry),
            version=meta.get('version', current.version),
            transitions=[*current.transitions, record],
            last_error=meta.get('error', current.last_error),
        )
        self._save(updated)
        self.snapshot = updated
        logger.debug(
            'stage_transition',
            path=str(self.path),
            from_stage=record.from_stage.value,
            to_stage=to.value,
        )
        return record

    def restore(self) -> bool:
        """Load the snapshot from disk.

        Returns:
            ``True`` if a state file existed and was loaded.

        Raises:
            PubkitError: ``STATE_CORRUPTED`` if the file cannot be parsed.
            OSError: If the file exists but cannot be read.
        """
        if not self.path.exists():
            return False
        self.snapshot = load_snapshot(self.path)
        logger.info(
            'state_restored',
            path=str(self.path),
            stage=self.snapshot.stage.value,
            transitions=len(self.snapshot.transitions),
        )
        return True

    def can_resume(self) -> bool:
        """Whether the current stage allows resuming."""
        return self.snapshot.resumable

    def clear(self) -> None:
        """Delete the state file and reset to ``INITIAL``."""
        self.path.unlink(missing_ok=True)
        self.snapshot = WorkflowSnapshot(registry=self.snapshot.registry)
        logger.debug('state_cleared', path=str(self.path))

    def elapsed(self) -> float:
        """Seconds between the first and last transition, or ``0.0``."""
        transitions = self.snapshot.transitions
        if not transitions:
            return 0.0
        return transitions[-1].timestamp - transitions[0].timestamp

    def _save(self, snapshot: WorkflowSnapshot) -> None:
        content = json.dumps(snapshot.to_dict(), indent=2) + '\n'
        write_atomic(self.path, content, prefix='.publish-state-')


def load_snapshot(path: Path) -> WorkflowSnapshot:
    """Parse a state file.

    Raises:
        PubkitError: ``STATE_CORRUPTED`` for invalid JSON or shape.
        OSError: If the file cannot be read.
    """
    text = path.read_text(encoding='utf-8')
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PubkitError(
            E.STATE_CORRUPTED,
            f'State file {path} contains invalid JSON: {exc}',
            hint=f'Delete {path} and restart the publish.',
        ) from exc

    try:
        if not isinstance(data, dict):
            raise TypeError(f'expected an object, got {type(data).__name__}')
        return WorkflowSnapshot(
            stage=WorkflowStage(data['stage']),
            registry=str(data.get('registry') or ''),
            version=str(data.get('version') or ''),
            transitions=[StageTransition.from_dict(t) for t in data.get('transitions', [])],
            last_error=str(data.get('last_error') or ''),
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise PubkitError(
            E.STATE_CORRUPTED,
            f'State file {path} has an invalid structure: {exc}',
            hint=f'Delete {path} and restart the publish.',
        ) from exc


def find_resumable(project_dir: Path) -> list[tuple[str, WorkflowSnapshot]]:
    """Return ``(session_key, snapshot)`` for every resumable session.

    Sorted by session key so the result is stable.

    Raises:
        PubkitError: ``STATE_CORRUPTED`` if any state file is unreadable.
    """
    state_dir = project_dir / STATE_DIRNAME
    if not state_dir.is_dir():
        return []
    found: list[tuple[str, WorkflowSnapshot]] = []
    for path in sorted(state_dir.glob('*.json')):
        snapshot = load_snapshot(path)
        if snapshot.resumable:
            found.append((path.stem, snapshot))
    return found


__all__ = [
    'DEFAULT_SESSION',
    'NON_RESUMABLE_STAGES',
    'STATE_DIRNAME',
    'StageTransition',
    'WorkflowSnapshot',
    'WorkflowStage',
    'WorkflowState',
    'find_resumable',
    'load_snapshot',
    'session_key',
    'state_path',
    'write_atomic',
]
