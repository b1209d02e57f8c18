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

"""Publish progress observers.

The orchestrators report progress to a :class:`PublishObserver`; the
default does nothing, :class:`ConsoleObserver` prints one rich line per
event for the CLI.

Stage indicators::

    🔎 detecting → 🔍 validating → 🧪 simulating_publish → ❓ confirming
    → 📤 publishing → ✔️ verifying → ✅ success / ❌ failed
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

from pubkit.state import WorkflowStage

if TYPE_CHECKING:
    from pubkit.orchestrator import PublishOutcome

_ICONS: dict[WorkflowStage, str] = {
    WorkflowStage.INITIAL: '⏳',
    WorkflowStage.DETECTING: '🔎',
    WorkflowStage.VALIDATING: '🔍',
    WorkflowStage.SIMULATING_PUBLISH: '🧪',
    WorkflowStage.CONFIRMING: '❓',
    WorkflowStage.PUBLISHING: '📤',
    WorkflowStage.VERIFYING: '✔️',
    WorkflowStage.SUCCESS: '✅',
    WorkflowStage.FAILED: '❌',
    WorkflowStage.ROLLED_BACK: '↩️',
}


class PublishObserver:
    """Receives progress events. All methods are no-ops by default."""

    def on_stage(self, registry: str, stage: WorkflowStage) -> None:
        """An attempt entered ``stage``."""

    def on_warning(self, registry: str, message: str) -> None:
        """An attempt recorded a non-fatal warning."""

    def on_complete(self, outcome: PublishOutcome) -> None:
        """An attempt produced its outcome."""


class ConsoleObserver(PublishObserver):
    """Prints progress lines to a rich console (stderr by default)."""

    def __init__(self, console: Console | None = None) -> None:
        """Bind to ``console``."""
        self.console = console or Console(stderr=True, highlight=False)

    def on_stage(self, registry: str, stage: WorkflowStage) -> None:
        """Print the stage with its icon."""
        self.console.print(f'{_ICONS.get(stage, "•")} [bold]{escape(registry or "?")}[/bold] {stage.value}')

    def on_warning(self, registry: str, message: str) -> None:
        """Print a yellow warning line."""
        self.console.print(f'⚠️  [yellow]{escape(registry or "?")}: {escape(message)}[/yellow]')

    def on_complete(self, outcome: PublishOutcome) -> None:
        """Print the outcome summary line."""
        color = 'green' if outcome.success else 'red'
        self.console.print(f'[{color}]{escape(outcome.summary())}[/{color}]')


__all__ = [
    'ConsoleObserver',
    'PublishObserver',
]
