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

"""Scripted subprocess runner for backend tests."""

from __future__ import annotations

from pathlib import Path

from pubkit.backends._run import CommandResult


class FakeRunner:
    """Stands in for :func:`pubkit.backends._run.run_command`.

    Responses are keyed by a command prefix; the longest matching prefix
    wins and anything unscripted succeeds with empty output.

    Args:
        responses: ``'npm publish'`` → ``(return_code, stdout, stderr)``.
    """

    def __init__(self, responses: dict[str, tuple[int, str, str]] | None = None) -> None:
        """Store the script."""
        self.responses = responses or {}
        self.commands: list[list[str]] = []

    @property
    def lines(self) -> list[str]:
        """Commands as space-joined strings, in call order."""
        return [' '.join(cmd) for cmd in self.commands]

    def __call__(self, cmd: list[str], *, cwd: Path | str | None = None, timeout: float = 300) -> CommandResult:
        """Record ``cmd`` and return the scripted result."""
        self.commands.append(list(cmd))
        line = ' '.join(cmd)
        matches = [prefix for prefix in self.responses if line.startswith(prefix)]
        if not matches:
            return CommandResult(command=list(cmd), return_code=0)
        return_code, stdout, stderr = self.responses[max(matches, key=len)]
        return CommandResult(command=list(cmd), return_code=return_code, stdout=stdout, stderr=stderr)
