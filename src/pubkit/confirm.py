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

"""Operator confirmation.

The orchestrator never reads stdin itself; it asks a :class:`Confirmer`.
The CLI plugs in :class:`TerminalConfirmer`, batch runs and CI use
:class:`NonInteractiveConfirmer`, and tests use :class:`AutoConfirmer`.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Protocol, runtime_checkable

from pubkit.logging import get_logger

logger = get_logger(__name__)

_YES = frozenset({'y', 'yes'})


@runtime_checkable
class Confirmer(Protocol):
    """Asks the operator a yes/no question."""

    async def confirm(self, message: str) -> bool:
        """Return ``True`` if the operator agreed."""
        ...


class TerminalConfirmer:
    """Prompt on stdin; declines when stdin is not a TTY."""

    async def confirm(self, message: str) -> bool:
        """Prompt with ``[y/N]`` and wait for an answer off the event loop."""
        if not sys.stdin.isatty():
            logger.warning('confirm_no_tty', prompt=message)
            return False
        try:
            answer = await asyncio.to_thread(input, f'{message} [y/N] ')
        except EOFError:
            return False
        return answer.strip().lower() in _YES


class AutoConfirmer:
    """Answer every question with a fixed reply and remember the prompts."""

    def __init__(self, answer: bool = True) -> None:
        """Fix the reply."""
        self.answer = answer
        self.prompts: list[str] = []

    async def confirm(self, message: str) -> bool:
        """Record ``message`` and return the fixed reply."""
        self.prompts.append(message)
        return self.answer


class NonInteractiveConfirmer(AutoConfirmer):
    """Decline everything; used wherever nobody can answer."""

    def __init__(self) -> None:
        """Always decline."""
        super().__init__(answer=False)


__all__ = [
    'AutoConfirmer',
    'Confirmer',
    'NonInteractiveConfirmer',
    'TerminalConfirmer',
]
