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

"""Whitelisted subprocess execution for registry backends and hooks.

Every external tool pubkit drives (``npm``, ``cargo``, ``twine``,
``brew``, ...) goes through :func:`run_command`, which:

- Refuses executables that are not on an allow-list.
- Never uses a shell; arguments are passed as a list.
- Logs every invocation with structlog, masking OTP and token flags.
- Converts timeouts into a retryable :class:`~pubkit.errors.PubkitError`.

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ run_command         │ The one door every shell command goes through.│
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ Allow-list          │ A guest list. If ``rm`` isn't on it, it       │
    │                     │ doesn't get in.                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ CommandResult       │ A receipt: exit code, output, and how long.   │
    └─────────────────────┴────────────────────────────────────────────────┘
"""

from __future__ import annotations

import os
import subprocess  # noqa: S404 - subprocess is the core purpose of this module
import time
from collections.abc import Collection
from dataclasses import dataclass
from pathlib import Path

from pubkit.errors import E, PubkitError
from pubkit.logging import REDACTED, get_logger

log = get_logger('pubkit.backends.run')

DEFAULT_TIMEOUT_SECONDS = 300

# Exit code reported when the executable is not installed.
NOT_FOUND_RETURN_CODE = 127

ALLOWED_COMMANDS: frozenset[str] = frozenset({
    'brew',
    'cargo',
    'gh',
    'git',
    'glab',
    'npm',
    'pip',
    'python',
    'python3',
    'twine',
})

# Flags whose next argument (or `=` value) is a credential.
SECRET_FLAGS: frozenset[str] = frozenset({'--auth-token', '--otp', '--password', '--token'})


@dataclass(frozen=True)
class CommandResult:
    """Result of a subprocess invocation.

    Attributes:
        command: The command that was executed.
        return_code: Process exit code (0 = success).
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration: Wall-clock duration in milliseconds.
    """

    command: list[str]
    return_code: int
    stdout: str = ''
    stderr: str = ''
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        """Whether the command exited with status 0."""
        return self.return_code == 0

    @property
    def command_str(self) -> str:
        """The command as a single string, with credentials masked."""
        return redact_argv(self.command)

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stripped."""
        return '\n'.join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def redact_argv(cmd: list[str]) -> str:
    """Join ``cmd`` for display with every :data:`SECRET_FLAGS` value masked."""
    parts: list[str] = []
    mask_next = False
    for arg in cmd:
        if mask_next:
            parts.append(REDACTED)
            mask_next = False
            continue
        flag, sep, _ = arg.partition('=')
        if flag in SECRET_FLAGS:
            parts.append(f'{flag}={REDACTED}' if sep else arg)
            mask_next = not sep
            continue
        parts.append(arg)
    return ' '.join(parts)


def check_allowed(cmd: list[str], allowed: Collection[str] = ALLOWED_COMMANDS) -> None:
    """Raise unless ``cmd[0]`` is an allowed executable.

    Raises:
        PubkitError: ``COMMAND_NOT_ALLOWED``.
    """
    if not cmd:
        raise PubkitError(E.COMMAND_NOT_ALLOWED, 'Empty command.')
    executable = Path(cmd[0]).name
    if executable not in allowed:
        raise PubkitError(
            E.COMMAND_NOT_ALLOWED,
            f"Command '{executable}' is not allowed. Allowed: {', '.join(sorted(allowed))}",
        )


def run_command(
    cmd: list[str],
    *,
    cwd: Path | str | None = None,
    env: dict[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    allowed: Collection[str] = ALLOWED_COMMANDS,
) -> CommandResult:
    """Execute an allowed command and capture its output.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Extra environment variables merged over ``os.environ``.
        timeout: Seconds before the process is killed.
        allowed: Executable names permitted for this call.

    Returns:
        A :class:`CommandResult`. A missing executable is reported as
        return code 127 rather than raised.

    Raises:
        PubkitError: ``COMMAND_NOT_ALLOWED`` for executables outside
            ``allowed``; ``TIMEOUT_ERROR`` (retryable) on timeout.
    """
    check_allowed(cmd, allowed)
    cmd_str = redact_argv(cmd)
    log.debug('run_command', cmd=cmd_str, cwd=str(cwd or '.'))

    full_env: dict[str, str] | None = None
    if env:
        full_env = {**os.environ, **env}

    start = time.monotonic()
    try:
        result = subprocess.run(  # noqa: S603 - allow-listed executables, no shell
            cmd,
            cwd=cwd,
            env=full_env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as exc:
        duration = (time.monotonic() - start) * 1000
        log.error('command_timeout', cmd=cmd_str, timeout=timeout, duration=duration)
        raise PubkitError(
            E.TIMEOUT_ERROR,
            f"'{cmd_str}' timed out after {timeout}s",
            retryable=True,
        ) from exc
    except FileNotFoundError:
        log.warning('command_not_found', cmd=cmd_str)
        return CommandResult(
            command=cmd,
            return_code=NOT_FOUND_RETURN_CODE,
            stderr=f'{cmd[0]}: command not found',
        )

    duration = (time.monotonic() - start) * 1000
    cmd_result = CommandResult(
        command=cmd,
        return_code=result.returncode,
        stdout=result.stdout or '',
        stderr=result.stderr or '',
        duration=duration,
    )
    if result.returncode != 0:
        log.warning(
            'command_failed',
            cmd=cmd_str,
            return_code=result.returncode,
            stderr=cmd_result.stderr[:500],
            duration=duration,
        )
    else:
        log.debug('command_ok', cmd=cmd_str, duration=duration)
    return cmd_result


__all__ = [
    'ALLOWED_COMMANDS',
    'DEFAULT_TIMEOUT_SECONDS',
    'NOT_FOUND_RETURN_CODE',
    'SECRET_FLAGS',
    'CommandResult',
    'check_allowed',
    'redact_argv',
    'run_command',
]
