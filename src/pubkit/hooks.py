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

"""Lifecycle hooks for pubkit.

Executes configured commands at fixed points of a publish attempt:

- ``pre_build``: after the registry is chosen, before the secrets scan.
- ``pre_publish``: after confirmation, right before the publish call.
- ``post_publish``: after verification.
- ``on_error``: when the attempt fails.

Commands support ``${VERSION}``, ``${PACKAGE_NAME}``, ``${REGISTRY}`` and
``${PHASE}`` plus any extra variables the caller passes. Each command's
executable must appear in ``hooks.allowed_commands``; commands run
without a shell, in the project directory, and stop at the first
failure.

Commands are split into arguments before substitution, so a value such as
an error message always lands in a single argument whatever it contains.

Usage::

    from pubkit.hooks import run_hooks

    report = await run_hooks(
        config.hooks,
        'pre_publish',
        project_dir=project_dir,
        variables={'VERSION': '1.2.3', 'PACKAGE_NAME': 'left-pad', 'REGISTRY': 'npm'},
    )
"""

from __future__ import annotations

import asyncio
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from pubkit.backends._run import CommandResult, run_command
from pubkit.config import HooksConfig
from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger

log = get_logger('pubkit.hooks')


@dataclass
class HookReport:
    """Outcome of running one phase's hooks."""

    phase: str
    results: list[CommandResult] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        """Whether every command that ran succeeded."""
        return not self.failed


def expand_template(command: str, variables: dict[str, str]) -> str:
    """Replace ``${NAME}`` placeholders with values from ``variables``."""
    result = command
    for key, value in variables.items():
        result = result.replace(f'${{{key}}}', value)
    return result


def _resolve_cwd(project_dir: Path, cwd: Path | None) -> Path:
    """Resolve ``cwd`` and refuse anything outside ``project_dir``."""
    root = project_dir.resolve()
    target = (root / cwd).resolve() if cwd is not None else root
    if not target.is_relative_to(root):
        raise PubkitError(
            E.COMMAND_NOT_ALLOWED,
            f'Hook working directory {target} is outside the project {root}',
        )
    return target


async def run_hooks(
    hooks: HooksConfig,
    phase: str,
    *,
    project_dir: Path,
    variables: dict[str, str] | None = None,
    cwd: Path | None = None,
) -> HookReport:
    """Execute the hooks configured for ``phase``.

    Args:
        hooks: Hooks configuration.
        phase: One of ``pre_build``, ``pre_publish``, ``post_publish``,
            ``on_error``.
        project_dir: Project root; hooks may not run outside it.
        variables: Template variables.
        cwd: Working directory relative to ``project_dir``.

    Returns:
        A :class:`HookReport`. Failures are reported, not raised.

    Raises:
        ValueError: If ``phase`` is not a hook phase.
        PubkitError: ``COMMAND_NOT_ALLOWED`` for an executable outside
            the allow-list or a working directory outside the project.
    """
    commands = hooks.commands(phase)
    report = HookReport(phase=phase)
    if not commands:
        return report

    workdir = _resolve_cwd(project_dir, cwd)
    vars_ = {'PHASE': phase, **(variables or {})}
    allowed = frozenset(hooks.allowed_commands)

    for raw_cmd in commands:
        try:
            argv = [expand_template(arg, vars_) for arg in shlex.split(raw_cmd)]
        except ValueError as exc:
            log.error('hook_unparsable', phase=phase, command=raw_cmd, error=str(exc))
            report.failed.append(raw_cmd)
            break
        expanded = ' '.join(argv)
        log.info('hook', phase=phase, command=expanded)
        result = await asyncio.to_thread(
            run_command,
            argv,
            cwd=workdir,
            timeout=hooks.timeout,
            allowed=allowed,
        )
        report.results.append(result)
        if not result.ok:
            log.error(
                'hook_failed',
                phase=phase,
                command=expanded,
                return_code=result.return_code,
                stderr=result.stderr[:500],
            )
            report.failed.append(expanded)
            break

    return report


__all__ = [
    'HookReport',
    'expand_template',
    'run_hooks',
]
