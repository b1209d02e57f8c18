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

"""Structured error system for pubkit.

Every error carries a unique ``PK-NAMED-KEY`` code, a message, an optional
hint, the registry it concerns, and two flags the orchestration layer
acts on: ``recoverable`` (can the operator fix it and re-run?) and
``retryable`` (is it worth trying the same call again?).

Key Concepts (ELI5)::

    ┌─────────────────────┬────────────────────────────────────────────────┐
    │ Concept             │ ELI5 Explanation                               │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ErrorCode           │ A named ID like "PK-STATE-CORRUPTED". One per │
    │                     │ kind of failure, readable at a glance.        │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ PubkitError         │ The exception you raise. Carries the code,    │
    │                     │ a hint, and which registry went wrong.        │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ retryable           │ "Try again later might work." Set where the   │
    │                     │ error is built, read by the retry helper.     │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ ERRORS catalog      │ Default message + hint for every code. Like a │
    │                     │ FAQ card per failure.                         │
    ├─────────────────────┼────────────────────────────────────────────────┤
    │ explain()           │ Look up a code and print its card.            │
    └─────────────────────┴────────────────────────────────────────────────┘

Code categories::

    PK-CONFIG-*       Configuration errors
    PK-REGISTRY-*     Backend detection / lookup errors
    PK-VALIDATION-*   Package metadata errors
    PK-SECURITY-*     Secrets scan and command whitelist errors
    PK-AUTH-*         Token / OTP errors
    PK-PUBLISH-*      Publish, network, and timeout errors
    PK-VERIFY-*       Post-publish verification errors
    PK-ROLLBACK-*     Rollback errors
    PK-STATE-*        Persisted state / resume errors
    PK-HOOK-*         Lifecycle hook errors

Usage::

    from pubkit.errors import E, PubkitError

    raise PubkitError(
        E.NO_RESUMABLE_STATE,
        'No interrupted publish found to resume.',
        hint='Run without --resume to start a fresh publish.',
    )
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from enum import Enum
from typing import TextIO

from rich.console import Console
from rich.markup import escape as rich_escape


class ErrorCode(str, Enum):
    """Enumeration of all pubkit diagnostic codes."""

    # Configuration
    CONFIG_INVALID_KEY = 'PK-CONFIG-INVALID-KEY'
    CONFIG_INVALID_VALUE = 'PK-CONFIG-INVALID-VALUE'
    CONFIG_PARSE_ERROR = 'PK-CONFIG-PARSE-ERROR'

    # Detection
    REGISTRY_NOT_DETECTED = 'PK-REGISTRY-NOT-DETECTED'
    REGISTRY_UNKNOWN = 'PK-REGISTRY-UNKNOWN'

    # Validation
    VALIDATION_FAILED = 'PK-VALIDATION-FAILED'

    # Security
    SECRETS_DETECTED = 'PK-SECURITY-SECRETS-DETECTED'
    COMMAND_NOT_ALLOWED = 'PK-SECURITY-COMMAND-NOT-ALLOWED'

    # Authentication
    TOKEN_MISSING = 'PK-AUTH-TOKEN-MISSING'
    OTP_REQUIRED = 'PK-AUTH-OTP-REQUIRED'

    # Publish
    PUBLISH_FAILED = 'PK-PUBLISH-FAILED'
    VERSION_CONFLICT = 'PK-PUBLISH-VERSION-CONFLICT'
    NETWORK_ERROR = 'PK-PUBLISH-NETWORK-ERROR'
    TIMEOUT_ERROR = 'PK-PUBLISH-TIMEOUT'
    CANCELLED = 'PK-PUBLISH-CANCELLED'

    # Verification
    VERIFICATION_FAILED = 'PK-VERIFY-FAILED'

    # Rollback
    ROLLBACK_FAILED = 'PK-ROLLBACK-FAILED'
    ROLLBACK_NOT_SUPPORTED = 'PK-ROLLBACK-NOT-SUPPORTED'

    # State / resume
    STATE_CORRUPTED = 'PK-STATE-CORRUPTED'
    NO_RESUMABLE_STATE = 'PK-STATE-NO-RESUMABLE'
    STATE_AMBIGUOUS = 'PK-STATE-AMBIGUOUS'

    # Hooks
    HOOK_FAILED = 'PK-HOOK-FAILED'

    # Analytics
    ANALYTICS_CORRUPTED = 'PK-ANALYTICS-CORRUPTED'


# Convenience alias for shorter imports.
E = ErrorCode


@dataclass(frozen=True)
class ErrorInfo:
    """Metadata for a single error code.

    Attributes:
        code: The ``PK-NAMED-KEY`` error code.
        message: Human-readable description of what went wrong.
        hint: Suggested remediation, or empty.
        recoverable: Whether the operator can fix the cause and re-run.
    """

    code: ErrorCode
    message: str
    hint: str = ''
    recoverable: bool = False


ERRORS: dict[ErrorCode, ErrorInfo] = {
    E.CONFIG_INVALID_KEY: ErrorInfo(
        code=E.CONFIG_INVALID_KEY,
        message='Unknown key in .publish-config.toml.',
        hint='Check the key spelling against the documented configuration keys.',
        recoverable=True,
    ),
    E.CONFIG_INVALID_VALUE: ErrorInfo(
        code=E.CONFIG_INVALID_VALUE,
        message='A configuration value has the wrong type or an unsupported value.',
        hint='Fix the value in .publish-config.toml or the matching PUBLISH_* variable.',
        recoverable=True,
    ),
    E.CONFIG_PARSE_ERROR: ErrorInfo(
        code=E.CONFIG_PARSE_ERROR,
        message='A configuration file is not valid TOML.',
        hint='Run the file through a TOML linter and fix the reported line.',
        recoverable=True,
    ),
    E.REGISTRY_NOT_DETECTED: ErrorInfo(
        code=E.REGISTRY_NOT_DETECTED,
        message='No supported registry manifest was found in the project.',
        hint='Add package.json, Cargo.toml, pyproject.toml, or a Homebrew formula, or pass --registry.',
    ),
    E.REGISTRY_UNKNOWN: ErrorInfo(
        code=E.REGISTRY_UNKNOWN,
        message='The requested registry has no backend.',
        hint='Supported registries: npm, crates, pypi, homebrew.',
    ),
    E.VALIDATION_FAILED: ErrorInfo(
        code=E.VALIDATION_FAILED,
        message='Package metadata failed validation.',
        hint='Fix the reported fields in the manifest and re-run.',
        recoverable=True,
    ),
    E.SECRETS_DETECTED: ErrorInfo(
        code=E.SECRETS_DETECTED,
        message='Potential secrets were found in the project files.',
        hint='Remove the secrets, add the path to security.ignore_patterns, or confirm to proceed.',
        recoverable=True,
    ),
    E.COMMAND_NOT_ALLOWED: ErrorInfo(
        code=E.COMMAND_NOT_ALLOWED,
        message='A command is not in the allowed-commands list.',
        hint='Add the executable to hooks.allowed_commands if it is trusted.',
        recoverable=True,
    ),
    E.TOKEN_MISSING: ErrorInfo(
        code=E.TOKEN_MISSING,
        message='No registry credentials were found.',
        hint='Log in with the registry tool (npm login, cargo login, twine) or export its token variable.',
        recoverable=True,
    ),
    E.OTP_REQUIRED: ErrorInfo(
        code=E.OTP_REQUIRED,
        message='The registry requires a one-time password.',
        hint='Re-run with --otp CODE.',
        recoverable=True,
    ),
    E.PUBLISH_FAILED: ErrorInfo(
        code=E.PUBLISH_FAILED,
        message='The registry rejected the publish.',
        hint='Inspect the tool output above, fix the cause, and re-run with --resume.',
        recoverable=True,
    ),
    E.VERSION_CONFLICT: ErrorInfo(
        code=E.VERSION_CONFLICT,
        message='This version is already published.',
        hint='Bump the package version before publishing again.',
        recoverable=True,
    ),
    E.NETWORK_ERROR: ErrorInfo(
        code=E.NETWORK_ERROR,
        message='A network request to the registry failed.',
        hint='Check connectivity and re-run with --resume.',
        recoverable=True,
    ),
    E.TIMEOUT_ERROR: ErrorInfo(
        code=E.TIMEOUT_ERROR,
        message='A registry operation timed out.',
        hint='Re-run with --resume; the registry may be slow.',
        recoverable=True,
    ),
    E.CANCELLED: ErrorInfo(
        code=E.CANCELLED,
        message='The publish was cancelled before it reached the registry.',
        hint='Re-run the publish for this registry.',
        recoverable=True,
    ),
    E.VERIFICATION_FAILED: ErrorInfo(
        code=E.VERIFICATION_FAILED,
        message='The published version could not be confirmed on the registry.',
        hint='Registries can lag behind a publish; check the package page in a few minutes.',
        recoverable=True,
    ),
    E.ROLLBACK_FAILED: ErrorInfo(
        code=E.ROLLBACK_FAILED,
        message='Rolling back the published version failed.',
        hint='Remove or deprecate the version manually on the registry.',
    ),
    E.ROLLBACK_NOT_SUPPORTED: ErrorInfo(
        code=E.ROLLBACK_NOT_SUPPORTED,
        message='This registry does not support rollback.',
        hint='Publish a fixed version instead.',
    ),
    E.STATE_CORRUPTED: ErrorInfo(
        code=E.STATE_CORRUPTED,
        message='The persisted publish state could not be read.',
        hint='Delete the file under .publish-state/ and restart the publish.',
    ),
    E.NO_RESUMABLE_STATE: ErrorInfo(
        code=E.NO_RESUMABLE_STATE,
        message='There is no interrupted publish to resume.',
        hint='Run without --resume to start a fresh publish.',
    ),
    E.STATE_AMBIGUOUS: ErrorInfo(
        code=E.STATE_AMBIGUOUS,
        message='More than one interrupted publish exists for this project.',
        hint='Pass --registry to pick the one to resume.',
        recoverable=True,
    ),
    E.HOOK_FAILED: ErrorInfo(
        code=E.HOOK_FAILED,
        message='A lifecycle hook exited with a non-zero status.',
        hint='Fix the hook command or re-run with --skip-hooks.',
        recoverable=True,
    ),
    E.ANALYTICS_CORRUPTED: ErrorInfo(
        code=E.ANALYTICS_CORRUPTED,
        message='The analytics file could not be read.',
        hint='Delete .package-publisher/analytics.json to reset the history.',
    ),
}


class PubkitError(Exception):
    """Base exception for all pubkit errors.

    Args:
        code: The error code from :class:`ErrorCode`.
        message: Human-readable description of what went wrong.
        hint: Suggested fix. Defaults to the catalog hint for ``code``.
        registry: The registry the error concerns, if any.
        recoverable: Overrides the catalog's recoverable flag.
        retryable: Whether repeating the same operation may succeed.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        hint: str = '',
        *,
        registry: str | None = None,
        recoverable: bool | None = None,
        retryable: bool = False,
    ) -> None:
        """Initialize from a code, message, and optional context."""
        catalog = ERRORS.get(code)
        if not hint and catalog is not None:
            hint = catalog.hint
        if recoverable is None:
            recoverable = catalog.recoverable if catalog is not None else False
        self.info = ErrorInfo(code=code, message=message, hint=hint, recoverable=recoverable)
        self.registry = registry
        self.retryable = retryable
        prefix = f'[{code.value}]'
        if registry:
            prefix = f'{prefix} {registry}:'
        super().__init__(f'{prefix} {message}')

    @property
    def code(self) -> ErrorCode:
        """The error code."""
        return self.info.code

    @property
    def message(self) -> str:
        """The bare message, without code or registry prefix."""
        return self.info.message

    @property
    def hint(self) -> str:
        """Suggestion for fixing this error, or empty string."""
        return self.info.hint

    @property
    def recoverable(self) -> bool:
        """Whether the operator can fix the cause and re-run."""
        return self.info.recoverable


def explain(code: str) -> str | None:
    """Return a detailed explanation for an error code.

    Args:
        code: The error code string, e.g. ``"PK-STATE-CORRUPTED"``.

    Returns:
        A formatted explanation string, or ``None`` if the code is unknown.
    """
    try:
        error_code = ErrorCode(code)
    except ValueError:
        return None

    info = ERRORS.get(error_code)
    if info is None:
        return f'{code}: No detailed explanation available.'

    lines = [f'{code}: {info.message}']
    if info.hint:
        lines.append(f'  Hint: {info.hint}')
    lines.append(f'  Recoverable: {"yes" if info.recoverable else "no"}')
    return '\n'.join(lines)


def render_error(exc: PubkitError, *, file: TextIO | None = None) -> None:
    """Render an error in compiler style.

    Output format::

        error[PK-REGISTRY-NOT-DETECTED]: npm: No supported registry ...
          |
          = hint: Add package.json, Cargo.toml, ...

    Args:
        exc: The error to render.
        file: Output stream (defaults to ``sys.stderr``).
    """
    out = file or sys.stderr
    console = Console(file=out, highlight=False, force_terminal=out.isatty(), no_color=not out.isatty())
    where = f'{exc.registry}: ' if exc.registry else ''
    msg = rich_escape(f'{where}{exc.message}')
    console.print(f'[bold red]error\\[{exc.code.value}][/bold red][bold]: {msg}[/bold]', soft_wrap=True)
    if exc.hint:
        console.print('  [dim]|[/dim]')
        console.print(f'  [dim]=[/dim] [cyan]hint[/cyan]: {rich_escape(exc.hint)}', soft_wrap=True)
    console.print()


__all__ = [
    'ERRORS',
    'E',
    'ErrorCode',
    'ErrorInfo',
    'PubkitError',
    'explain',
    'render_error',
]
