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

"""Registry backend contract.

A backend adapts one package registry (npm, crates.io, PyPI, Homebrew)
to the workflow the orchestrator drives::

    detect ─→ validate ─→ simulate_publish ─→ publish ─→ verify
                                                 └─→ rollback (optional)

:class:`Backend` is the structural protocol the orchestrator depends on.
:class:`BaseBackend` is the convenience base the built-in backends extend:
it runs tools through :func:`~pubkit.backends._run.run_command` in a
worker thread, reads registry JSON through :func:`~pubkit.net.fetch_json`,
and reports rollback as unsupported unless overridden.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Protocol, runtime_checkable

import httpx

from pubkit.backends._run import CommandResult, run_command
from pubkit.errors import E, ErrorCode
from pubkit.logging import get_logger
from pubkit.net import VERIFY_POLICY, fetch_json
from pubkit.options import PublishOptions
from pubkit.retry import RetryPolicy

log = get_logger('pubkit.backends')

# https://semver.org/#is-there-a-suggested-regular-expression-regex-to-check-a-semver-string
SEMVER_RE = re.compile(
    r'^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)'
    r'(?:-((?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)(?:\.(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*))*))?'
    r'(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?$'
)


@dataclass(frozen=True)
class FieldIssue:
    """A validation finding tied to a manifest field."""

    field: str
    message: str

    def __str__(self) -> str:
        """Render as ``field: message``."""
        return f'{self.field}: {self.message}'


@dataclass(frozen=True)
class ValidationReport:
    """Result of :meth:`Backend.validate`.

    Attributes:
        valid: ``True`` when there are no errors.
        errors: Problems that block publishing.
        warnings: Problems worth reporting that do not block.
        metadata: At least ``package_name`` and ``version`` when known.
    """

    valid: bool
    errors: list[FieldIssue] = field(default_factory=list)
    warnings: list[FieldIssue] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class SimulationReport:
    """Result of :meth:`Backend.simulate_publish`."""

    success: bool
    output: str = ''
    errors: list[str] = field(default_factory=list)
    estimated_size: str | None = None


@dataclass(frozen=True)
class PublishReceipt:
    """Result of :meth:`Backend.publish`.

    Attributes:
        success: Whether the registry accepted the package.
        version: Version that was published.
        url: Public package page.
        output: Tool output.
        error: Failure description.
        code: Typed classification of the failure, when known.
    """

    success: bool
    version: str | None = None
    url: str | None = None
    output: str = ''
    error: str | None = None
    code: ErrorCode | None = None


@dataclass(frozen=True)
class VerificationReport:
    """Result of :meth:`Backend.verify`."""

    verified: bool
    version: str | None = None
    url: str | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RollbackReport:
    """Result of :meth:`Backend.rollback`."""

    success: bool
    message: str
    error: str | None = None


@runtime_checkable
class Backend(Protocol):
    """Protocol every registry integration satisfies."""

    @property
    def name(self) -> str:
        """Registry identifier, e.g. ``npm``."""
        ...

    @property
    def version(self) -> str:
        """Backend implementation version."""
        ...

    def detect(self, path: Path) -> bool:
        """Return whether ``path`` holds a project for this registry."""
        ...

    async def validate(self) -> ValidationReport:
        """Check the manifest before anything is published."""
        ...

    async def simulate_publish(self) -> SimulationReport:
        """Run the registry's non-committing publish."""
        ...

    async def publish(self, options: PublishOptions) -> PublishReceipt:
        """Publish the package."""
        ...

    async def verify(self) -> VerificationReport:
        """Confirm the published version is visible on the registry."""
        ...

    async def rollback(self, version: str) -> RollbackReport:
        """Withdraw ``version`` from the registry."""
        ...


Runner = Callable[..., CommandResult]

_FAILURE_MARKERS: tuple[tuple[ErrorCode, tuple[str, ...]], ...] = (
    (E.OTP_REQUIRED, ('eotp', 'one-time password', 'two-factor', 'otp required')),
    (E.TOKEN_MISSING, ('eneedauth', 'not logged in', 'no token found', '403 forbidden', 'invalid or non-existent')),
    (
        E.VERSION_CONFLICT,
        ('cannot publish over', 'previously published', 'already uploaded', 'already exists', 'file already exists'),
    ),
    (E.NETWORK_ERROR, ('econnrefused', 'enotfound', 'econnreset', 'network error', 'socket hang up')),
    (E.TIMEOUT_ERROR, ('etimedout', 'timed out', 'timeout')),
)


def classify_failure(output: str) -> ErrorCode:
    """Map registry tool output to the most specific error code."""
    text = output.lower()
    for code, markers in _FAILURE_MARKERS:
        if any(marker in text for marker in markers):
            return code
    return E.PUBLISH_FAILED


class BaseBackend:
    """Shared plumbing for the built-in backends.

    Subclasses set :attr:`name` and :attr:`manifest_names`, implement
    :meth:`probe`, and the five workflow methods.

    Args:
        project_dir: Project root.
        runner: Subprocess runner, replaceable in tests.
        transport: HTTP transport for verification lookups.
        retry_policy: Retry policy for verification lookups.
    """

    name: ClassVar[str] = ''
    version: ClassVar[str] = '1.0.0'

    def __init__(
        self,
        project_dir: Path,
        *,
        runner: Runner = run_command,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_policy: RetryPolicy = VERIFY_POLICY,
    ) -> None:
        """Bind the backend to a project."""
        self.project_dir = project_dir
        self._runner = runner
        self._transport = transport
        self._retry_policy = retry_policy

    @classmethod
    def probe(cls, path: Path) -> tuple[Path, float] | None:
        """Return ``(manifest_path, confidence)`` if ``path`` matches."""
        raise NotImplementedError

    def detect(self, path: Path) -> bool:
        """Return whether ``path`` holds a project for this registry."""
        return self.probe(path) is not None

    async def rollback(self, version: str) -> RollbackReport:
        """Report rollback as unsupported."""
        return RollbackReport(
            success=False,
            message=f'{self.name} does not support rollback',
            error=E.ROLLBACK_NOT_SUPPORTED.value,
        )

    async def run(self, *args: str, timeout: float | None = None) -> CommandResult:
        """Run a tool in the project directory without blocking the loop."""
        kwargs: dict[str, Any] = {'cwd': self.project_dir}
        if timeout is not None:
            kwargs['timeout'] = timeout
        return await asyncio.to_thread(self._runner, list(args), **kwargs)

    async def fetch_json(self, url: str) -> dict[str, Any] | None:
        """Read a registry JSON endpoint with retries."""
        return await fetch_json(url, transport=self._transport, policy=self._retry_policy)


__all__ = [
    'Backend',
    'BaseBackend',
    'FieldIssue',
    'PublishReceipt',
    'RollbackReport',
    'Runner',
    'SEMVER_RE',
    'SimulationReport',
    'ValidationReport',
    'VerificationReport',
    'classify_failure',
]
