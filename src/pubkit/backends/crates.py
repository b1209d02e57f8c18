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

"""crates.io backend.

Publishes with ``cargo`` and verifies through the crates.io API::

    GET https://crates.io/api/v1/crates/{name}   → crate + versions

Rollback is ``cargo yank --vers``; yanked versions stay downloadable for
existing lockfiles but are never picked for new resolutions.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions

from pubkit.backends.base import (
    SEMVER_RE,
    BaseBackend,
    FieldIssue,
    PublishReceipt,
    RollbackReport,
    SimulationReport,
    ValidationReport,
    VerificationReport,
    classify_failure,
)
from pubkit.logging import get_logger
from pubkit.options import PublishOptions

log = get_logger('pubkit.backends.crates')

MANIFEST = 'Cargo.toml'
API_URL = 'https://crates.io/api/v1/crates'
CRATE_PAGE = 'https://crates.io/crates'

MAX_NAME_LENGTH = 64
_NAME_RE = re.compile(r'^[A-Za-z][A-Za-z0-9_-]*$')


class CratesBackend(BaseBackend):
    """crates.io :class:`~pubkit.backends.base.Backend` implementation."""

    name = 'crates'

    def __init__(self, project_dir: Path, **kwargs: Any) -> None:  # noqa: ANN401 - forwarded to BaseBackend
        """Bind to ``project_dir/Cargo.toml``."""
        super().__init__(project_dir, **kwargs)
        self._package: dict[str, Any] | None = None

    @classmethod
    def probe(cls, path: Path) -> tuple[Path, float] | None:
        """Match a ``Cargo.toml``; workspace-only manifests score lower."""
        manifest = path / MANIFEST
        if not manifest.is_file():
            return None
        try:
            doc = tomlkit.parse(manifest.read_text(encoding='utf-8'))
        except (OSError, tomlkit.exceptions.TOMLKitError):
            return manifest, 0.5
        return manifest, 1.0 if 'package' in doc else 0.5

    def _load(self) -> dict[str, Any]:
        if self._package is None:
            doc = tomlkit.parse((self.project_dir / MANIFEST).read_text(encoding='utf-8'))
            package = doc.get('package')
            if package is None:
                raise ValueError('Cargo.toml has no [package] table')
            self._package = package.unwrap()
        return self._package

    @property
    def crate_name(self) -> str:
        """``package.name`` from Cargo.toml."""
        return str(self._load().get('name', ''))

    @property
    def crate_version(self) -> str:
        """``package.version`` from Cargo.toml."""
        return str(self._load().get('version', ''))

    async def validate(self) -> ValidationReport:
        """Validate ``[package]`` and run ``cargo check`` / ``cargo clippy``."""
        errors: list[FieldIssue] = []
        warnings: list[FieldIssue] = []
        try:
            package = self._load()
        except (OSError, ValueError, tomlkit.exceptions.TOMLKitError) as exc:
            return ValidationReport(valid=False, errors=[FieldIssue(MANIFEST, f'cannot be read: {exc}')])

        name = package.get('name')
        version = package.get('version')
        if not name:
            errors.append(FieldIssue('package.name', 'is required'))
        elif len(str(name)) > MAX_NAME_LENGTH or not _NAME_RE.match(str(name)):
            errors.append(FieldIssue('package.name', f'{name!r} is not a valid crate name'))
        if not version:
            errors.append(FieldIssue('package.version', 'is required'))
        elif not isinstance(version, str):
            errors.append(FieldIssue('package.version', 'inherited workspace versions are not supported'))
        elif not SEMVER_RE.match(version):
            errors.append(FieldIssue('package.version', f'{version!r} is not a valid semantic version'))
        if not package.get('license') and not package.get('license-file'):
            errors.append(FieldIssue('package.license', 'crates.io requires license or license-file'))
        if not package.get('description'):
            errors.append(FieldIssue('package.description', 'crates.io requires a description'))
        if package.get('publish') is False:
            errors.append(FieldIssue('package.publish', 'publishing is disabled for this crate'))
        if not package.get('repository'):
            warnings.append(FieldIssue('package.repository', 'is recommended'))

        if not errors:
            result = await self.run('cargo', 'check')
            if not result.ok:
                errors.append(FieldIssue('cargo check', result.output[:300]))
            else:
                clippy = await self.run('cargo', 'clippy', '--', '-D', 'warnings')
                if not clippy.ok:
                    warnings.append(FieldIssue('cargo clippy', 'reported warnings'))

        return ValidationReport(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            metadata={'package_name': str(name or ''), 'version': str(version or '')},
        )

    async def simulate_publish(self) -> SimulationReport:
        """Run ``cargo publish --dry-run``."""
        result = await self.run('cargo', 'publish', '--dry-run')
        if not result.ok:
            return SimulationReport(
                success=False,
                output=result.output,
                errors=[f'cargo publish --dry-run failed: {result.output[:500]}'],
            )
        return SimulationReport(success=True, output=result.output)

    async def publish(self, options: PublishOptions) -> PublishReceipt:
        """Run ``cargo publish``."""
        result = await self.run('cargo', 'publish')
        if not result.ok:
            return PublishReceipt(
                success=False,
                output=result.output,
                error=result.output[:500] or f'cargo publish exited with {result.return_code}',
                code=classify_failure(result.output),
            )
        return PublishReceipt(
            success=True,
            version=self.crate_version,
            url=f'{CRATE_PAGE}/{self.crate_name}',
            output=result.output,
        )

    async def verify(self) -> VerificationReport:
        """Confirm the version is listed by the crates.io API."""
        name, version = self.crate_name, self.crate_version
        data = await self.fetch_json(f'{API_URL}/{name}')
        if data is None:
            return VerificationReport(verified=False, error=f'{name} was not found on crates.io')
        listed = {str(v.get('num')) for v in data.get('versions') or [] if isinstance(v, dict)}
        if version not in listed:
            return VerificationReport(verified=False, error=f'{name} {version} is not listed on crates.io')
        return VerificationReport(
            verified=True,
            version=version,
            url=f'{CRATE_PAGE}/{name}',
            metadata={'newest_version': (data.get('crate') or {}).get('newest_version')},
        )

    async def rollback(self, version: str) -> RollbackReport:
        """Yank ``version``."""
        result = await self.run('cargo', 'yank', '--vers', version)
        if result.ok:
            return RollbackReport(success=True, message=f'Yanked {self.crate_name} {version}')
        return RollbackReport(success=False, message=f'Failed to yank {version}', error=result.output[:500])


__all__ = ['CratesBackend']
