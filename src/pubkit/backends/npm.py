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

"""npm registry backend.

Publishes with the ``npm`` CLI and verifies against the public registry
API::

    GET https://registry.npmjs.org/{name}   → versions, dist-tags, time

Rollback follows npm policy: ``npm unpublish`` within 72 hours of the
publish, ``npm deprecate`` afterwards.
"""

from __future__ import annotations

import json
import re
import time
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

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

log = get_logger('pubkit.backends.npm')

MANIFEST = 'package.json'
REGISTRY_URL = 'https://registry.npmjs.org'
PACKAGE_PAGE = 'https://www.npmjs.com/package'

UNPUBLISH_WINDOW_HOURS = 72
MAX_NAME_LENGTH = 214

_NAME_RE = re.compile(r'^(?:@[a-z0-9-*~][a-z0-9-*._~]*/)?[a-z0-9-~][a-z0-9-._~]*$')
_SIZE_RE = re.compile(r'package size:\s*(\S+(?:\s*[kMG]?B)?)', re.IGNORECASE)


def validate_package_name(name: str) -> list[FieldIssue]:
    """Check ``name`` against the npm naming rules."""
    issues: list[FieldIssue] = []
    if len(name) > MAX_NAME_LENGTH:
        issues.append(FieldIssue('name', f'must be at most {MAX_NAME_LENGTH} characters'))
    if name != name.lower():
        issues.append(FieldIssue('name', 'must be lowercase'))
    bare = name.split('/', 1)[1] if name.startswith('@') and '/' in name else name
    if bare.startswith(('.', '_')):
        issues.append(FieldIssue('name', 'must not start with "." or "_"'))
    if not _NAME_RE.match(name.lower()):
        issues.append(FieldIssue('name', f'{name!r} contains characters that are not URL-safe'))
    return issues


class NpmBackend(BaseBackend):
    """npm :class:`~pubkit.backends.base.Backend` implementation."""

    name = 'npm'

    def __init__(self, project_dir: Path, **kwargs: Any) -> None:  # noqa: ANN401 - forwarded to BaseBackend
        """Bind to ``project_dir/package.json``."""
        super().__init__(project_dir, **kwargs)
        self._manifest: dict[str, Any] | None = None

    @classmethod
    def probe(cls, path: Path) -> tuple[Path, float] | None:
        """Match a readable ``package.json``."""
        manifest = path / MANIFEST
        if manifest.is_file():
            return manifest, 1.0
        return None

    def _load(self) -> dict[str, Any]:
        if self._manifest is None:
            data = json.loads((self.project_dir / MANIFEST).read_text(encoding='utf-8'))
            if not isinstance(data, dict):
                raise ValueError('package.json must contain a JSON object')
            self._manifest = data
        return self._manifest

    @property
    def package_name(self) -> str:
        """``name`` from package.json."""
        return str(self._load().get('name', ''))

    @property
    def package_version(self) -> str:
        """``version`` from package.json."""
        return str(self._load().get('version', ''))

    async def validate(self) -> ValidationReport:
        """Validate package.json and run its build and test scripts."""
        errors: list[FieldIssue] = []
        warnings: list[FieldIssue] = []
        try:
            manifest = self._load()
        except (OSError, ValueError) as exc:
            return ValidationReport(valid=False, errors=[FieldIssue(MANIFEST, f'cannot be read: {exc}')])

        name = manifest.get('name')
        version = manifest.get('version')
        if not name:
            errors.append(FieldIssue('name', 'is required'))
        else:
            errors.extend(validate_package_name(str(name)))
        if not version:
            errors.append(FieldIssue('version', 'is required'))
        elif not SEMVER_RE.match(str(version)):
            errors.append(FieldIssue('version', f'{version!r} is not a valid semantic version'))
        if not manifest.get('license'):
            warnings.append(FieldIssue('license', 'is recommended'))
        if manifest.get('private') is True:
            errors.append(FieldIssue('private', 'private packages cannot be published'))

        scripts = manifest.get('scripts') or {}
        if not errors:
            if 'build' in scripts:
                result = await self.run('npm', 'run', 'build')
                if not result.ok:
                    errors.append(FieldIssue('scripts.build', f'failed: {result.output[:300]}'))
            if 'test' in scripts and not errors:
                result = await self.run('npm', 'test')
                if not result.ok:
                    errors.append(FieldIssue('scripts.test', f'failed: {result.output[:300]}'))
        if 'lint' not in scripts:
            warnings.append(FieldIssue('scripts.lint', 'a lint script is recommended'))

        return ValidationReport(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            metadata={'package_name': str(name or ''), 'version': str(version or '')},
        )

    async def simulate_publish(self) -> SimulationReport:
        """Run ``npm publish --dry-run``."""
        result = await self.run('npm', 'publish', '--dry-run')
        output = result.output
        if not result.ok:
            return SimulationReport(success=False, output=output, errors=[f'npm publish --dry-run failed: {output[:500]}'])
        match = _SIZE_RE.search(output)
        return SimulationReport(success=True, output=output, estimated_size=match.group(1) if match else None)

    async def publish(self, options: PublishOptions) -> PublishReceipt:
        """Run ``npm publish`` with OTP, tag and access flags."""
        args = ['npm', 'publish']
        if options.otp:
            args += ['--otp', options.otp]
        if options.access and self.package_name.startswith('@'):
            args += ['--access', options.access]
        if options.tag:
            args += ['--tag', options.tag]

        result = await self.run(*args)
        if not result.ok:
            return PublishReceipt(
                success=False,
                output=result.output,
                error=result.output[:500] or f'npm publish exited with {result.return_code}',
                code=classify_failure(result.output),
            )
        return PublishReceipt(
            success=True,
            version=self.package_version,
            url=f'{PACKAGE_PAGE}/{self.package_name}',
            output=result.output,
        )

    def _registry_url(self) -> str:
        return f'{REGISTRY_URL}/{quote(self.package_name, safe="@")}'

    async def verify(self) -> VerificationReport:
        """Confirm the version appears in the registry document."""
        name, version = self.package_name, self.package_version
        data = await self.fetch_json(self._registry_url())
        if data is None:
            return VerificationReport(verified=False, error=f'{name} was not found on the npm registry')
        versions = data.get('versions') or {}
        if version not in versions:
            return VerificationReport(
                verified=False,
                error=f'{name}@{version} is not listed; available: {", ".join(sorted(versions)) or "none"}',
            )
        return VerificationReport(
            verified=True,
            version=version,
            url=f'{PACKAGE_PAGE}/{name}',
            metadata={'latest': (data.get('dist-tags') or {}).get('latest')},
        )

    async def _published_at(self, version: str) -> float | None:
        data = await self.fetch_json(self._registry_url())
        stamp = ((data or {}).get('time') or {}).get(version)
        if not stamp:
            return None
        try:
            return datetime.fromisoformat(str(stamp).replace('Z', '+00:00')).timestamp()
        except ValueError:
            return None

    async def rollback(self, version: str) -> RollbackReport:
        """Unpublish within 72 hours of publishing, otherwise deprecate."""
        spec = f'{self.package_name}@{version}'
        published_at = await self._published_at(version)
        if published_at is not None:
            age_hours = (time.time() - published_at) / 3600
            if age_hours <= UNPUBLISH_WINDOW_HOURS:
                result = await self.run('npm', 'unpublish', spec)
                if result.ok:
                    return RollbackReport(success=True, message=f'Unpublished {spec} ({int(age_hours)}h after publish)')
                return RollbackReport(success=False, message=f'Failed to unpublish {spec}', error=result.output[:500])

        result = await self.run('npm', 'deprecate', spec, 'This version has been deprecated. Please use a newer version.')
        if result.ok:
            return RollbackReport(success=True, message=f'Deprecated {spec} (unpublish is only allowed within 72h)')
        return RollbackReport(success=False, message=f'Failed to deprecate {spec}', error=result.output[:500])


__all__ = [
    'NpmBackend',
    'validate_package_name',
]
