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

"""PyPI backend.

Builds with ``python -m build``, uploads with ``twine``, and verifies
through the PyPI JSON API::

    GET https://pypi.org/pypi/{name}/json   → info + releases

Both ``pyproject.toml`` (PEP 621) and legacy ``setup.py`` projects are
detected; the latter scores lower so a project carrying both is always
treated as a PEP 621 project. PyPI does not allow deleting and
re-uploading a version, so rollback is unsupported.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any

import tomlkit
import tomlkit.exceptions
from packaging.utils import canonicalize_name
from packaging.version import InvalidVersion, Version

from pubkit.backends.base import (
    BaseBackend,
    FieldIssue,
    PublishReceipt,
    SimulationReport,
    ValidationReport,
    VerificationReport,
    classify_failure,
)
from pubkit.logging import get_logger
from pubkit.options import PublishOptions

log = get_logger('pubkit.backends.pypi')

PYPROJECT = 'pyproject.toml'
SETUP_PY = 'setup.py'
API_URL = 'https://pypi.org/pypi'
PROJECT_PAGE = 'https://pypi.org/project'

# PEP 508 project names.
_NAME_RE = re.compile(r'^([A-Z0-9]|[A-Z0-9][A-Z0-9._-]*[A-Z0-9])$', re.IGNORECASE)
_SETUP_FIELD_RE = r'{field}\s*=\s*[\'"]([^\'"]+)[\'"]'


def _setup_field(content: str, field: str) -> str:
    match = re.search(_SETUP_FIELD_RE.format(field=field), content)
    return match.group(1) if match else ''


class PyPIBackend(BaseBackend):
    """PyPI :class:`~pubkit.backends.base.Backend` implementation."""

    name = 'pypi'

    def __init__(self, project_dir: Path, **kwargs: Any) -> None:  # noqa: ANN401 - forwarded to BaseBackend
        """Bind to the project's pyproject.toml or setup.py."""
        super().__init__(project_dir, **kwargs)
        self._metadata: dict[str, Any] | None = None

    @classmethod
    def probe(cls, path: Path) -> tuple[Path, float] | None:
        """Match ``pyproject.toml`` (1.0) or ``setup.py`` (0.9)."""
        if (path / PYPROJECT).is_file():
            return path / PYPROJECT, 1.0
        if (path / SETUP_PY).is_file():
            return path / SETUP_PY, 0.9
        return None

    def _load(self) -> dict[str, Any]:
        """Return ``name``, ``version`` and ``dynamic`` from the manifest."""
        if self._metadata is not None:
            return self._metadata
        pyproject = self.project_dir / PYPROJECT
        if pyproject.is_file():
            doc = tomlkit.parse(pyproject.read_text(encoding='utf-8'))
            project = doc.get('project')
            if project is None:
                raise ValueError('pyproject.toml has no [project] table')
            data = project.unwrap()
            self._metadata = {
                'name': str(data.get('name', '')),
                'version': str(data.get('version', '')),
                'dynamic': list(data.get('dynamic', [])),
                'license': data.get('license'),
                'description': data.get('description'),
            }
        else:
            content = (self.project_dir / SETUP_PY).read_text(encoding='utf-8')
            self._metadata = {
                'name': _setup_field(content, 'name'),
                'version': _setup_field(content, 'version'),
                'dynamic': [],
                'license': _setup_field(content, 'license') or None,
                'description': _setup_field(content, 'description') or None,
            }
        return self._metadata

    @property
    def project_name(self) -> str:
        """Project name from the manifest."""
        return self._load()['name']

    @property
    def project_version(self) -> str:
        """Static version from the manifest, or empty when dynamic."""
        return self._load()['version']

    async def validate(self) -> ValidationReport:
        """Validate name and PEP 440 version; check build tooling is present."""
        errors: list[FieldIssue] = []
        warnings: list[FieldIssue] = []
        try:
            meta = self._load()
        except (OSError, ValueError, tomlkit.exceptions.TOMLKitError) as exc:
            return ValidationReport(valid=False, errors=[FieldIssue('manifest', f'cannot be read: {exc}')])

        name, version = meta['name'], meta['version']
        if not name:
            errors.append(FieldIssue('name', 'is required'))
        elif not _NAME_RE.match(name):
            errors.append(FieldIssue('name', f'{name!r} is not a valid PEP 508 project name'))
        if version:
            try:
                Version(version)
            except InvalidVersion:
                errors.append(FieldIssue('version', f'{version!r} is not a valid PEP 440 version'))
        elif 'version' in meta['dynamic']:
            warnings.append(FieldIssue('version', 'is dynamic; verification will be skipped'))
        else:
            errors.append(FieldIssue('version', 'is required'))
        if not meta['license']:
            warnings.append(FieldIssue('license', 'is recommended'))
        if not meta['description']:
            warnings.append(FieldIssue('description', 'is recommended'))

        build = await self.run('python', '-m', 'build', '--version')
        if not build.ok:
            errors.append(FieldIssue('build', "the 'build' package is not installed (pip install build)"))
        twine = await self.run('twine', '--version')
        if not twine.ok:
            errors.append(FieldIssue('twine', 'twine is not installed (pip install twine)'))

        return ValidationReport(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            metadata={'package_name': name, 'version': version},
        )

    def _dist_files(self) -> list[str]:
        dist = self.project_dir / 'dist'
        files = sorted(p for p in dist.glob('*') if p.suffix in {'.whl', '.gz'})
        version = self.project_version
        if version:
            files = [p for p in files if version in p.name] or files
        return [str(p) for p in files]

    async def simulate_publish(self) -> SimulationReport:
        """Build the distributions and run ``twine check`` on them."""
        build = await self.run('python', '-m', 'build')
        if not build.ok:
            return SimulationReport(success=False, output=build.output, errors=[f'build failed: {build.output[:500]}'])
        files = self._dist_files()
        if not files:
            return SimulationReport(success=False, output=build.output, errors=['build produced no distributions'])
        check = await self.run('twine', 'check', *files)
        if not check.ok:
            return SimulationReport(
                success=False,
                output=check.output,
                errors=[f'twine check failed: {check.output[:500]}'],
            )
        return SimulationReport(success=True, output=f'{build.output}\n{check.output}'.strip())

    async def publish(self, options: PublishOptions) -> PublishReceipt:
        """Build if needed and upload with ``twine upload``."""
        files = self._dist_files()
        if not files:
            build = await self.run('python', '-m', 'build')
            if not build.ok:
                return PublishReceipt(success=False, output=build.output, error=f'build failed: {build.output[:500]}')
            files = self._dist_files()
        result = await self.run('twine', 'upload', '--non-interactive', *files)
        if not result.ok:
            return PublishReceipt(
                success=False,
                output=result.output,
                error=result.output[:500] or f'twine upload exited with {result.return_code}',
                code=classify_failure(result.output),
            )
        return PublishReceipt(
            success=True,
            version=self.project_version or None,
            url=f'{PROJECT_PAGE}/{self.project_name}',
            output=result.output,
        )

    async def verify(self) -> VerificationReport:
        """Confirm the release appears in the PyPI JSON API."""
        name, version = self.project_name, self.project_version
        if not version:
            return VerificationReport(verified=False, error='version is dynamic; cannot verify')
        data = await self.fetch_json(f'{API_URL}/{canonicalize_name(name)}/json')
        if data is None:
            return VerificationReport(verified=False, error=f'{name} was not found on PyPI')
        releases = data.get('releases') or {}
        if version not in releases and str(Version(version)) not in releases:
            return VerificationReport(verified=False, error=f'{name} {version} is not listed on PyPI')
        return VerificationReport(
            verified=True,
            version=version,
            url=f'{PROJECT_PAGE}/{name}/{version}/',
            metadata={'latest': (data.get('info') or {}).get('version')},
        )


__all__ = ['PyPIBackend']
