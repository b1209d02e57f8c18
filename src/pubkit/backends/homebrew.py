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

"""Homebrew formula backend.

A formula is a Ruby file (``Formula/<name>.rb`` or ``<name>.rb`` at the
project root). "Publishing" builds and tests the formula locally with
``brew``; distributing it is a push to the tap repository, which stays
with the operator. Verification reads ``brew info --json=v2``.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

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

log = get_logger('pubkit.backends.homebrew')

FORMULA_DIR = 'Formula'

_CLASS_RE = re.compile(r'^\s*class\s+([A-Z][A-Za-z0-9]*)\s*<\s*Formula\b', re.MULTILINE)
_URL_RE = re.compile(r'^\s*url\s+["\']([^"\']+)["\']', re.MULTILINE)
_SHA_RE = re.compile(r'^\s*sha256\s+["\']([^"\']+)["\']', re.MULTILINE)
_VERSION_RE = re.compile(r'^\s*version\s+["\']([^"\']+)["\']', re.MULTILINE)
_DESC_RE = re.compile(r'^\s*desc\s+["\']', re.MULTILINE)
_HOMEPAGE_RE = re.compile(r'^\s*homepage\s+["\']', re.MULTILINE)
_URL_VERSION_RE = re.compile(r'[-_/v](\d+(?:\.\d+)+)(?:\.tar|\.zip|\.tgz|/|$)')
_SHA256_HEX_RE = re.compile(r'^[0-9a-f]{64}$')


def find_formula(path: Path) -> Path | None:
    """Return the first formula under ``Formula/`` or at the root."""
    for directory in (path / FORMULA_DIR, path):
        if directory.is_dir():
            candidates = sorted(directory.glob('*.rb'))
            if candidates:
                return candidates[0]
    return None


def _formula_name(class_name: str) -> str:
    """``FooBar`` → ``foo-bar`` (Homebrew's class-to-file convention)."""
    return re.sub(r'(?<!^)(?=[A-Z])', '-', class_name).lower()


class HomebrewBackend(BaseBackend):
    """Homebrew :class:`~pubkit.backends.base.Backend` implementation."""

    name = 'homebrew'

    def __init__(self, project_dir: Path, **kwargs: Any) -> None:  # noqa: ANN401 - forwarded to BaseBackend
        """Bind to the project's formula file."""
        super().__init__(project_dir, **kwargs)
        self._formula: dict[str, str] | None = None

    @classmethod
    def probe(cls, path: Path) -> tuple[Path, float] | None:
        """Match ``Formula/*.rb`` (1.0) or a root ``*.rb`` (0.7)."""
        formula = find_formula(path)
        if formula is None:
            return None
        return formula, 1.0 if formula.parent.name == FORMULA_DIR else 0.7

    def _load(self) -> dict[str, str]:
        if self._formula is None:
            path = find_formula(self.project_dir)
            if path is None:
                raise FileNotFoundError('no formula (*.rb) found')
            content = path.read_text(encoding='utf-8')
            fields: dict[str, str] = {'path': str(path)}
            for key, regex in (('class', _CLASS_RE), ('url', _URL_RE), ('sha256', _SHA_RE), ('version', _VERSION_RE)):
                match = regex.search(content)
                fields[key] = match.group(1) if match else ''
            if not fields['version'] and fields['url']:
                match = _URL_VERSION_RE.search(fields['url'])
                fields['version'] = match.group(1) if match else ''
            fields['name'] = _formula_name(fields['class']) if fields['class'] else path.stem
            fields['has_desc'] = '1' if _DESC_RE.search(content) else ''
            fields['has_homepage'] = '1' if _HOMEPAGE_RE.search(content) else ''
            self._formula = fields
        return self._formula

    async def validate(self) -> ValidationReport:
        """Check the formula's required stanzas."""
        errors: list[FieldIssue] = []
        warnings: list[FieldIssue] = []
        try:
            formula = self._load()
        except (OSError, UnicodeDecodeError) as exc:
            return ValidationReport(valid=False, errors=[FieldIssue('formula', str(exc))])

        if not formula['class']:
            errors.append(FieldIssue('class', 'no "class <Name> < Formula" declaration'))
        if not formula['url']:
            errors.append(FieldIssue('url', 'is required'))
        if not formula['sha256']:
            errors.append(FieldIssue('sha256', 'is required'))
        elif not _SHA256_HEX_RE.match(formula['sha256']):
            errors.append(FieldIssue('sha256', 'must be 64 lowercase hex characters'))
        if not formula['version']:
            warnings.append(FieldIssue('version', 'could not be determined from the formula'))
        if not formula['has_desc']:
            warnings.append(FieldIssue('desc', 'is recommended'))
        if not formula['has_homepage']:
            warnings.append(FieldIssue('homepage', 'is recommended'))

        return ValidationReport(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            metadata={'package_name': formula['name'], 'version': formula['version']},
        )

    async def simulate_publish(self) -> SimulationReport:
        """Run ``brew audit --strict`` on the formula."""
        formula = self._load()
        result = await self.run('brew', 'audit', '--strict', '--formula', formula['path'])
        if not result.ok:
            return SimulationReport(success=False, output=result.output, errors=[f'brew audit failed: {result.output[:500]}'])
        return SimulationReport(success=True, output=result.output)

    async def publish(self, options: PublishOptions) -> PublishReceipt:
        """Build the formula from source and run its test block."""
        formula = self._load()
        install = await self.run('brew', 'install', '--build-from-source', formula['path'])
        if not install.ok:
            return PublishReceipt(
                success=False,
                output=install.output,
                error=install.output[:500] or 'brew install failed',
                code=classify_failure(install.output),
            )
        test = await self.run('brew', 'test', formula['path'])
        if not test.ok:
            return PublishReceipt(success=False, output=test.output, error=f'brew test failed: {test.output[:500]}')
        return PublishReceipt(
            success=True,
            version=formula['version'] or None,
            output=f'{install.output}\nPush {Path(formula["path"]).name} to your tap to make it available.'.strip(),
        )

    async def verify(self) -> VerificationReport:
        """Read the installed version back from ``brew info``."""
        formula = self._load()
        result = await self.run('brew', 'info', '--json=v2', formula['path'])
        if not result.ok:
            return VerificationReport(verified=False, error=f'brew info failed: {result.output[:300]}')
        try:
            data = json.loads(result.stdout)
            stable = data['formulae'][0]['versions']['stable']
            homepage = data['formulae'][0].get('homepage')
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            return VerificationReport(verified=False, error=f'unexpected brew info output: {exc}')
        if formula['version'] and stable != formula['version']:
            return VerificationReport(verified=False, error=f'brew reports {stable}, expected {formula["version"]}')
        return VerificationReport(verified=True, version=stable, url=homepage)


__all__ = [
    'HomebrewBackend',
    'find_formula',
]
