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

"""Leaked-credential scanner.

Walks the project tree line by line against a fixed rule set (cloud
keys, registry tokens, private key blocks, generic ``password = "..."``
assignments). Matches are masked before they leave this module so a
report can be printed or logged safely.

Skipped: VCS and dependency directories, build output, lock files,
binary files, files over 1 MiB, and any ``security.ignore_patterns``
glob.
"""

from __future__ import annotations

import fnmatch
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from pubkit.logging import get_logger

logger = get_logger(__name__)

MAX_FILE_BYTES = 1024 * 1024

SKIP_DIRS: frozenset[str] = frozenset({
    '.git',
    '.hg',
    '.publish-state',
    '.package-publisher',
    '.venv',
    '__pycache__',
    'build',
    'dist',
    'node_modules',
    'target',
})

SKIP_FILES: frozenset[str] = frozenset({
    'Cargo.lock',
    'Gemfile.lock',
    'package-lock.json',
    'pnpm-lock.yaml',
    'poetry.lock',
    'uv.lock',
    'yarn.lock',
})


@dataclass(frozen=True)
class SecretRule:
    """A named pattern; group 1, if present, is the secret itself."""

    name: str
    pattern: re.Pattern[str]
    severity: str = 'high'


RULES: tuple[SecretRule, ...] = (
    SecretRule('aws-access-key', re.compile(r'\b(AKIA[0-9A-Z]{16})\b'), 'critical'),
    SecretRule('github-token', re.compile(r'\b(gh[pousr]_[A-Za-z0-9]{36,})\b'), 'critical'),
    SecretRule('npm-token', re.compile(r'\b(npm_[A-Za-z0-9]{36})\b'), 'critical'),
    SecretRule('pypi-token', re.compile(r'\b(pypi-[A-Za-z0-9_-]{20,})'), 'critical'),
    SecretRule('slack-token', re.compile(r'\b(xox[baprs]-[0-9]{10,13}-[0-9]{10,13}-[A-Za-z0-9]{24,})\b'), 'high'),
    SecretRule('private-key', re.compile(r'(-----BEGIN (?:RSA |EC |DSA |OPENSSH )?PRIVATE KEY-----)'), 'critical'),
    SecretRule(
        'generic-api-key',
        re.compile(r'(?i)(?:api[_-]?key|apikey|api[_-]?secret)\s*[:=]\s*[\'"]([A-Za-z0-9_\-]{20,})[\'"]'),
        'high',
    ),
    SecretRule(
        'generic-password',
        re.compile(r'(?i)(?:secret|password|passwd|pwd)\s*[:=]\s*[\'"]([^\'"\s]{8,})[\'"]'),
        'medium',
    ),
    SecretRule(
        'generic-token',
        re.compile(r'(?i)(?:token|auth|bearer)\s*[:=]\s*[\'"]([A-Za-z0-9_\-.]{20,})[\'"]'),
        'medium',
    ),
    SecretRule(
        'base64-secret',
        re.compile(r'(?i)(?:secret|password|key|token)\s*[:=]\s*[\'"]([A-Za-z0-9+/]{40,}={0,2})[\'"]'),
        'medium',
    ),
)


def mask(secret: str) -> str:
    """Keep the first and last five characters of ``secret``."""
    if len(secret) <= 10:
        return '****'
    return f'{secret[:5]}...{secret[-5:]}'


@dataclass(frozen=True)
class Finding:
    """One suspected secret.

    Attributes:
        file: Path relative to the scanned root.
        line: 1-based line number.
        rule: Name of the matching :class:`SecretRule`.
        severity: ``critical``, ``high`` or ``medium``.
        masked: The match with its middle hidden.
    """

    file: str
    line: int
    rule: str
    severity: str
    masked: str

    def __str__(self) -> str:
        """Render as ``file:line [rule] masked``."""
        return f'{self.file}:{self.line} [{self.rule}] {self.masked}'


@dataclass
class ScanReport:
    """Outcome of one scan."""

    findings: list[Finding] = field(default_factory=list)
    scanned_files: int = 0

    @property
    def has_findings(self) -> bool:
        """Whether any rule matched."""
        return bool(self.findings)


@runtime_checkable
class Scanner(Protocol):
    """Anything that can scan a project directory for secrets."""

    def scan(self, path: Path) -> ScanReport:
        """Scan ``path`` recursively."""
        ...


class SecretsScanner:
    """Regex-based :class:`Scanner`.

    Args:
        ignore_patterns: Extra globs (relative to the scanned root) to skip.
        rules: Rule set; defaults to :data:`RULES`.
    """

    def __init__(self, ignore_patterns: list[str] | None = None, rules: tuple[SecretRule, ...] = RULES) -> None:
        """Configure ignores and rules."""
        self.ignore_patterns = list(ignore_patterns or [])
        self.rules = rules

    def _ignored(self, rel: str) -> bool:
        return any(fnmatch.fnmatch(rel, pattern) for pattern in self.ignore_patterns)

    def scan(self, path: Path) -> ScanReport:
        """Scan every eligible file under ``path``."""
        report = ScanReport()
        for dirpath, dirnames, filenames in os.walk(path):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            for filename in sorted(filenames):
                if filename in SKIP_FILES:
                    continue
                file_path = Path(dirpath) / filename
                rel = file_path.relative_to(path).as_posix()
                if self._ignored(rel):
                    continue
                findings = self.scan_file(file_path, rel)
                if findings is None:
                    continue
                report.scanned_files += 1
                report.findings.extend(findings)
        logger.info('secrets_scan_complete', path=str(path), files=report.scanned_files, findings=len(report.findings))
        return report

    def scan_file(self, file_path: Path, rel: str) -> list[Finding] | None:
        """Scan one file; ``None`` if it was skipped as binary or too large."""
        try:
            if file_path.stat().st_size > MAX_FILE_BYTES:
                return None
            data = file_path.read_bytes()
        except OSError as exc:
            logger.debug('secrets_scan_unreadable', file=rel, error=str(exc))
            return None
        if b'\x00' in data:
            return None
        text = data.decode('utf-8', errors='replace')
        findings: list[Finding] = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            for rule in self.rules:
                for match in rule.pattern.finditer(line):
                    secret = match.group(1) if match.groups() else match.group(0)
                    findings.append(Finding(rel, lineno, rule.name, rule.severity, mask(secret)))
        return findings


def format_report(report: ScanReport) -> str:
    """Render a report as plain text lines."""
    if not report.has_findings:
        return f'No secrets found in {report.scanned_files} files.'
    lines = [f'{len(report.findings)} potential secret(s) found:']
    lines.extend(f'  {finding}' for finding in report.findings)
    return '\n'.join(lines)


__all__ = [
    'RULES',
    'Finding',
    'ScanReport',
    'Scanner',
    'SecretRule',
    'SecretsScanner',
    'format_report',
    'mask',
]
