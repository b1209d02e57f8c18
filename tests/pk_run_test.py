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

"""Tests for pubkit.backends._run and failure classification."""

from __future__ import annotations

from pathlib import Path

import pytest
from pubkit.backends._run import (
    ALLOWED_COMMANDS,
    NOT_FOUND_RETURN_CODE,
    CommandResult,
    check_allowed,
    redact_argv,
    run_command,
)
from pubkit.backends.base import FieldIssue, classify_failure
from pubkit.errors import E, PubkitError
from pubkit.logging import configure_logging

configure_logging(quiet=True)

_SHELL_TOOLS = frozenset({'echo', 'false', 'pwd', 'sleep', 'pubkit-missing-tool'})


class TestCommandResult:
    """CommandResult helpers."""

    def test_output_joins_streams(self) -> None:
        """stdout and stderr are stripped and joined."""
        result = CommandResult(command=['npm', 'publish'], return_code=1, stdout='out\n', stderr='  err ')
        if result.output != 'out\nerr' or result.ok or result.command_str != 'npm publish':
            raise AssertionError(f'Unexpected: {result!r}')

    def test_empty_streams(self) -> None:
        """No output yields an empty string."""
        if CommandResult(command=['git'], return_code=0).output != '':
            raise AssertionError('Expected empty output')

    def test_command_str_masks_otp(self) -> None:
        """The display form never carries the OTP."""
        result = CommandResult(command=['npm', 'publish', '--otp', '123456'], return_code=0)
        if '123456' in result.command_str:
            raise AssertionError(f'OTP leaked: {result.command_str}')


class TestRedactArgv:
    """redact_argv()."""

    def test_separate_value(self) -> None:
        """The argument after a secret flag is masked; later flags are not."""
        got = redact_argv(['npm', 'publish', '--otp', '123456', '--tag', 'next'])
        if got != 'npm publish --otp *** --tag next':
            raise AssertionError(f'Unexpected: {got!r}')

    def test_inline_value(self) -> None:
        """``--flag=value`` keeps the flag name only."""
        got = redact_argv(['twine', 'upload', '--password=hunter2', 'dist/a.whl'])
        if got != 'twine upload --password=*** dist/a.whl':
            raise AssertionError(f'Unexpected: {got!r}')

    def test_trailing_flag(self) -> None:
        """A secret flag with no value is left as is."""
        if redact_argv(['npm', 'publish', '--otp']) != 'npm publish --otp':
            raise AssertionError('Trailing flag should be unchanged')


class TestAllowList:
    """check_allowed()."""

    def test_registry_tools_allowed(self) -> None:
        """Registry tools pass, including absolute paths."""
        for cmd in (['npm', 'publish'], ['/usr/local/bin/cargo', 'check'], ['twine', 'upload']):
            check_allowed(cmd)

    @pytest.mark.parametrize('cmd', [['rm', '-rf', '/'], ['bash', '-c', 'echo'], []])
    def test_rejected(self, cmd: list[str]) -> None:
        """Anything else raises COMMAND_NOT_ALLOWED."""
        with pytest.raises(PubkitError) as excinfo:
            check_allowed(cmd)
        if excinfo.value.code != E.COMMAND_NOT_ALLOWED:
            raise AssertionError(f'Unexpected code: {excinfo.value.code}')

    def test_default_list(self) -> None:
        """Shells are never on the default list."""
        if {'sh', 'bash', 'zsh'} & ALLOWED_COMMANDS:
            raise AssertionError('Shells must not be allowed')


class TestRunCommand:
    """run_command() against real processes."""

    def test_captures_output(self, tmp_path: Path) -> None:
        """stdout is captured and cwd is honoured."""
        result = run_command(['pwd'], cwd=tmp_path, allowed=_SHELL_TOOLS)
        if not result.ok or Path(result.stdout.strip()).resolve() != tmp_path.resolve():
            raise AssertionError(f'Unexpected result: {result!r}')

    def test_failure_is_returned(self) -> None:
        """A non-zero exit is a result, not an exception."""
        result = run_command(['false'], allowed=_SHELL_TOOLS)
        if result.ok or result.return_code == 0:
            raise AssertionError('false should fail')

    def test_missing_executable(self) -> None:
        """A missing tool reports 127."""
        result = run_command(['pubkit-missing-tool'], allowed=_SHELL_TOOLS)
        if result.return_code != NOT_FOUND_RETURN_CODE or 'command not found' not in result.stderr:
            raise AssertionError(f'Unexpected result: {result!r}')

    def test_env_is_merged(self) -> None:
        """Extra environment variables are visible to the child."""
        result = run_command(['echo', 'ok'], env={'PUBKIT_TEST': '1'}, allowed=_SHELL_TOOLS)
        if result.stdout.strip() != 'ok':
            raise AssertionError(f'Unexpected output: {result.stdout!r}')

    def test_timeout_is_retryable(self) -> None:
        """Timeouts raise a retryable TIMEOUT_ERROR."""
        with pytest.raises(PubkitError) as excinfo:
            run_command(['sleep', '5'], timeout=0.1, allowed=_SHELL_TOOLS)
        if excinfo.value.code != E.TIMEOUT_ERROR or not excinfo.value.retryable:
            raise AssertionError(f'Unexpected error: {excinfo.value!r}')


class TestClassifyFailure:
    """classify_failure()."""

    @pytest.mark.parametrize(
        ('output', 'expected'),
        [
            ('npm ERR! code EOTP', E.OTP_REQUIRED),
            ('npm ERR! code ENEEDAUTH', E.TOKEN_MISSING),
            ('HTTPError: 403 Forbidden from https://upload.pypi.org', E.TOKEN_MISSING),
            ('You cannot publish over the previously published versions', E.VERSION_CONFLICT),
            ('crate version `1.0.0` is already uploaded', E.VERSION_CONFLICT),
            ('npm ERR! code ECONNRESET', E.NETWORK_ERROR),
            ('request to registry timed out', E.TIMEOUT_ERROR),
            ('something unexpected', E.PUBLISH_FAILED),
            ('', E.PUBLISH_FAILED),
        ],
    )
    def test_markers(self, output: str, expected: E) -> None:
        """Known registry messages map to specific codes."""
        if classify_failure(output) != expected:
            raise AssertionError(f'{output!r} → {classify_failure(output)}, expected {expected}')

    def test_field_issue_str(self) -> None:
        """FieldIssue renders as 'field: message'."""
        if str(FieldIssue('version', 'is required')) != 'version: is required':
            raise AssertionError('Unexpected FieldIssue rendering')
