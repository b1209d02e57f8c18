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

"""Tests for pubkit.logging module."""

from __future__ import annotations

import asyncio
import logging

import structlog
from pubkit.logging import REDACTED, configure_logging, get_logger, redact_credentials, registry_context


class TestConfigureLogging:
    """configure_logging() levels."""

    def test_default_level_is_info(self) -> None:
        """Default level is INFO."""
        configure_logging()
        if logging.root.level != logging.INFO:
            raise AssertionError(f'Expected INFO, got {logging.root.level}')

    def test_verbose_sets_debug(self) -> None:
        """verbose selects DEBUG."""
        configure_logging(verbose=True)
        if logging.root.level != logging.DEBUG:
            raise AssertionError(f'Expected DEBUG, got {logging.root.level}')

    def test_quiet_wins_over_verbose(self) -> None:
        """quiet takes precedence."""
        configure_logging(verbose=True, quiet=True)
        if logging.root.level != logging.WARNING:
            raise AssertionError(f'Expected WARNING, got {logging.root.level}')

    def test_json_log_emits(self) -> None:
        """JSON mode configures and logs without error."""
        configure_logging(json_log=True, quiet=True)
        get_logger('pubkit.test').warning('json_event', otp='123456')


class TestRedaction:
    """redact_credentials()."""

    def test_credentials_masked(self) -> None:
        """OTPs, tokens and passwords are masked."""
        event = {'event': 'publish', 'otp': '123456', 'npm_token': 'abc', 'PASSWORD': 'x', 'registry': 'npm'}
        result = redact_credentials(None, 'info', event)
        if (result['otp'], result['npm_token'], result['PASSWORD']) != (REDACTED, REDACTED, REDACTED):
            raise AssertionError(f'Credentials leaked: {result}')
        if result['registry'] != 'npm' or result['event'] != 'publish':
            raise AssertionError(f'Unrelated keys changed: {result}')

    def test_empty_values_kept(self) -> None:
        """A missing credential is not reported as present."""
        result = redact_credentials(None, 'info', {'otp': None, 'author': 'someone'})
        if result != {'otp': None, 'author': 'someone'}:
            raise AssertionError(f'Unexpected result: {result}')


class TestRegistryContext:
    """registry_context()."""

    def test_binds_and_unbinds(self) -> None:
        """The registry is bound only inside the block."""
        with registry_context('crates'):
            if structlog.contextvars.get_contextvars().get('registry') != 'crates':
                raise AssertionError('registry not bound')
        if 'registry' in structlog.contextvars.get_contextvars():
            raise AssertionError('registry leaked out of the block')

    async def test_tasks_are_isolated(self) -> None:
        """Concurrent tasks see only their own registry."""
        seen: dict[str, str] = {}

        async def attempt(registry: str) -> None:
            with registry_context(registry):
                await asyncio.sleep(0.01)
                seen[registry] = structlog.contextvars.get_contextvars()['registry']

        await asyncio.gather(attempt('npm'), attempt('pypi'))
        if seen != {'npm': 'npm', 'pypi': 'pypi'}:
            raise AssertionError(f'Bindings crossed: {seen}')
