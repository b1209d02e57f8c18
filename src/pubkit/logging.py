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

"""Structured logging for pubkit.

Events are rendered by `structlog <https://www.structlog.org/>`_ as
colored console lines, or as one JSON object per line with
``--json-log``. All of it goes to stderr so ``pubkit stats --format json``
stays pipeable.

Two pieces are specific to publishing:

- :func:`redact_credentials` masks OTPs, tokens and passwords before an
  event is rendered, whatever the caller passed.
- :func:`registry_context` binds ``registry=`` onto every event emitted
  inside it. Concurrent batch attempts run in separate asyncio tasks, so
  their bindings never mix.

Usage::

    from pubkit.logging import configure_logging, get_logger, registry_context

    configure_logging(verbose=True)
    log = get_logger('pubkit.orchestrator')
    with registry_context('npm'):
        log.info('stage_transition', stage='validating')
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator, MutableMapping
from contextlib import contextmanager
from typing import Any

import structlog

REDACTED = '***'

# Event keys whose values never reach a log sink.
CREDENTIAL_KEYS: frozenset[str] = frozenset({
    'auth',
    'otp',
    'password',
    'secret',
    'token',
})


def _is_credential(key: str) -> bool:
    lowered = key.lower()
    return any(part in CREDENTIAL_KEYS for part in lowered.replace('-', '_').split('_'))


def redact_credentials(
    _logger: object,
    _method: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Replace credential-looking values with :data:`REDACTED`."""
    for key, value in event_dict.items():
        if value and _is_credential(key):
            event_dict[key] = REDACTED
    return event_dict


def _level(verbose: bool, quiet: bool) -> int:
    if quiet:
        return logging.WARNING
    return logging.DEBUG if verbose else logging.INFO


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    json_log: bool = False,
) -> None:
    """Route structlog through the stdlib root logger on stderr.

    Safe to call more than once; the last call wins.

    Args:
        verbose: Enable debug-level output.
        quiet: Only emit warnings and errors. Takes precedence over
            ``verbose``.
        json_log: Render JSON lines instead of console output.
    """
    logging.basicConfig(format='%(message)s', stream=sys.stderr, level=_level(verbose, quiet), force=True)

    renderer: structlog.types.Processor = (
        structlog.processors.JSONRenderer() if json_log else structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt='iso'),
            redact_credentials,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.UnicodeDecoder(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
    )
    for handler in logging.root.handlers:
        handler.setFormatter(formatter)


@contextmanager
def registry_context(registry: str) -> Iterator[None]:
    """Tag every event logged inside the block with ``registry``."""
    with structlog.contextvars.bound_contextvars(registry=registry):
        yield


def get_logger(name: str = 'pubkit') -> structlog.stdlib.BoundLogger:
    """Return a structlog logger named ``name``."""
    return structlog.get_logger(name)


__all__ = [
    'CREDENTIAL_KEYS',
    'REDACTED',
    'configure_logging',
    'get_logger',
    'redact_credentials',
    'registry_context',
]
