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

"""HTTP helpers for registry verification.

Provides a managed :class:`httpx.AsyncClient` and :func:`fetch_json`,
which reads a registry JSON API through :func:`pubkit.retry.retry`.
Connection failures, timeouts, 429 and 5xx responses are raised as
retryable :class:`~pubkit.errors.PubkitError`; a 404 is an answer
(``None``), not an error.

Usage::

    from pubkit.net import fetch_json

    data = await fetch_json('https://registry.npmjs.org/left-pad')
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any, Final

import httpx

from pubkit.errors import E, PubkitError
from pubkit.logging import get_logger
from pubkit.retry import RetryPolicy, retry

log = get_logger('pubkit.net')

DEFAULT_TIMEOUT: Final[float] = 30.0
DEFAULT_POOL_SIZE: Final[int] = 10

RETRYABLE_STATUS_CODES: Final[frozenset[int]] = frozenset({429, 500, 502, 503, 504})

VERIFY_POLICY: Final[RetryPolicy] = RetryPolicy(max_attempts=3, initial_delay=1.0, max_delay=10.0)


@asynccontextmanager
async def http_client(
    *,
    pool_size: int = DEFAULT_POOL_SIZE,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncGenerator[httpx.AsyncClient]:
    """Create a managed async HTTP client with connection pooling.

    Args:
        pool_size: Maximum number of connections in the pool.
        timeout: Request timeout in seconds.
        transport: Optional transport, e.g. :class:`httpx.MockTransport`.

    Yields:
        An :class:`httpx.AsyncClient` instance.
    """
    limits = httpx.Limits(max_connections=pool_size, max_keepalive_connections=pool_size)
    async with httpx.AsyncClient(
        limits=limits,
        timeout=httpx.Timeout(timeout),
        follow_redirects=True,
        transport=transport,
        headers={'Accept': 'application/json', 'User-Agent': 'pubkit'},
    ) as client:
        yield client


async def fetch_json(
    url: str,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
    policy: RetryPolicy = VERIFY_POLICY,
) -> dict[str, Any] | None:
    """GET ``url`` and decode its JSON body.

    Args:
        url: Absolute URL of a JSON endpoint.
        transport: Optional transport override.
        policy: Retry policy for transient failures.

    Returns:
        The decoded object, or ``None`` when the server answers 404.

    Raises:
        PubkitError: ``NETWORK_ERROR`` for connection failures and
            unexpected statuses, ``TIMEOUT_ERROR`` for timeouts.
    """
    async with http_client(transport=transport) as client:

        async def attempt() -> dict[str, Any] | None:
            try:
                response = await client.get(url)
            except httpx.TimeoutException as exc:
                raise PubkitError(E.TIMEOUT_ERROR, f'GET {url} timed out', retryable=True) from exc
            except httpx.TransportError as exc:
                raise PubkitError(E.NETWORK_ERROR, f'GET {url} failed: {exc}', retryable=True) from exc

            if response.status_code == 404:
                log.debug('http_not_found', url=url)
                return None
            if response.status_code in RETRYABLE_STATUS_CODES:
                raise PubkitError(
                    E.NETWORK_ERROR,
                    f'GET {url} returned HTTP {response.status_code}',
                    retryable=True,
                )
            if response.status_code != 200:
                raise PubkitError(E.NETWORK_ERROR, f'GET {url} returned HTTP {response.status_code}')
            try:
                data = response.json()
            except ValueError as exc:
                raise PubkitError(E.NETWORK_ERROR, f'GET {url} returned invalid JSON') from exc
            if not isinstance(data, dict):
                raise PubkitError(E.NETWORK_ERROR, f'GET {url} returned a non-object JSON body')
            return data

        return await retry(attempt, policy)


__all__ = [
    'DEFAULT_POOL_SIZE',
    'DEFAULT_TIMEOUT',
    'RETRYABLE_STATUS_CODES',
    'VERIFY_POLICY',
    'fetch_json',
    'http_client',
]
