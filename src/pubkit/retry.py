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

"""Exponential backoff for transient failures.

Only failures classified as transient are retried; anything else is
re-raised on the first attempt. Classification prefers the typed
``retryable`` flag on :class:`~pubkit.errors.PubkitError` and falls back
to matching well-known network failure text for foreign exceptions.

Backoff schedule::

    attempt 1 ──✗── sleep min(d, max) ──→ attempt 2 ──✗── sleep min(d·m, max)
              ──→ attempt 3 ... ──→ attempt N ──✗── raise last error

Usage::

    from pubkit.retry import RetryPolicy, retry, with_retry

    policy = RetryPolicy(max_attempts=3, initial_delay=1.0)
    data = await retry(lambda: fetch_json(url), policy)

    @with_retry(policy)
    async def lookup() -> dict: ...
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import ParamSpec, TypeVar

from pubkit.errors import PubkitError
from pubkit.logging import get_logger

logger = get_logger(__name__)

P = ParamSpec('P')
T = TypeVar('T')

# Lowercased substrings that mark a failure as transient.
TRANSIENT_MARKERS: tuple[str, ...] = (
    'econnrefused',
    'enotfound',
    'etimedout',
    'econnreset',
    'socket hang up',
    'network error',
    'timeout',
)


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters.

    Attributes:
        max_attempts: Total invocations allowed, at least 1.
        initial_delay: Seconds to wait before the second attempt.
        max_delay: Upper bound on any single wait.
        backoff_multiplier: Factor applied to the delay after each wait.
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0

    def __post_init__(self) -> None:
        """Reject policies that cannot make a single attempt."""
        if self.max_attempts < 1:
            raise ValueError(f'max_attempts must be >= 1, got {self.max_attempts}')
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError('delays must be non-negative')
        if self.backoff_multiplier < 1:
            raise ValueError(f'backoff_multiplier must be >= 1, got {self.backoff_multiplier}')

    def delay_for(self, retry_index: int) -> float:
        """Return the wait before retry number ``retry_index`` (0-based)."""
        return min(self.initial_delay * self.backoff_multiplier**retry_index, self.max_delay)


DEFAULT_POLICY = RetryPolicy()


def is_transient(exc: BaseException) -> bool:
    """Return whether ``exc`` is worth retrying."""
    if isinstance(exc, PubkitError):
        return exc.retryable
    text = str(exc).lower()
    if any(marker in text for marker in TRANSIENT_MARKERS):
        return True
    return isinstance(exc, (ConnectionError, TimeoutError))


async def retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_POLICY,
    *,
    classify: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """Run ``operation`` until it succeeds or retrying stops making sense.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt.
        policy: Attempt count and backoff schedule.
        classify: Decides whether a failure is transient.
        sleep: Awaitable sleep, replaceable in tests.
        on_retry: Called with ``(attempt, error, delay)`` before each wait.

    Returns:
        The first successful result.

    Raises:
        Exception: The first non-transient failure, or the failure from
            the final attempt.
    """
    delay = policy.initial_delay
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not classify(exc):
                logger.debug('retry_not_transient', attempt=attempt, error=str(exc))
                raise
            if attempt >= policy.max_attempts:
                logger.warning('retry_exhausted', attempts=attempt, error=str(exc))
                raise
            wait = min(delay, policy.max_delay)
            logger.warning('retry_scheduled', attempt=attempt, delay=wait, error=str(exc))
            if on_retry is not None:
                on_retry(attempt, exc, wait)
            await sleep(wait)
            delay *= policy.backoff_multiplier
            attempt += 1


def with_retry(
    policy: RetryPolicy = DEFAULT_POLICY,
    *,
    classify: Callable[[BaseException], bool] = is_transient,
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorate an async function so each call goes through :func:`retry`."""

    def decorator(fn: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await retry(lambda: fn(*args, **kwargs), policy, classify=classify)

        return wrapper

    return decorator


__all__ = [
    'DEFAULT_POLICY',
    'TRANSIENT_MARKERS',
    'RetryPolicy',
    'is_transient',
    'retry',
    'with_retry',
]
