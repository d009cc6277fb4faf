# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Exponential-backoff retry for async operations.

    result = await retry(fetch, max_attempts=3, initial_delay=2, max_delay=16)
    result = await retry_network(fetch)     # 4 attempts, 2s → 16s, network errors only
    result = await retry_critical(fetch)    # 5 attempts, 1s → 10s, any error

Attempts are strictly sequential.  The delay doubles after every failure
and is capped at *max_delay*; there is no jitter, so the worst-case wait is
the plain sum of the delays.
"""

import asyncio
import logging
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import aiohttp

from .errors import TransportError

logger = logging.getLogger("ensemble.retry")

T = TypeVar("T")

_NETWORK_HINTS = ("socket", "network", "timeout", "connection")


def is_network_error(error: BaseException) -> bool:
    """True for connection/timeout-class failures worth retrying.

    Only the socket-level OSErrors count; a missing file or a permission
    problem will fail the same way on every attempt.
    """
    if isinstance(error, (TransportError, aiohttp.ClientError, asyncio.TimeoutError,
                          TimeoutError, ConnectionError, socket.gaierror)):
        return True
    text = f"{type(error).__name__} {error}".lower()
    return any(hint in text for hint in _NETWORK_HINTS)


async def retry(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 2,
    max_delay: float = 16,
    should_retry: Callable[[BaseException], bool] | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run *operation* until it succeeds or retrying is pointless.

    The last error is re-raised when attempts run out or *should_retry*
    rejects it.  ``asyncio.CancelledError`` is never caught.
    """
    attempt = 0
    delay = initial_delay

    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as e:
            can_retry = should_retry(e) if should_retry is not None else True
            if attempt >= max_attempts or not can_retry:
                logger.error("Operation failed after %d attempt(s): %s", attempt, e)
                raise

            logger.warning("Attempt %d/%d failed: %s. Retrying in %.1fs...",
                           attempt, max_attempts, e, delay)
            await sleep(delay)
            delay = min(delay * 2, max_delay)


@dataclass(frozen=True)
class RetryPolicy:
    """Named retry configuration."""

    max_attempts: int = 3
    initial_delay: float = 2
    max_delay: float = 16
    should_retry: Callable[[BaseException], bool] | None = None

    async def execute(self, operation: Callable[[], Awaitable[T]], *,
                      sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> T:
        return await retry(
            operation,
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            should_retry=self.should_retry,
            sleep=sleep,
        )


NETWORK = RetryPolicy(max_attempts=4, initial_delay=2, max_delay=16,
                      should_retry=is_network_error)
CRITICAL = RetryPolicy(max_attempts=5, initial_delay=1, max_delay=10)


async def retry_network(operation: Callable[[], Awaitable[T]]) -> T:
    return await NETWORK.execute(operation)


async def retry_critical(operation: Callable[[], Awaitable[T]]) -> T:
    return await CRITICAL.execute(operation)
