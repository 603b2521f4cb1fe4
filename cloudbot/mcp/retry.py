"""Bounded retry for flaky browser interactions."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import ActionExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

MAX_ATTEMPTS = 3
RETRY_DELAY_MS = 500
VISIBILITY_TIMEOUT_MS = 7000


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = MAX_ATTEMPTS
    delay_ms: int = RETRY_DELAY_MS
    visibility_timeout_ms: int = VISIBILITY_TIMEOUT_MS

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        if self.delay_ms < 0:
            raise ValueError("delay_ms must be non-negative.")


DEFAULT_POLICY = RetryPolicy()


async def with_retry(
    attempt: Callable[[int], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_POLICY,
    *,
    tool: str = "action",
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``attempt(n)`` for ``n`` in ``1..policy.max_attempts`` until it succeeds.

    Failures sleep ``policy.delay_ms`` before the next attempt (never after
    the last one).  An error for which ``is_retryable`` returns False stops
    the loop early.  Either way the last error is wrapped in
    ``ActionExhaustedError``.
    """
    attempts = 0
    while True:
        attempts += 1
        try:
            return await attempt(attempts)
        except Exception as exc:
            retryable = is_retryable(exc) if is_retryable is not None else True
            logger.warning(
                "%s attempt %d/%d failed: %s",
                tool,
                attempts,
                policy.max_attempts,
                exc,
            )
            if not retryable or attempts >= policy.max_attempts:
                raise ActionExhaustedError(tool, attempts, exc) from exc
            await sleep(policy.delay_ms / 1000)


__all__ = [
    "RetryPolicy",
    "DEFAULT_POLICY",
    "with_retry",
    "MAX_ATTEMPTS",
    "RETRY_DELAY_MS",
    "VISIBILITY_TIMEOUT_MS",
]
