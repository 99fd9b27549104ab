"""Bounded retry combinator for upstream calls."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from ..errors import UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")
BackoffCurve = Callable[[float, int], float]

MAX_EXPONENTIAL_DELAY = 5.0


def linear_backoff(base: float, attempt: int) -> float:
    """Delay before retry ``attempt`` (1-based): ``base * attempt``."""

    return base * attempt


def exponential_backoff(base: float, attempt: int) -> float:
    """Delay before retry ``attempt``: ``base * 2**(attempt - 1)`` capped at 5s."""

    return min(base * (2 ** (attempt - 1)), MAX_EXPONENTIAL_DELAY)


BACKOFF_CURVES: dict[str, BackoffCurve] = {
    "linear": linear_backoff,
    "exponential": exponential_backoff,
}


def is_transient(exc: BaseException) -> bool:
    """Only network failures and 5xx responses are worth another attempt."""

    return isinstance(exc, UpstreamError) and exc.transient


async def with_retry(
    action: Callable[[], Awaitable[T]],
    *,
    retries: int,
    backoff_base: float,
    backoff: BackoffCurve = linear_backoff,
    retry_on: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``action`` up to ``retries + 1`` times and return its first success.

    Errors rejected by ``retry_on`` propagate immediately. When every attempt
    fails the error from the final attempt is raised.
    """

    if retries < 0:
        raise ValueError("retries must be zero or positive")

    attempt = 0
    while True:
        try:
            return await action()
        except Exception as exc:
            attempt += 1
            if attempt > retries or not retry_on(exc):
                raise
            delay = backoff(backoff_base, attempt)
            logger.info(
                "Transient upstream failure (%s). Retry %s/%s in %.1fs",
                exc,
                attempt,
                retries,
                delay,
            )
            await sleep(delay)
