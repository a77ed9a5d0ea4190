"""
Polling Utility

Fixed-interval polling with an overall deadline, used for transaction
confirmation tracking.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from .errors import MonitorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollOutcome:
    """Result of poll_until: a resolved value or a timeout"""
    resolved: bool
    value: Any = None
    attempts: int = 0
    elapsed_ms: float = 0.0

    @classmethod
    def success(cls, value: Any, attempts: int, elapsed_ms: float) -> "PollOutcome":
        return cls(resolved=True, value=value, attempts=attempts, elapsed_ms=elapsed_ms)

    @classmethod
    def timeout(cls, attempts: int, elapsed_ms: float) -> "PollOutcome":
        return cls(resolved=False, attempts=attempts, elapsed_ms=elapsed_ms)

    @property
    def is_resolved(self) -> bool:
        return self.resolved

    @property
    def is_timed_out(self) -> bool:
        return not self.resolved


async def poll_until(
    fn: Callable[[], Awaitable[Optional[Any]]],
    interval_ms: int,
    timeout_ms: int,
    *,
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    clock: Optional[Callable[[], float]] = None,
    label: str = "poll",
) -> PollOutcome:
    """
    Call `fn` every `interval_ms` until it returns a non-None value or
    `timeout_ms` elapses.

    The first check happens after one interval. A MonitorError raised by `fn`
    counts as "not yet"; any other exception propagates. No further check is
    started once the next one would land past the deadline.
    """
    if interval_ms <= 0:
        raise ValueError(f"interval_ms must be positive, got {interval_ms}")
    sleep = sleep or asyncio.sleep
    clock = clock or time.monotonic

    started = clock()
    attempts = 0

    def elapsed_ms() -> float:
        return (clock() - started) * 1000.0

    while elapsed_ms() + interval_ms <= timeout_ms:
        await sleep(interval_ms / 1000.0)
        attempts += 1
        try:
            value = await fn()
        except MonitorError as e:
            logger.debug(f"{label}: attempt {attempts} failed, retrying: {e}")
            continue
        if value is not None:
            logger.debug(f"{label}: resolved after {attempts} attempts")
            return PollOutcome.success(value, attempts, elapsed_ms())

    logger.info(f"{label}: timed out after {attempts} attempts ({timeout_ms} ms)")
    return PollOutcome.timeout(attempts, elapsed_ms())
