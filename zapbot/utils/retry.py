"""Bounded retry with a per-attempt timeout for outbound operations."""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from zapbot.errors import OperationTimeout

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try, how long to wait between tries, and per-try timeout (seconds)."""

    retries: int = 3
    delay: float = 1.0
    timeout: float = 5.0

    def __post_init__(self):
        if self.retries < 1:
            raise ValueError("retries must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")
        if self.timeout <= 0:
            raise ValueError("timeout must be > 0")


# Used for every reply and operator report.
SEND_POLICY = RetryPolicy(retries=3, delay=3.0, timeout=5.0)


def _discard_result(task: asyncio.Task) -> None:
    """Retrieve the outcome of an abandoned attempt so it is never reported as unhandled."""
    if not task.cancelled():
        exc = task.exception()
        if exc is not None:
            logger.debug(f"Abandoned attempt finished with error: {exc}")


async def _attempt(operation: Operation[T], timeout: float) -> T:
    task = asyncio.ensure_future(operation())
    try:
        # shield() keeps the operation running when the timer wins; it is abandoned, not cancelled.
        return await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
    except asyncio.TimeoutError:
        if task.done():
            # The operation raised its own TimeoutError; keep it.
            raise
        task.add_done_callback(_discard_result)
        raise OperationTimeout(timeout) from None


async def retry_operation(operation: Operation[T], policy: RetryPolicy | None = None) -> T:
    """Run ``operation`` until it succeeds or ``policy.retries`` attempts are used up.

    Each attempt races the operation against ``policy.timeout``. Failed attempts
    other than the last one are followed by a fixed ``policy.delay`` sleep. The
    last attempt's exception (or :class:`OperationTimeout`) propagates.

    Args:
        operation: Zero-argument callable returning an awaitable.
        policy: Retry configuration; defaults to ``RetryPolicy()``.

    Returns:
        The result of the first successful attempt.
    """
    policy = policy or RetryPolicy()

    for attempt in range(1, policy.retries + 1):
        try:
            return await _attempt(operation, policy.timeout)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if attempt == policy.retries:
                raise
            logger.debug(f"Attempt {attempt}/{policy.retries} failed: {e}; retrying in {policy.delay}s")
            await asyncio.sleep(policy.delay)


def policy_from_config(config: Any) -> RetryPolicy:
    """Build a RetryPolicy from a ``RetryConfig`` section."""
    return RetryPolicy(retries=config.retries, delay=config.delay, timeout=config.timeout)
