"""
Retry-on-conflict for store transactions.

Every mutating operation is written as a coroutine function that opens its
own transaction. If the commit loses the version race the whole function
is re-run from a fresh snapshot after a jittered sleep. Once the attempts
are used up the conflict surfaces as WaitlistTransactionConflictError,
which is retryable: the caller decides whether to resubmit.
"""

import asyncio
import random
from typing import Awaitable, Callable, Optional, TypeVar

from rsvp_engine.core.config import get_settings
from rsvp_engine.core.exceptions import WaitlistTransactionConflictError
from rsvp_engine.core.logging import get_logger
from rsvp_engine.core.metrics import record_conflict
from rsvp_engine.services.interfaces.store import TransactionConflict

logger = get_logger(__name__)

T = TypeVar("T")


async def with_optimistic_retry(
    fn: Callable[[], Awaitable[T]],
    max_attempts: Optional[int] = None,
    max_backoff_ms: Optional[int] = None,
    operation: str = "transaction",
) -> T:
    """
    Run `fn`, re-running it on TransactionConflict.

    Args:
        fn: zero-argument coroutine function; must open its own transaction
        max_attempts: total attempts, default TXN_MAX_ATTEMPTS (one retry)
        max_backoff_ms: upper bound of the uniform jitter between attempts
        operation: name used in logs

    Raises:
        WaitlistTransactionConflictError: every attempt conflicted
    """
    settings = get_settings()
    if max_attempts is None:
        max_attempts = settings.TXN_MAX_ATTEMPTS
    if max_backoff_ms is None:
        max_backoff_ms = settings.TXN_RETRY_MAX_BACKOFF_MS
    max_attempts = max(1, max_attempts)

    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except TransactionConflict as exc:
            if attempt == max_attempts:
                record_conflict(retried=False)
                logger.warning(
                    "transaction_conflict_surfaced",
                    operation=operation,
                    event_id=exc.event_id,
                    attempts=attempt,
                )
                raise WaitlistTransactionConflictError(
                    f"{operation} conflicted with a concurrent update. Please try again.",
                    event_id=exc.event_id,
                    attempts=attempt,
                ) from exc

            backoff = random.uniform(0, max_backoff_ms) / 1000
            record_conflict(retried=True)
            logger.info(
                "transaction_retry",
                operation=operation,
                event_id=exc.event_id,
                attempt=attempt,
                backoff_ms=round(backoff * 1000, 1),
            )
            await asyncio.sleep(backoff)

    # Should not reach here
    raise RuntimeError(f"{operation} retry loop exited without a result")
