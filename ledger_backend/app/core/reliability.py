"""
Reliability utilities.

Bounded retry for optimistic-concurrency conflicts.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from ledger_backend.app.core.config import settings
from ledger_backend.app.core.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    session: Optional[AsyncSession] = None,
    attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
) -> T:
    """
    Run a read-modify-write operation, re-running it when it loses a race.

    The operation must reload everything it reads; the session is expired
    between attempts so stale rows are never reused.

    Args:
        operation: Zero-argument coroutine factory performing the whole unit of work
        session: Session to expire between attempts
        attempts: Total attempts (defaults to settings.concurrency_max_retries)
        backoff_seconds: Base delay, multiplied by the attempt number

    Raises:
        ConcurrencyConflictError: every attempt conflicted
    """
    max_attempts = max(attempts or settings.concurrency_max_retries, 1)
    delay = settings.concurrency_retry_backoff_seconds if backoff_seconds is None else backoff_seconds

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except ConcurrencyConflictError:
            if attempt == max_attempts:
                logger.warning("Concurrency conflict persisted after %d attempts, giving up", max_attempts)
                raise
            logger.warning("Concurrency conflict on attempt %d/%d, retrying", attempt, max_attempts)
            if session is not None:
                session.expire_all()
            await asyncio.sleep(delay * attempt)

    raise ConcurrencyConflictError()
