"""
Scheduled overdue sweep.

Runs the overdue sweep for both ledger directions on a fixed interval.
A Redis lock (SET NX EX, released by an atomic Lua compare-and-delete)
keeps several workers from sweeping at once; the sweep itself is a
conditional UPDATE, so an overlapping manual trigger is still harmless.
"""

import asyncio
import logging
import uuid
from contextlib import suppress
from datetime import date, datetime
from typing import Dict, Optional, Union

from redis.exceptions import RedisError

from ledger_backend.app.core.config import settings
from ledger_backend.app.core.redis_client import get_redis
from ledger_backend.app.db.session import AsyncSessionLocal
from ledger_backend.app.domain.ledger.directions import ADAPTERS
from ledger_backend.app.domain.ledger.engine import LedgerEngine

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "ledger:overdue-sweep:lock"

# Atomic check-and-delete so a worker never releases a lock it no longer holds
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


async def run_overdue_sweep(
    session_factory=AsyncSessionLocal,
    now: Union[date, datetime, None] = None,
) -> Dict[str, int]:
    """Sweep every direction; returns transitioned counts keyed by direction."""
    results = {}
    async with session_factory() as db:
        for direction, adapter in ADAPTERS.items():
            results[direction.value] = await LedgerEngine(adapter).sweep_overdue(db, now=now)
    return results


async def release_sweep_lock(redis, token: str) -> bool:
    """
    Release the sweep lock if token still owns it.

    Returns:
        True if the lock was released, False if another worker holds it
    """
    result = await redis.eval(RELEASE_SCRIPT, 1, SWEEP_LOCK_KEY, token)
    return bool(result)


async def sweep_with_lock(
    redis=None,
    session_factory=AsyncSessionLocal,
    now: Union[date, datetime, None] = None,
) -> Optional[Dict[str, int]]:
    """
    Run the sweep if no other worker holds the lock.

    Returns:
        Transitioned counts, or None when the lock was not acquired
    """
    redis = redis or await get_redis()
    token = str(uuid.uuid4())

    try:
        acquired = await redis.set(SWEEP_LOCK_KEY, token, nx=True, ex=settings.overdue_sweep_lock_ttl_seconds)
    except RedisError as exc:
        logger.warning("Could not reach Redis for the overdue sweep lock, skipping this run: %s", exc)
        return None

    if not acquired:
        logger.info("Overdue sweep already running on another worker, skipping")
        return None

    try:
        return await run_overdue_sweep(session_factory, now=now)
    finally:
        try:
            await release_sweep_lock(redis, token)
        except RedisError as exc:
            logger.warning("Failed to release overdue sweep lock (expires on its own): %s", exc)


async def overdue_sweep_loop(interval_seconds: Optional[int] = None) -> None:
    interval = interval_seconds or settings.overdue_sweep_interval_seconds
    logger.info("Overdue sweeper started, interval %ss", interval)
    while True:
        try:
            results = await sweep_with_lock()
            if results is not None:
                logger.info("Scheduled overdue sweep finished: %s", results)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Scheduled overdue sweep failed, retrying next interval")
        await asyncio.sleep(interval)


def start_overdue_sweeper() -> Optional[asyncio.Task]:
    if not settings.overdue_sweep_enabled:
        logger.info("Overdue sweeper disabled")
        return None
    return asyncio.create_task(overdue_sweep_loop(), name="overdue-sweeper")


async def stop_overdue_sweeper(task: Optional[asyncio.Task]) -> None:
    if task is None:
        return
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
