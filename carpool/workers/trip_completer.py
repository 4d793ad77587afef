"""
Background Trip Completion Worker
=================================

Runs every ``COMPLETION_INTERVAL_SECONDS`` (default 60 s).

A trip whose departure time is more than ``COMPLETION_GRACE_MINUTES`` in
the past is marked COMPLETED.  Trip completion is what the review flow
keys off, so drivers who never press "complete" do not block reviews
forever.

Concurrency safety
------------------
* **Redis distributed lock** ensures only one API process runs a cycle at
  a time (skipped with the ``local`` lock backend, which implies a single
  process).
* Each trip is completed under its own ``trip:{id}`` critical section, so a
  concurrent cancellation either wins or sees the trip already completed.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

from carpool.config import settings
from carpool.infrastructure.locks import DistributedLock
from carpool.infrastructure.redis_client import get_redis
from carpool.services.trips import TripService

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_completion_loop(trips: TripService) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(trips))
    logger.info(
        "Trip completion worker started (interval=%ds)",
        settings.completion_interval_seconds,
    )


async def stop_completion_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Trip completion worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(trips: TripService) -> None:
    """Periodic loop: run a completion cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_completion_cycle(trips)
        except Exception:
            logger.exception("Unhandled error in trip completion cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.completion_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_completion_cycle(trips: TripService, now: datetime | None = None) -> int:
    """Execute one cycle.  Returns the number of trips completed."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=settings.completion_grace_minutes)

    if settings.lock_backend != "redis":
        return await _complete(trips, cutoff)

    lock = DistributedLock(
        await get_redis(), "trip_completion", ttl_seconds=settings.completion_interval_seconds
    )
    if not await lock.try_acquire():
        logger.debug("Lock held by another worker - skipping cycle")
        return 0
    try:
        return await _complete(trips, cutoff)
    finally:
        await lock.release()


async def _complete(trips: TripService, cutoff: datetime) -> int:
    completed = await trips.complete_departed(cutoff)
    if completed:
        logger.info("Completion cycle: %d trips completed", completed)
    return completed
