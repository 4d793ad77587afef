"""
Capacity Ledger
===============

The only writer of ``trips.available_seats``.

Every change is a delta applied by a conditional UPDATE while the caller
holds the trip's critical section (``trip:{id}``):

* ``reserve``  -- ``available -= n`` iff trip is ACTIVE and ``available >= n``
* ``release``  -- ``available += n`` clamped at ``total_seats``
* ``resize``   -- shift both counters by ``new_total - total_seats``

The ``*_in`` variants run inside a session the caller already opened under
the trip lock (booking creation and cancellation compose them with their
own writes in one transaction).  The plain variants take the lock and run
their own transaction.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.config import settings
from carpool.domain.entities import Trip
from carpool.domain.errors import CapacityExceeded, InvalidSeatCount, TripNotFound
from carpool.infrastructure.locks import trip_key
from carpool.infrastructure.repositories import TripRepository

logger = logging.getLogger(__name__)


class CapacityLedger:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        max_seats: int = settings.max_seats_per_trip,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.max_seats = max_seats

    def check_seats(self, seats) -> int:
        if (
            not isinstance(seats, int)
            or isinstance(seats, bool)
            or not 1 <= seats <= self.max_seats
        ):
            raise InvalidSeatCount(seats, self.max_seats)
        return seats

    # ── Standalone operations ─────────────────────────────────────────

    async def reserve(self, trip_id: int, seats: int) -> int:
        """Reserve *seats* and return the seats left afterwards."""
        async with self.locks.hold(trip_key(trip_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    return await self.reserve_in(session, trip_id, seats)

    async def release(self, trip_id: int, seats: int) -> int:
        """Give *seats* back and return the seats available afterwards."""
        async with self.locks.hold(trip_key(trip_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    return await self.release_in(session, trip_id, seats)

    # ── In-transaction operations (caller holds the trip lock) ───────

    async def reserve_in(self, session: AsyncSession, trip_id: int, seats: int) -> int:
        self.check_seats(seats)
        repo = TripRepository(session)
        remaining = await repo.try_reserve(trip_id, seats)
        if remaining is not None:
            return remaining

        # Guard refused: reload to report why
        trip = await repo.get_for_update(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        snapshot = Trip.from_record(trip)
        snapshot.check_reservable(seats)
        raise CapacityExceeded(trip_id, seats, snapshot.available_seats)

    async def release_in(self, session: AsyncSession, trip_id: int, seats: int) -> int:
        self.check_seats(seats)
        repo = TripRepository(session)
        trip = await repo.get_for_update(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        if trip.available_seats + seats > trip.total_seats:
            logger.warning(
                "Release of %d seats on trip %d clamped at total %d (available=%d)",
                seats,
                trip_id,
                trip.total_seats,
                trip.available_seats,
            )
        return await repo.release(trip_id, seats)

    async def resize_in(self, session: AsyncSession, trip_id: int, new_total: int) -> int:
        self.check_seats(new_total)
        repo = TripRepository(session)
        remaining = await repo.try_resize(trip_id, new_total)
        if remaining is not None:
            return remaining

        trip = await repo.get_for_update(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        booked = trip.total_seats - trip.available_seats
        raise CapacityExceeded(trip_id, booked, new_total)
