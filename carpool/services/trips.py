"""
Trip lifecycle
==============

ACTIVE -> COMPLETED | CANCELLED, both terminal.

* ``publish``  -- new ACTIVE trip with ``available_seats = total_seats``.
* ``update``   -- only while ACTIVE with no pending/confirmed bookings;
  price edits never reach existing bookings, seat changes go through the
  capacity ledger.
* ``cancel``   -- marks the trip CANCELLED and cascades to its bookings
  in the same transaction.
* ``complete`` -- by the driver, or by the completion worker once the
  departure time has passed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain.enums import TripStatus
from carpool.domain.errors import (
    TripHasActiveBookings,
    TripNotFound,
    TripUnavailable,
    Unauthorized,
)
from carpool.infrastructure.locks import trip_key
from carpool.infrastructure.models import BookingModel, TripModel
from carpool.infrastructure.repositories import BookingRepository, TripRepository
from carpool.services.bookings import BookingService
from carpool.services.capacity import CapacityLedger

logger = logging.getLogger(__name__)

PREFERENCES = ("pets", "music", "air_conditioning", "smoking")

UPDATABLE_FIELDS = frozenset(
    {"origin", "destination", "departure_at", "description", "price_per_seat", *PREFERENCES}
)


class TripService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        ledger: CapacityLedger,
        bookings: BookingService,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.ledger = ledger
        self.bookings = bookings

    async def publish(
        self,
        *,
        driver_id: int,
        origin: str,
        destination: str,
        departure_at: datetime,
        price_per_seat: float,
        total_seats: int,
        description: Optional[str] = None,
        pets: bool = False,
        music: bool = False,
        air_conditioning: bool = False,
        smoking: bool = False,
    ) -> TripModel:
        self.ledger.check_seats(total_seats)
        async with self.session_factory() as session:
            async with session.begin():
                trip = await TripRepository(session).create(
                    TripModel(
                        driver_id=driver_id,
                        origin=origin,
                        destination=destination,
                        departure_at=departure_at,
                        description=description,
                        price_per_seat=price_per_seat,
                        total_seats=total_seats,
                        available_seats=total_seats,
                        status=TripStatus.ACTIVE,
                        pets=pets,
                        music=music,
                        air_conditioning=air_conditioning,
                        smoking=smoking,
                    )
                )
        logger.info(
            "Trip %d published by driver %d with %d seats",
            trip.id,
            driver_id,
            total_seats,
        )
        return trip

    async def get(self, trip_id: int) -> TripModel:
        async with self.session_factory() as session:
            trip = await TripRepository(session).get_by_id(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        return trip

    async def update(self, trip_id: int, driver_id: int, changes: dict[str, Any]) -> TripModel:
        async with self.locks.hold(trip_key(trip_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    trip = await self._load_owned(session, trip_id, driver_id)
                    if trip.status != TripStatus.ACTIVE:
                        raise TripUnavailable(trip_id, TripStatus(trip.status).value)
                    if await BookingRepository(session).count_active_for_trip(trip_id):
                        raise TripHasActiveBookings(trip_id)

                    for field, value in changes.items():
                        if field in UPDATABLE_FIELDS:
                            setattr(trip, field, value)
                    await session.flush()

                    new_total = changes.get("total_seats")
                    if new_total is not None and new_total != trip.total_seats:
                        await self.ledger.resize_in(session, trip_id, new_total)
                        await session.refresh(trip)
        return trip

    async def cancel(self, trip_id: int, driver_id: int) -> int:
        """Cancel the trip; returns how many bookings were cascaded."""
        async with self.locks.hold(trip_key(trip_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    trip = await self._load_owned(session, trip_id, driver_id)
                    if trip.status != TripStatus.ACTIVE:
                        raise TripUnavailable(trip_id, TripStatus(trip.status).value)
                    trip.status = TripStatus.CANCELLED
                    await session.flush()
                    cancelled = await self.bookings.cascade_cancel_in(session, trip_id)

        logger.info(
            "Trip %d cancelled by driver %d; %d bookings cancelled",
            trip_id,
            driver_id,
            cancelled,
        )
        return cancelled

    async def complete(self, trip_id: int, driver_id: int) -> TripModel:
        async with self.locks.hold(trip_key(trip_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    trip = await self._load_owned(session, trip_id, driver_id)
                    if trip.status != TripStatus.ACTIVE:
                        raise TripUnavailable(trip_id, TripStatus(trip.status).value)
                    trip.status = TripStatus.COMPLETED
                    await session.flush()
        logger.info("Trip %d completed by driver %d", trip_id, driver_id)
        return trip

    async def complete_departed(self, cutoff: datetime) -> int:
        """Mark every ACTIVE trip that departed before *cutoff* COMPLETED."""
        async with self.session_factory() as session:
            candidates = [
                t.id for t in await TripRepository(session).get_departed_active(cutoff)
            ]

        completed = 0
        for trip_id in candidates:
            async with self.locks.hold(trip_key(trip_id)):
                async with self.session_factory() as session:
                    async with session.begin():
                        repo = TripRepository(session)
                        trip = await repo.get_for_update(trip_id)
                        # May have been cancelled since the candidate scan
                        if trip is None or trip.status != TripStatus.ACTIVE:
                            continue
                        await repo.set_status(trip_id, TripStatus.COMPLETED)
                        completed += 1
        return completed

    async def list_bookings(self, trip_id: int, driver_id: int) -> list[BookingModel]:
        async with self.session_factory() as session:
            await self._load_owned(session, trip_id, driver_id)
            return await BookingRepository(session).list_for_trip(trip_id)

    async def list_for_driver(
        self,
        driver_id: int,
        status: Optional[TripStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[tuple[TripModel, int]]:
        """The driver's trips, latest departure first, each with its count
        of confirmed and completed bookings."""
        async with self.session_factory() as session:
            trips = await TripRepository(session).list_for_driver(
                driver_id, status=status, limit=limit, offset=offset
            )
            counts = await BookingRepository(session).count_booked_by_trip(
                [t.id for t in trips]
            )
        return [(trip, counts.get(trip.id, 0)) for trip in trips]

    async def _load_owned(
        self, session: AsyncSession, trip_id: int, driver_id: int
    ) -> TripModel:
        trip = await TripRepository(session).get_for_update(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        if trip.driver_id != driver_id:
            raise Unauthorized(f"User {driver_id} is not the driver of trip {trip_id}")
        return trip
