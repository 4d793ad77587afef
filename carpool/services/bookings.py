"""
Booking State Machine
=====================

Lifecycle: PENDING -> CONFIRMED -> COMPLETED, with CANCELLED reachable from
PENDING and CONFIRMED.  A booking whose seats were reserved is created
directly as CONFIRMED.

Concurrency safety
------------------
* Every operation that touches a trip's seats runs under the trip's
  critical section and inside one DB transaction, so the duplicate check,
  the seat reservation and the insert are indivisible.
* The partial unique index on ``(trip_id, passenger_id)`` backs the
  duplicate guard; a violation rolls back the reservation together with
  the insert.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain.entities import Booking, Trip, check_cancellable
from carpool.domain.enums import BookingStatus
from carpool.domain.errors import (
    BookingNotFound,
    DuplicateBooking,
    SelfBookingForbidden,
    TripNotFound,
    Unauthorized,
)
from carpool.infrastructure.locks import trip_key
from carpool.infrastructure.models import BookingModel
from carpool.infrastructure.repositories import BookingRepository, TripRepository
from carpool.services.capacity import CapacityLedger

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        ledger: CapacityLedger,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.ledger = ledger

    # ── Create ────────────────────────────────────────────────────────

    async def create(
        self,
        trip_id: int,
        passenger_id: int,
        seats: int,
        notes: Optional[str] = None,
    ) -> BookingModel:
        self.ledger.check_seats(seats)

        async with self.locks.hold(trip_key(trip_id)):
            async with self.session_factory() as session:
                try:
                    async with session.begin():
                        booking = await self._create_in(
                            session, trip_id, passenger_id, seats, notes
                        )
                except IntegrityError:
                    # Another writer won the unique index; the rollback
                    # already undid our reservation.
                    async with session.begin():
                        existing = await BookingRepository(session).find_active(
                            trip_id, passenger_id
                        )
                    if existing is None:
                        raise
                    raise DuplicateBooking(trip_id, passenger_id) from None

        logger.info(
            "Booking %d created: trip=%d passenger=%d seats=%d",
            booking.id,
            trip_id,
            passenger_id,
            seats,
        )
        return booking

    async def _create_in(
        self,
        session: AsyncSession,
        trip_id: int,
        passenger_id: int,
        seats: int,
        notes: Optional[str],
    ) -> BookingModel:
        trips = TripRepository(session)
        bookings = BookingRepository(session)

        trip = await trips.get_by_id(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        if trip.driver_id == passenger_id:
            raise SelfBookingForbidden(trip_id)
        if await bookings.find_active(trip_id, passenger_id) is not None:
            raise DuplicateBooking(trip_id, passenger_id)

        await self.ledger.reserve_in(session, trip_id, seats)

        return await bookings.create(
            BookingModel(
                trip_id=trip_id,
                passenger_id=passenger_id,
                seats=seats,
                total_price=Trip.from_record(trip).price_for(seats),
                status=BookingStatus.CONFIRMED,
                notes=notes,
            )
        )

    # ── Transitions ───────────────────────────────────────────────────

    async def cancel(self, booking_id: int, actor_id: int) -> BookingModel:
        """Cancel on behalf of the passenger or the trip's driver."""
        trip_id = await self._trip_of(booking_id)

        async with self.locks.hold(trip_key(trip_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    booking, trip = await self._load_locked(session, booking_id)
                    if actor_id not in (booking.passenger_id, trip.driver_id):
                        raise Unauthorized(
                            f"User {actor_id} cannot cancel booking {booking_id}"
                        )
                    check_cancellable(booking.id, booking.status)
                    await self._apply(session, booking, BookingStatus.CANCELLED)

        logger.info("Booking %d cancelled by user %d", booking_id, actor_id)
        return booking

    async def set_status(
        self, booking_id: int, actor_id: int, new_status: BookingStatus
    ) -> BookingModel:
        """Driver-only move along the booking graph."""
        new_status = BookingStatus(new_status)
        trip_id = await self._trip_of(booking_id)

        async with self.locks.hold(trip_key(trip_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    booking, trip = await self._load_locked(session, booking_id)
                    if actor_id != trip.driver_id:
                        raise Unauthorized(
                            f"Only the driver can update booking {booking_id}"
                        )
                    await self._apply(session, booking, new_status)

        logger.info(
            "Booking %d set to %s by driver %d", booking_id, new_status.value, actor_id
        )
        return booking

    async def cascade_cancel_in(self, session: AsyncSession, trip_id: int) -> int:
        """Force every pending/confirmed booking of a cancelled trip to CANCELLED.

        The ledger is not touched: the trip's counters stop mattering once
        the trip itself is cancelled.
        """
        return await BookingRepository(session).cancel_all_active_for_trip(trip_id)

    # ── Queries ───────────────────────────────────────────────────────

    async def get(self, booking_id: int) -> BookingModel:
        async with self.session_factory() as session:
            booking = await BookingRepository(session).get_by_id(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def list_for_passenger(
        self,
        passenger_id: int,
        status: Optional[BookingStatus] = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[BookingModel]:
        async with self.session_factory() as session:
            return await BookingRepository(session).list_for_passenger(
                passenger_id, status=status, limit=limit, offset=offset
            )

    # ── Internals ─────────────────────────────────────────────────────

    async def _trip_of(self, booking_id: int) -> int:
        # trip_id never changes, so it is safe to read before locking
        return (await self.get(booking_id)).trip_id

    async def _load_locked(self, session: AsyncSession, booking_id: int):
        booking = await BookingRepository(session).get_for_update(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        trip = await TripRepository(session).get_by_id(booking.trip_id)
        if trip is None:
            raise TripNotFound(booking.trip_id)
        return booking, trip

    async def _apply(
        self, session: AsyncSession, booking: BookingModel, new_status: BookingStatus
    ) -> None:
        entity = Booking.from_record(booking)
        entity.transition_to(new_status)
        booking.status = entity.status
        if entity.status == BookingStatus.CANCELLED:
            await self.ledger.release_in(session, booking.trip_id, booking.seats)
        await session.flush()
