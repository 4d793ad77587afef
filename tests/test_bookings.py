"""
Booking service tests: creation guards, cancellation, driver status
changes and the races the per-trip critical section has to win.
"""

import asyncio
import itertools
from unittest.mock import AsyncMock

import pytest

from carpool.domain.enums import BookingStatus, PaymentStatus
from carpool.domain.errors import (
    AlreadyCancelled,
    BookingNotFound,
    CannotCancelCompleted,
    CapacityExceeded,
    DuplicateBooking,
    ErrorKind,
    InvalidSeatCount,
    InvalidState,
    InvalidStateTransition,
    SelfBookingForbidden,
    TripNotFound,
    Unauthorized,
)
from carpool.infrastructure.locks import LocalLockProvider, RedisLockProvider
from carpool.infrastructure.repositories import BookingRepository
from carpool.services.registry import build_services


async def _available(services, trip_id):
    return (await services.trips.get(trip_id)).available_seats


# ── Create ────────────────────────────────────────────────────────────


class TestCreateBooking:
    @pytest.mark.asyncio
    async def test_create_reserves_seats(self, services, make_trip, passengers):
        trip = await make_trip(total_seats=4, price_per_seat=12.5)

        booking = await services.bookings.create(trip.id, passengers[0].id, 2, notes="Two bags")

        assert booking.id is not None
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_status == PaymentStatus.PENDING
        assert booking.total_price == 25.0
        assert booking.notes == "Two bags"
        assert await _available(services, trip.id) == 2

    @pytest.mark.asyncio
    async def test_price_is_frozen_at_booking_time(
        self, services, make_trip, driver, passengers
    ):
        trip = await make_trip(total_seats=4, price_per_seat=10.0)
        booking = await services.bookings.create(trip.id, passengers[0].id, 2)
        await services.bookings.set_status(booking.id, driver.id, BookingStatus.COMPLETED)

        await services.trips.update(trip.id, driver.id, {"price_per_seat": 30.0})

        assert (await services.trips.get(trip.id)).price_per_seat == 30.0
        assert (await services.bookings.get(booking.id)).total_price == 20.0

    @pytest.mark.asyncio
    async def test_driver_cannot_book_own_trip(self, services, make_trip, driver):
        trip = await make_trip()
        with pytest.raises(SelfBookingForbidden):
            await services.bookings.create(trip.id, driver.id, 1)
        assert await _available(services, trip.id) == 4

    @pytest.mark.asyncio
    async def test_second_active_booking_is_duplicate(self, services, make_trip, passengers):
        trip = await make_trip()
        await services.bookings.create(trip.id, passengers[0].id, 1)

        with pytest.raises(DuplicateBooking) as exc_info:
            await services.bookings.create(trip.id, passengers[0].id, 1)
        assert exc_info.value.kind == ErrorKind.DUPLICATE_BOOKING
        assert await _available(services, trip.id) == 3

    @pytest.mark.asyncio
    async def test_rebook_after_cancel(self, services, make_trip, passengers):
        trip = await make_trip()
        first = await services.bookings.create(trip.id, passengers[0].id, 2)
        await services.bookings.cancel(first.id, passengers[0].id)

        second = await services.bookings.create(trip.id, passengers[0].id, 1)

        assert second.id != first.id
        assert await _available(services, trip.id) == 3

    @pytest.mark.asyncio
    async def test_unknown_trip(self, services, passengers):
        with pytest.raises(TripNotFound):
            await services.bookings.create(404, passengers[0].id, 1)

    @pytest.mark.asyncio
    async def test_not_enough_seats(self, services, make_trip, passengers):
        trip = await make_trip(total_seats=2)
        await services.bookings.create(trip.id, passengers[0].id, 1)

        with pytest.raises(CapacityExceeded):
            await services.bookings.create(trip.id, passengers[1].id, 2)
        # The refused attempt leaves no row behind
        assert await services.bookings.list_for_passenger(passengers[1].id) == []

    @pytest.mark.asyncio
    async def test_seat_count_is_validated(self, services, make_trip, passengers):
        trip = await make_trip()
        with pytest.raises(InvalidSeatCount):
            await services.bookings.create(trip.id, passengers[0].id, 0)


# ── Cancel ────────────────────────────────────────────────────────────


class TestCancelBooking:
    @pytest.mark.asyncio
    async def test_cancel_releases_seats(self, services, make_trip, passengers):
        trip = await make_trip(total_seats=5)
        booking = await services.bookings.create(trip.id, passengers[0].id, 2)
        assert await _available(services, trip.id) == 3

        cancelled = await services.bookings.cancel(booking.id, passengers[0].id)

        assert cancelled.status == BookingStatus.CANCELLED
        assert await _available(services, trip.id) == 5

    @pytest.mark.asyncio
    async def test_driver_may_cancel(self, services, make_trip, driver, passengers):
        trip = await make_trip()
        booking = await services.bookings.create(trip.id, passengers[0].id, 1)

        cancelled = await services.bookings.cancel(booking.id, driver.id)
        assert cancelled.status == BookingStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_second_cancel_is_rejected(self, services, make_trip, passengers):
        trip = await make_trip(total_seats=5)
        booking = await services.bookings.create(trip.id, passengers[0].id, 2)
        await services.bookings.cancel(booking.id, passengers[0].id)

        with pytest.raises(AlreadyCancelled) as exc_info:
            await services.bookings.cancel(booking.id, passengers[0].id)
        assert isinstance(exc_info.value, InvalidState)
        assert await _available(services, trip.id) == 5

    @pytest.mark.asyncio
    async def test_stranger_cannot_cancel(self, services, make_trip, passengers):
        trip = await make_trip()
        booking = await services.bookings.create(trip.id, passengers[0].id, 1)

        with pytest.raises(Unauthorized):
            await services.bookings.cancel(booking.id, passengers[1].id)
        assert (await services.bookings.get(booking.id)).status == BookingStatus.CONFIRMED

    @pytest.mark.asyncio
    async def test_completed_booking_cannot_be_cancelled(
        self, services, make_trip, driver, passengers
    ):
        trip = await make_trip()
        booking = await services.bookings.create(trip.id, passengers[0].id, 1)
        await services.bookings.set_status(booking.id, driver.id, BookingStatus.COMPLETED)

        with pytest.raises(CannotCancelCompleted):
            await services.bookings.cancel(booking.id, passengers[0].id)

    @pytest.mark.asyncio
    async def test_unknown_booking(self, services, passengers):
        with pytest.raises(BookingNotFound):
            await services.bookings.cancel(404, passengers[0].id)


# ── Driver status changes ─────────────────────────────────────────────


class TestSetStatus:
    @pytest.mark.asyncio
    async def test_driver_completes_booking(self, services, make_trip, driver, passengers):
        trip = await make_trip()
        booking = await services.bookings.create(trip.id, passengers[0].id, 2)

        updated = await services.bookings.set_status(
            booking.id, driver.id, BookingStatus.COMPLETED
        )

        assert updated.status == BookingStatus.COMPLETED
        # Completion keeps the seats consumed
        assert await _available(services, trip.id) == 2

    @pytest.mark.asyncio
    async def test_driver_cancel_releases_seats(self, services, make_trip, driver, passengers):
        trip = await make_trip()
        booking = await services.bookings.create(trip.id, passengers[0].id, 2)

        await services.bookings.set_status(booking.id, driver.id, "cancelled")
        assert await _available(services, trip.id) == 4

    @pytest.mark.asyncio
    async def test_passenger_cannot_set_status(self, services, make_trip, passengers):
        trip = await make_trip()
        booking = await services.bookings.create(trip.id, passengers[0].id, 1)

        with pytest.raises(Unauthorized):
            await services.bookings.set_status(
                booking.id, passengers[0].id, BookingStatus.COMPLETED
            )

    @pytest.mark.asyncio
    async def test_terminal_status_cannot_change(self, services, make_trip, driver, passengers):
        trip = await make_trip()
        booking = await services.bookings.create(trip.id, passengers[0].id, 1)
        await services.bookings.set_status(booking.id, driver.id, BookingStatus.COMPLETED)

        with pytest.raises(InvalidStateTransition):
            await services.bookings.set_status(booking.id, driver.id, BookingStatus.CANCELLED)
        assert await _available(services, trip.id) == 3

    @pytest.mark.asyncio
    async def test_same_status_is_rejected(self, services, make_trip, driver, passengers):
        trip = await make_trip()
        booking = await services.bookings.create(trip.id, passengers[0].id, 1)

        with pytest.raises(InvalidStateTransition):
            await services.bookings.set_status(booking.id, driver.id, BookingStatus.CONFIRMED)


# ── Queries ───────────────────────────────────────────────────────────


class TestListings:
    @pytest.mark.asyncio
    async def test_list_for_passenger_filters_by_status(
        self, services, make_trip, passengers
    ):
        first = await make_trip()
        second = await make_trip()
        kept = await services.bookings.create(first.id, passengers[0].id, 1)
        dropped = await services.bookings.create(second.id, passengers[0].id, 1)
        await services.bookings.cancel(dropped.id, passengers[0].id)

        everything = await services.bookings.list_for_passenger(passengers[0].id)
        confirmed = await services.bookings.list_for_passenger(
            passengers[0].id, status=BookingStatus.CONFIRMED
        )

        assert {b.id for b in everything} == {kept.id, dropped.id}
        assert [b.id for b in confirmed] == [kept.id]

    @pytest.mark.asyncio
    async def test_list_for_passenger_paginates(self, services, make_trip, passengers):
        for _ in range(3):
            trip = await make_trip()
            await services.bookings.create(trip.id, passengers[0].id, 1)

        page = await services.bookings.list_for_passenger(passengers[0].id, limit=2)
        rest = await services.bookings.list_for_passenger(passengers[0].id, limit=2, offset=2)

        assert len(page) == 2
        assert len(rest) == 1


# ── Races ─────────────────────────────────────────────────────────────


class TestBookingRaces:
    @pytest.mark.asyncio
    async def test_last_seat_goes_to_one_passenger(self, services, make_trip, passengers):
        trip = await make_trip(total_seats=1)

        results = await asyncio.gather(
            services.bookings.create(trip.id, passengers[0].id, 1),
            services.bookings.create(trip.id, passengers[1].id, 1),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], CapacityExceeded)
        assert await _available(services, trip.id) == 0

    @pytest.mark.asyncio
    async def test_same_passenger_books_once(self, services, make_trip, passengers):
        trip = await make_trip(total_seats=4)

        results = await asyncio.gather(
            *(services.bookings.create(trip.id, passengers[0].id, 1) for _ in range(3)),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 2
        assert all(isinstance(e, DuplicateBooking) for e in errors)
        assert await _available(services, trip.id) == 3

    @pytest.mark.asyncio
    async def test_many_passengers_never_overbook(self, services, make_trip, passengers):
        trip = await make_trip(total_seats=5)

        results = await asyncio.gather(
            *(services.bookings.create(trip.id, p.id, 2) for p in passengers),
            return_exceptions=True,
        )

        booked = [r for r in results if not isinstance(r, Exception)]
        assert len(booked) == 2
        assert await _available(services, trip.id) == 1


# ── All-or-nothing and lock waiting ───────────────────────────────────


class TestCreateRollback:
    @pytest.mark.asyncio
    async def test_unique_index_violation_gives_seats_back(
        self, services, make_trip, passengers, monkeypatch
    ):
        trip = await make_trip(total_seats=4)
        await services.bookings.create(trip.id, passengers[0].id, 1)

        # Let the application-level check miss once so the insert reaches
        # the partial unique index after the seats were reserved
        real_find_active = BookingRepository.find_active
        calls = itertools.count()

        async def find_active_missing_first(self, trip_id, passenger_id):
            if next(calls) == 0:
                return None
            return await real_find_active(self, trip_id, passenger_id)

        monkeypatch.setattr(BookingRepository, "find_active", find_active_missing_first)

        with pytest.raises(DuplicateBooking):
            await services.bookings.create(trip.id, passengers[0].id, 2)
        assert await _available(services, trip.id) == 3

    @pytest.mark.asyncio
    async def test_unlocked_writers_still_book_once(
        self, session_factory, services, make_trip, passengers
    ):
        trip = await make_trip(total_seats=4)
        # A second process: same database, its own critical sections
        other = build_services(session_factory, LocalLockProvider())

        results = await asyncio.gather(
            services.bookings.create(trip.id, passengers[0].id, 1),
            other.bookings.create(trip.id, passengers[0].id, 1),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateBooking)
        assert await _available(services, trip.id) == 3
        assert len(await services.bookings.list_for_passenger(passengers[0].id)) == 1


class TestRedisLockedCreate:
    @pytest.mark.asyncio
    async def test_create_waits_for_a_busy_trip_lock(
        self, session_factory, make_trip, passengers
    ):
        trip = await make_trip()
        answers = itertools.chain([None] * 50, itertools.repeat(True))
        client = AsyncMock()
        client.set = AsyncMock(side_effect=lambda *args, **kwargs: next(answers))
        redis_services = build_services(
            session_factory, RedisLockProvider(client, poll_interval=0.0)
        )

        booking = await redis_services.bookings.create(trip.id, passengers[0].id, 1)

        assert booking.status == BookingStatus.CONFIRMED
        assert client.set.await_count == 51
        client.eval.assert_awaited_once()
