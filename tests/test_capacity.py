"""
Capacity ledger tests.

The ledger is the only writer of ``available_seats``; these tests drive it
directly and through concurrent callers to check the counter never leaves
``[0, total_seats]``.
"""

import asyncio

import pytest

from carpool.domain.errors import (
    CapacityExceeded,
    InvalidSeatCount,
    TripNotFound,
    TripUnavailable,
)


class TestReserveRelease:
    @pytest.mark.asyncio
    async def test_reserve_decrements(self, services, make_trip):
        trip = await make_trip(total_seats=4)
        assert await services.ledger.reserve(trip.id, 3) == 1
        assert (await services.trips.get(trip.id)).available_seats == 1

    @pytest.mark.asyncio
    async def test_reserve_all_remaining(self, services, make_trip):
        trip = await make_trip(total_seats=4)
        assert await services.ledger.reserve(trip.id, 4) == 0

    @pytest.mark.asyncio
    async def test_reserve_beyond_available(self, services, make_trip):
        trip = await make_trip(total_seats=4)
        await services.ledger.reserve(trip.id, 3)

        with pytest.raises(CapacityExceeded) as exc_info:
            await services.ledger.reserve(trip.id, 2)
        assert exc_info.value.available == 1
        assert exc_info.value.requested == 2
        assert (await services.trips.get(trip.id)).available_seats == 1

    @pytest.mark.asyncio
    async def test_release_increments(self, services, make_trip):
        trip = await make_trip(total_seats=4)
        await services.ledger.reserve(trip.id, 3)
        assert await services.ledger.release(trip.id, 2) == 3

    @pytest.mark.asyncio
    async def test_release_is_clamped_at_total(self, services, make_trip, caplog):
        trip = await make_trip(total_seats=4)
        await services.ledger.reserve(trip.id, 2)

        assert await services.ledger.release(trip.id, 3) == 4
        assert "clamped" in caplog.text

    @pytest.mark.asyncio
    @pytest.mark.parametrize("seats", [0, -1, 9, 1.5, True])
    async def test_invalid_seat_counts(self, services, make_trip, seats):
        trip = await make_trip(total_seats=4)
        with pytest.raises(InvalidSeatCount):
            await services.ledger.reserve(trip.id, seats)
        with pytest.raises(InvalidSeatCount):
            await services.ledger.release(trip.id, seats)

    @pytest.mark.asyncio
    async def test_unknown_trip(self, services):
        with pytest.raises(TripNotFound):
            await services.ledger.reserve(404, 1)
        with pytest.raises(TripNotFound):
            await services.ledger.release(404, 1)

    @pytest.mark.asyncio
    async def test_cancelled_trip_is_unavailable(self, services, make_trip, driver):
        trip = await make_trip(total_seats=4)
        await services.trips.cancel(trip.id, driver.id)

        with pytest.raises(TripUnavailable):
            await services.ledger.reserve(trip.id, 1)


class TestConcurrentReservations:
    @pytest.mark.asyncio
    async def test_exactly_capacity_reservations_succeed(self, services, make_trip):
        trip = await make_trip(total_seats=5)

        results = await asyncio.gather(
            *(services.ledger.reserve(trip.id, 1) for _ in range(10)),
            return_exceptions=True,
        )

        succeeded = [r for r in results if isinstance(r, int)]
        refused = [r for r in results if isinstance(r, CapacityExceeded)]
        assert len(succeeded) == 5
        assert len(refused) == 5
        assert sorted(succeeded) == [0, 1, 2, 3, 4]
        assert (await services.trips.get(trip.id)).available_seats == 0

    @pytest.mark.asyncio
    async def test_mixed_reserve_and_release_stay_in_range(self, services, make_trip):
        trip = await make_trip(total_seats=5)
        await services.ledger.reserve(trip.id, 3)

        ops = []
        for i in range(12):
            if i % 2:
                ops.append(services.ledger.release(trip.id, 1))
            else:
                ops.append(services.ledger.reserve(trip.id, 2))
        results = await asyncio.gather(*ops, return_exceptions=True)

        for result in results:
            if isinstance(result, Exception):
                assert isinstance(result, CapacityExceeded)
            else:
                assert 0 <= result <= 5
        available = (await services.trips.get(trip.id)).available_seats
        assert 0 <= available <= 5

    @pytest.mark.asyncio
    async def test_different_trips_do_not_interfere(self, services, make_trip):
        first = await make_trip(total_seats=2)
        second = await make_trip(total_seats=3)

        await asyncio.gather(
            services.ledger.reserve(first.id, 2),
            services.ledger.reserve(second.id, 1),
            services.ledger.reserve(second.id, 1),
        )

        assert (await services.trips.get(first.id)).available_seats == 0
        assert (await services.trips.get(second.id)).available_seats == 1
