"""Wires the core services over one session factory and one lock provider."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.config import settings
from carpool.infrastructure.locks import LocalLockProvider, RedisLockProvider
from carpool.infrastructure.redis_client import get_redis
from carpool.services.bookings import BookingService
from carpool.services.capacity import CapacityLedger
from carpool.services.ratings import RatingAggregator
from carpool.services.reviews import ReviewGate
from carpool.services.trips import TripService


@dataclass
class Services:
    ledger: CapacityLedger
    bookings: BookingService
    trips: TripService
    ratings: RatingAggregator
    reviews: ReviewGate


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    locks,
    max_seats: int = settings.max_seats_per_trip,
) -> Services:
    ledger = CapacityLedger(session_factory, locks, max_seats=max_seats)
    bookings = BookingService(session_factory, locks, ledger)
    ratings = RatingAggregator(session_factory, locks)
    return Services(
        ledger=ledger,
        bookings=bookings,
        trips=TripService(session_factory, locks, ledger, bookings),
        ratings=ratings,
        reviews=ReviewGate(session_factory, locks, ratings),
    )


async def build_lock_provider(backend: str = settings.lock_backend):
    if backend == "local":
        return LocalLockProvider()
    if backend == "redis":
        return RedisLockProvider(
            await get_redis(),
            ttl_seconds=settings.lock_ttl_seconds,
            poll_interval=settings.lock_poll_interval_seconds,
        )
    raise ValueError(f"Unknown lock backend: {backend!r}")
