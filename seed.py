"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 3 drivers, 6 passengers and one user with both roles
  - 5 upcoming trips between nearby cities
  - bookings on those trips, one of them cancelled
  - a completed trip with reviews, so driver ratings are non-zero

Bookings, completions and reviews go through the core services, so seat
counters and rating aggregates are consistent with what the API would
have produced.
"""

import asyncio
from datetime import datetime, timedelta, timezone

from sqlalchemy import text

from carpool.domain.enums import BookingStatus, UserRole
from carpool.infrastructure.database import async_session_factory, engine
from carpool.infrastructure.locks import LocalLockProvider
from carpool.infrastructure.models import UserModel
from carpool.services.registry import build_services


USERS = [
    {"name": "Lena Fischer", "email": "lena@example.com", "role": UserRole.DRIVER},
    {"name": "Tomás Ruiz", "email": "tomas@example.com", "role": UserRole.DRIVER},
    {"name": "Amara Okafor", "email": "amara@example.com", "role": UserRole.DRIVER},
    {"name": "Jonas Berg", "email": "jonas@example.com", "role": UserRole.PASSENGER},
    {"name": "Sofia Marino", "email": "sofia@example.com", "role": UserRole.PASSENGER},
    {"name": "Noah Schmidt", "email": "noah@example.com", "role": UserRole.PASSENGER},
    {"name": "Elif Demir", "email": "elif@example.com", "role": UserRole.PASSENGER},
    {"name": "Mateo Silva", "email": "mateo@example.com", "role": UserRole.PASSENGER},
    {"name": "Hana Kato", "email": "hana@example.com", "role": UserRole.PASSENGER},
    {"name": "Riya Kapoor", "email": "riya@example.com", "role": UserRole.BOTH},
]

# (driver index, origin, destination, days ahead, price per seat, seats)
TRIPS = [
    (0, "Berlin", "Leipzig", 1, 15.0, 3),
    (0, "Leipzig", "Dresden", 3, 12.0, 4),
    (1, "Munich", "Salzburg", 2, 18.5, 4),
    (2, "Hamburg", "Bremen", 1, 11.0, 2),
    (9, "Cologne", "Bonn", 5, 6.0, 3),
]

# (passenger index, trip index, seats)
BOOKINGS = [
    (3, 0, 1),
    (4, 0, 2),
    (5, 2, 1),
    (6, 2, 2),
    (7, 3, 1),
    (8, 4, 2),
]


async def seed():
    async with async_session_factory() as session:
        # Check if already seeded
        result = await session.execute(text("SELECT count(*) FROM users"))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        # ── Users ─────────────────────────────────────────────────────
        user_models = [UserModel(**u, rating=0.0, total_reviews=0) for u in USERS]
        session.add_all(user_models)
        await session.commit()
        print(f"  Created {len(user_models)} users")

    services = build_services(async_session_factory, LocalLockProvider())
    now = datetime.now(timezone.utc)

    # ── Trips ─────────────────────────────────────────────────────────
    trips = []
    for driver, origin, destination, days, price, seats in TRIPS:
        trips.append(
            await services.trips.publish(
                driver_id=user_models[driver].id,
                origin=origin,
                destination=destination,
                departure_at=now + timedelta(days=days),
                price_per_seat=price,
                total_seats=seats,
            )
        )
    print(f"  Created {len(trips)} trips")

    # ── Bookings ──────────────────────────────────────────────────────
    bookings = []
    for passenger, trip, seats in BOOKINGS:
        bookings.append(
            await services.bookings.create(
                trips[trip].id, user_models[passenger].id, seats
            )
        )
    await services.bookings.cancel(bookings[-1].id, user_models[8].id)
    print(f"  Created {len(bookings)} bookings (1 cancelled)")

    # ── A travelled trip with reviews ─────────────────────────────────
    past = await services.trips.publish(
        driver_id=user_models[1].id,
        origin="Munich",
        destination="Augsburg",
        departure_at=now - timedelta(days=2),
        price_per_seat=9.0,
        total_seats=3,
    )
    reviews = [(3, 5, {"punctuality": 5, "friendliness": 5}), (4, 4, {"cleanliness": 4})]
    for passenger, _, _ in reviews:
        booking = await services.bookings.create(past.id, user_models[passenger].id, 1)
        await services.bookings.set_status(
            booking.id, user_models[1].id, BookingStatus.COMPLETED
        )
    await services.trips.complete(past.id, user_models[1].id)
    for passenger, rating, categories in reviews:
        await services.reviews.submit(
            past.id,
            user_models[passenger].id,
            rating,
            comment="Smooth ride.",
            categories=categories,
        )
    aggregate = await services.ratings.get(user_models[1].id)
    print(
        f"  Completed 1 trip; driver rating {aggregate.display_mean} "
        f"over {aggregate.count} reviews"
    )

    print("\nSeed complete!")


async def main():
    print("Seeding database...")
    await seed()
    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
