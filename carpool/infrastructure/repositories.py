"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.  Seat counters are changed exclusively with
conditional, delta-based UPDATE statements so the database itself refuses
an overcommit even if two writers slip past the application lock.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .models import BookingModel, ReviewModel, TripModel, UserModel
from carpool.domain.enums import (
    ACTIVE_BOOKING_STATUSES,
    REVIEW_CATEGORIES,
    BookingStatus,
    TripStatus,
)


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: UserModel) -> UserModel:
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_by_id(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> Optional[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, user_id: int) -> Optional[UserModel]:
        """SELECT ... FOR UPDATE so concurrent aggregate writers queue up."""
        result = await self.session.execute(
            select(UserModel)
            .where(UserModel.id == user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def set_rating(self, user_id: int, mean: float, count: int) -> None:
        await self.session.execute(
            update(UserModel)
            .where(UserModel.id == user_id)
            .values(rating=mean, total_reviews=count)
            .execution_options(synchronize_session=False)
        )


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, trip: TripModel) -> TripModel:
        self.session.add(trip)
        await self.session.flush()
        return trip

    async def get_by_id(self, trip_id: int) -> Optional[TripModel]:
        return await self.session.get(TripModel, trip_id)

    async def get_for_update(self, trip_id: int) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.id == trip_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def try_reserve(self, trip_id: int, seats: int) -> Optional[int]:
        """Decrement iff active and enough seats remain.

        Returns the new ``available_seats``, or ``None`` when the guard
        rejected the update.
        """
        result = await self.session.execute(
            update(TripModel)
            .where(
                TripModel.id == trip_id,
                TripModel.status == TripStatus.ACTIVE,
                TripModel.available_seats >= seats,
            )
            .values(available_seats=TripModel.available_seats - seats)
            .returning(TripModel.available_seats)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def release(self, trip_id: int, seats: int) -> Optional[int]:
        """Increment, clamped at ``total_seats``.  Returns the new count."""
        restored = TripModel.available_seats + seats
        result = await self.session.execute(
            update(TripModel)
            .where(TripModel.id == trip_id)
            .values(
                available_seats=case(
                    (restored > TripModel.total_seats, TripModel.total_seats),
                    else_=restored,
                )
            )
            .returning(TripModel.available_seats)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def try_resize(self, trip_id: int, new_total: int) -> Optional[int]:
        """Apply ``new_total - total_seats`` to both counters.

        Rejected (``None``) if the shrink would push ``available_seats``
        below zero.
        """
        delta = new_total - TripModel.total_seats
        result = await self.session.execute(
            update(TripModel)
            .where(
                TripModel.id == trip_id,
                TripModel.available_seats + delta >= 0,
            )
            .values(
                available_seats=TripModel.available_seats + delta,
                total_seats=new_total,
            )
            .returning(TripModel.available_seats)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def set_status(self, trip_id: int, status: TripStatus) -> None:
        await self.session.execute(
            update(TripModel)
            .where(TripModel.id == trip_id)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )

    async def list_for_driver(
        self,
        driver_id: int,
        status: TripStatus | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[TripModel]:
        query = select(TripModel).where(TripModel.driver_id == driver_id)
        if status is not None:
            query = query.where(TripModel.status == status)
        result = await self.session.execute(
            query.order_by(TripModel.departure_at.desc(), TripModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def get_departed_active(self, cutoff) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(
                TripModel.status == TripStatus.ACTIVE,
                TripModel.departure_at <= cutoff,
            )
            .order_by(TripModel.departure_at)
        )
        return list(result.scalars().all())


class BookingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, booking: BookingModel) -> BookingModel:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_by_id(self, booking_id: int) -> Optional[BookingModel]:
        return await self.session.get(BookingModel, booking_id)

    async def get_for_update(self, booking_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_active(self, trip_id: int, passenger_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.trip_id == trip_id,
                BookingModel.passenger_id == passenger_id,
                BookingModel.status != BookingStatus.CANCELLED,
            )
        )
        return result.scalars().first()

    async def find_completed(self, trip_id: int, passenger_id: int) -> Optional[BookingModel]:
        result = await self.session.execute(
            select(BookingModel).where(
                BookingModel.trip_id == trip_id,
                BookingModel.passenger_id == passenger_id,
                BookingModel.status == BookingStatus.COMPLETED,
            )
        )
        return result.scalars().first()

    async def count_active_for_trip(self, trip_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(BookingModel)
            .where(
                BookingModel.trip_id == trip_id,
                BookingModel.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )
        return result.scalar() or 0

    async def count_booked_by_trip(self, trip_ids: list[int]) -> dict[int, int]:
        """Confirmed plus completed bookings per trip."""
        if not trip_ids:
            return {}
        result = await self.session.execute(
            select(BookingModel.trip_id, func.count())
            .where(
                BookingModel.trip_id.in_(trip_ids),
                BookingModel.status.in_(
                    (BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
                ),
            )
            .group_by(BookingModel.trip_id)
        )
        return {trip_id: count for trip_id, count in result.all()}

    async def cancel_all_active_for_trip(self, trip_id: int) -> int:
        """Bulk transition pending/confirmed bookings to cancelled."""
        result = await self.session.execute(
            update(BookingModel)
            .where(
                BookingModel.trip_id == trip_id,
                BookingModel.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .values(status=BookingStatus.CANCELLED)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def list_for_passenger(
        self,
        passenger_id: int,
        status: BookingStatus | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> list[BookingModel]:
        query = select(BookingModel).where(BookingModel.passenger_id == passenger_id)
        if status is not None:
            query = query.where(BookingModel.status == status)
        result = await self.session.execute(
            query.order_by(BookingModel.created_at.desc(), BookingModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def list_for_trip(self, trip_id: int) -> list[BookingModel]:
        result = await self.session.execute(
            select(BookingModel)
            .where(BookingModel.trip_id == trip_id)
            .order_by(BookingModel.id)
        )
        return list(result.scalars().all())


class ReviewRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, review: ReviewModel) -> ReviewModel:
        self.session.add(review)
        await self.session.flush()
        return review

    async def exists(self, trip_id: int, reviewer_id: int) -> bool:
        result = await self.session.execute(
            select(ReviewModel.id).where(
                ReviewModel.trip_id == trip_id,
                ReviewModel.reviewer_id == reviewer_id,
            )
        )
        return result.first() is not None

    async def list_for_reviewee(
        self, reviewee_id: int, limit: int = 10, offset: int = 0
    ) -> list[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel)
            .where(ReviewModel.reviewee_id == reviewee_id)
            .order_by(ReviewModel.created_at.desc(), ReviewModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def list_by_reviewer(
        self, reviewer_id: int, limit: int = 10, offset: int = 0
    ) -> list[ReviewModel]:
        result = await self.session.execute(
            select(ReviewModel)
            .where(ReviewModel.reviewer_id == reviewer_id)
            .order_by(ReviewModel.created_at.desc(), ReviewModel.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def averages_for_reviewee(self, reviewee_id: int) -> dict[str, float | int]:
        """Per-category averages over all reviews received (read side only)."""
        columns = [func.avg(ReviewModel.rating).label("rating")]
        columns += [
            func.avg(getattr(ReviewModel, name)).label(name)
            for name in REVIEW_CATEGORIES
        ]
        columns.append(func.count(ReviewModel.id).label("total_reviews"))
        result = await self.session.execute(
            select(*columns).where(ReviewModel.reviewee_id == reviewee_id)
        )
        row = result.one()._mapping
        averages: dict[str, float | int] = {
            key: round(float(row[key] or 0.0), 2)
            for key in ("rating", *REVIEW_CATEGORIES)
        }
        averages["total_reviews"] = row["total_reviews"] or 0
        return averages
