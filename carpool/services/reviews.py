"""
Review Gate
===========

A passenger may review a trip's driver exactly once, and only while holding
a COMPLETED booking on that trip.  The review insert and the reviewee's
rating update commit together or not at all.

Locks are taken in a fixed order -- ``review:{trip}:{reviewer}`` then
``user:{reviewee}`` -- before the transaction opens.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain.entities import validate_categories, validate_rating
from carpool.domain.errors import DuplicateReview, NoCompletedBooking, TripNotFound
from carpool.infrastructure.locks import review_key, user_key
from carpool.infrastructure.models import ReviewModel
from carpool.infrastructure.repositories import (
    BookingRepository,
    ReviewRepository,
    TripRepository,
)
from carpool.services.ratings import RatingAggregator

logger = logging.getLogger(__name__)


class ReviewGate:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        locks,
        aggregator: RatingAggregator,
    ):
        self.session_factory = session_factory
        self.locks = locks
        self.aggregator = aggregator

    async def submit(
        self,
        trip_id: int,
        reviewer_id: int,
        rating: int,
        comment: Optional[str] = None,
        categories: Optional[Mapping[str, Optional[int]]] = None,
    ) -> ReviewModel:
        rating = validate_rating(rating)
        scores = validate_categories(categories)

        async with self.session_factory() as session:
            trip = await TripRepository(session).get_by_id(trip_id)
        if trip is None:
            raise TripNotFound(trip_id)
        reviewee_id = trip.driver_id

        async with self.locks.hold(review_key(trip_id, reviewer_id)):
            async with self.locks.hold(user_key(reviewee_id)):
                async with self.session_factory() as session:
                    try:
                        async with session.begin():
                            review = await self._submit_in(
                                session,
                                trip_id,
                                reviewer_id,
                                reviewee_id,
                                rating,
                                comment,
                                scores,
                            )
                    except IntegrityError:
                        async with session.begin():
                            exists = await ReviewRepository(session).exists(
                                trip_id, reviewer_id
                            )
                        if not exists:
                            raise
                        raise DuplicateReview(trip_id, reviewer_id) from None

        logger.info(
            "Review %d accepted: trip=%d reviewer=%d reviewee=%d rating=%d",
            review.id,
            trip_id,
            reviewer_id,
            reviewee_id,
            rating,
        )
        return review

    async def _submit_in(
        self,
        session: AsyncSession,
        trip_id: int,
        reviewer_id: int,
        reviewee_id: int,
        rating: int,
        comment: Optional[str],
        scores: dict[str, int],
    ) -> ReviewModel:
        if await BookingRepository(session).find_completed(trip_id, reviewer_id) is None:
            raise NoCompletedBooking(trip_id, reviewer_id)
        reviews = ReviewRepository(session)
        if await reviews.exists(trip_id, reviewer_id):
            raise DuplicateReview(trip_id, reviewer_id)

        review = await reviews.create(
            ReviewModel(
                trip_id=trip_id,
                reviewer_id=reviewer_id,
                reviewee_id=reviewee_id,
                rating=rating,
                comment=comment,
                **scores,
            )
        )
        await self.aggregator.absorb_in(session, reviewee_id, rating)
        return review

    # ── Queries ───────────────────────────────────────────────────────

    async def list_for_reviewee(
        self, user_id: int, limit: int = 10, offset: int = 0
    ) -> tuple[list[ReviewModel], dict[str, float | int]]:
        async with self.session_factory() as session:
            repo = ReviewRepository(session)
            reviews = await repo.list_for_reviewee(user_id, limit=limit, offset=offset)
            averages = await repo.averages_for_reviewee(user_id)
        return reviews, averages

    async def list_by_reviewer(
        self, user_id: int, limit: int = 10, offset: int = 0
    ) -> list[ReviewModel]:
        async with self.session_factory() as session:
            return await ReviewRepository(session).list_by_reviewer(
                user_id, limit=limit, offset=offset
            )
