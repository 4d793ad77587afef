"""Rating Aggregator: per-user streaming mean, serialized per user."""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from carpool.domain.entities import RatingAggregate
from carpool.domain.errors import UserNotFound
from carpool.infrastructure.locks import user_key
from carpool.infrastructure.repositories import UserRepository

logger = logging.getLogger(__name__)


class RatingAggregator:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], locks):
        self.session_factory = session_factory
        self.locks = locks

    async def absorb(self, user_id: int, rating: int) -> RatingAggregate:
        async with self.locks.hold(user_key(user_id)):
            async with self.session_factory() as session:
                async with session.begin():
                    return await self.absorb_in(session, user_id, rating)

    async def absorb_in(
        self, session: AsyncSession, user_id: int, rating: int
    ) -> RatingAggregate:
        """Fold *rating* in; caller holds ``user:{id}`` and the transaction."""
        users = UserRepository(session)
        user = await users.get_for_update(user_id)
        if user is None:
            raise UserNotFound(user_id)

        aggregate = RatingAggregate(user.rating, user.total_reviews).absorb(rating)
        await users.set_rating(user_id, aggregate.mean, aggregate.count)
        logger.debug(
            "User %d rating now %.2f over %d reviews",
            user_id,
            aggregate.mean,
            aggregate.count,
        )
        return aggregate

    async def get(self, user_id: int) -> RatingAggregate:
        async with self.session_factory() as session:
            user = await UserRepository(session).get_by_id(user_id)
        if user is None:
            raise UserNotFound(user_id)
        return RatingAggregate(user.rating, user.total_reviews)
