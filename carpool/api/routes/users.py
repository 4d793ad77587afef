"""
User endpoints
==============

POST /api/v1/users                 -- register a driver / passenger
GET  /api/v1/users/{user_id}        -- public profile with rating aggregate
GET  /api/v1/users/{user_id}/rating -- running mean and review count
"""

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_db, get_services
from carpool.api.middleware import limiter
from carpool.api.schemas import RatingResponse, UserCreateRequest, UserResponse
from carpool.config import settings
from carpool.infrastructure.models import UserModel
from carpool.infrastructure.repositories import UserRepository
from carpool.services.registry import Services

router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=201, response_model=UserResponse, summary="Register a user")
@limiter.limit(settings.rate_limit)
async def register_user(
    request: Request,
    body: UserCreateRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = UserRepository(db)
    if await repo.get_by_email(body.email):
        raise HTTPException(status_code=409, detail="Email already registered")
    return await repo.create(
        UserModel(
            name=body.name,
            email=body.email,
            role=body.role,
            rating=0.0,
            total_reviews=0,
        )
    )


@router.get("/{user_id}", response_model=UserResponse, summary="Get a user profile")
@limiter.limit(settings.rate_limit)
async def get_user(
    request: Request,
    user_id: int,
    db: AsyncSession = Depends(get_db),
):
    user = await UserRepository(db).get_by_id(user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.get(
    "/{user_id}/rating",
    response_model=RatingResponse,
    summary="Get a user's rating aggregate",
)
@limiter.limit(settings.rate_limit)
async def get_rating(
    request: Request,
    user_id: int,
    services: Services = Depends(get_services),
):
    aggregate = await services.ratings.get(user_id)
    return RatingResponse(mean=aggregate.display_mean, count=aggregate.count)
