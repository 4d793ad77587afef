"""
Review endpoints
================

POST /api/v1/reviews                   -- review the driver of a completed trip
GET  /api/v1/reviews/user/{user_id}    -- reviews received, with averages
GET  /api/v1/reviews/by-user/{user_id} -- reviews written
"""

from fastapi import APIRouter, Depends, Query, Request

from carpool.api.dependencies import get_services, require_role
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    ErrorResponse,
    ReviewAverages,
    ReviewCreateRequest,
    ReviewResponse,
    UserReviewsResponse,
)
from carpool.config import settings
from carpool.domain.enums import UserRole
from carpool.infrastructure.models import UserModel
from carpool.services.registry import Services

router = APIRouter(prefix="/reviews", tags=["reviews"])


@router.post(
    "",
    status_code=201,
    response_model=ReviewResponse,
    summary="Review a completed trip",
    responses={
        404: {"model": ErrorResponse, "description": "No completed booking for this trip."},
        409: {"model": ErrorResponse, "description": "Trip already reviewed."},
    },
)
@limiter.limit(settings.rate_limit)
async def submit_review(
    request: Request,
    body: ReviewCreateRequest,
    reviewer: UserModel = Depends(require_role(UserRole.PASSENGER)),
    services: Services = Depends(get_services),
):
    categories = body.categories.model_dump(exclude_none=True) if body.categories else None
    return await services.reviews.submit(
        body.trip_id,
        reviewer.id,
        body.rating,
        comment=body.comment,
        categories=categories,
    )


@router.get(
    "/user/{user_id}",
    response_model=UserReviewsResponse,
    summary="Reviews received by a user",
)
@limiter.limit(settings.rate_limit)
async def list_reviews_for_user(
    request: Request,
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    reviews, averages = await services.reviews.list_for_reviewee(
        user_id, limit=limit, offset=(page - 1) * limit
    )
    return UserReviewsResponse(
        reviews=[ReviewResponse.model_validate(r) for r in reviews],
        averages=ReviewAverages(**averages),
    )


@router.get(
    "/by-user/{user_id}",
    response_model=list[ReviewResponse],
    summary="Reviews written by a user",
)
@limiter.limit(settings.rate_limit)
async def list_reviews_by_user(
    request: Request,
    user_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    services: Services = Depends(get_services),
):
    return await services.reviews.list_by_reviewer(
        user_id, limit=limit, offset=(page - 1) * limit
    )
