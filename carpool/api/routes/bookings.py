"""
Booking endpoints
=================

POST  /api/v1/bookings                     -- reserve seats on a trip
GET   /api/v1/bookings/mine                -- the passenger's bookings
GET   /api/v1/bookings/{booking_id}        -- one booking (passenger or driver)
PATCH /api/v1/bookings/{booking_id}/cancel -- cancel (passenger or driver)
PATCH /api/v1/bookings/{booking_id}/status -- driver moves the booking along
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from carpool.api.dependencies import get_actor, get_services, require_role
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    BookingCreateRequest,
    BookingResponse,
    BookingStatusRequest,
    ErrorResponse,
)
from carpool.config import settings
from carpool.domain.enums import BookingStatus, UserRole
from carpool.infrastructure.models import UserModel
from carpool.services.registry import Services

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post(
    "",
    status_code=201,
    response_model=BookingResponse,
    summary="Book seats on a trip",
    responses={
        409: {
            "model": ErrorResponse,
            "description": "Duplicate booking or not enough seats.",
        }
    },
)
@limiter.limit(settings.rate_limit)
async def create_booking(
    request: Request,
    body: BookingCreateRequest,
    passenger: UserModel = Depends(require_role(UserRole.PASSENGER)),
    services: Services = Depends(get_services),
):
    return await services.bookings.create(
        body.trip_id, passenger.id, body.seats, notes=body.notes
    )


@router.get("/mine", response_model=list[BookingResponse], summary="My bookings")
@limiter.limit(settings.rate_limit)
async def list_my_bookings(
    request: Request,
    status: Optional[BookingStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    passenger: UserModel = Depends(require_role(UserRole.PASSENGER)),
    services: Services = Depends(get_services),
):
    return await services.bookings.list_for_passenger(
        passenger.id, status=status, limit=limit, offset=(page - 1) * limit
    )


@router.get("/{booking_id}", response_model=BookingResponse, summary="Get a booking")
@limiter.limit(settings.rate_limit)
async def get_booking(
    request: Request,
    booking_id: int,
    actor: UserModel = Depends(get_actor),
    services: Services = Depends(get_services),
):
    booking = await services.bookings.get(booking_id)
    trip = await services.trips.get(booking.trip_id)
    if actor.id not in (booking.passenger_id, trip.driver_id):
        raise HTTPException(status_code=403, detail="Not your booking")
    return booking


@router.patch(
    "/{booking_id}/cancel",
    response_model=BookingResponse,
    summary="Cancel a booking",
    description=(
        "Transitions a PENDING or CONFIRMED booking to CANCELLED and gives "
        "its seats back to the trip."
    ),
)
@limiter.limit(settings.rate_limit)
async def cancel_booking(
    request: Request,
    booking_id: int,
    actor: UserModel = Depends(get_actor),
    services: Services = Depends(get_services),
):
    return await services.bookings.cancel(booking_id, actor.id)


@router.patch(
    "/{booking_id}/status",
    response_model=BookingResponse,
    summary="Update a booking's status (driver)",
)
@limiter.limit(settings.rate_limit)
async def set_booking_status(
    request: Request,
    booking_id: int,
    body: BookingStatusRequest,
    driver: UserModel = Depends(require_role(UserRole.DRIVER)),
    services: Services = Depends(get_services),
):
    return await services.bookings.set_status(booking_id, driver.id, body.status)
