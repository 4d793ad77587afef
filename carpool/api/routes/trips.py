"""
Trip endpoints
==============

POST  /api/v1/trips                    -- publish a trip (driver)
GET   /api/v1/trips/mine               -- the driver's own trips
GET   /api/v1/trips/{trip_id}          -- trip details and seats left
PATCH /api/v1/trips/{trip_id}          -- edit a trip without active bookings
POST  /api/v1/trips/{trip_id}/cancel   -- cancel, cascading to bookings
POST  /api/v1/trips/{trip_id}/complete -- mark the trip as travelled
GET   /api/v1/trips/{trip_id}/bookings -- the driver's view of bookings
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from carpool.api.dependencies import get_services, require_role
from carpool.api.middleware import limiter
from carpool.api.schemas import (
    BookingResponse,
    DriverTripResponse,
    ErrorResponse,
    TripCancelResponse,
    TripCreateRequest,
    TripResponse,
    TripUpdateRequest,
)
from carpool.config import settings
from carpool.domain.enums import TripStatus, UserRole
from carpool.infrastructure.models import UserModel
from carpool.services.registry import Services

router = APIRouter(prefix="/trips", tags=["trips"])

driver_only = require_role(UserRole.DRIVER)


@router.post("", status_code=201, response_model=TripResponse, summary="Publish a trip")
@limiter.limit(settings.rate_limit)
async def publish_trip(
    request: Request,
    body: TripCreateRequest,
    driver: UserModel = Depends(driver_only),
    services: Services = Depends(get_services),
):
    return await services.trips.publish(driver_id=driver.id, **body.model_dump())


@router.get(
    "/mine",
    response_model=list[DriverTripResponse],
    summary="My trips as a driver",
    description=(
        "Latest departure first. Each trip carries its confirmed and "
        "completed booking count and the seats taken off its capacity."
    ),
)
@limiter.limit(settings.rate_limit)
async def list_my_trips(
    request: Request,
    status: Optional[TripStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    driver: UserModel = Depends(driver_only),
    services: Services = Depends(get_services),
):
    rows = await services.trips.list_for_driver(
        driver.id, status=status, limit=limit, offset=(page - 1) * limit
    )
    return [
        DriverTripResponse(
            **TripResponse.model_validate(trip).model_dump(),
            booking_count=booking_count,
            seats_booked=trip.total_seats - trip.available_seats,
        )
        for trip, booking_count in rows
    ]


@router.get(
    "/{trip_id}",
    response_model=TripResponse,
    summary="Get a trip",
    responses={404: {"model": ErrorResponse}},
)
@limiter.limit(settings.rate_limit)
async def get_trip(
    request: Request,
    trip_id: int,
    services: Services = Depends(get_services),
):
    return await services.trips.get(trip_id)


@router.patch(
    "/{trip_id}",
    response_model=TripResponse,
    summary="Update a trip",
    responses={409: {"model": ErrorResponse, "description": "Trip not editable."}},
    description=(
        "Only trips with no pending or confirmed bookings can be edited. "
        "Changing the seat count resets the ledger by the same delta."
    ),
)
@limiter.limit(settings.rate_limit)
async def update_trip(
    request: Request,
    trip_id: int,
    body: TripUpdateRequest,
    driver: UserModel = Depends(driver_only),
    services: Services = Depends(get_services),
):
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    return await services.trips.update(trip_id, driver.id, changes)


@router.post(
    "/{trip_id}/cancel",
    response_model=TripCancelResponse,
    summary="Cancel a trip",
    responses={409: {"model": ErrorResponse, "description": "Trip not active."}},
    description="Every pending or confirmed booking on the trip is cancelled too.",
)
@limiter.limit(settings.rate_limit)
async def cancel_trip(
    request: Request,
    trip_id: int,
    driver: UserModel = Depends(driver_only),
    services: Services = Depends(get_services),
):
    cancelled = await services.trips.cancel(trip_id, driver.id)
    return TripCancelResponse(trip_id=trip_id, bookings_cancelled=cancelled)


@router.post("/{trip_id}/complete", response_model=TripResponse, summary="Complete a trip")
@limiter.limit(settings.rate_limit)
async def complete_trip(
    request: Request,
    trip_id: int,
    driver: UserModel = Depends(driver_only),
    services: Services = Depends(get_services),
):
    return await services.trips.complete(trip_id, driver.id)


@router.get(
    "/{trip_id}/bookings",
    response_model=list[BookingResponse],
    summary="List bookings on a trip",
)
@limiter.limit(settings.rate_limit)
async def list_trip_bookings(
    request: Request,
    trip_id: int,
    driver: UserModel = Depends(driver_only),
    services: Services = Depends(get_services),
):
    return await services.trips.list_bookings(trip_id, driver.id)
