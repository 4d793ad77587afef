"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from carpool.domain.enums import BookingStatus, PaymentStatus, TripStatus, UserRole


# ── Requests ──────────────────────────────────────────────────────────


class UserCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    role: UserRole


class TripCreateRequest(BaseModel):
    origin: str = Field(..., min_length=1, max_length=200)
    destination: str = Field(..., min_length=1, max_length=200)
    departure_at: datetime
    price_per_seat: float = Field(..., ge=0)
    total_seats: int = Field(..., ge=1, le=8)
    description: Optional[str] = Field(None, max_length=500)
    pets: bool = False
    music: bool = False
    air_conditioning: bool = False
    smoking: bool = False


class TripUpdateRequest(BaseModel):
    origin: Optional[str] = Field(None, min_length=1, max_length=200)
    destination: Optional[str] = Field(None, min_length=1, max_length=200)
    departure_at: Optional[datetime] = None
    price_per_seat: Optional[float] = Field(None, ge=0)
    total_seats: Optional[int] = Field(None, ge=1, le=8)
    description: Optional[str] = Field(None, max_length=500)
    pets: Optional[bool] = None
    music: Optional[bool] = None
    air_conditioning: Optional[bool] = None
    smoking: Optional[bool] = None


class BookingCreateRequest(BaseModel):
    trip_id: int
    seats: int = Field(1, ge=1, le=8)
    notes: Optional[str] = Field(None, max_length=200)


class BookingStatusRequest(BaseModel):
    status: BookingStatus = Field(
        ...,
        description="Target status: confirmed, completed or cancelled.",
    )


class ReviewCategories(BaseModel):
    punctuality: Optional[int] = Field(None, ge=1, le=5)
    friendliness: Optional[int] = Field(None, ge=1, le=5)
    cleanliness: Optional[int] = Field(None, ge=1, le=5)
    communication: Optional[int] = Field(None, ge=1, le=5)


class ReviewCreateRequest(BaseModel):
    trip_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)
    categories: Optional[ReviewCategories] = None


# ── Responses ─────────────────────────────────────────────────────────


class RatingResponse(BaseModel):
    mean: float
    count: int


class UserResponse(BaseModel):
    id: int
    name: str
    role: UserRole
    rating: float
    total_reviews: int
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TripResponse(BaseModel):
    id: int
    driver_id: int
    origin: str
    destination: str
    departure_at: datetime
    description: Optional[str] = None
    pets: bool = False
    music: bool = False
    air_conditioning: bool = False
    smoking: bool = False
    price_per_seat: float
    total_seats: int
    available_seats: int
    status: TripStatus
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class DriverTripResponse(TripResponse):
    booking_count: int
    seats_booked: int


class TripCancelResponse(BaseModel):
    trip_id: int
    status: TripStatus = TripStatus.CANCELLED
    bookings_cancelled: int


class BookingResponse(BaseModel):
    id: int
    trip_id: int
    passenger_id: int
    seats: int
    total_price: float
    status: BookingStatus
    payment_status: PaymentStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReviewResponse(BaseModel):
    id: int
    trip_id: int
    reviewer_id: int
    reviewee_id: int
    rating: int
    comment: Optional[str] = None
    punctuality: Optional[int] = None
    friendliness: Optional[int] = None
    cleanliness: Optional[int] = None
    communication: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ReviewAverages(BaseModel):
    rating: float = 0.0
    punctuality: float = 0.0
    friendliness: float = 0.0
    cleanliness: float = 0.0
    communication: float = 0.0
    total_reviews: int = 0


class UserReviewsResponse(BaseModel):
    reviews: list[ReviewResponse]
    averages: ReviewAverages


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
    code: Optional[str] = None
