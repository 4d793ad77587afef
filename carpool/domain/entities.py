"""
Domain entities with business logic.

Patterns used
-------------
- **State Pattern** on ``Booking``: enforces valid lifecycle transitions
  (PENDING -> CONFIRMED -> COMPLETED, PENDING | CONFIRMED -> CANCELLED).
- ``Trip.check_reservable`` encapsulates the seat-capacity invariant and
  decides which error a failed reservation reports.
- ``RatingAggregate.absorb`` is the streaming mean update; it never
  re-reads review history.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from .enums import (
    BOOKING_TRANSITIONS,
    MAX_RATING,
    MIN_RATING,
    REVIEW_CATEGORIES,
    BookingStatus,
    TripStatus,
)
from .errors import (
    AlreadyCancelled,
    CannotCancelCompleted,
    CapacityExceeded,
    InvalidCategoryScore,
    InvalidRating,
    InvalidStateTransition,
    TripUnavailable,
)


def check_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Raise if *current* -> *target* is not an edge of the booking graph."""
    current, target = BookingStatus(current), BookingStatus(target)
    if target not in BOOKING_TRANSITIONS.get(current, set()):
        raise InvalidStateTransition(current.value, target.value)


def check_cancellable(booking_id: int, status: BookingStatus) -> None:
    """Cancellation has dedicated errors for the two terminal states."""
    status = BookingStatus(status)
    if status == BookingStatus.CANCELLED:
        raise AlreadyCancelled(booking_id)
    if status == BookingStatus.COMPLETED:
        raise CannotCancelCompleted(booking_id)


def _is_rating(value) -> bool:
    return (
        isinstance(value, int)
        and not isinstance(value, bool)
        and MIN_RATING <= value <= MAX_RATING
    )


def validate_rating(rating) -> int:
    if not _is_rating(rating):
        raise InvalidRating(rating)
    return rating


def validate_categories(categories: Optional[Mapping[str, Optional[int]]]) -> dict[str, int]:
    """Return the scored categories, dropping unset ones."""
    scores: dict[str, int] = {}
    for name, score in (categories or {}).items():
        if name not in REVIEW_CATEGORIES:
            raise InvalidCategoryScore(name, score)
        if score is None:
            continue
        if not _is_rating(score):
            raise InvalidCategoryScore(name, score)
        scores[name] = score
    return scores


# ── Entities ──────────────────────────────────────────────────────────


@dataclass
class Trip:
    id: Optional[int] = None
    driver_id: int = 0
    total_seats: int = 1
    available_seats: int = 1
    price_per_seat: float = 0.0
    status: TripStatus = TripStatus.ACTIVE

    @classmethod
    def from_record(cls, record) -> "Trip":
        return cls(
            id=record.id,
            driver_id=record.driver_id,
            total_seats=record.total_seats,
            available_seats=record.available_seats,
            price_per_seat=record.price_per_seat,
            status=TripStatus(record.status),
        )

    def check_reservable(self, seats: int) -> None:
        if self.status != TripStatus.ACTIVE:
            raise TripUnavailable(self.id, self.status.value)
        if self.available_seats < seats:
            raise CapacityExceeded(self.id, seats, self.available_seats)

    def price_for(self, seats: int) -> float:
        return round(seats * self.price_per_seat, 2)


@dataclass
class Booking:
    id: Optional[int] = None
    trip_id: int = 0
    passenger_id: int = 0
    seats: int = 1
    total_price: float = 0.0
    status: BookingStatus = BookingStatus.CONFIRMED
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "Booking":
        return cls(
            id=record.id,
            trip_id=record.trip_id,
            passenger_id=record.passenger_id,
            seats=record.seats,
            total_price=record.total_price,
            status=BookingStatus(record.status),
            created_at=record.created_at,
        )

    def transition_to(self, new_status: BookingStatus) -> None:
        """Move to *new_status* if the transition is legal, else raise."""
        check_transition(self.status, new_status)
        self.status = BookingStatus(new_status)


@dataclass(frozen=True)
class RatingAggregate:
    mean: float = 0.0
    count: int = 0

    def absorb(self, rating: int) -> "RatingAggregate":
        """Fold one more rating into the running mean."""
        rating = validate_rating(rating)
        return RatingAggregate(
            mean=(self.mean * self.count + rating) / (self.count + 1),
            count=self.count + 1,
        )

    @property
    def display_mean(self) -> float:
        return round(self.mean, 2)
