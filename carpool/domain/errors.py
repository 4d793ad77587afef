"""Domain error taxonomy.

Every failure the core reports is a :class:`DomainError` subclass tagged
with an :class:`ErrorKind`.  The HTTP layer maps kinds to status codes;
services never know about transport.
"""

import enum


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_STATE = "INVALID_STATE"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    DUPLICATE_BOOKING = "DUPLICATE_BOOKING"
    DUPLICATE_REVIEW = "DUPLICATE_REVIEW"
    NO_COMPLETED_BOOKING = "NO_COMPLETED_BOOKING"
    SELF_BOOKING_FORBIDDEN = "SELF_BOOKING_FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class DomainError(Exception):
    """Base domain error with a kind and a user-safe message."""

    kind: ErrorKind = ErrorKind.VALIDATION_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


# ── NOT_FOUND ─────────────────────────────────────────────────────────


class NotFound(DomainError):
    kind = ErrorKind.NOT_FOUND


class TripNotFound(NotFound):
    def __init__(self, trip_id: int) -> None:
        super().__init__(f"Trip {trip_id} not found")
        self.trip_id = trip_id


class BookingNotFound(NotFound):
    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class UserNotFound(NotFound):
    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


# ── UNAUTHORIZED ──────────────────────────────────────────────────────


class Unauthorized(DomainError):
    kind = ErrorKind.UNAUTHORIZED


# ── INVALID_STATE ─────────────────────────────────────────────────────


class InvalidState(DomainError):
    kind = ErrorKind.INVALID_STATE


class AlreadyCancelled(InvalidState):
    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} is already cancelled")
        self.booking_id = booking_id


class CannotCancelCompleted(InvalidState):
    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} is completed and cannot be cancelled")
        self.booking_id = booking_id


class TripUnavailable(InvalidState):
    def __init__(self, trip_id: int, status: str) -> None:
        super().__init__(f"Trip {trip_id} is {status} and not open for booking")
        self.trip_id = trip_id


class InvalidStateTransition(InvalidState):
    """Raised when a booking status change violates the state machine."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot transition from {current} to {target}")
        self.current = current
        self.target = target


class TripHasActiveBookings(InvalidState):
    def __init__(self, trip_id: int) -> None:
        super().__init__(f"Trip {trip_id} has active bookings and cannot be changed")
        self.trip_id = trip_id


# ── Booking / review rules ────────────────────────────────────────────


class CapacityExceeded(DomainError):
    kind = ErrorKind.CAPACITY_EXCEEDED

    def __init__(self, trip_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"Only {available} seats available on trip {trip_id}, requested {requested}"
        )
        self.trip_id = trip_id
        self.requested = requested
        self.available = available


class DuplicateBooking(DomainError):
    kind = ErrorKind.DUPLICATE_BOOKING

    def __init__(self, trip_id: int, passenger_id: int) -> None:
        super().__init__(
            f"Passenger {passenger_id} already holds a booking on trip {trip_id}"
        )
        self.trip_id = trip_id
        self.passenger_id = passenger_id


class DuplicateReview(DomainError):
    kind = ErrorKind.DUPLICATE_REVIEW

    def __init__(self, trip_id: int, reviewer_id: int) -> None:
        super().__init__(f"User {reviewer_id} has already reviewed trip {trip_id}")
        self.trip_id = trip_id
        self.reviewer_id = reviewer_id


class NoCompletedBooking(DomainError):
    kind = ErrorKind.NO_COMPLETED_BOOKING

    def __init__(self, trip_id: int, reviewer_id: int) -> None:
        super().__init__(
            f"No completed booking found for user {reviewer_id} on trip {trip_id}"
        )
        self.trip_id = trip_id
        self.reviewer_id = reviewer_id


class SelfBookingForbidden(DomainError):
    kind = ErrorKind.SELF_BOOKING_FORBIDDEN

    def __init__(self, trip_id: int) -> None:
        super().__init__(f"Drivers cannot book their own trip {trip_id}")
        self.trip_id = trip_id


# ── VALIDATION_ERROR ──────────────────────────────────────────────────


class ValidationError(DomainError):
    kind = ErrorKind.VALIDATION_ERROR


class InvalidRating(ValidationError):
    def __init__(self, rating) -> None:
        super().__init__(f"Rating must be an integer between 1 and 5, got {rating!r}")


class InvalidCategoryScore(ValidationError):
    def __init__(self, category: str, score) -> None:
        super().__init__(
            f"Category {category!r} must be scored 1 to 5, got {score!r}"
        )
        self.category = category


class InvalidSeatCount(ValidationError):
    def __init__(self, seats, maximum: int) -> None:
        super().__init__(f"Seat count must be between 1 and {maximum}, got {seats!r}")
