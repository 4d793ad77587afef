"""
SQLAlchemy ORM models.

Tables
------
* ``users``     -- drivers and passengers, with their embedded rating aggregate
* ``trips``     -- driver-published ride offers with seat counters
* ``bookings``  -- seat reservations on trips
* ``reviews``   -- passenger reviews of drivers, one per (trip, reviewer)

Constraints
-----------
* ``CHECK 0 <= available_seats <= total_seats`` on ``trips``.
* **Partial unique index** on ``bookings (trip_id, passenger_id)`` restricted
  to non-cancelled rows: the database-level half of the duplicate guard.
* **Unique** ``reviews (trip_id, reviewer_id)``.
"""

import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)

from .database import Base
from carpool.domain.enums import BookingStatus, PaymentStatus, TripStatus, UserRole


def _values_enum(enum_cls: type[enum.Enum], name: str) -> Enum:
    """Store enum *values* (lower-case) so raw SQL predicates stay readable."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
    )


class UserModel(Base):
    __tablename__ = "users"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(_values_enum(UserRole, "user_role"), nullable=False)

    # Rating aggregate, only ever written by the rating aggregator
    rating = Column(Float, default=0.0, nullable=False)
    total_reviews = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())


class TripModel(Base):
    __tablename__ = "trips"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    origin = Column(String(200), nullable=False)
    destination = Column(String(200), nullable=False)
    departure_at = Column(DateTime(timezone=True), nullable=False)
    description = Column(String(500), nullable=True)

    # Ride preferences shown to passengers
    pets = Column(Boolean, default=False, nullable=False)
    music = Column(Boolean, default=False, nullable=False)
    air_conditioning = Column(Boolean, default=False, nullable=False)
    smoking = Column(Boolean, default=False, nullable=False)

    price_per_seat = Column(Float, nullable=False)
    total_seats = Column(Integer, nullable=False)
    available_seats = Column(Integer, nullable=False)
    status = Column(
        _values_enum(TripStatus, "trip_status"),
        default=TripStatus.ACTIVE,
        nullable=False,
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "available_seats >= 0 AND available_seats <= total_seats",
            name="ck_trips_available_seats_range",
        ),
        CheckConstraint("price_per_seat >= 0", name="ck_trips_price_non_negative"),
        Index("idx_trips_driver", "driver_id"),
        Index("idx_trips_status_departure", "status", "departure_at"),
    )


class BookingModel(Base):
    __tablename__ = "bookings"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    passenger_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    seats = Column(Integer, nullable=False)
    # Frozen at creation: later price edits on the trip never touch it
    total_price = Column(Float, nullable=False)
    status = Column(
        _values_enum(BookingStatus, "booking_status"),
        default=BookingStatus.CONFIRMED,
        nullable=False,
    )
    payment_status = Column(
        _values_enum(PaymentStatus, "payment_status"),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    notes = Column(String(200), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        CheckConstraint("seats >= 1", name="ck_bookings_seats_positive"),
        Index(
            "uq_bookings_active_trip_passenger",
            "trip_id",
            "passenger_id",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
        Index("idx_bookings_trip_status", "trip_id", "status"),
        Index("idx_bookings_passenger", "passenger_id"),
    )


class ReviewModel(Base):
    __tablename__ = "reviews"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(Integer, ForeignKey("trips.id"), nullable=False)
    reviewer_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    reviewee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(String(500), nullable=True)

    # Optional category scores, 1-5 each
    punctuality = Column(Integer, nullable=True)
    friendliness = Column(Integer, nullable=True)
    cleanliness = Column(Integer, nullable=True)
    communication = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("trip_id", "reviewer_id", name="uq_reviews_trip_reviewer"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
        Index("idx_reviews_reviewee", "reviewee_id"),
        Index("idx_reviews_reviewer", "reviewer_id"),
    )
