"""
FastAPI application factory.

* Registers routes for users, trips, bookings, reviews and admin.
* Starts / stops the background trip-completion worker via lifespan events.
* Maps domain errors to HTTP responses.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api.dependencies import get_services
from carpool.api.errors import register_error_handlers
from carpool.api.middleware import limiter
from carpool.api.routes import admin, bookings, reviews, trips, users
from carpool.config import settings
from carpool.infrastructure.redis_client import close_redis
from carpool.workers import trip_completer as _completer

logging.basicConfig(level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the completion worker on startup; stop on shutdown."""
    if settings.completion_worker_enabled:
        services = await get_services()
        await _completer.start_completion_loop(services.trips)
    yield
    if settings.completion_worker_enabled:
        await _completer.stop_completion_loop()
    await close_redis()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Booking API",
        description=(
            "Seat reservations on driver-published trips.  Serializes "
            "capacity changes per trip, enforces one active booking per "
            "passenger and trip, and keeps a running rating per driver."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    register_error_handlers(app)

    # Routers
    app.include_router(users.router, prefix="/api/v1")
    app.include_router(trips.router, prefix="/api/v1")
    app.include_router(bookings.router, prefix="/api/v1")
    app.include_router(reviews.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
