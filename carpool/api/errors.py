"""Translate domain failures into HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from carpool.domain.errors import DomainError, ErrorKind

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 403,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.CAPACITY_EXCEEDED: 409,
    ErrorKind.DUPLICATE_BOOKING: 409,
    ErrorKind.DUPLICATE_REVIEW: 409,
    ErrorKind.NO_COMPLETED_BOOKING: 404,
    ErrorKind.SELF_BOOKING_FORBIDDEN: 400,
    ErrorKind.VALIDATION_ERROR: 422,
}


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(exc.kind, 400),
        content={"detail": exc.message, "code": exc.kind.value},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
