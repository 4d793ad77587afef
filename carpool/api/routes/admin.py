"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health                 -- simple health check
POST /api/v1/admin/complete-departed-trips -- run one completion cycle now
"""

from fastapi import APIRouter, Depends, Request

from carpool.api.dependencies import get_services
from carpool.api.middleware import limiter
from carpool.api.schemas import HealthResponse
from carpool.config import settings
from carpool.services.registry import Services
from carpool.workers.trip_completer import run_completion_cycle

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.post(
    "/complete-departed-trips",
    summary="Complete every active trip past its departure grace period",
)
@limiter.limit(settings.rate_limit)
async def complete_departed_trips(
    request: Request,
    services: Services = Depends(get_services),
):
    return {"completed": await run_completion_cycle(services.trips)}
