"""Liveness endpoint."""

from fastapi import APIRouter

from app.schemas.health import HealthResponse

router = APIRouter()


@router.get("/healthz", response_model=HealthResponse)
async def healthz() -> HealthResponse:
    """Report that the process is up and serving requests.

    Concourse is not contacted; upstream outages do not fail this check.
    """
    return HealthResponse(status="ok")
