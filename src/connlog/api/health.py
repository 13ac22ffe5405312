"""
Health check endpoint.

- /health: Liveness probe (always 200 if service alive)
"""

from fastapi import APIRouter

from ..models.connection import HealthResponse

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=200,
    summary="Liveness probe",
    description="""
    Liveness probe endpoint.

    Always returns 200 OK if the service is running.
    """,
)
async def liveness_check() -> HealthResponse:
    """
    Liveness probe - always returns 200 if service is alive.
    """
    return HealthResponse(status="ok")
