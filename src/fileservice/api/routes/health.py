"""Health check endpoint (never requires an API key)."""

from datetime import UTC, datetime

from fastapi import APIRouter
from pydantic import BaseModel

from fileservice import __version__
from fileservice.api.deps import ConfigDep

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    status: str
    storage: str
    time: str
    version: str


@router.get("/health", response_model=HealthResponse)
def get_health(config: ConfigDep) -> HealthResponse:
    """Report liveness and the configured storage type.

    The backend itself is not contacted.
    """
    return HealthResponse(
        status="ok",
        storage=config.storage.type,
        time=datetime.now(UTC).isoformat(),
        version=__version__,
    )
