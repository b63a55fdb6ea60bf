"""Health check API route.

Unauthenticated, so `policysync configure` can probe an endpoint before a
key is saved.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from policysync import __version__
from policysync.server.api.deps import get_db
from policysync.server.database import Database
from policysync.server.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health_check(db: Database = Depends(get_db)) -> HealthResponse:
    """Report liveness and whether the organization accepts policy creation."""
    return HealthResponse(
        status="ok",
        version=__version__,
        region=db.region,
        organization="finalizing" if db.is_finalizing() else "ready",
    )
