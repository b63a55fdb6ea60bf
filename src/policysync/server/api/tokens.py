"""Change token API route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from policysync.server.api.deps import get_db, require_api_key
from policysync.server.database import Database
from policysync.server.schemas import ChangeTokenResponse

router = APIRouter(
    prefix="/api/change-token",
    tags=["change-token"],
    dependencies=[Depends(require_api_key)],
)


@router.post("", response_model=ChangeTokenResponse)
def get_change_token(db: Database = Depends(get_db)) -> ChangeTokenResponse:
    """Return the namespace's current change token."""
    return ChangeTokenResponse(change_token=db.issue_change_token())
