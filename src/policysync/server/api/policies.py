"""Organization policy API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Response, status

from policysync.server.api.deps import get_db, require_api_key
from policysync.server.database import ApiFault, Database
from policysync.server.schemas import (
    PolicyCreateRequest,
    PolicyResponse,
    PolicyUpdateRequest,
    policy_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/policies",
    tags=["policies"],
    dependencies=[Depends(require_api_key)],
)


@router.post("", response_model=PolicyResponse, status_code=status.HTTP_201_CREATED)
def create_policy(
    request: PolicyCreateRequest,
    db: Database = Depends(get_db),
) -> PolicyResponse:
    """Create an organization policy."""
    policy = db.create_policy(
        request.name,
        request.content,
        request.type.value,
        description=request.description,
        tags=request.tags,
    )
    logger.info("Created policy %s (%s)", policy.name, policy.id)
    return policy_to_response(policy)


@router.get("/{policy_id}", response_model=PolicyResponse)
def describe_policy(policy_id: str, db: Database = Depends(get_db)) -> PolicyResponse:
    """Get an organization policy."""
    policy = db.get_policy(policy_id)
    if policy is None:
        raise ApiFault("PolicyNotFound", f"Policy {policy_id} does not exist.", 404)
    return policy_to_response(policy)


@router.patch("/{policy_id}", response_model=PolicyResponse)
def update_policy(
    policy_id: str,
    request: PolicyUpdateRequest,
    db: Database = Depends(get_db),
) -> PolicyResponse:
    """Update the fields present in the request."""
    fields = request.model_dump(exclude_none=True)
    policy = db.update_policy(policy_id, **fields)
    return policy_to_response(policy)


@router.delete("/{policy_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_policy(policy_id: str, db: Database = Depends(get_db)) -> Response:
    """Delete an organization policy."""
    db.delete_policy(policy_id)
    logger.info("Deleted policy %s", policy_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
