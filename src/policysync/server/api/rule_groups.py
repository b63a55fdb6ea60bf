"""Rule group API routes.

Mutations carry the change token in the X-Change-Token header.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Response, status

from policysync.server.api.deps import get_db, require_api_key
from policysync.server.database import ApiFault, Database
from policysync.server.schemas import (
    ActivatedRulesResponse,
    RuleGroupCreateRequest,
    RuleGroupResponse,
    RuleGroupUpdateRequest,
    activated_rule_to_model,
    rule_group_to_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/rule-groups",
    tags=["rule-groups"],
    dependencies=[Depends(require_api_key)],
)


@router.post("", response_model=RuleGroupResponse, status_code=status.HTTP_201_CREATED)
def create_rule_group(
    request: RuleGroupCreateRequest,
    x_change_token: str | None = Header(default=None),
    db: Database = Depends(get_db),
) -> RuleGroupResponse:
    """Create an empty rule group."""
    group = db.create_rule_group(
        x_change_token, request.name, request.metric_name, request.tags
    )
    logger.info("Created rule group %s (%s)", group.name, group.id)
    return rule_group_to_response(group)


@router.get("/{group_id}", response_model=RuleGroupResponse)
def get_rule_group(group_id: str, db: Database = Depends(get_db)) -> RuleGroupResponse:
    """Get rule group metadata."""
    group = db.get_rule_group(group_id)
    if group is None:
        raise ApiFault("NonexistentItem", f"Rule group {group_id} does not exist.", 404)
    return rule_group_to_response(group)


@router.get("/{group_id}/activated-rules", response_model=ActivatedRulesResponse)
def list_activated_rules(
    group_id: str, db: Database = Depends(get_db)
) -> ActivatedRulesResponse:
    """List the activated rules of a rule group."""
    rules = db.list_activated_rules(group_id)
    return ActivatedRulesResponse(
        activated_rules=[activated_rule_to_model(r) for r in rules]
    )


@router.post("/{group_id}/updates", status_code=status.HTTP_204_NO_CONTENT)
def update_rule_group(
    group_id: str,
    request: RuleGroupUpdateRequest,
    x_change_token: str | None = Header(default=None),
    db: Database = Depends(get_db),
) -> Response:
    """Apply a batch of activated rule insertions and deletions."""
    updates = [
        (
            update.action.value,
            {
                "rule_id": update.activated_rule.rule_id,
                "priority": update.activated_rule.priority,
                "action": update.activated_rule.action.type.value,
                "type": update.activated_rule.type.value,
            },
        )
        for update in request.updates
    ]
    db.update_rule_group(x_change_token, group_id, updates)
    logger.info("Applied %d update(s) to rule group %s", len(updates), group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule_group(
    group_id: str,
    x_change_token: str | None = Header(default=None),
    db: Database = Depends(get_db),
) -> Response:
    """Delete an empty rule group."""
    db.delete_rule_group(x_change_token, group_id)
    logger.info("Deleted rule group %s", group_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
