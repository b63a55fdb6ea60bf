"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from pydantic import BaseModel, Field

from policysync.core.types import ActionType, PolicyType, RuleKind, UpdateAction
from policysync.server.models import ActivatedRule, Policy, RuleGroup

# === Error and health schemas ===


class ErrorResponse(BaseModel):
    """Error body returned for every failed call."""

    code: str
    message: str


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    region: str
    organization: str


# === Change token schemas ===


class ChangeTokenResponse(BaseModel):
    """Current change token."""

    change_token: str


# === Rule group schemas ===


class RuleGroupCreateRequest(BaseModel):
    """Request body for rule group creation."""

    name: str = Field(min_length=1, max_length=128)
    metric_name: str = Field(min_length=1, max_length=255)
    tags: dict[str, str] = Field(default_factory=dict)


class RuleGroupResponse(BaseModel):
    """Rule group data in responses."""

    id: str
    name: str
    metric_name: str
    arn: str
    tags: dict[str, str]


class ActivatedRuleAction(BaseModel):
    """Action of an activated rule."""

    type: ActionType


class ActivatedRuleModel(BaseModel):
    """An activated rule on the wire."""

    rule_id: str = Field(min_length=1)
    priority: int
    action: ActivatedRuleAction
    type: RuleKind = RuleKind.REGULAR


class ActivatedRulesResponse(BaseModel):
    """Activated rules of a rule group."""

    activated_rules: list[ActivatedRuleModel]


class RuleGroupUpdate(BaseModel):
    """One insertion or deletion."""

    action: UpdateAction
    activated_rule: ActivatedRuleModel


class RuleGroupUpdateRequest(BaseModel):
    """Request body for a batched rule group update."""

    updates: list[RuleGroupUpdate] = Field(min_length=1)


# === Policy schemas ===


class PolicyCreateRequest(BaseModel):
    """Request body for policy creation."""

    name: str = Field(min_length=1, max_length=128)
    content: str
    type: PolicyType = PolicyType.SERVICE_CONTROL_POLICY
    description: str = ""
    tags: dict[str, str] = Field(default_factory=dict)


class PolicyUpdateRequest(BaseModel):
    """Request body for policy update; omitted fields are kept."""

    name: str | None = Field(default=None, min_length=1, max_length=128)
    description: str | None = None
    content: str | None = None


class PolicyResponse(BaseModel):
    """Policy data in responses."""

    id: str
    arn: str
    name: str
    description: str
    type: PolicyType
    content: str
    aws_managed: bool


# === Converters ===


def rule_group_to_response(group: RuleGroup) -> RuleGroupResponse:
    """Convert RuleGroup model to response schema."""
    return RuleGroupResponse(
        id=group.id,
        name=group.name,
        metric_name=group.metric_name,
        arn=group.arn,
        tags=dict(group.tags or {}),
    )


def activated_rule_to_model(rule: ActivatedRule) -> ActivatedRuleModel:
    """Convert ActivatedRule model to wire schema."""
    return ActivatedRuleModel(
        rule_id=rule.rule_id,
        priority=rule.priority,
        action=ActivatedRuleAction(type=ActionType(rule.action)),
        type=RuleKind(rule.type),
    )


def policy_to_response(policy: Policy) -> PolicyResponse:
    """Convert Policy model to response schema."""
    return PolicyResponse(
        id=policy.id,
        arn=policy.arn,
        name=policy.name,
        description=policy.description,
        type=PolicyType(policy.type),
        content=policy.content,
        aws_managed=policy.aws_managed,
    )
