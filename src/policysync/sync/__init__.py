"""Convergence engine for rule groups and organization policies.

This package holds the coordination logic:
- tokens: change token acquisition (never cached)
- diff: structural set reconciliation of activated rules
- retry: token-guarded mutation retries and the eventual consistency guard
- rule_groups: rule group lifecycle orchestration
- policies: organization policy lifecycle
- errors: errors surfaced to callers

Architecture:
    diff is pure and has no I/O. Remote calls go through the
    ManagementClient passed in by the caller.
"""

from policysync.sync.diff import (
    InvalidMemberError,
    RuleMember,
    UpdateOperation,
    apply_operations,
    diff_members,
    expand_members,
    flatten_members,
)
from policysync.sync.errors import (
    ConvergenceError,
    DeadlineExceededError,
    ManagedPolicyImportError,
    OperationFailedError,
    ResourceAbsentError,
)
from policysync.sync.policies import PolicyManager, PolicyState
from policysync.sync.retry import (
    RetryState,
    compute_backoff,
    retry_until,
    retry_with_token,
)
from policysync.sync.rule_groups import RuleGroupOrchestrator, RuleGroupState
from policysync.sync.tokens import ChangeTokenProvider

__all__ = [
    # diff
    "InvalidMemberError",
    "RuleMember",
    "UpdateOperation",
    "apply_operations",
    "diff_members",
    "expand_members",
    "flatten_members",
    # errors
    "ConvergenceError",
    "DeadlineExceededError",
    "ManagedPolicyImportError",
    "OperationFailedError",
    "ResourceAbsentError",
    # retry
    "RetryState",
    "compute_backoff",
    "retry_until",
    "retry_with_token",
    # orchestration
    "ChangeTokenProvider",
    "PolicyManager",
    "PolicyState",
    "RuleGroupOrchestrator",
    "RuleGroupState",
]
