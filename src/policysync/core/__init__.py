"""Core module - Shared configuration and types."""

from policysync.core.config import ApiConfig, RetryConfig
from policysync.core.types import ActionType, PolicyType, RuleKind, UpdateAction

__all__ = [
    # Config
    "ApiConfig",
    "RetryConfig",
    # Types
    "ActionType",
    "PolicyType",
    "RuleKind",
    "UpdateAction",
]
