"""Shared types for policysync.

This module defines enums used by the client, the sync engine and the
reference server, so the wire values stay identical on both sides.
"""

from __future__ import annotations

from enum import Enum


class ActionType(str, Enum):
    """What the firewall does when an activated rule matches."""

    BLOCK = "BLOCK"
    ALLOW = "ALLOW"
    COUNT = "COUNT"


class RuleKind(str, Enum):
    """Kind of rule referenced by an activated rule."""

    REGULAR = "REGULAR"
    RATE_BASED = "RATE_BASED"
    GROUP = "GROUP"


class UpdateAction(str, Enum):
    """Action of a single entry in a batched rule group update."""

    INSERT = "INSERT"
    DELETE = "DELETE"


class PolicyType(str, Enum):
    """Type of an organization-wide policy."""

    SERVICE_CONTROL_POLICY = "SERVICE_CONTROL_POLICY"
    TAG_POLICY = "TAG_POLICY"
    BACKUP_POLICY = "BACKUP_POLICY"
    AISERVICES_OPT_OUT_POLICY = "AISERVICES_OPT_OUT_POLICY"
