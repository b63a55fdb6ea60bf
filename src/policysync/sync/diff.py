"""Set reconciliation for rule group members.

Turns a desired and an actual list of activated rules into the minimal
batch of insertions and deletions the API accepts.

Members are compared structurally over (rule_id, priority, action, kind):
moving a rule to another priority is a delete of the old member plus an
insert of the new one. Deletions come first in a batch so a rule that
changes priority never collides with itself.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from policysync.core.types import ActionType, RuleKind, UpdateAction


class InvalidMemberError(ValueError):
    """Raised when an activated rule record cannot be normalized."""


@dataclass(frozen=True)
class RuleMember:
    """An activated rule inside a rule group.

    Attributes:
        rule_id: ID of the referenced rule.
        priority: Evaluation order inside the group.
        action: What happens when the rule matches.
        kind: Kind of the referenced rule.
    """

    rule_id: str
    priority: int
    action: ActionType
    kind: RuleKind = RuleKind.REGULAR

    def to_dict(self) -> dict[str, Any]:
        """Wire representation of the member."""
        return {
            "rule_id": self.rule_id,
            "priority": self.priority,
            "action": {"type": self.action.value},
            "type": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RuleMember:
        """Normalize a key-value record into a member.

        ``action`` may be a {"type": ...} mapping, a one-element list of
        such mappings, or a bare action string. ``type`` defaults to REGULAR.

        Raises:
            InvalidMemberError: If a field is missing or has a bad value.
        """
        try:
            rule_id = data["rule_id"]
            priority = data["priority"]
            raw_action = data["action"]
        except KeyError as e:
            raise InvalidMemberError(f"activated rule is missing {e.args[0]!r}") from e

        if isinstance(raw_action, Sequence) and not isinstance(raw_action, str):
            if len(raw_action) != 1:
                raise InvalidMemberError("activated rule needs exactly one action")
            raw_action = raw_action[0]
        if isinstance(raw_action, Mapping):
            raw_action = raw_action.get("type")

        if not rule_id or not isinstance(rule_id, str):
            raise InvalidMemberError(f"invalid rule_id: {rule_id!r}")
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise InvalidMemberError(f"invalid priority for {rule_id}: {priority!r}")
        try:
            action = ActionType(raw_action)
            kind = RuleKind(data.get("type") or RuleKind.REGULAR.value)
        except ValueError as e:
            raise InvalidMemberError(f"invalid activated rule {rule_id}: {e}") from e

        return cls(rule_id=rule_id, priority=priority, action=action, kind=kind)

    def __str__(self) -> str:
        return f"{self.rule_id}(priority={self.priority}, {self.action.value}, {self.kind.value})"


@dataclass(frozen=True)
class UpdateOperation:
    """One entry of a batched rule group update."""

    action: UpdateAction
    member: RuleMember

    def to_dict(self) -> dict[str, Any]:
        """Wire representation of the update."""
        return {"action": self.action.value, "activated_rule": self.member.to_dict()}


def _unique(members: Iterable[RuleMember]) -> list[RuleMember]:
    """Drop repeated members, keeping first-seen order."""
    seen: set[RuleMember] = set()
    result: list[RuleMember] = []
    for member in members:
        if member not in seen:
            seen.add(member)
            result.append(member)
    return result


def expand_members(records: Iterable[Mapping[str, Any] | RuleMember]) -> list[RuleMember]:
    """Normalize upstream records into unique members, keeping input order.

    Raises:
        InvalidMemberError: If a record cannot be normalized.
    """
    return _unique(
        record if isinstance(record, RuleMember) else RuleMember.from_dict(record)
        for record in records
    )


def flatten_members(members: Iterable[RuleMember]) -> list[dict[str, Any]]:
    """Convert members back into plain records."""
    return [member.to_dict() for member in members]


def diff_members(
    desired: Iterable[RuleMember],
    actual: Iterable[RuleMember],
) -> list[UpdateOperation]:
    """Compute the updates that turn ``actual`` into ``desired``.

    Args:
        desired: Members that should exist.
        actual: Members that currently exist.

    Returns:
        DELETE operations for members only in ``actual``, followed by
        INSERT operations for members only in ``desired``, each in input
        order. Empty when both describe the same set.
    """
    desired_list = _unique(desired)
    actual_list = _unique(actual)
    desired_set = set(desired_list)
    actual_set = set(actual_list)

    deletes = [
        UpdateOperation(UpdateAction.DELETE, member)
        for member in actual_list
        if member not in desired_set
    ]
    inserts = [
        UpdateOperation(UpdateAction.INSERT, member)
        for member in desired_list
        if member not in actual_set
    ]
    return deletes + inserts


def apply_operations(
    actual: Iterable[RuleMember],
    operations: Iterable[UpdateOperation],
) -> list[RuleMember]:
    """Apply updates to a member list the way the API does.

    Raises:
        ValueError: If an operation deletes a missing member or inserts a
            member that is already present.
    """
    result = _unique(actual)
    for operation in operations:
        if operation.action is UpdateAction.DELETE:
            if operation.member not in result:
                raise ValueError(f"cannot delete missing member {operation.member}")
            result.remove(operation.member)
        else:
            if operation.member in result:
                raise ValueError(f"cannot insert duplicate member {operation.member}")
            result.append(operation.member)
    return result
