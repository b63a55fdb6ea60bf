"""Rule group convergence.

This module provides:
- RuleGroupState: Remote state of a rule group after a transition
- RuleGroupOrchestrator: Drives a rule group through create, update,
  read and delete, applying member changes as one batched update

Lifecycle:
    Absent -> Creating -> Present -> Deleting -> Absent

Nothing between those states is stored locally; the API is the source
of truth for anything in progress. Every mutation goes through
retry_with_token, so each attempt runs with a freshly acquired change token.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from policysync.client.api import (
    APIError,
    NonEmptyContainerError,
    NonexistentContainerError,
    NonexistentItemError,
)
from policysync.core.config import RetryConfig
from policysync.core.types import UpdateAction
from policysync.sync.diff import (
    RuleMember,
    UpdateOperation,
    diff_members,
    expand_members,
    flatten_members,
)
from policysync.sync.errors import (
    OperationFailedError,
    ResourceAbsentError,
    surface_errors,
)
from policysync.sync.retry import retry_with_token
from policysync.sync.tokens import ChangeTokenProvider

if TYPE_CHECKING:
    from collections.abc import Callable

    from policysync.client.api import ManagementClient

logger = logging.getLogger(__name__)

# Errors meaning the rule group (or one of its members) is already gone
GONE_ERRORS: tuple[type[APIError], ...] = (NonexistentContainerError, NonexistentItemError)

# Re-reads allowed when members change while tearing a rule group down
MAX_TEARDOWN_PASSES = 3

MemberInput = Iterable[Mapping[str, Any] | RuleMember]


@dataclass
class RuleGroupState:
    """Remote state of a rule group."""

    id: str
    name: str
    metric_name: str
    arn: str
    members: list[RuleMember] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for callers tracking state."""
        return {
            "id": self.id,
            "name": self.name,
            "metric_name": self.metric_name,
            "arn": self.arn,
            "activated_rule": flatten_members(self.members),
            "tags": dict(self.tags),
        }


class RuleGroupOrchestrator:
    """Converges rule groups and their activated rules with the API.

    Usage:
        with ManagementClient(ApiConfig("http://localhost:8000")) as client:
            groups = RuleGroupOrchestrator(client)
            state = groups.create("web", "webMetric", members=[...])
            state = groups.update(state.id, state.members, new_members)
            groups.delete(state.id)
    """

    def __init__(
        self,
        client: ManagementClient,
        retry_config: RetryConfig | None = None,
        tokens: ChangeTokenProvider | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: API client.
            retry_config: Retry timing (defaults to RetryConfig()).
            tokens: Change token provider (defaults to one backed by client).
        """
        self._client = client
        self._retry = retry_config or RetryConfig()
        self._tokens = tokens or ChangeTokenProvider(client)

    def _with_token(self, operation: Callable[[str], Any], description: str) -> Any:
        cfg = self._retry
        return retry_with_token(
            self._tokens,
            operation,
            timeout=cfg.mutation_timeout,
            initial_backoff=cfg.initial_backoff,
            max_backoff=cfg.max_backoff,
            backoff_multiplier=cfg.backoff_multiplier,
            jitter=cfg.jitter,
            description=description,
        )

    def _apply(self, group_id: str, operations: list[UpdateOperation]) -> None:
        """Send operations as one batched update."""
        deletions = sum(1 for op in operations if op.action is UpdateAction.DELETE)
        logger.info(
            "Updating rule group %s: %d deletion(s), %d insertion(s)",
            group_id,
            deletions,
            len(operations) - deletions,
        )
        updates = [op.to_dict() for op in operations]
        self._with_token(
            lambda token: self._client.update_rule_group(token, group_id, updates),
            f"Updating rule group {group_id}",
        )

    # === Transitions ===

    def create(
        self,
        name: str,
        metric_name: str,
        members: MemberInput = (),
        tags: dict[str, str] | None = None,
    ) -> RuleGroupState:
        """Create a rule group and activate its initial rules.

        Args:
            name: Rule group name.
            metric_name: Metric name.
            members: Initial activated rules.
            tags: Optional resource tags.

        Returns:
            State read back after creation.

        Raises:
            InvalidMemberError: If a member record is malformed.
            ConvergenceError: If a remote call fails.
        """
        desired = expand_members(members)

        with surface_errors("creating rule group", name):
            group = self._with_token(
                lambda token: self._client.create_rule_group(
                    token, name, metric_name, tags
                ),
                f"Creating rule group {name}",
            )
        logger.info("Created rule group %s (%s)", name, group.id)

        if desired:
            with surface_errors("updating rule group", group.id):
                self._apply(group.id, diff_members(desired, []))

        return self.read(group.id, is_new=True)

    def update(
        self,
        group_id: str,
        old_members: MemberInput,
        new_members: MemberInput,
    ) -> RuleGroupState:
        """Converge activated rules from old_members to new_members.

        No remote mutation happens when both lists describe the same set.
        """
        operations = diff_members(expand_members(new_members), expand_members(old_members))
        if operations:
            with surface_errors("updating rule group", group_id):
                self._apply(group_id, operations)
        else:
            logger.debug("Rule group %s already converged", group_id)
        return self.read(group_id)

    def delete(
        self,
        group_id: str,
        known_members: MemberInput | None = None,
    ) -> None:
        """Remove all activated rules, then the rule group itself.

        Deleting a rule group that is already gone succeeds. When the
        container delete finds activated rules the caller did not know
        about, the live members are re-read and torn down before trying
        again.

        Args:
            group_id: Rule group ID.
            known_members: Members to remove; read from the API when None.
        """
        with surface_errors("deleting rule group", group_id):
            if known_members is None:
                actual = self._current_members(group_id)
                if actual is None:
                    logger.debug("Rule group %s already deleted", group_id)
                    return
            else:
                actual = expand_members(known_members)

            for attempt in range(1, MAX_TEARDOWN_PASSES + 1):
                if actual and not self._teardown(group_id, actual):
                    logger.debug("Rule group %s disappeared during teardown", group_id)
                    return

                logger.info("Deleting rule group: %s", group_id)
                try:
                    self._with_token(
                        lambda token: self._client.delete_rule_group(token, group_id),
                        f"Deleting rule group {group_id}",
                    )
                    return
                except GONE_ERRORS:
                    logger.debug("Rule group %s already deleted", group_id)
                    return
                except NonEmptyContainerError:
                    if attempt == MAX_TEARDOWN_PASSES:
                        raise
                    logger.warning(
                        "Rule group %s still has activated rules, re-reading members",
                        group_id,
                    )
                    actual = self._current_members(group_id)
                    if actual is None:
                        return

    def read(self, group_id: str, is_new: bool = False) -> RuleGroupState:
        """Read a rule group and its activated rules.

        Args:
            group_id: Rule group ID.
            is_new: True right after creation, where a missing group is an
                error instead of an absent signal.

        Raises:
            ResourceAbsentError: If the rule group no longer exists.
            OperationFailedError: If the API call fails.
        """
        try:
            group = self._client.get_rule_group(group_id)
            records = self._client.list_activated_rules(group_id)
        except NonexistentItemError as e:
            if is_new:
                raise OperationFailedError("reading rule group", group_id, e) from e
            logger.warning("Rule group (%s) not found, removing from state", group_id)
            raise ResourceAbsentError("rule group", group_id) from e
        except APIError as e:
            raise OperationFailedError("reading rule group", group_id, e) from e

        return RuleGroupState(
            id=group.id,
            name=group.name,
            metric_name=group.metric_name,
            arn=group.arn,
            members=expand_members(records),
            tags=group.tags,
        )

    # === Helpers ===

    def _current_members(self, group_id: str) -> list[RuleMember] | None:
        """Live members of a rule group, or None if the group is gone."""
        try:
            records = self._client.list_activated_rules(group_id)
        except GONE_ERRORS:
            return None
        return expand_members(records)

    def _teardown(self, group_id: str, members: list[RuleMember]) -> bool:
        """Delete all members of a rule group.

        Returns:
            False if the rule group turned out to be gone, True otherwise.

        Raises:
            OperationFailedError: If members were still left after every pass.
        """
        remaining: list[RuleMember] | None = members
        last_error: NonexistentItemError | None = None
        for _ in range(MAX_TEARDOWN_PASSES):
            if not remaining:
                return True
            try:
                self._apply(group_id, diff_members([], remaining))
                return True
            except NonexistentContainerError:
                return False
            except NonexistentItemError as e:
                # Batch was rejected as a whole; retry with what is really left
                logger.warning(
                    "Activated rule of %s already removed (%s), re-reading members",
                    group_id,
                    e,
                )
                last_error = e
                remaining = self._current_members(group_id)
                if remaining is None:
                    return False
        if not remaining:
            return True
        left = ", ".join(str(member) for member in remaining)
        raise OperationFailedError(
            "deleting rule group",
            group_id,
            f"activated rules still present after {MAX_TEARDOWN_PASSES} passes: {left}",
        ) from last_error
