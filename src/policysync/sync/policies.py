"""Organization policy lifecycle.

Policies are not guarded by change tokens. Their creation can race the
asynchronous setup of the organization itself, so it runs under
retry_until while the API reports the organization as finalizing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from policysync.client.api import (
    APIError,
    OrganizationsNotInUseError,
    PolicyNotFoundError,
)
from policysync.core.config import RetryConfig
from policysync.core.types import PolicyType
from policysync.sync.errors import (
    ManagedPolicyImportError,
    OperationFailedError,
    ResourceAbsentError,
    surface_errors,
)
from policysync.sync.retry import retry_until

if TYPE_CHECKING:
    from policysync.client.api import ManagementClient, Policy

logger = logging.getLogger(__name__)

# Errors meaning the policy cannot be found
POLICY_GONE_ERRORS: tuple[type[APIError], ...] = (
    OrganizationsNotInUseError,
    PolicyNotFoundError,
)


@dataclass
class PolicyState:
    """Remote state of an organization policy."""

    id: str
    arn: str
    name: str
    description: str
    type: PolicyType
    content: str
    aws_managed: bool = False

    @classmethod
    def from_policy(cls, policy: Policy) -> PolicyState:
        """Build from an API policy."""
        return cls(
            id=policy.id,
            arn=policy.arn,
            name=policy.name,
            description=policy.description,
            type=PolicyType(policy.type),
            content=policy.content,
            aws_managed=policy.aws_managed,
        )

    def to_dict(self) -> dict[str, object]:
        """Plain representation for callers tracking state."""
        return {
            "id": self.id,
            "arn": self.arn,
            "name": self.name,
            "description": self.description,
            "type": self.type.value,
            "content": self.content,
            "aws_managed": self.aws_managed,
        }


class PolicyManager:
    """Creates, reads, updates and deletes organization policies."""

    def __init__(
        self,
        client: ManagementClient,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._client = client
        self._retry = retry_config or RetryConfig()

    def create(
        self,
        name: str,
        content: str,
        policy_type: PolicyType | str = PolicyType.SERVICE_CONTROL_POLICY,
        description: str = "",
        tags: dict[str, str] | None = None,
    ) -> PolicyState:
        """Create a policy, waiting out organization finalization.

        Raises:
            DeadlineExceededError: If the organization kept finalizing.
            OperationFailedError: If the API rejects the policy.
        """
        kind = PolicyType(policy_type)
        cfg = self._retry

        with surface_errors("creating Organizations policy", name):
            policy = retry_until(
                lambda: self._client.create_policy(
                    name, content, kind.value, description=description, tags=tags
                ),
                timeout=cfg.consistency_timeout,
                initial_backoff=cfg.initial_backoff,
                max_backoff=cfg.max_backoff,
                backoff_multiplier=cfg.backoff_multiplier,
                jitter=cfg.jitter,
                description=f"Creating Organizations policy {name}",
            )
        logger.info("Created Organizations policy %s (%s)", name, policy.id)

        return self.read(policy.id, is_new=True)

    def read(self, policy_id: str, is_new: bool = False) -> PolicyState:
        """Read a policy.

        Raises:
            ResourceAbsentError: If the policy no longer exists (unless is_new).
            OperationFailedError: If the API call fails.
        """
        try:
            policy = self._client.describe_policy(policy_id)
        except POLICY_GONE_ERRORS as e:
            if is_new:
                raise OperationFailedError("reading Organizations policy", policy_id, e) from e
            logger.warning("Organizations policy %s not found, removing from state", policy_id)
            raise ResourceAbsentError("Organizations policy", policy_id) from e
        except APIError as e:
            raise OperationFailedError("reading Organizations policy", policy_id, e) from e

        if policy.aws_managed:
            logger.warning(
                "AWS-managed Organizations policy %s cannot be managed; "
                "reference it by ID instead",
                policy_id,
            )
        return PolicyState.from_policy(policy)

    def update(
        self,
        policy_id: str,
        name: str | None = None,
        description: str | None = None,
        content: str | None = None,
    ) -> PolicyState:
        """Send the given fields; fields left as None are not touched."""
        if name is None and description is None and content is None:
            logger.debug("Nothing to update for Organizations policy %s", policy_id)
        else:
            with surface_errors("updating Organizations policy", policy_id):
                self._client.update_policy(
                    policy_id, name=name, description=description, content=content
                )
        return self.read(policy_id)

    def delete(self, policy_id: str, skip_destroy: bool = False) -> None:
        """Delete a policy. A policy that is already gone counts as deleted.

        Args:
            policy_id: Policy ID.
            skip_destroy: Keep the remote policy and only forget it locally.
        """
        if skip_destroy:
            logger.debug("Retaining Organizations policy: %s", policy_id)
            return

        logger.debug("Deleting Organizations policy: %s", policy_id)
        with surface_errors("deleting Organizations policy", policy_id):
            try:
                self._client.delete_policy(policy_id)
            except PolicyNotFoundError:
                logger.debug("Organizations policy %s already deleted", policy_id)

    def import_policy(self, policy_id: str) -> PolicyState:
        """Adopt an existing policy.

        Raises:
            ManagedPolicyImportError: If the policy is AWS-managed.
            OperationFailedError: If the policy cannot be read.
        """
        state = self.read(policy_id, is_new=True)
        if state.aws_managed:
            raise ManagedPolicyImportError(policy_id)
        return state
