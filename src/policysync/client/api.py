"""HTTP client for the policy management API.

This module provides:
- ManagementClient: HTTP client for the remote management API
- Change token, rule group and organization policy operations
- The API error taxonomy (one exception class per error code)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from policysync.core.config import ApiConfig

logger = logging.getLogger(__name__)

CHANGE_TOKEN_HEADER = "X-Change-Token"


class APIError(Exception):
    """Base exception for API errors."""

    code = "APIError"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""

    code = "Unauthorized"


class TransientAPIError(APIError):
    """Error that goes away when the call is retried with a fresh change token."""


class StaleChangeTokenError(TransientAPIError):
    """The change token was already consumed by another write."""

    code = "StaleChangeToken"


class ResourceInUseError(TransientAPIError):
    """The resource is being modified by another request."""

    code = "ResourceInUse"


class RateLimitedError(TransientAPIError):
    """The caller is being throttled."""

    code = "RateLimited"


class NonexistentContainerError(APIError):
    """The rule group an update refers to does not exist."""

    code = "NonexistentContainer"


class NonexistentItemError(APIError):
    """The item (rule group or activated rule) does not exist."""

    code = "NonexistentItem"


class NonEmptyContainerError(APIError):
    """A rule group still holds activated rules."""

    code = "NonEmptyContainer"


class DuplicateItemError(APIError):
    """An inserted activated rule is already present."""

    code = "DuplicateItem"


class ResourceNotFoundError(APIError):
    """Generic not-found for resources without a dedicated code."""

    code = "ResourceNotFound"


class PolicyNotFoundError(APIError):
    """The organization policy does not exist."""

    code = "PolicyNotFound"


class OrganizationsNotInUseError(APIError):
    """The account is not part of an organization."""

    code = "OrganizationsNotInUse"


class ParentInitializingError(APIError):
    """A parent resource accepted the request but is still provisioning."""


class FinalizingOrganizationError(ParentInitializingError):
    """The organization is still being created."""

    code = "FinalizingOrganization"


_ERRORS_BY_CODE: dict[str, type[APIError]] = {
    cls.code: cls
    for cls in (
        AuthenticationError,
        StaleChangeTokenError,
        ResourceInUseError,
        RateLimitedError,
        NonexistentContainerError,
        NonexistentItemError,
        NonEmptyContainerError,
        DuplicateItemError,
        ResourceNotFoundError,
        PolicyNotFoundError,
        OrganizationsNotInUseError,
        FinalizingOrganizationError,
    )
}


def error_from_response(status_code: int, code: str | None, message: str) -> APIError:
    """Build the exception matching an API error response.

    Args:
        status_code: HTTP status of the response.
        code: Error code from the response body, if any.
        message: Raw error message from the server.

    Returns:
        An APIError subclass instance.
    """
    if code and code in _ERRORS_BY_CODE:
        return _ERRORS_BY_CODE[code](message, status_code)
    if status_code == 401:
        return AuthenticationError(message, status_code)
    if status_code == 429:
        return RateLimitedError(message, status_code)
    if status_code == 404:
        return ResourceNotFoundError(message, status_code)
    return APIError(message, status_code)


@dataclass
class RuleGroup:
    """Rule group (container) metadata from the API."""

    id: str
    name: str
    metric_name: str
    arn: str
    tags: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RuleGroup:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            name=data["name"],
            metric_name=data["metric_name"],
            arn=data["arn"],
            tags=dict(data.get("tags") or {}),
        )


@dataclass
class Policy:
    """Organization policy from the API."""

    id: str
    arn: str
    name: str
    description: str
    type: str
    content: str
    aws_managed: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Policy:
        """Create from API response dictionary."""
        return cls(
            id=data["id"],
            arn=data["arn"],
            name=data["name"],
            description=data.get("description") or "",
            type=data["type"],
            content=data["content"],
            aws_managed=bool(data.get("aws_managed", False)),
        )


class ManagementClient:
    """HTTP client for the policy management API."""

    def __init__(
        self,
        config: ApiConfig,
        client: httpx.Client | None = None,
    ) -> None:
        """Initialize the management client.

        Args:
            config: Endpoint configuration.
            client: Optional pre-built httpx client (tests pass a FastAPI
                TestClient here). Relative URLs are resolved against its
                base_url.
        """
        self._config = config
        headers = {}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        if client is None:
            client = httpx.Client(
                base_url=config.endpoint_url,
                timeout=config.timeout,
                verify=config.verify_ssl,
                headers=headers,
            )
        else:
            client.headers.update(headers)
        self._client = client

    @property
    def endpoint_url(self) -> str:
        """Base URL of the API."""
        return self._config.endpoint_url

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> ManagementClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise the matching APIError."""
        if response.status_code < 400:
            return response
        code: str | None = None
        message = response.reason_phrase or "Unknown error"
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            code = body.get("code")
            message = body.get("message") or body.get("detail") or message
        error = error_from_response(response.status_code, code, str(message))
        logger.debug(
            "%s %s failed: %s (%s)",
            response.request.method,
            response.request.url,
            error.code,
            error.message,
        )
        raise error

    # === Health check ===

    def health_check(self) -> bool:
        """Check if the API is reachable.

        Returns:
            True if the API is healthy.
        """
        try:
            response = self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Change tokens ===

    def get_change_token(self) -> str:
        """Get the current change token of the namespace.

        Returns:
            The opaque change token.

        Raises:
            RateLimitedError: If token issuance is throttled.
        """
        response = self._handle_response(self._client.post("/api/change-token"))
        token: str = response.json()["change_token"]
        return token

    # === Rule groups ===

    def create_rule_group(
        self,
        change_token: str,
        name: str,
        metric_name: str,
        tags: dict[str, str] | None = None,
    ) -> RuleGroup:
        """Create an empty rule group.

        Args:
            change_token: Fresh change token.
            name: Rule group name.
            metric_name: Metric name for the rule group.
            tags: Optional resource tags.

        Returns:
            Created rule group.
        """
        response = self._handle_response(
            self._client.post(
                "/api/rule-groups",
                json={"name": name, "metric_name": metric_name, "tags": tags or {}},
                headers={CHANGE_TOKEN_HEADER: change_token},
            )
        )
        return RuleGroup.from_dict(response.json())

    def get_rule_group(self, group_id: str) -> RuleGroup:
        """Get rule group metadata.

        Raises:
            NonexistentItemError: If the rule group does not exist.
        """
        response = self._handle_response(
            self._client.get(f"/api/rule-groups/{group_id}")
        )
        return RuleGroup.from_dict(response.json())

    def list_activated_rules(self, group_id: str) -> list[dict[str, Any]]:
        """List the activated rules of a rule group.

        Returns:
            Raw activated rule records, in server order.
        """
        response = self._handle_response(
            self._client.get(f"/api/rule-groups/{group_id}/activated-rules")
        )
        result: list[dict[str, Any]] = response.json()["activated_rules"]
        return result

    def update_rule_group(
        self,
        change_token: str,
        group_id: str,
        updates: list[dict[str, Any]],
    ) -> None:
        """Apply a batch of activated rule insertions and deletions.

        The batch is applied atomically, in order.

        Args:
            change_token: Fresh change token.
            group_id: Rule group ID.
            updates: List of {"action": INSERT|DELETE, "activated_rule": {...}}.

        Raises:
            NonexistentContainerError: If the rule group does not exist.
            NonexistentItemError: If a deleted activated rule does not exist.
        """
        self._handle_response(
            self._client.post(
                f"/api/rule-groups/{group_id}/updates",
                json={"updates": updates},
                headers={CHANGE_TOKEN_HEADER: change_token},
            )
        )

    def delete_rule_group(self, change_token: str, group_id: str) -> None:
        """Delete an empty rule group.

        Raises:
            NonexistentItemError: If the rule group does not exist.
            NonEmptyContainerError: If it still has activated rules.
        """
        self._handle_response(
            self._client.delete(
                f"/api/rule-groups/{group_id}",
                headers={CHANGE_TOKEN_HEADER: change_token},
            )
        )

    # === Organization policies ===

    def create_policy(
        self,
        name: str,
        content: str,
        policy_type: str,
        description: str = "",
        tags: dict[str, str] | None = None,
    ) -> Policy:
        """Create an organization policy.

        Raises:
            FinalizingOrganizationError: If the organization is still being created.
        """
        response = self._handle_response(
            self._client.post(
                "/api/policies",
                json={
                    "name": name,
                    "content": content,
                    "type": policy_type,
                    "description": description,
                    "tags": tags or {},
                },
            )
        )
        return Policy.from_dict(response.json())

    def describe_policy(self, policy_id: str) -> Policy:
        """Get an organization policy.

        Raises:
            PolicyNotFoundError: If the policy does not exist.
        """
        response = self._handle_response(
            self._client.get(f"/api/policies/{policy_id}")
        )
        return Policy.from_dict(response.json())

    def update_policy(
        self,
        policy_id: str,
        name: str | None = None,
        description: str | None = None,
        content: str | None = None,
    ) -> Policy:
        """Update the given fields of an organization policy."""
        payload = {
            key: value
            for key, value in (
                ("name", name),
                ("description", description),
                ("content", content),
            )
            if value is not None
        }
        response = self._handle_response(
            self._client.patch(f"/api/policies/{policy_id}", json=payload)
        )
        return Policy.from_dict(response.json())

    def delete_policy(self, policy_id: str) -> None:
        """Delete an organization policy.

        Raises:
            PolicyNotFoundError: If the policy does not exist.
        """
        self._handle_response(self._client.delete(f"/api/policies/{policy_id}"))
