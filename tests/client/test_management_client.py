"""Tests for the management API HTTP client."""

import json

import pytest

from policysync.client.api import (
    CHANGE_TOKEN_HEADER,
    APIError,
    AuthenticationError,
    FinalizingOrganizationError,
    ManagementClient,
    NonEmptyContainerError,
    NonexistentContainerError,
    ParentInitializingError,
    Policy,
    PolicyNotFoundError,
    RateLimitedError,
    ResourceNotFoundError,
    RuleGroup,
    StaleChangeTokenError,
    TransientAPIError,
    error_from_response,
)
from policysync.core.config import ApiConfig


def make_config(endpoint_url: str = "http://test", api_key: str | None = "key123") -> ApiConfig:
    """Create an ApiConfig for testing."""
    return ApiConfig(endpoint_url=endpoint_url, api_key=api_key)


RULE_GROUP = {
    "id": "rg-1",
    "name": "web",
    "metric_name": "webMetric",
    "arn": "arn:aws:waf::123456789012:rulegroup/rg-1",
    "tags": {"team": "edge"},
}

POLICY = {
    "id": "p-12345678",
    "arn": "arn:aws:organizations::123456789012:policy/service_control_policy/p-12345678",
    "name": "deny-all",
    "description": "",
    "type": "SERVICE_CONTROL_POLICY",
    "content": "{}",
    "aws_managed": False,
}


class TestDataclasses:
    """Tests for API response dataclasses."""

    def test_rule_group_from_dict(self) -> None:
        """Should create RuleGroup from dictionary."""
        group = RuleGroup.from_dict(RULE_GROUP)

        assert group.id == "rg-1"
        assert group.metric_name == "webMetric"
        assert group.tags == {"team": "edge"}

    def test_rule_group_without_tags(self) -> None:
        """Should default tags to an empty dict."""
        data = {**RULE_GROUP, "tags": None}
        assert RuleGroup.from_dict(data).tags == {}

    def test_policy_from_dict(self) -> None:
        """Should create Policy from dictionary."""
        policy = Policy.from_dict({**POLICY, "description": None})

        assert policy.id == "p-12345678"
        assert policy.description == ""
        assert policy.aws_managed is False


class TestErrorFromResponse:
    """Tests for error code mapping."""

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            ("StaleChangeToken", StaleChangeTokenError),
            ("NonexistentContainer", NonexistentContainerError),
            ("NonEmptyContainer", NonEmptyContainerError),
            ("PolicyNotFound", PolicyNotFoundError),
            ("FinalizingOrganization", FinalizingOrganizationError),
        ],
    )
    def test_known_codes(self, code: str, expected: type[APIError]) -> None:
        """Should map error codes to their exception class."""
        error = error_from_response(409, code, "boom")

        assert type(error) is expected
        assert error.message == "boom"
        assert error.status_code == 409

    def test_taxonomy(self) -> None:
        """Should classify transient and initializing errors."""
        assert isinstance(error_from_response(409, "ResourceInUse", ""), TransientAPIError)
        assert isinstance(
            error_from_response(409, "FinalizingOrganization", ""), ParentInitializingError
        )
        assert not isinstance(
            error_from_response(409, "NonEmptyContainer", ""), TransientAPIError
        )

    @pytest.mark.parametrize(
        ("status_code", "expected"),
        [
            (401, AuthenticationError),
            (429, RateLimitedError),
            (404, ResourceNotFoundError),
            (500, APIError),
        ],
    )
    def test_status_fallbacks(self, status_code: int, expected: type[APIError]) -> None:
        """Should fall back on the HTTP status for unknown codes."""
        assert type(error_from_response(status_code, "Whatever", "x")) is expected


class TestManagementClient:
    """Tests for ManagementClient."""

    def test_health_check_success(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return True when the API is healthy."""
        httpx_mock.add_response(url="http://test/health", json={"status": "ok"})

        with ManagementClient(make_config()) as client:
            assert client.health_check() is True

    def test_health_check_failure(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return False when the API is down."""
        httpx_mock.add_response(url="http://test/health", status_code=500)

        with ManagementClient(make_config()) as client:
            assert client.health_check() is False

    def test_sends_bearer_key(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should authenticate with the configured API key."""
        httpx_mock.add_response(
            url="http://test/api/change-token", method="POST", json={"change_token": "t1"}
        )

        with ManagementClient(make_config()) as client:
            assert client.get_change_token() == "t1"

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer key123"

    def test_no_key_no_header(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should not send Authorization without a key."""
        httpx_mock.add_response(
            url="http://test/api/change-token", method="POST", json={"change_token": "t1"}
        )

        with ManagementClient(make_config(api_key=None)) as client:
            client.get_change_token()

        assert "Authorization" not in httpx_mock.get_request().headers

    def test_create_rule_group(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should send the change token with the creation."""
        httpx_mock.add_response(
            url="http://test/api/rule-groups", method="POST", status_code=201, json=RULE_GROUP
        )

        with ManagementClient(make_config()) as client:
            group = client.create_rule_group("t1", "web", "webMetric", {"team": "edge"})

        assert group.id == "rg-1"
        request = httpx_mock.get_request()
        assert request.headers[CHANGE_TOKEN_HEADER] == "t1"
        assert json.loads(request.content) == {
            "name": "web",
            "metric_name": "webMetric",
            "tags": {"team": "edge"},
        }

    def test_list_activated_rules(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should return raw activated rule records."""
        rules = [{"rule_id": "r1", "priority": 1, "action": {"type": "BLOCK"}, "type": "REGULAR"}]
        httpx_mock.add_response(
            url="http://test/api/rule-groups/rg-1/activated-rules",
            json={"activated_rules": rules},
        )

        with ManagementClient(make_config()) as client:
            assert client.list_activated_rules("rg-1") == rules

    def test_update_rule_group(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should post the batch of updates."""
        updates = [
            {
                "action": "INSERT",
                "activated_rule": {"rule_id": "r1", "priority": 1, "action": {"type": "BLOCK"}},
            }
        ]
        httpx_mock.add_response(
            url="http://test/api/rule-groups/rg-1/updates", method="POST", status_code=204
        )

        with ManagementClient(make_config()) as client:
            client.update_rule_group("t2", "rg-1", updates)

        request = httpx_mock.get_request()
        assert request.headers[CHANGE_TOKEN_HEADER] == "t2"
        assert json.loads(request.content) == {"updates": updates}

    def test_stale_token_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise StaleChangeTokenError on a consumed token."""
        httpx_mock.add_response(
            url="http://test/api/rule-groups/rg-1/updates",
            method="POST",
            status_code=409,
            json={"code": "StaleChangeToken", "message": "change token already used"},
        )

        with ManagementClient(make_config()) as client, pytest.raises(
            StaleChangeTokenError, match="change token already used"
        ):
            client.update_rule_group("t1", "rg-1", [])

    def test_delete_rule_group_not_empty(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise NonEmptyContainerError when rules remain."""
        httpx_mock.add_response(
            url="http://test/api/rule-groups/rg-1",
            method="DELETE",
            status_code=409,
            json={"code": "NonEmptyContainer", "message": "rule group rg-1 is not empty"},
        )

        with ManagementClient(make_config()) as client, pytest.raises(NonEmptyContainerError):
            client.delete_rule_group("t1", "rg-1")

    def test_unauthorized(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise AuthenticationError from a FastAPI detail body."""
        httpx_mock.add_response(
            url="http://test/api/rule-groups/rg-1",
            status_code=401,
            json={"detail": "Invalid API key"},
        )

        with ManagementClient(make_config()) as client, pytest.raises(
            AuthenticationError, match="Invalid API key"
        ):
            client.get_rule_group("rg-1")

    def test_non_json_error(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should fall back on the reason phrase."""
        httpx_mock.add_response(
            url="http://test/api/policies/p-1", status_code=502, text="<html>bad gateway</html>"
        )

        with ManagementClient(make_config()) as client, pytest.raises(APIError) as exc_info:
            client.describe_policy("p-1")

        assert exc_info.value.status_code == 502

    def test_create_policy_finalizing(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise FinalizingOrganizationError while the organization is set up."""
        httpx_mock.add_response(
            url="http://test/api/policies",
            method="POST",
            status_code=409,
            json={"code": "FinalizingOrganization", "message": "organization is finalizing"},
        )

        with ManagementClient(make_config()) as client, pytest.raises(
            FinalizingOrganizationError
        ):
            client.create_policy("deny-all", "{}", "SERVICE_CONTROL_POLICY")

    def test_update_policy_sends_only_given_fields(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should omit fields left as None."""
        httpx_mock.add_response(
            url="http://test/api/policies/p-12345678",
            method="PATCH",
            json={**POLICY, "description": "new"},
        )

        with ManagementClient(make_config()) as client:
            policy = client.update_policy("p-12345678", description="new")

        assert policy.description == "new"
        assert json.loads(httpx_mock.get_request().content) == {"description": "new"}

    def test_delete_policy_not_found(self, httpx_mock) -> None:  # type: ignore[no-untyped-def]
        """Should raise PolicyNotFoundError for missing policies."""
        httpx_mock.add_response(
            url="http://test/api/policies/p-missing",
            method="DELETE",
            status_code=404,
            json={"code": "PolicyNotFound", "message": "policy p-missing not found"},
        )

        with ManagementClient(make_config()) as client, pytest.raises(PolicyNotFoundError):
            client.delete_policy("p-missing")
