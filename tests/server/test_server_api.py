"""Tests for FastAPI server endpoints."""

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from policysync.server.app import create_app
from policysync.server.database import Database


@pytest.fixture
def db(tmp_path: Path) -> Generator[Database, None, None]:
    """Create a test database."""
    database = Database(tmp_path / "test.db")
    yield database
    database.close()


@pytest.fixture
def client(db: Database) -> TestClient:
    """Create a test client with the app (no API key)."""
    return TestClient(create_app(db))


def token(client: TestClient) -> dict[str, str]:
    """Headers carrying the current change token."""
    response = client.post("/api/change-token")
    assert response.status_code == 200
    return {"X-Change-Token": response.json()["change_token"]}


def activated(rule_id: str, priority: int, action: str = "BLOCK") -> dict:
    return {"rule_id": rule_id, "priority": priority, "action": {"type": action}}


def create_group(client: TestClient, name: str = "web") -> str:
    response = client.post(
        "/api/rule-groups",
        json={"name": name, "metric_name": f"{name}Metric"},
        headers=token(client),
    )
    assert response.status_code == 201
    return response.json()["id"]


class TestHealthEndpoint:
    """Tests for /health endpoint."""

    def test_health_check(self, client: TestClient) -> None:
        """Should return ok status."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["region"] == "us-east-1"
        assert data["organization"] == "ready"

    def test_health_reports_finalizing(self, client: TestClient, db: Database) -> None:
        """Should report an organization that is still being created."""
        db.set_finalizing(60)
        assert client.get("/health").json()["organization"] == "finalizing"


class TestAuthentication:
    """Tests for the optional API key."""

    @pytest.fixture
    def secured(self, db: Database) -> TestClient:
        return TestClient(create_app(db, api_key="s3cret"))

    def test_rejects_missing_key(self, secured: TestClient) -> None:
        """Should return 401 without a key."""
        assert secured.post("/api/change-token").status_code == 401

    def test_rejects_wrong_key(self, secured: TestClient) -> None:
        """Should return 401 with a wrong key."""
        response = secured.post(
            "/api/change-token", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    def test_accepts_key(self, secured: TestClient) -> None:
        """Should accept the configured key."""
        response = secured.post(
            "/api/change-token", headers={"Authorization": "Bearer s3cret"}
        )
        assert response.status_code == 200

    def test_health_is_public(self, secured: TestClient) -> None:
        """Should serve /health without a key."""
        assert secured.get("/health").status_code == 200


class TestRuleGroupEndpoints:
    """Tests for /api/rule-groups endpoints."""

    def test_create_and_get(self, client: TestClient) -> None:
        """Should create a rule group and return its metadata."""
        group_id = create_group(client)

        response = client.get(f"/api/rule-groups/{group_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "web"
        assert data["metric_name"] == "webMetric"
        assert data["tags"] == {}

    def test_create_without_token(self, client: TestClient) -> None:
        """Should reject a mutation without a change token."""
        response = client.post(
            "/api/rule-groups", json={"name": "web", "metric_name": "webMetric"}
        )
        assert response.status_code == 409
        assert response.json()["code"] == "StaleChangeToken"

    def test_token_reuse_is_stale(self, client: TestClient) -> None:
        """Should accept a token only once."""
        headers = token(client)
        body = {"name": "web", "metric_name": "webMetric"}

        assert client.post("/api/rule-groups", json=body, headers=headers).status_code == 201
        response = client.post("/api/rule-groups", json=body, headers=headers)

        assert response.status_code == 409
        assert response.json() == {
            "code": "StaleChangeToken",
            "message": "The input token is no longer current.",
        }

    def test_get_missing_group(self, client: TestClient) -> None:
        """Should return NonexistentItem for unknown groups."""
        response = client.get("/api/rule-groups/missing")
        assert response.status_code == 404
        assert response.json()["code"] == "NonexistentItem"

    def test_update_and_list(self, client: TestClient) -> None:
        """Should apply a batch and list the activated rules."""
        group_id = create_group(client)

        response = client.post(
            f"/api/rule-groups/{group_id}/updates",
            json={
                "updates": [
                    {"action": "INSERT", "activated_rule": activated("r1", 1)},
                    {"action": "INSERT", "activated_rule": activated("r2", 2, "COUNT")},
                ]
            },
            headers=token(client),
        )
        assert response.status_code == 204

        response = client.get(f"/api/rule-groups/{group_id}/activated-rules")
        assert response.status_code == 200
        assert response.json()["activated_rules"] == [
            {"rule_id": "r1", "priority": 1, "action": {"type": "BLOCK"}, "type": "REGULAR"},
            {"rule_id": "r2", "priority": 2, "action": {"type": "COUNT"}, "type": "REGULAR"},
        ]

    def test_update_rejects_empty_batch(self, client: TestClient) -> None:
        """Should require at least one update."""
        group_id = create_group(client)
        response = client.post(
            f"/api/rule-groups/{group_id}/updates",
            json={"updates": []},
            headers=token(client),
        )
        assert response.status_code == 422

    def test_update_rejects_unknown_action(self, client: TestClient) -> None:
        """Should validate activated rule actions."""
        group_id = create_group(client)
        response = client.post(
            f"/api/rule-groups/{group_id}/updates",
            json={"updates": [{"action": "INSERT", "activated_rule": activated("r1", 1, "DROP")}]},
            headers=token(client),
        )
        assert response.status_code == 422

    def test_update_missing_container(self, client: TestClient) -> None:
        """Should return NonexistentContainer for unknown groups."""
        response = client.post(
            "/api/rule-groups/missing/updates",
            json={"updates": [{"action": "INSERT", "activated_rule": activated("r1", 1)}]},
            headers=token(client),
        )
        assert response.status_code == 404
        assert response.json()["code"] == "NonexistentContainer"

    def test_delete_non_empty(self, client: TestClient) -> None:
        """Should refuse to delete a group that still has rules."""
        group_id = create_group(client)
        client.post(
            f"/api/rule-groups/{group_id}/updates",
            json={"updates": [{"action": "INSERT", "activated_rule": activated("r1", 1)}]},
            headers=token(client),
        )

        response = client.delete(f"/api/rule-groups/{group_id}", headers=token(client))

        assert response.status_code == 409
        assert response.json()["code"] == "NonEmptyContainer"

    def test_delete(self, client: TestClient) -> None:
        """Should delete an empty group."""
        group_id = create_group(client)

        response = client.delete(f"/api/rule-groups/{group_id}", headers=token(client))

        assert response.status_code == 204
        assert client.get(f"/api/rule-groups/{group_id}").status_code == 404


class TestPolicyEndpoints:
    """Tests for /api/policies endpoints."""

    def test_create_and_describe(self, client: TestClient) -> None:
        """Should create and return a policy."""
        response = client.post(
            "/api/policies",
            json={"name": "deny-all", "content": "{}", "type": "TAG_POLICY"},
        )
        assert response.status_code == 201
        policy_id = response.json()["id"]

        response = client.get(f"/api/policies/{policy_id}")
        assert response.status_code == 200
        assert response.json()["type"] == "TAG_POLICY"
        assert response.json()["aws_managed"] is False

    def test_finalizing_organization(self, client: TestClient, db: Database) -> None:
        """Should report FinalizingOrganization while the organization is set up."""
        db.set_finalizing(60)
        response = client.post("/api/policies", json={"name": "deny-all", "content": "{}"})
        assert response.status_code == 409
        assert response.json()["code"] == "FinalizingOrganization"

    def test_patch_keeps_omitted_fields(self, client: TestClient) -> None:
        """Should only change fields present in the request."""
        policy_id = client.post(
            "/api/policies", json={"name": "deny-all", "content": "{}", "description": "a"}
        ).json()["id"]

        response = client.patch(f"/api/policies/{policy_id}", json={"name": "renamed"})

        assert response.status_code == 200
        assert response.json()["name"] == "renamed"
        assert response.json()["description"] == "a"

    def test_describe_managed_policy(self, client: TestClient) -> None:
        """Should expose the seeded AWS-managed policy."""
        response = client.get("/api/policies/p-FullAWSAccess")
        assert response.status_code == 200
        assert response.json()["aws_managed"] is True

    def test_delete_missing(self, client: TestClient) -> None:
        """Should return PolicyNotFound for unknown policies."""
        response = client.delete("/api/policies/p-missing")
        assert response.status_code == 404
        assert response.json()["code"] == "PolicyNotFound"
