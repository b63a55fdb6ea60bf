"""Server database using SQLAlchemy with SQLite.

This module provides:
- Change token issuance and consumption (optimistic concurrency)
- Rule group and activated rule storage with atomic batched updates
- Organization policy storage
- Simulated organization finalization

Every mutation of rule groups consumes the current change token inside
the same transaction as the change, so a token can succeed at most once
and a failed mutation leaves the token valid.
"""

from __future__ import annotations

import json
import secrets
import threading
import time
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine, delete, select
from sqlalchemy.orm import Session, selectinload

from policysync.server.models import ActivatedRule, Base, ChangeToken, Policy, RuleGroup

if TYPE_CHECKING:
    from sqlalchemy import Engine

DEFAULT_REGION = "us-east-1"
DEFAULT_ACCOUNT_ID = "123456789012"

FULL_ACCESS_POLICY_ID = "p-FullAWSAccess"
FULL_ACCESS_CONTENT = json.dumps(
    {
        "Version": "2012-10-17",
        "Statement": [{"Effect": "Allow", "Action": "*", "Resource": "*"}],
    }
)


class ApiFault(Exception):
    """Error reported to API callers as {"code": ..., "message": ...}."""

    def __init__(self, code: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def stale_token() -> ApiFault:
    return ApiFault(
        "StaleChangeToken",
        "The input token is no longer current.",
        409,
    )


class Database:
    """SQLAlchemy database for the management API state.

    Uses SQLite with WAL mode for better concurrency with multiple readers.
    """

    def __init__(
        self,
        db_path: Path,
        region: str = DEFAULT_REGION,
        account_id: str = DEFAULT_ACCOUNT_ID,
    ) -> None:
        """Initialize the database.

        Args:
            db_path: Path to the SQLite database file.
            region: Region used in rule group ARNs.
            account_id: Account used in rule group ARNs.
        """
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self.region = region
        self.account_id = account_id
        self._finalizing_until: float | None = None
        # Serializes token consumption across request threads
        self._write_lock = threading.Lock()

        # check_same_thread=False for FastAPI's threadpool
        self._engine: Engine = create_engine(
            f"sqlite:///{self._db_path}",
            connect_args={"check_same_thread": False},
            echo=False,
        )

        with self._engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql("PRAGMA foreign_keys=ON")

        Base.metadata.create_all(self._engine)
        self._seed_managed_policies()

    @property
    def path(self) -> Path:
        """Location of the database file."""
        return self._db_path

    def close(self) -> None:
        """Close the database connection."""
        self._engine.dispose()

    def _session(self) -> Session:
        """Create a new database session."""
        return Session(self._engine, expire_on_commit=False)

    # === Change tokens ===

    def issue_change_token(self) -> str:
        """Return the current change token, issuing one if none is pending.

        Consumed tokens are purged when their successor is issued.
        """
        with self._write_lock, self._session() as session:
            current = self._current_token(session)
            if current is None:
                session.execute(delete(ChangeToken).where(ChangeToken.consumed_at.is_not(None)))
                current = ChangeToken(token=str(uuid.uuid4()))
                session.add(current)
                session.commit()
            return current.token

    def _current_token(self, session: Session) -> ChangeToken | None:
        stmt = (
            select(ChangeToken)
            .where(ChangeToken.consumed_at.is_(None))
            .order_by(ChangeToken.id.desc())
            .limit(1)
        )
        return session.execute(stmt).scalar_one_or_none()

    def _consume_token(self, session: Session, token: str | None) -> None:
        """Mark token consumed; committed together with the mutation."""
        current = self._current_token(session)
        if token is None or current is None or current.token != token:
            raise stale_token()
        current.consumed_at = datetime.now(UTC)

    # === Rule groups ===

    def create_rule_group(
        self,
        token: str | None,
        name: str,
        metric_name: str,
        tags: dict[str, str] | None = None,
    ) -> RuleGroup:
        """Create an empty rule group.

        Raises:
            ApiFault: StaleChangeToken if token is not current.
        """
        with self._write_lock, self._session() as session:
            self._consume_token(session, token)
            group_id = str(uuid.uuid4())
            group = RuleGroup(
                id=group_id,
                name=name,
                metric_name=metric_name,
                arn=(
                    f"arn:aws:waf-regional:{self.region}:{self.account_id}"
                    f":rulegroup/{group_id}"
                ),
                tags=dict(tags or {}),
            )
            session.add(group)
            session.commit()
            return group

    def get_rule_group(self, group_id: str) -> RuleGroup | None:
        """Get a rule group by ID."""
        with self._session() as session:
            return session.get(RuleGroup, group_id)

    def list_activated_rules(self, group_id: str) -> list[ActivatedRule]:
        """List activated rules in insertion order.

        Raises:
            ApiFault: NonexistentItem if the rule group does not exist.
        """
        with self._session() as session:
            stmt = (
                select(RuleGroup)
                .where(RuleGroup.id == group_id)
                .options(selectinload(RuleGroup.activated_rules))
            )
            group = session.execute(stmt).scalar_one_or_none()
            if group is None:
                raise ApiFault(
                    "NonexistentItem", f"Rule group {group_id} does not exist.", 404
                )
            return list(group.activated_rules)

    def update_rule_group(
        self,
        token: str | None,
        group_id: str,
        updates: list[tuple[str, dict[str, Any]]],
    ) -> None:
        """Apply INSERT/DELETE updates in order, all or nothing.

        Args:
            token: Change token.
            group_id: Rule group ID.
            updates: (action, activated rule fields) pairs.

        Raises:
            ApiFault: StaleChangeToken, NonexistentContainer, NonexistentItem,
                DuplicateItem or InvalidParameter.
        """
        with self._write_lock, self._session() as session:
            self._consume_token(session, token)
            group = session.get(RuleGroup, group_id)
            if group is None:
                raise ApiFault(
                    "NonexistentContainer",
                    f"Rule group {group_id} does not exist.",
                    404,
                )

            rules = group.activated_rules
            for action, fields in updates:
                match = next((r for r in rules if _same_rule(r, fields)), None)
                if action == "DELETE":
                    if match is None:
                        raise ApiFault(
                            "NonexistentItem",
                            f"Activated rule {fields['rule_id']} with priority "
                            f"{fields['priority']} is not in rule group {group_id}.",
                            404,
                        )
                    rules.remove(match)
                elif match is not None:
                    raise ApiFault(
                        "DuplicateItem",
                        f"Activated rule {fields['rule_id']} is already in rule group {group_id}.",
                        409,
                    )
                elif any(r.priority == fields["priority"] for r in rules):
                    raise ApiFault(
                        "InvalidParameter",
                        f"Priority {fields['priority']} is already used in rule group {group_id}.",
                        400,
                    )
                else:
                    rules.append(ActivatedRule(**fields))
            session.commit()

    def delete_rule_group(self, token: str | None, group_id: str) -> None:
        """Delete an empty rule group.

        Raises:
            ApiFault: StaleChangeToken, NonexistentItem or NonEmptyContainer.
        """
        with self._write_lock, self._session() as session:
            self._consume_token(session, token)
            group = session.get(RuleGroup, group_id)
            if group is None:
                raise ApiFault(
                    "NonexistentItem", f"Rule group {group_id} does not exist.", 404
                )
            if group.activated_rules:
                raise ApiFault(
                    "NonEmptyContainer",
                    f"Rule group {group_id} still contains activated rules.",
                    409,
                )
            session.delete(group)
            session.commit()

    # === Organization ===

    def set_finalizing(self, seconds: float) -> None:
        """Report the organization as finalizing for the next ``seconds``."""
        self._finalizing_until = time.monotonic() + seconds if seconds > 0 else None

    def is_finalizing(self) -> bool:
        """Check whether the organization is still being created."""
        return self._finalizing_until is not None and time.monotonic() < self._finalizing_until

    # === Policies ===

    def _seed_managed_policies(self) -> None:
        with self._session() as session:
            if session.get(Policy, FULL_ACCESS_POLICY_ID) is not None:
                return
            session.add(
                Policy(
                    id=FULL_ACCESS_POLICY_ID,
                    arn=(
                        "arn:aws:organizations::aws:policy/service_control_policy/"
                        f"{FULL_ACCESS_POLICY_ID}"
                    ),
                    name="FullAWSAccess",
                    description="Allows access to every operation",
                    type="SERVICE_CONTROL_POLICY",
                    content=FULL_ACCESS_CONTENT,
                    aws_managed=True,
                    tags={},
                )
            )
            session.commit()

    def create_policy(
        self,
        name: str,
        content: str,
        policy_type: str,
        description: str = "",
        tags: dict[str, str] | None = None,
    ) -> Policy:
        """Create a customer-managed policy.

        Raises:
            ApiFault: FinalizingOrganization or MalformedPolicyDocument.
        """
        if self.is_finalizing():
            raise ApiFault(
                "FinalizingOrganization",
                "The organization is still being created. Try again later.",
                409,
            )
        _check_policy_document(content)

        with self._session() as session:
            policy_id = f"p-{secrets.token_hex(4)}"
            policy = Policy(
                id=policy_id,
                arn=(
                    f"arn:aws:organizations::{self.account_id}:policy/"
                    f"o-example/{policy_type.lower()}/{policy_id}"
                ),
                name=name,
                description=description,
                type=policy_type,
                content=content,
                aws_managed=False,
                tags=dict(tags or {}),
            )
            session.add(policy)
            session.commit()
            return policy

    def get_policy(self, policy_id: str) -> Policy | None:
        """Get a policy by ID."""
        with self._session() as session:
            return session.get(Policy, policy_id)

    def update_policy(self, policy_id: str, **fields: str) -> Policy:
        """Update name, description and/or content of a policy.

        Raises:
            ApiFault: PolicyNotFound, PolicyChangesNotAllowed or MalformedPolicyDocument.
        """
        if "content" in fields:
            _check_policy_document(fields["content"])
        with self._session() as session:
            policy = self._editable_policy(session, policy_id)
            for key, value in fields.items():
                setattr(policy, key, value)
            session.commit()
            return policy

    def delete_policy(self, policy_id: str) -> None:
        """Delete a customer-managed policy.

        Raises:
            ApiFault: PolicyNotFound or PolicyChangesNotAllowed.
        """
        with self._session() as session:
            policy = self._editable_policy(session, policy_id)
            session.delete(policy)
            session.commit()

    def _editable_policy(self, session: Session, policy_id: str) -> Policy:
        policy = session.get(Policy, policy_id)
        if policy is None:
            raise ApiFault("PolicyNotFound", f"Policy {policy_id} does not exist.", 404)
        if policy.aws_managed:
            raise ApiFault(
                "PolicyChangesNotAllowed",
                f"Policy {policy_id} is managed by AWS and cannot be changed.",
                400,
            )
        return policy


def _same_rule(rule: ActivatedRule, fields: dict[str, Any]) -> bool:
    return (
        rule.rule_id == fields["rule_id"]
        and rule.priority == fields["priority"]
        and rule.action == fields["action"]
        and rule.type == fields["type"]
    )


def _check_policy_document(content: str) -> None:
    try:
        json.loads(content)
    except ValueError as e:
        raise ApiFault("MalformedPolicyDocument", f"Policy content is not valid JSON: {e}") from e
