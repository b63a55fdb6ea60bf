"""SQLAlchemy models for the reference management API.

This module defines the database schema using SQLAlchemy ORM.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class ChangeToken(Base):
    """A change token issued for the namespace.

    At most one token is unconsumed at a time; it is consumed by the next
    successful mutation.
    """

    __tablename__ = "change_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (Index("idx_change_tokens_consumed", "consumed_at"),)


class RuleGroup(Base):
    """A rule group (container of activated rules)."""

    __tablename__ = "rule_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    metric_name: Mapped[str] = mapped_column(String(255), nullable=False)
    arn: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[dict[str, str]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    activated_rules: Mapped[list[ActivatedRule]] = relationship(
        "ActivatedRule",
        back_populates="rule_group",
        cascade="all, delete-orphan",
        order_by="ActivatedRule.id",
    )


class ActivatedRule(Base):
    """A rule activated inside a rule group."""

    __tablename__ = "activated_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("rule_groups.id", ondelete="CASCADE"), nullable=False
    )
    rule_id: Mapped[str] = mapped_column(String(128), nullable=False)
    priority: Mapped[int] = mapped_column(Integer, nullable=False)
    action: Mapped[str] = mapped_column(String(16), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)

    # Relationships
    rule_group: Mapped[RuleGroup] = relationship("RuleGroup", back_populates="activated_rules")

    __table_args__ = (Index("idx_activated_rules_group", "rule_group_id"),)


class Policy(Base):
    """An organization-wide policy."""

    __tablename__ = "policies"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    arn: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    aws_managed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    tags: Mapped[dict[str, str]] = mapped_column(JSON, default=dict, nullable=False)
