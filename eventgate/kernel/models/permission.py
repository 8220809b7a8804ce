"""
Role enumerations and resource-scoped grant tables.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, func, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from eventgate.kernel.models.base import Base


class Role(str, Enum):
    """Roles a principal can hold, globally or scoped to a resource."""
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @classmethod
    def parse(cls, value: object) -> Optional["Role"]:
        """Normalize a raw role string; unknown values return None."""
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


class ResourceKind(str, Enum):
    """Kinds of resources subject to access control."""
    EVENT = "event"
    RULE = "rule"
    ORGANIZATION = "organization"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Roles that may appear on a resource grant
GRANTABLE_ROLES = frozenset({Role.OWNER, Role.MEMBER, Role.VIEWER})


class EventPermission(Base):
    """
    Event-level grant.

    owner manages the event and its rules, member edits, viewer reads.
    At most one row per (event, user).
    """

    __tablename__ = "event_permissions"

    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("events.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_event_permissions_user_id", "user_id"),
    )

    @property
    def resource_id(self) -> uuid.UUID:
        return self.event_id

    def __repr__(self) -> str:
        return f"<EventPermission event={self.event_id} user={self.user_id} role={self.role}>"


class RulePermission(Base):
    """Rule-level grant; overrides the parent event for a single rule."""

    __tablename__ = "rule_permissions"

    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("rules.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    role: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_rule_permissions_user_id", "user_id"),
    )

    @property
    def resource_id(self) -> uuid.UUID:
        return self.rule_id

    def __repr__(self) -> str:
        return f"<RulePermission rule={self.rule_id} user={self.user_id} role={self.role}>"
