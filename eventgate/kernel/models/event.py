"""
Event and rule models.

Only the columns the authorization core reads are modelled in detail;
schema/query payloads are opaque to it.
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Index, JSON, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, validates

from eventgate.kernel.models.base import Base, TimestampMixin, generate_uuid


class EditAccess(str, Enum):
    """Stored visibility hint. Not consulted by the permission resolver."""
    PUBLIC = "public"
    RESTRICTED = "restricted"


class Event(Base, TimestampMixin):
    """A validation target owned by a team."""

    __tablename__ = "events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    team_slug: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    edit_access: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=EditAccess.RESTRICTED.value,
    )
    type: Mapped[str] = mapped_column(String(255), nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    icon: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    event_schema: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    __table_args__ = (
        UniqueConstraint("team_slug", "type", name="uq_events_type_per_team"),
    )

    @validates("created_by_id")
    def _validate_created_by(self, key, value):
        # The original creator is immutable once recorded
        current = self.__dict__.get("created_by_id")
        if current is not None and value != current:
            raise ValueError("created_by_id cannot be changed once set")
        return value

    def __repr__(self) -> str:
        return f"<Event {self.team_slug}/{self.type}>"


class Rule(Base, TimestampMixin):
    """A SQL validation rule; belongs to exactly one event for its lifetime."""

    __tablename__ = "rules"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    event_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
    )
    edit_access: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=EditAccess.RESTRICTED.value,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    query: Mapped[str] = mapped_column(Text, nullable=False, default="")
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_rules_event_id", "event_id"),
        UniqueConstraint("event_id", "name", name="uq_rules_name_per_event"),
    )

    @validates("event_id")
    def _validate_event_id(self, key, value):
        current = self.__dict__.get("event_id")
        if current is not None and value != current:
            raise ValueError("a rule cannot be moved to another event")
        return value

    def __repr__(self) -> str:
        return f"<Rule {self.name} event={self.event_id}>"
