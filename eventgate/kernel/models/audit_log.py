"""
Immutable audit log.

Rows are appended after the triggering mutation commits and are never
updated or deleted by the application. There is deliberately no foreign
key to the audited entity: history outlives the resource.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, func, Index, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from eventgate.kernel.models.base import Base, generate_uuid7


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ActorType(str, Enum):
    USER = "user"
    ANONYMOUS = "anonymous"


class AuditLog(Base):
    """Append-only audit entry."""

    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid7,
    )
    team_slug: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    action: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    entity_type: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
    )
    entity_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )
    actor_id: Mapped[Optional[str]] = mapped_column(
        String(36),
        nullable=True,
    )
    actor_type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=ActorType.ANONYMOUS.value,
    )
    source: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
    )
    # {"before": ..., "after": ...}
    payload: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
    )
    # "metadata" is reserved on declarative classes
    extra_metadata: Mapped[Optional[dict]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    __table_args__ = (
        Index("ix_audit_logs_created_at", "created_at"),
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        Index("ix_audit_logs_actor", "actor_id"),
        Index("ix_audit_logs_action", "action"),
        Index("ix_audit_logs_team_slug", "team_slug"),
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id}>"
