"""
User model, mirrored from the identity provider.

The core only ever reads these rows; account lifecycle belongs to the
identity collaborator.
"""

import uuid
from typing import Optional

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from eventgate.kernel.models.base import Base, TimestampMixin, generate_uuid


class User(Base, TimestampMixin):
    """Principal record with its global role."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        default="",
    )
    # Free-form string owned by the identity provider; unknown values fail closed
    role: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"
