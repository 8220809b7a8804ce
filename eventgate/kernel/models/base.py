"""
Declarative base and shared column mixins.
"""

import os
import threading
import time
import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, func, Uuid
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    # Generic Uuid type works on both PostgreSQL and SQLite
    type_annotation_map = {
        uuid.UUID: Uuid(),
    }


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


def generate_uuid() -> uuid.UUID:
    """Generate a new UUID."""
    return uuid.uuid4()


_uuid7_lock = threading.Lock()
_uuid7_last_ms = 0
_uuid7_seq = 0


def generate_uuid7() -> uuid.UUID:
    """
    Generate a time-ordered UUIDv7.

    48-bit unix milliseconds, then a 12-bit sequence that increments within
    the same millisecond, then 62 random bits. Ids from one process sort in
    generation order, also when the clock steps back.
    """
    global _uuid7_last_ms, _uuid7_seq
    with _uuid7_lock:
        timestamp_ms = time.time_ns() // 1_000_000
        if timestamp_ms > _uuid7_last_ms:
            _uuid7_last_ms = timestamp_ms
            _uuid7_seq = 0
        else:
            _uuid7_seq += 1
            if _uuid7_seq > 0xFFF:
                # Sequence exhausted: borrow the next millisecond
                _uuid7_last_ms += 1
                _uuid7_seq = 0
        timestamp_ms, seq = _uuid7_last_ms, _uuid7_seq

    rand = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)
    value = (timestamp_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= seq << 64
    value |= 0b10 << 62
    value |= rand
    return uuid.UUID(int=value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
