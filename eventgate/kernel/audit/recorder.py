"""
Audit recorder for the append-only audit log.

Entries are written AFTER the triggering mutation commits, each in its own
session, so a failed audit write can never roll back or fail the mutation
it describes.
"""

import asyncio
import enum
import json
import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional, Set, Tuple

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventgate.config import Settings, get_settings
from eventgate.kernel.models.audit_log import ActorType, AuditLog
from eventgate.kernel.models.base import generate_uuid7
from eventgate.logging_config import get_logger, get_request_id
from eventgate.schemas.audit import AuditEntryCreate

logger = get_logger(__name__)

EntityKey = Tuple[str, Optional[str]]


def serialize_payload(value: Any) -> Any:
    """Convert a snapshot to JSON-serializable types."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, dict):
        return {str(k): serialize_payload(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [serialize_payload(v) for v in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    if hasattr(value, "as_dict"):
        return serialize_payload(value.as_dict())
    return value


def truncate_payload(payload: Optional[Dict[str, Any]], max_bytes: int) -> Optional[Dict[str, Any]]:
    """Replace an oversized payload with a size marker."""
    if payload is None:
        return None
    size = len(json.dumps(payload, default=str))
    if size <= max_bytes:
        return payload
    return {"_truncated": True, "_size": size}


class AuditRecorder:
    """
    Writes audit entries and tracks background writes.

    Usage:
        recorder = AuditRecorder(async_session_maker)
        await db.commit()
        recorder.schedule(AuditEntryCreate(
            team_slug=event.team_slug,
            action=AuditAction.UPDATE,
            entity_type="event",
            entity_id=event.id,
            actor_id=user.id,
            before=before,
            after=after,
        ))
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._pending: Set[asyncio.Task] = set()
        self._entity_locks: Dict[EntityKey, asyncio.Lock] = {}
        self._entity_waiting: Dict[EntityKey, int] = {}

    @property
    def pending(self) -> int:
        """Number of scheduled writes not yet finished."""
        return len(self._pending)

    async def record(self, entry: AuditEntryCreate) -> Optional[AuditLog]:
        """
        Append one entry, retrying a bounded number of times.

        Never raises for a write failure: the entry is logged and dropped
        once retries are exhausted. Returns the stored row, or None.
        """
        values = self._build_values(entry)
        attempts = max(1, self._settings.audit_max_retries)
        backoff = self._settings.audit_retry_backoff or (0.0,)
        last_exc: Optional[BaseException] = None

        for attempt in range(attempts):
            try:
                async with self._session_factory() as session:
                    row = AuditLog(**values)
                    session.add(row)
                    await session.commit()
                    return row
            except (SQLAlchemyError, OSError, asyncio.TimeoutError) as exc:
                # Connect-time failures surface as OSError before SQLAlchemy wraps anything
                last_exc = exc
                logger.warning(
                    "Audit write failed",
                    extra={
                        "attempt": attempt + 1,
                        "entity_type": entry.entity_type,
                        "entity_id": entry.entity_id,
                        "error": str(exc),
                    },
                )
                if attempt < attempts - 1:
                    await asyncio.sleep(backoff[min(attempt, len(backoff) - 1)])

        logger.error(
            "Dropping audit entry after %d attempts",
            attempts,
            exc_info=last_exc,
            extra={
                "audit_action": entry.action.value,
                "entity_type": entry.entity_type,
                "entity_id": entry.entity_id,
                "actor_id": entry.actor_id,
                "team_slug": entry.team_slug,
            },
        )
        return None

    def schedule(self, entry: AuditEntryCreate) -> asyncio.Task:
        """
        Record in the background without blocking the caller.

        Writes for the same (entity_type, entity_id) run one at a time in
        the order they were scheduled.
        """
        key: EntityKey = (entry.entity_type, entry.entity_id)
        lock = self._entity_locks.setdefault(key, asyncio.Lock())
        self._entity_waiting[key] = self._entity_waiting.get(key, 0) + 1

        task = asyncio.create_task(self._record_in_order(key, lock, entry))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for scheduled writes to finish.

        Returns True when nothing is left pending. Writes still running at
        the deadline are cancelled and reported.
        """
        if not self._pending:
            return True
        if timeout is None:
            timeout = self._settings.audit_drain_timeout_seconds

        done, still_pending = await asyncio.wait(set(self._pending), timeout=timeout)
        if still_pending:
            logger.error(
                "Audit drain timed out, cancelling %d pending writes",
                len(still_pending),
            )
            for task in still_pending:
                task.cancel()
            await asyncio.gather(*still_pending, return_exceptions=True)
            return False
        return True

    async def _record_in_order(
        self,
        key: EntityKey,
        lock: asyncio.Lock,
        entry: AuditEntryCreate,
    ) -> Optional[AuditLog]:
        try:
            async with lock:
                return await self.record(entry)
        except Exception:
            # Background boundary: nothing above us can handle this
            logger.exception(
                "Unexpected error recording audit entry",
                extra={"entity_type": entry.entity_type, "entity_id": entry.entity_id},
            )
            return None
        finally:
            remaining = self._entity_waiting.get(key, 1) - 1
            if remaining <= 0:
                self._entity_waiting.pop(key, None)
                self._entity_locks.pop(key, None)
            else:
                self._entity_waiting[key] = remaining

    def _build_values(self, entry: AuditEntryCreate) -> Dict[str, Any]:
        payload = {
            "before": serialize_payload(entry.before),
            "after": serialize_payload(entry.after),
        }
        metadata = dict(entry.metadata or {})
        request_id = get_request_id()
        if request_id and "request_id" not in metadata:
            metadata["request_id"] = request_id

        max_bytes = self._settings.audit_max_payload_bytes
        return {
            # Fixed before the first attempt so retries reuse one id
            "id": generate_uuid7(),
            "team_slug": entry.team_slug,
            "created_at": entry.created_at,
            "action": entry.action.value,
            "entity_type": entry.entity_type,
            "entity_id": entry.entity_id,
            "actor_id": entry.actor_id,
            "actor_type": (ActorType.USER if entry.actor_id else ActorType.ANONYMOUS).value,
            "source": self._settings.audit_source,
            "payload": truncate_payload(payload, max_bytes),
            "extra_metadata": truncate_payload(serialize_payload(metadata), max_bytes) if metadata else None,
        }
