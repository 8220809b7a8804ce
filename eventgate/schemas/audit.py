"""
Audit trail schemas: entries to record and the paginated read path.
"""

import json
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from eventgate.config import get_settings
from eventgate.kernel.models.audit_log import AuditAction
from eventgate.kernel.models.base import utcnow

DEFAULT_PAGE_INDEX = 0
DEFAULT_PAGE_SIZE = 10
# OFFSET is a signed 64-bit integer in SQLite and PostgreSQL
MAX_OFFSET = 2 ** 63 - 1


class AuditEntryCreate(BaseModel):
    """
    One mutating action to append to the audit log.

    ``before`` / ``after`` are full snapshots of the entity, not diffs;
    ``before`` is None for creates and ``after`` is None for deletes.
    """

    team_slug: str
    action: AuditAction
    entity_type: str
    entity_id: Optional[str] = None
    actor_id: Optional[str] = None
    before: Optional[Any] = None
    after: Optional[Any] = None
    metadata: Optional[Dict[str, Any]] = None
    # Captured when the entry is built, i.e. right after the mutation commits
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("entity_id", "actor_id", mode="before")
    @classmethod
    def _stringify_ids(cls, v):
        if v is None:
            return None
        return str(v)


class SortingRule(BaseModel):
    """One (column, direction) pair; rules apply left to right."""

    id: str
    desc: bool = False


class PaginationAndSorting(BaseModel):
    """
    Paging options for the audit log listing.

    Bad paging input is coerced to defaults instead of rejected.
    """

    page_index: int = Field(DEFAULT_PAGE_INDEX, alias="pageIndex")
    page_size: int = Field(DEFAULT_PAGE_SIZE, alias="pageSize")
    sorting: List[SortingRule] = Field(default_factory=list)
    q: str = ""

    model_config = {"populate_by_name": True}

    @field_validator("page_index", mode="before")
    @classmethod
    def _coerce_page_index(cls, v):
        try:
            value = int(v)
        except (TypeError, ValueError, OverflowError):
            return DEFAULT_PAGE_INDEX
        if value < 0 or value > MAX_OFFSET // get_settings().audit_max_page_size:
            return DEFAULT_PAGE_INDEX
        return value

    @field_validator("page_size", mode="before")
    @classmethod
    def _coerce_page_size(cls, v):
        settings = get_settings()
        try:
            value = int(v)
        except (TypeError, ValueError, OverflowError):
            return settings.audit_default_page_size
        if value <= 0:
            return settings.audit_default_page_size
        return min(value, settings.audit_max_page_size)

    @field_validator("sorting", mode="before")
    @classmethod
    def _coerce_sorting(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            try:
                v = json.loads(v) if v else []
            except ValueError:
                return []
        if not isinstance(v, list):
            return []
        rules = []
        for item in v:
            if isinstance(item, SortingRule):
                rules.append(item)
            elif isinstance(item, dict) and isinstance(item.get("id"), str):
                rules.append({"id": item["id"], "desc": bool(item.get("desc", False))})
        return rules

    @field_validator("q", mode="before")
    @classmethod
    def _coerce_q(cls, v):
        if v is None:
            return ""
        return str(v).strip()

    @property
    def offset(self) -> int:
        return self.page_index * self.page_size


class AuditLogResponse(BaseModel):
    """Audit entry as returned to the table view."""

    id: uuid.UUID
    team_slug: str
    created_at: datetime
    action: str
    entity_type: str
    entity_id: Optional[str]
    actor_id: Optional[str]
    actor_type: str
    source: str
    payload: Optional[Dict[str, Any]]
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="extra_metadata")

    class Config:
        from_attributes = True


class AuditPageResponse(BaseModel):
    """A page of audit rows plus the full filtered count."""

    rows: List[AuditLogResponse]
    total: int
