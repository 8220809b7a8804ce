"""
Pydantic schemas for request/response validation.
"""

from eventgate.schemas.audit import (
    AuditEntryCreate,
    AuditLogResponse,
    AuditPageResponse,
    PaginationAndSorting,
    SortingRule,
)
from eventgate.schemas.common import AccessResponse, ErrorResponse, HealthResponse
from eventgate.schemas.permission import GrantRequest, GrantResponse

__all__ = [
    "AuditEntryCreate",
    "AuditLogResponse",
    "AuditPageResponse",
    "PaginationAndSorting",
    "SortingRule",
    "AccessResponse",
    "ErrorResponse",
    "HealthResponse",
    "GrantRequest",
    "GrantResponse",
]
