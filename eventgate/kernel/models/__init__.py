"""
Kernel data models.

Importing this package registers every table on Base.metadata.
"""

from eventgate.kernel.models.base import Base, TimestampMixin, generate_uuid, generate_uuid7
from eventgate.kernel.models.user import User
from eventgate.kernel.models.event import EditAccess, Event, Rule
from eventgate.kernel.models.permission import (
    GRANTABLE_ROLES,
    Action,
    EventPermission,
    ResourceKind,
    Role,
    RulePermission,
)
from eventgate.kernel.models.audit_log import ActorType, AuditAction, AuditLog

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "generate_uuid7",
    # Identity
    "User",
    # Resources
    "EditAccess",
    "Event",
    "Rule",
    # Permissions
    "GRANTABLE_ROLES",
    "Action",
    "EventPermission",
    "ResourceKind",
    "Role",
    "RulePermission",
    # Audit
    "ActorType",
    "AuditAction",
    "AuditLog",
]
