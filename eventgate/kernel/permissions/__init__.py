"""
Permission core: role capabilities, resource grants and the resolver.
"""

from eventgate.kernel.permissions.capabilities import (
    ROLE_CAPABILITIES,
    Principal,
    can_edit_role,
    capabilities,
    has_permission,
    is_viewer_only,
)
from eventgate.kernel.permissions.grant_store import (
    EventRef,
    GrantChange,
    GrantStore,
    ResourceGrant,
)
from eventgate.kernel.permissions.resolver import (
    EDIT_ROLES,
    VIEW_ROLES,
    AccessClass,
    AccessDecision,
    DecisionReason,
    PermissionResolver,
    can_edit_event,
    can_edit_rule,
    can_view_event,
    can_view_rule,
)

__all__ = [
    "ROLE_CAPABILITIES",
    "Principal",
    "can_edit_role",
    "capabilities",
    "has_permission",
    "is_viewer_only",
    "EventRef",
    "GrantChange",
    "GrantStore",
    "ResourceGrant",
    "EDIT_ROLES",
    "VIEW_ROLES",
    "AccessClass",
    "AccessDecision",
    "DecisionReason",
    "PermissionResolver",
    "can_edit_event",
    "can_edit_rule",
    "can_view_event",
    "can_view_rule",
]
