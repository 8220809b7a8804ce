"""
Permission resolver for events and rules.

Combines, in order of precedence:
1. Ownership (the event's original creator)
2. Global admin role
3. Resource-scoped grants
4. Fallback from a rule to its parent event

Missing resources always resolve to deny. Store failures raise
StoreFailureError so an outage is never reported as a denial.
"""

from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from eventgate.kernel.errors import StoreFailureError
from eventgate.kernel.models.permission import ResourceKind, Role
from eventgate.kernel.permissions.grant_store import GrantStore, IdLike, as_uuid
from eventgate.kernel.result import Result
from eventgate.logging_config import get_logger, log_anomaly

logger = get_logger(__name__)


class AccessClass(str, Enum):
    EDIT = "edit"
    VIEW = "view"


# Grant roles accepted for each access class
EDIT_ROLES: FrozenSet[Role] = frozenset({Role.OWNER, Role.MEMBER})
VIEW_ROLES: FrozenSet[Role] = frozenset({Role.OWNER, Role.MEMBER, Role.VIEWER})

_ROLE_SETS = {
    AccessClass.EDIT: EDIT_ROLES,
    AccessClass.VIEW: VIEW_ROLES,
}


class DecisionReason(str, Enum):
    NOT_FOUND = "not_found"
    PARENT_NOT_FOUND = "parent_not_found"
    CREATOR = "creator"
    GLOBAL_ADMIN = "global_admin"
    GRANT = "grant"
    RULE_GRANT = "rule_grant"
    NO_GRANT = "no_grant"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: DecisionReason

    def __bool__(self) -> bool:
        return self.allowed


def _allow(reason: DecisionReason) -> AccessDecision:
    return AccessDecision(True, reason)


def _deny(reason: DecisionReason) -> AccessDecision:
    return AccessDecision(False, reason)


class PermissionResolver:
    """
    Resource-scoped permission checks.

    Usage:
        resolver = PermissionResolver(session)
        if await resolver.can_edit_event(event_id, user.id):
            ...
    """

    def __init__(self, session: AsyncSession, store: Optional[GrantStore] = None):
        self.store = store or GrantStore(session)

    async def can_edit_event(self, event_id: IdLike, user_id: IdLike) -> bool:
        return (await self.resolve_event(event_id, user_id, AccessClass.EDIT)).allowed

    async def can_view_event(self, event_id: IdLike, user_id: IdLike) -> bool:
        return (await self.resolve_event(event_id, user_id, AccessClass.VIEW)).allowed

    async def can_edit_rule(self, rule_id: IdLike, user_id: IdLike) -> bool:
        return (await self.resolve_rule(rule_id, user_id, AccessClass.EDIT)).allowed

    async def can_view_rule(self, rule_id: IdLike, user_id: IdLike) -> bool:
        return (await self.resolve_rule(rule_id, user_id, AccessClass.VIEW)).allowed

    async def can_view_team(self, team_slug: str, user_id: IdLike) -> bool:
        """
        Team-level read access, used for the audit log listing.

        Global admins see every team; anyone else needs to have created, or
        hold a grant on, at least one of the team's events or rules.
        """
        if await self._is_global_admin(user_id):
            return True
        return bool(self._unwrap(
            await self.store.has_team_access(user_id, team_slug),
            "has_team_access",
            team_slug=team_slug,
            user_id=user_id,
        ))

    async def resolve_event(
        self,
        event_id: IdLike,
        user_id: IdLike,
        access: AccessClass,
    ) -> AccessDecision:
        """
        Decide access to an event. First match wins:

        1. Event not found -> deny
        2. Principal created the event -> allow
        3. Principal's global role is admin -> allow
        4. Event grant with a role in the access class's set -> allow
        5. Otherwise deny

        The event's edit_access attribute is not consulted.
        """
        uid = as_uuid(user_id)

        event = self._unwrap(await self.store.get_event(event_id), "get_event", event_id=event_id)
        if event is None:
            return self._log(_deny(DecisionReason.NOT_FOUND), ResourceKind.EVENT, event_id, user_id, access)

        if uid is not None and event.created_by_id == uid:
            return self._log(_allow(DecisionReason.CREATOR), ResourceKind.EVENT, event_id, user_id, access)

        if await self._is_global_admin(user_id):
            return self._log(_allow(DecisionReason.GLOBAL_ADMIN), ResourceKind.EVENT, event_id, user_id, access)

        if await self._has_grant(ResourceKind.EVENT, event.id, user_id, access):
            return self._log(_allow(DecisionReason.GRANT), ResourceKind.EVENT, event_id, user_id, access)

        return self._log(_deny(DecisionReason.NO_GRANT), ResourceKind.EVENT, event_id, user_id, access)

    async def resolve_rule(
        self,
        rule_id: IdLike,
        user_id: IdLike,
        access: AccessClass,
    ) -> AccessDecision:
        """
        Decide access to a rule.

        A rule-level grant wins outright. Otherwise the decision is delegated
        to the parent event with the same access class. A missing rule or a
        parent that no longer resolves is a deny.
        """
        if await self._has_grant(ResourceKind.RULE, rule_id, user_id, access):
            return self._log(_allow(DecisionReason.RULE_GRANT), ResourceKind.RULE, rule_id, user_id, access)

        parent_id = self._unwrap(await self.store.get_rule_parent(rule_id), "get_rule_parent", rule_id=rule_id)
        if parent_id is None:
            return self._log(_deny(DecisionReason.NOT_FOUND), ResourceKind.RULE, rule_id, user_id, access)

        decision = await self.resolve_event(parent_id, user_id, access)
        if decision.reason is DecisionReason.NOT_FOUND:
            return self._log(_deny(DecisionReason.PARENT_NOT_FOUND), ResourceKind.RULE, rule_id, user_id, access)
        return decision

    async def _is_global_admin(self, user_id: IdLike) -> bool:
        role = self._unwrap(await self.store.get_global_role(user_id), "get_global_role", user_id=user_id)
        return Role.parse(role) is Role.ADMIN

    async def _has_grant(
        self,
        kind: ResourceKind,
        resource_id: IdLike,
        user_id: IdLike,
        access: AccessClass,
    ) -> bool:
        grant = self._unwrap(
            await self.store.get_grant(kind, resource_id, user_id),
            "get_grant",
            resource_kind=kind.value,
            resource_id=resource_id,
        )
        if grant is None:
            return False
        role = grant.role
        if role is None:
            logger.warning(
                "Skipping grant with unrecognised role",
                extra={
                    "resource_kind": kind.value,
                    "resource_id": str(resource_id),
                    "granted_role": grant.granted_role,
                },
            )
            return False
        return role in _ROLE_SETS[access]

    @staticmethod
    def _unwrap(result: Result, operation: str, **context):
        """Value of a lookup, None when not found; raise on store failure."""
        if result.failed:
            log_anomaly(
                logger,
                "Permission lookup failed",
                operation=operation,
                **{k: str(v) for k, v in context.items()},
            )
            raise StoreFailureError(operation, result.exception)
        if result.not_found:
            return None
        return result.value

    @staticmethod
    def _log(
        decision: AccessDecision,
        kind: ResourceKind,
        resource_id: IdLike,
        user_id: IdLike,
        access: AccessClass,
    ) -> AccessDecision:
        logger.debug(
            "Access %s",
            "allowed" if decision.allowed else "denied",
            extra={
                "resource_kind": kind.value,
                "resource_id": str(resource_id),
                "user_id": str(user_id),
                "access": access.value,
                "reason": decision.reason.value,
            },
        )
        return decision


# Convenience functions

async def can_edit_event(session: AsyncSession, event_id: IdLike, user_id: IdLike) -> bool:
    """Check if a user may edit an event."""
    return await PermissionResolver(session).can_edit_event(event_id, user_id)


async def can_view_event(session: AsyncSession, event_id: IdLike, user_id: IdLike) -> bool:
    """Check if a user may view an event."""
    return await PermissionResolver(session).can_view_event(event_id, user_id)


async def can_edit_rule(session: AsyncSession, rule_id: IdLike, user_id: IdLike) -> bool:
    """Check if a user may edit a rule (rule grant, else parent event)."""
    return await PermissionResolver(session).can_edit_rule(rule_id, user_id)


async def can_view_rule(session: AsyncSession, rule_id: IdLike, user_id: IdLike) -> bool:
    """Check if a user may view a rule (rule grant, else parent event)."""
    return await PermissionResolver(session).can_view_rule(rule_id, user_id)
