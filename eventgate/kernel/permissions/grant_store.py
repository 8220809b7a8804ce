"""
Resource permission store.

Persists resource-scoped grants and exposes the point lookups the resolver
needs. Every lookup returns a Result; SQLAlchemy errors become
STORE_FAILURE results rather than escaping as raw driver exceptions.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Type, Union

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventgate.kernel.errors import InvalidGrantError, StoreFailureError
from eventgate.kernel.models.base import utcnow
from eventgate.kernel.models.event import Event, Rule
from eventgate.kernel.models.permission import (
    GRANTABLE_ROLES,
    EventPermission,
    ResourceKind,
    Role,
    RulePermission,
)
from eventgate.kernel.models.user import User
from eventgate.kernel.result import Result, not_found, ok, store_failure
from eventgate.logging_config import get_logger

logger = get_logger(__name__)

GrantModel = Union[Type[EventPermission], Type[RulePermission]]

_GRANT_MODELS: Dict[ResourceKind, GrantModel] = {
    ResourceKind.EVENT: EventPermission,
    ResourceKind.RULE: RulePermission,
}

IdLike = Union[uuid.UUID, str]


@dataclass(frozen=True)
class ResourceGrant:
    """A principal's role scoped to one resource."""

    resource_kind: ResourceKind
    resource_id: uuid.UUID
    principal_id: uuid.UUID
    granted_role: str
    created_at: Optional[datetime] = None

    @property
    def role(self) -> Optional[Role]:
        """Parsed role, or None for a malformed grant."""
        return Role.parse(self.granted_role)

    def as_dict(self) -> dict:
        return {
            "resource_kind": self.resource_kind.value,
            "resource_id": str(self.resource_id),
            "principal_id": str(self.principal_id),
            "granted_role": self.granted_role,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class EventRef:
    """The attributes of an event the resolver reads."""

    id: uuid.UUID
    team_slug: str
    created_by_id: Optional[uuid.UUID]
    edit_access: str


@dataclass(frozen=True)
class GrantChange:
    """Before/after state of a grant mutation, for the audit trail."""

    before: Optional[ResourceGrant]
    after: Optional[ResourceGrant]


def as_uuid(value: IdLike) -> Optional[uuid.UUID]:
    """Coerce an identifier; malformed input returns None so lookups fail closed."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        return None


def _to_grant(kind: ResourceKind, row) -> ResourceGrant:
    return ResourceGrant(
        resource_kind=kind,
        resource_id=row.resource_id,
        principal_id=row.user_id,
        granted_role=row.role,
        created_at=row.created_at,
    )


class GrantStore:
    """
    Data access for grants, resources and principals.

    The session is owned by the caller; mutating methods flush but never
    commit.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # Lookups used by the resolver

    async def get_event(self, event_id: IdLike) -> Result[EventRef]:
        eid = as_uuid(event_id)
        if eid is None:
            return not_found()
        try:
            query = select(
                Event.id, Event.team_slug, Event.created_by_id, Event.edit_access
            ).where(Event.id == eid)
            row = (await self.session.execute(query)).one_or_none()
        except SQLAlchemyError as exc:
            return store_failure(exc)
        if row is None:
            return not_found()
        return ok(EventRef(
            id=row.id,
            team_slug=row.team_slug,
            created_by_id=row.created_by_id,
            edit_access=row.edit_access,
        ))

    async def get_rule_parent(self, rule_id: IdLike) -> Result[uuid.UUID]:
        """The rule's parent event id; NOT_FOUND when the rule is missing."""
        rid = as_uuid(rule_id)
        if rid is None:
            return not_found()
        try:
            query = select(Rule.event_id).where(Rule.id == rid)
            event_id = (await self.session.execute(query)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            return store_failure(exc)
        if event_id is None:
            return not_found()
        return ok(event_id)

    async def get_global_role(self, user_id: IdLike) -> Result[Optional[str]]:
        uid = as_uuid(user_id)
        if uid is None:
            return not_found()
        try:
            query = select(User.id, User.role).where(User.id == uid)
            row = (await self.session.execute(query)).one_or_none()
        except SQLAlchemyError as exc:
            return store_failure(exc)
        if row is None:
            return not_found()
        return ok(row.role)

    async def has_team_access(self, user_id: IdLike, team_slug: str) -> Result[bool]:
        """
        Whether the principal created, or holds a grant on, any event or rule
        of the team.
        """
        uid = as_uuid(user_id)
        if uid is None:
            return ok(False)
        in_team = Event.team_slug == team_slug
        created = select(Event.id).where(in_team, Event.created_by_id == uid)
        event_grant = (
            select(EventPermission.event_id)
            .join(Event, Event.id == EventPermission.event_id)
            .where(in_team, EventPermission.user_id == uid)
        )
        rule_grant = (
            select(RulePermission.rule_id)
            .join(Rule, Rule.id == RulePermission.rule_id)
            .join(Event, Event.id == Rule.event_id)
            .where(in_team, RulePermission.user_id == uid)
        )
        try:
            for query in (created, event_grant, rule_grant):
                if (await self.session.execute(query.limit(1))).first() is not None:
                    return ok(True)
        except SQLAlchemyError as exc:
            return store_failure(exc)
        return ok(False)

    async def get_grant(
        self,
        kind: ResourceKind,
        resource_id: IdLike,
        user_id: IdLike,
    ) -> Result[ResourceGrant]:
        """Point lookup on the (resource, principal) primary key."""
        model = _GRANT_MODELS.get(kind)
        rid, uid = as_uuid(resource_id), as_uuid(user_id)
        if model is None or rid is None or uid is None:
            return not_found()
        try:
            row = await self.session.get(model, (rid, uid))
        except SQLAlchemyError as exc:
            return store_failure(exc)
        if row is None:
            return not_found()
        return ok(_to_grant(kind, row))

    # Grant management

    async def list_grants(self, kind: ResourceKind, resource_id: IdLike) -> List[ResourceGrant]:
        model = self._model(kind)
        rid = as_uuid(resource_id)
        if rid is None:
            return []
        column = model.event_id if model is EventPermission else model.rule_id
        try:
            query = select(model).where(column == rid).order_by(model.created_at, model.user_id)
            rows = (await self.session.execute(query)).scalars().all()
        except SQLAlchemyError as exc:
            raise StoreFailureError("list_grants", exc) from exc
        return [_to_grant(kind, row) for row in rows]

    async def put_grant(
        self,
        kind: ResourceKind,
        resource_id: IdLike,
        user_id: IdLike,
        role: Union[Role, str],
    ) -> GrantChange:
        """
        Grant ``role`` on a resource, replacing any existing grant for the
        same principal.
        """
        model = self._model(kind)
        parsed = Role.parse(role)
        if parsed not in GRANTABLE_ROLES:
            raise InvalidGrantError(f"role {role!r} cannot be granted on a {kind.value}")
        rid, uid = as_uuid(resource_id), as_uuid(user_id)
        if rid is None or uid is None:
            raise InvalidGrantError("resource_id and user_id must be UUIDs")

        try:
            before, after = await self._upsert(kind, model, rid, uid, parsed)
        except IntegrityError:
            # A concurrent writer inserted the same pair first; replace it
            await self.session.rollback()
            logger.info(
                "Concurrent grant insert, retrying as replace",
                extra={"resource_kind": kind.value, "resource_id": str(rid), "user_id": str(uid)},
            )
            try:
                before, after = await self._upsert(kind, model, rid, uid, parsed)
            except SQLAlchemyError as exc:
                raise StoreFailureError("put_grant", exc) from exc
        except SQLAlchemyError as exc:
            raise StoreFailureError("put_grant", exc) from exc

        return GrantChange(before=before, after=after)

    async def revoke_grant(
        self,
        kind: ResourceKind,
        resource_id: IdLike,
        user_id: IdLike,
    ) -> GrantChange:
        """Remove a grant; ``after`` is always None, ``before`` None if nothing was granted."""
        model = self._model(kind)
        rid, uid = as_uuid(resource_id), as_uuid(user_id)
        if rid is None or uid is None:
            return GrantChange(before=None, after=None)
        column = model.event_id if model is EventPermission else model.rule_id
        try:
            existing = await self.session.get(model, (rid, uid))
            if existing is None:
                return GrantChange(before=None, after=None)
            before = _to_grant(kind, existing)
            await self.session.execute(
                delete(model).where(column == rid, model.user_id == uid)
            )
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise StoreFailureError("revoke_grant", exc) from exc
        return GrantChange(before=before, after=None)

    async def _upsert(
        self,
        kind: ResourceKind,
        model: GrantModel,
        rid: uuid.UUID,
        uid: uuid.UUID,
        role: Role,
    ) -> Tuple[Optional[ResourceGrant], ResourceGrant]:
        existing = await self.session.get(model, (rid, uid))
        before = _to_grant(kind, existing) if existing is not None else None
        if existing is None:
            if model is EventPermission:
                existing = EventPermission(event_id=rid, user_id=uid, role=role.value, created_at=utcnow())
            else:
                existing = RulePermission(rule_id=rid, user_id=uid, role=role.value, created_at=utcnow())
            self.session.add(existing)
        else:
            existing.role = role.value
            existing.created_at = utcnow()
        await self.session.flush()
        return before, _to_grant(kind, existing)

    @staticmethod
    def _model(kind: ResourceKind) -> GrantModel:
        model = _GRANT_MODELS.get(ResourceKind(kind))
        if model is None:
            raise InvalidGrantError(f"{kind.value} resources do not support grants")
        return model
