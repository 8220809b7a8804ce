"""
Permission endpoints - access checks and resource grant management.

Grant changes are mutations like any other: checked, committed, then
audited in the background.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from eventgate.api.deps import (
    CurrentPrincipal,
    DbSession,
    Recorder,
    RequireEventEdit,
    RequireEventView,
    RequireRuleEdit,
    RequireRuleView,
    get_client_ip,
)
from eventgate.kernel.errors import InvalidGrantError, StoreFailureError
from eventgate.kernel.models.audit_log import AuditAction
from eventgate.kernel.models.permission import ResourceKind
from eventgate.kernel.permissions.capabilities import has_permission
from eventgate.kernel.permissions.grant_store import GrantChange, GrantStore, ResourceGrant
from eventgate.kernel.permissions.resolver import PermissionResolver
from eventgate.logging_config import get_logger
from eventgate.schemas.audit import AuditEntryCreate
from eventgate.schemas.common import AccessResponse
from eventgate.schemas.permission import GrantRequest, GrantResponse

logger = get_logger(__name__)

router = APIRouter()

ENTITY_TYPES = {
    ResourceKind.EVENT: "event_permission",
    ResourceKind.RULE: "rule_permission",
}


# Access checks

@router.get("/events/{event_id}/can-edit", response_model=AccessResponse)
async def check_can_edit_event(event_id: str, principal: CurrentPrincipal, db: DbSession):
    """Whether the caller may edit the event."""
    return AccessResponse(allowed=await PermissionResolver(db).can_edit_event(event_id, principal.id))


@router.get("/events/{event_id}/can-view", response_model=AccessResponse)
async def check_can_view_event(event_id: str, principal: CurrentPrincipal, db: DbSession):
    """Whether the caller may view the event."""
    return AccessResponse(allowed=await PermissionResolver(db).can_view_event(event_id, principal.id))


@router.get("/rules/{rule_id}/can-edit", response_model=AccessResponse)
async def check_can_edit_rule(rule_id: str, principal: CurrentPrincipal, db: DbSession):
    """Whether the caller may edit the rule."""
    return AccessResponse(allowed=await PermissionResolver(db).can_edit_rule(rule_id, principal.id))


@router.get("/rules/{rule_id}/can-view", response_model=AccessResponse)
async def check_can_view_rule(rule_id: str, principal: CurrentPrincipal, db: DbSession):
    """Whether the caller may view the rule."""
    return AccessResponse(allowed=await PermissionResolver(db).can_view_rule(rule_id, principal.id))


@router.get("/capabilities", response_model=AccessResponse)
async def check_capability(
    principal: CurrentPrincipal,
    resource: str = Query(..., description="event, rule or organization"),
    action: str = Query(..., description="read, create, update or delete"),
):
    """Whether any of the caller's roles could ever perform the action."""
    return AccessResponse(allowed=has_permission(principal, resource, action))


# Grant management

@router.get("/events/{event_id}/permissions", response_model=List[GrantResponse])
async def list_event_grants(event_id: uuid.UUID, _: RequireEventView, db: DbSession):
    """List grants on an event."""
    grants = await GrantStore(db).list_grants(ResourceKind.EVENT, event_id)
    return [GrantResponse.model_validate(g) for g in grants]


@router.put("/events/{event_id}/permissions/{user_id}", response_model=GrantResponse)
async def put_event_grant(
    request: Request,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    data: GrantRequest,
    _: RequireEventEdit,
    principal: CurrentPrincipal,
    db: DbSession,
    recorder: Recorder,
):
    """Grant or replace a user's role on an event."""
    return await _put_grant(request, ResourceKind.EVENT, event_id, user_id, data, principal.id, db, recorder)


@router.delete("/events/{event_id}/permissions/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_event_grant(
    request: Request,
    event_id: uuid.UUID,
    user_id: uuid.UUID,
    _: RequireEventEdit,
    principal: CurrentPrincipal,
    db: DbSession,
    recorder: Recorder,
):
    """Revoke a user's role on an event."""
    await _revoke_grant(request, ResourceKind.EVENT, event_id, user_id, principal.id, db, recorder)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/rules/{rule_id}/permissions", response_model=List[GrantResponse])
async def list_rule_grants(rule_id: uuid.UUID, _: RequireRuleView, db: DbSession):
    """List rule-level grants (parent event grants are not included)."""
    grants = await GrantStore(db).list_grants(ResourceKind.RULE, rule_id)
    return [GrantResponse.model_validate(g) for g in grants]


@router.put("/rules/{rule_id}/permissions/{user_id}", response_model=GrantResponse)
async def put_rule_grant(
    request: Request,
    rule_id: uuid.UUID,
    user_id: uuid.UUID,
    data: GrantRequest,
    _: RequireRuleEdit,
    principal: CurrentPrincipal,
    db: DbSession,
    recorder: Recorder,
):
    """Grant or replace a user's role on a single rule."""
    return await _put_grant(request, ResourceKind.RULE, rule_id, user_id, data, principal.id, db, recorder)


@router.delete("/rules/{rule_id}/permissions/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_rule_grant(
    request: Request,
    rule_id: uuid.UUID,
    user_id: uuid.UUID,
    _: RequireRuleEdit,
    principal: CurrentPrincipal,
    db: DbSession,
    recorder: Recorder,
):
    """Revoke a user's role on a single rule."""
    await _revoke_grant(request, ResourceKind.RULE, rule_id, user_id, principal.id, db, recorder)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Helpers

async def _put_grant(
    request: Request,
    kind: ResourceKind,
    resource_id: uuid.UUID,
    user_id: uuid.UUID,
    data: GrantRequest,
    actor_id: Optional[str],
    db: DbSession,
    recorder: Recorder,
) -> GrantResponse:
    store = GrantStore(db)
    grantee = await store.get_global_role(user_id)
    if grantee.failed:
        raise StoreFailureError("get_global_role", grantee.exception)
    if grantee.not_found:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    team_slug = await _team_slug_for(store, kind, resource_id)
    try:
        change = await store.put_grant(kind, resource_id, user_id, data.role)
    except InvalidGrantError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )
    await db.commit()

    action = AuditAction.UPDATE if change.before is not None else AuditAction.CREATE
    _audit(request, recorder, kind, resource_id, user_id, team_slug, action, change, actor_id)
    return GrantResponse.model_validate(change.after)


async def _revoke_grant(
    request: Request,
    kind: ResourceKind,
    resource_id: uuid.UUID,
    user_id: uuid.UUID,
    actor_id: Optional[str],
    db: DbSession,
    recorder: Recorder,
) -> None:
    store = GrantStore(db)
    team_slug = await _team_slug_for(store, kind, resource_id)
    change = await store.revoke_grant(kind, resource_id, user_id)
    if change.before is None:
        return
    await db.commit()
    _audit(request, recorder, kind, resource_id, user_id, team_slug, AuditAction.DELETE, change, actor_id)


async def _team_slug_for(store: GrantStore, kind: ResourceKind, resource_id: uuid.UUID) -> str:
    """
    Tenant of the resource, for audit scoping.

    The permission check has already run, so a missing resource only
    happens on a concurrent delete; that case is audited under "unknown".
    Store failures propagate.
    """
    event_id: Optional[uuid.UUID] = resource_id
    if kind is ResourceKind.RULE:
        parent = await store.get_rule_parent(resource_id)
        if parent.failed:
            raise StoreFailureError("get_rule_parent", parent.exception)
        event_id = parent.value
    if event_id is not None:
        event = await store.get_event(event_id)
        if event.failed:
            raise StoreFailureError("get_event", event.exception)
        if event.ok:
            return event.value.team_slug
    logger.warning(
        "Could not resolve team for audit entry",
        extra={"resource_kind": kind.value, "resource_id": str(resource_id)},
    )
    return "unknown"


def _audit(
    request: Request,
    recorder: Recorder,
    kind: ResourceKind,
    resource_id: uuid.UUID,
    user_id: uuid.UUID,
    team_slug: str,
    action: AuditAction,
    change: GrantChange,
    actor_id: Optional[str],
) -> None:
    recorder.schedule(AuditEntryCreate(
        team_slug=team_slug,
        action=action,
        entity_type=ENTITY_TYPES[kind],
        entity_id=str(resource_id),
        actor_id=actor_id,
        before=_snapshot(change.before),
        after=_snapshot(change.after),
        metadata={"grantee_id": str(user_id), "client_ip": get_client_ip(request)},
    ))


def _snapshot(grant: Optional[ResourceGrant]) -> Optional[dict]:
    return grant.as_dict() if grant is not None else None
