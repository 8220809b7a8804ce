"""
FastAPI dependencies for the current principal, authorization and database sessions.
"""

from typing import Annotated, AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventgate.database import async_session_maker
from eventgate.kernel.audit.recorder import AuditRecorder
from eventgate.kernel.permissions.capabilities import Principal
from eventgate.kernel.permissions.grant_store import as_uuid
from eventgate.kernel.permissions.resolver import AccessClass, PermissionResolver
from eventgate.logging_config import principal_id_var

# Set by the identity provider's proxy in front of this service
USER_ID_HEADER = "X-User-Id"
USER_ROLES_HEADER = "X-User-Roles"
USER_EMAIL_HEADER = "X-User-Email"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency that yields database sessions."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_current_principal(request: Request) -> Principal:
    """The caller as identified upstream, or 401."""
    user_id = request.headers.get(USER_ID_HEADER, "").strip()
    if not user_id or as_uuid(user_id) is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    raw_roles = request.headers.get(USER_ROLES_HEADER, "")
    roles = tuple(r.strip() for r in raw_roles.split(",") if r.strip())
    principal_id_var.set(user_id)

    return Principal(
        id=user_id,
        roles=roles,
        email=request.headers.get(USER_EMAIL_HEADER),
    )


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def get_audit_recorder(request: Request) -> AuditRecorder:
    """The application-wide recorder created at startup."""
    return request.app.state.audit_recorder


Recorder = Annotated[AuditRecorder, Depends(get_audit_recorder)]


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


class PermissionChecker:
    """
    Dependency class for resource-scoped permission checks.

    Usage:
        @router.put("/events/{event_id}/permissions/{user_id}")
        async def put_event_grant(
            event_id: uuid.UUID,
            _: RequireEventEdit,
            ...
        ):
            ...
    """

    def __init__(self, resource_type: str, access: AccessClass):
        self.resource_type = resource_type
        self.access = access

    async def __call__(
        self,
        request: Request,
        principal: CurrentPrincipal,
        db: DbSession,
    ) -> bool:
        resolver = PermissionResolver(db)

        if self.resource_type == "event" and "event_id" in request.path_params:
            decision = await resolver.resolve_event(
                request.path_params["event_id"], principal.id, self.access
            )
        elif self.resource_type == "rule" and "rule_id" in request.path_params:
            decision = await resolver.resolve_rule(
                request.path_params["rule_id"], principal.id, self.access
            )
        else:
            decision = None

        if not decision:
            # Not found and forbidden look the same to the caller
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {self.access.value}",
            )

        return True


RequireEventView = Annotated[bool, Depends(PermissionChecker("event", AccessClass.VIEW))]
RequireEventEdit = Annotated[bool, Depends(PermissionChecker("event", AccessClass.EDIT))]
RequireRuleView = Annotated[bool, Depends(PermissionChecker("rule", AccessClass.VIEW))]
RequireRuleEdit = Annotated[bool, Depends(PermissionChecker("rule", AccessClass.EDIT))]
