"""
Audit log endpoints - the team-scoped, paginated listing.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from eventgate.api.deps import CurrentPrincipal, DbSession
from eventgate.kernel.audit.query import AuditQueryService
from eventgate.kernel.models.permission import Action, ResourceKind
from eventgate.kernel.permissions.capabilities import has_permission
from eventgate.kernel.permissions.resolver import PermissionResolver
from eventgate.schemas.audit import AuditLogResponse, AuditPageResponse, PaginationAndSorting

router = APIRouter()


@router.get("", response_model=AuditPageResponse)
async def list_audit_logs(
    team_slug: str,
    principal: CurrentPrincipal,
    db: DbSession,
    page_index: Optional[str] = Query(None, alias="pageIndex"),
    page_size: Optional[str] = Query(None, alias="pageSize"),
    sorting: Optional[str] = Query(None, description="JSON list of {id, desc}"),
    q: Optional[str] = Query(None, description="Free-text filter"),
):
    """
    List a team's audit entries.

    The caller needs a role that can read the organization and a tie to
    the team: global admin, or creator or grantee of one of its events or
    rules.

    Paging parameters are taken as raw strings and coerced, so a bad
    pageIndex or pageSize falls back to 0 / 10 rather than failing.
    """
    if not has_permission(principal, ResourceKind.ORGANIZATION, Action.READ):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions. Required: read",
        )
    if not await PermissionResolver(db).can_view_team(team_slug, principal.id):
        # Unknown teams and foreign teams look the same to the caller
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions. Required: read",
        )

    options = PaginationAndSorting(
        page_index=page_index,
        page_size=page_size,
        sorting=sorting,
        q=q,
    )
    page = await AuditQueryService(db).fetch_audit_logs(team_slug, options)
    return AuditPageResponse(
        rows=[AuditLogResponse.model_validate(row) for row in page.rows],
        total=page.total,
    )
