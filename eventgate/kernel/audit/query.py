"""
Read path over the audit log: team-scoped, paginated, sorted and filtered.
"""

from dataclasses import dataclass
from typing import Dict, List

from sqlalchemy import String, asc, cast, desc, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventgate.kernel.errors import StoreFailureError
from eventgate.kernel.models.audit_log import AuditLog
from eventgate.logging_config import get_logger, log_anomaly
from eventgate.schemas.audit import PaginationAndSorting

logger = get_logger(__name__)

# Sort keys as sent by the table view (camelCase) and their snake_case twins
SORTABLE_COLUMNS: Dict[str, object] = {
    "action": AuditLog.action,
    "entityType": AuditLog.entity_type,
    "entity_type": AuditLog.entity_type,
    "entityId": AuditLog.entity_id,
    "entity_id": AuditLog.entity_id,
    "actorId": AuditLog.actor_id,
    "actor_id": AuditLog.actor_id,
    "actorType": AuditLog.actor_type,
    "actor_type": AuditLog.actor_type,
    "source": AuditLog.source,
    "createdAt": AuditLog.created_at,
    "created_at": AuditLog.created_at,
}

SEARCH_COLUMNS = (
    AuditLog.action,
    AuditLog.entity_type,
    AuditLog.entity_id,
    AuditLog.actor_id,
    AuditLog.actor_type,
    AuditLog.source,
)

# Matched on their text rendering
CAST_SEARCH_COLUMNS = (
    AuditLog.id,
    AuditLog.payload,
    AuditLog.extra_metadata,
)


@dataclass
class AuditPage:
    rows: List[AuditLog]
    total: int


def _like_pattern(q: str) -> str:
    escaped = q.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class AuditQueryService:
    """Paginated listing of a team's audit entries."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def fetch_audit_logs(self, team_slug: str, options: PaginationAndSorting) -> AuditPage:
        """
        One page of a team's audit log.

        ``total`` counts every row matching the filter, not just this page.
        Sorting falls back to newest first; the row id is always the last
        tie-breaker so consecutive pages never overlap.
        """
        conditions = [AuditLog.team_slug == team_slug]
        if options.q:
            pattern = _like_pattern(options.q)
            matches = [func.lower(column).like(pattern, escape="\\") for column in SEARCH_COLUMNS]
            matches.extend(
                func.lower(cast(column, String)).like(pattern, escape="\\")
                for column in CAST_SEARCH_COLUMNS
            )
            conditions.append(or_(*matches))

        count_query = select(func.count()).select_from(AuditLog).where(*conditions)
        rows_query = (
            select(AuditLog)
            .where(*conditions)
            .order_by(*self._order_by(options))
            .offset(options.offset)
            .limit(options.page_size)
        )

        try:
            total = (await self.session.execute(count_query)).scalar_one()
            rows = list((await self.session.execute(rows_query)).scalars().all())
        except SQLAlchemyError as exc:
            log_anomaly(logger, "Audit log query failed", team_slug=team_slug, error=str(exc))
            raise StoreFailureError("fetch_audit_logs", exc) from exc

        return AuditPage(rows=rows, total=total)

    @staticmethod
    def _order_by(options: PaginationAndSorting) -> list:
        clauses = []
        seen = set()
        for rule in options.sorting:
            column = SORTABLE_COLUMNS.get(rule.id)
            if column is None or column.key in seen:
                continue
            seen.add(column.key)
            clauses.append(desc(column) if rule.desc else asc(column))
        if not clauses:
            clauses.append(desc(AuditLog.created_at))
        clauses.append(asc(AuditLog.id))
        return clauses


async def fetch_audit_logs(
    session: AsyncSession,
    team_slug: str,
    options: PaginationAndSorting,
) -> AuditPage:
    """Fetch one page of a team's audit log."""
    return await AuditQueryService(session).fetch_audit_logs(team_slug, options)
