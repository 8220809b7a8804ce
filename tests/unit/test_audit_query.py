"""Unit tests for the audit log read path."""

import uuid
from datetime import timedelta

import pytest

from eventgate.kernel.audit.query import AuditQueryService, fetch_audit_logs
from eventgate.kernel.audit.recorder import AuditRecorder
from eventgate.kernel.errors import StoreFailureError
from eventgate.kernel.models import AuditLog
from eventgate.kernel.models.audit_log import AuditAction
from eventgate.kernel.models.base import utcnow
from eventgate.schemas.audit import AuditEntryCreate, PaginationAndSorting


async def seed(session_maker, count: int, team_slug: str = "acme", **overrides):
    """Insert ``count`` rows, one second apart, oldest first."""
    start = utcnow() - timedelta(hours=1)
    rows = []
    async with session_maker() as session:
        for i in range(count):
            values = dict(
                id=uuid.uuid4(),
                team_slug=team_slug,
                created_at=start + timedelta(seconds=i),
                action="update",
                entity_type="event",
                entity_id=str(uuid.uuid4()),
                actor_id=str(uuid.uuid4()),
                actor_type="user",
                source="api",
                payload={"before": None, "after": {"step": i}},
            )
            values.update(overrides)
            row = AuditLog(**values)
            session.add(row)
            rows.append(row)
        await session.commit()
    return rows


def options(**kwargs) -> PaginationAndSorting:
    return PaginationAndSorting(**kwargs)


class TestPaging:

    @pytest.mark.asyncio
    async def test_empty_team(self, session_maker):
        async with session_maker() as session:
            page = await AuditQueryService(session).fetch_audit_logs("nobody", options())
        assert page.rows == []
        assert page.total == 0

    @pytest.mark.asyncio
    async def test_total_counts_all_rows(self, session_maker):
        await seed(session_maker, 25)
        async with session_maker() as session:
            page = await AuditQueryService(session).fetch_audit_logs("acme", options(pageIndex=0, pageSize=10))
        assert len(page.rows) == 10
        assert page.total == 25

    @pytest.mark.asyncio
    async def test_pages_are_disjoint_and_complete(self, session_maker):
        seeded = await seed(session_maker, 23)
        seen = []
        async with session_maker() as session:
            service = AuditQueryService(session)
            for index in range(3):
                page = await service.fetch_audit_logs("acme", options(pageIndex=index, pageSize=10))
                seen.extend(row.id for row in page.rows)
        assert len(seen) == 23
        assert set(seen) == {row.id for row in seeded}

    @pytest.mark.asyncio
    async def test_pages_disjoint_with_tied_sort_keys(self, session_maker):
        await seed(session_maker, 12, created_at=utcnow(), action="delete")
        async with session_maker() as session:
            service = AuditQueryService(session)
            sort = [{"id": "action", "desc": False}]
            first = await service.fetch_audit_logs("acme", options(pageSize=5, sorting=sort))
            second = await service.fetch_audit_logs("acme", options(pageIndex=1, pageSize=5, sorting=sort))
        assert not {r.id for r in first.rows} & {r.id for r in second.rows}

    @pytest.mark.asyncio
    async def test_page_past_end_is_empty(self, session_maker):
        await seed(session_maker, 3)
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(pageIndex=5, pageSize=10))
        assert page.rows == []
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_huge_page_index_falls_back_to_first_page(self, session_maker):
        await seed(session_maker, 3)
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(pageIndex="99999999999999999999"))
        assert len(page.rows) == 3
        assert page.total == 3

    @pytest.mark.asyncio
    async def test_scoped_to_team(self, session_maker):
        await seed(session_maker, 4, team_slug="acme")
        await seed(session_maker, 2, team_slug="globex")
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "globex", options())
        assert page.total == 2
        assert all(row.team_slug == "globex" for row in page.rows)


class TestSorting:

    @pytest.mark.asyncio
    async def test_default_is_newest_first(self, session_maker):
        await seed(session_maker, 5)
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options())
        steps = [row.payload["after"]["step"] for row in page.rows]
        assert steps == [4, 3, 2, 1, 0]

    @pytest.mark.asyncio
    async def test_tied_timestamps_keep_recording_order(self, session_maker, settings):
        recorder = AuditRecorder(session_maker, settings)
        created_at = utcnow()
        for i in range(5):
            await recorder.record(AuditEntryCreate(
                team_slug="acme",
                action=AuditAction.UPDATE,
                entity_type="event",
                entity_id=str(uuid.uuid4()),
                after={"step": i},
                created_at=created_at,
            ))
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options())
        steps = [row.payload["after"]["step"] for row in page.rows]
        assert steps == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_explicit_ascending(self, session_maker):
        await seed(session_maker, 5)
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(sorting=[{"id": "createdAt", "desc": False}]))
        steps = [row.payload["after"]["step"] for row in page.rows]
        assert steps == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_multi_column_sort(self, session_maker):
        await seed(session_maker, 2, action="create")
        await seed(session_maker, 2, action="delete")
        sort = [{"id": "action", "desc": True}, {"id": "created_at", "desc": True}]
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(sorting=sort))
        assert [row.action for row in page.rows] == ["delete", "delete", "create", "create"]

    @pytest.mark.asyncio
    async def test_unknown_sort_key_ignored(self, session_maker):
        await seed(session_maker, 3)
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(sorting=[{"id": "payload", "desc": False}]))
        steps = [row.payload["after"]["step"] for row in page.rows]
        assert steps == [2, 1, 0]


class TestSearch:

    @pytest.mark.asyncio
    async def test_filter_by_action(self, session_maker):
        await seed(session_maker, 3, action="create")
        await seed(session_maker, 2, action="delete")
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(q="DELETE"))
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_filter_by_entity_id(self, session_maker):
        target = str(uuid.uuid4())
        await seed(session_maker, 3)
        await seed(session_maker, 1, entity_id=target)
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(q=target[:8]))
        assert page.total == 1
        assert page.rows[0].entity_id == target

    @pytest.mark.asyncio
    async def test_filter_matches_payload(self, session_maker):
        await seed(session_maker, 2)
        await seed(session_maker, 1, payload={"before": None, "after": {"label": "Checkout Completed"}})
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(q="checkout"))
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_filter_matches_metadata(self, session_maker):
        await seed(session_maker, 2)
        await seed(session_maker, 1, extra_metadata={"grantee_id": "abc", "client_ip": "10.9.8.7"})
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(q="10.9.8"))
        assert page.total == 1
        assert page.rows[0].extra_metadata["client_ip"] == "10.9.8.7"

    @pytest.mark.asyncio
    async def test_filter_by_row_id_prefix(self, session_maker):
        await seed(session_maker, 3)
        (target,) = await seed(session_maker, 1)
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(q=str(target.id)[:8]))
        assert [row.id for row in page.rows] == [target.id]

    @pytest.mark.asyncio
    async def test_wildcards_are_literal(self, session_maker):
        await seed(session_maker, 3)
        async with session_maker() as session:
            page = await fetch_audit_logs(session, "acme", options(q="%"))
        assert page.total == 0


class TestStoreFailure:

    @pytest.mark.asyncio
    async def test_query_failure_raises(self, db_engine, session_maker):
        async with db_engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE audit_logs")
        async with session_maker() as session:
            with pytest.raises(StoreFailureError):
                await fetch_audit_logs(session, "acme", options())
