"""Unit tests for the resource grant store."""

import uuid

import pytest
from sqlalchemy import func, select

from eventgate.kernel.errors import InvalidGrantError, StoreFailureError
from eventgate.kernel.models import EventPermission
from eventgate.kernel.models.permission import ResourceKind, Role
from eventgate.kernel.permissions.grant_store import GrantStore, as_uuid
from eventgate.kernel.result import ErrorKind


class TestLookups:

    @pytest.mark.asyncio
    async def test_get_event(self, db_session, test_event, creator):
        result = await GrantStore(db_session).get_event(test_event.id)
        assert result.ok
        assert result.value.team_slug == "acme"
        assert result.value.created_by_id == creator.id

    @pytest.mark.asyncio
    async def test_get_event_not_found(self, db_session):
        result = await GrantStore(db_session).get_event(uuid.uuid4())
        assert result.error is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_malformed_id_is_not_found(self, db_session):
        store = GrantStore(db_session)
        assert (await store.get_event("abc")).not_found
        assert (await store.get_rule_parent("")).not_found
        assert (await store.get_grant(ResourceKind.EVENT, "abc", uuid.uuid4())).not_found

    @pytest.mark.asyncio
    async def test_get_rule_parent(self, db_session, test_rule, test_event):
        result = await GrantStore(db_session).get_rule_parent(test_rule.id)
        assert result.value == test_event.id

    @pytest.mark.asyncio
    async def test_get_global_role(self, db_session, admin, outsider):
        store = GrantStore(db_session)
        assert (await store.get_global_role(admin.id)).value == "admin"
        missing_role = await store.get_global_role(outsider.id)
        assert missing_role.ok and missing_role.value is None
        assert (await store.get_global_role(uuid.uuid4())).not_found

    @pytest.mark.asyncio
    async def test_has_team_access(self, db_session, test_event, test_rule, creator, outsider, make_user):
        store = GrantStore(db_session)
        assert (await store.has_team_access(creator.id, "acme")).value is True
        assert (await store.has_team_access(creator.id, "globex")).value is False
        assert (await store.has_team_access(outsider.id, "acme")).value is False

        await store.put_grant(ResourceKind.EVENT, test_event.id, outsider.id, Role.VIEWER)
        assert (await store.has_team_access(outsider.id, "acme")).value is True

        rule_grantee = await make_user()
        await store.put_grant(ResourceKind.RULE, test_rule.id, rule_grantee.id, Role.MEMBER)
        assert (await store.has_team_access(rule_grantee.id, "acme")).value is True
        assert (await store.has_team_access(rule_grantee.id, "globex")).value is False

        assert (await store.has_team_access("abc", "acme")).value is False

    @pytest.mark.asyncio
    async def test_organization_has_no_grants(self, db_session):
        result = await GrantStore(db_session).get_grant(ResourceKind.ORGANIZATION, uuid.uuid4(), uuid.uuid4())
        assert result.not_found


class TestPutGrant:

    @pytest.mark.asyncio
    async def test_create_grant(self, db_session, test_event, outsider):
        store = GrantStore(db_session)
        change = await store.put_grant(ResourceKind.EVENT, test_event.id, outsider.id, "viewer")
        await db_session.commit()

        assert change.before is None
        assert change.after.role is Role.VIEWER
        assert change.after.resource_id == test_event.id
        assert change.after.principal_id == outsider.id

        found = await store.get_grant(ResourceKind.EVENT, test_event.id, outsider.id)
        assert found.value.granted_role == "viewer"

    @pytest.mark.asyncio
    async def test_replace_keeps_one_row(self, db_session, test_event, outsider):
        store = GrantStore(db_session)
        await store.put_grant(ResourceKind.EVENT, test_event.id, outsider.id, Role.VIEWER)
        change = await store.put_grant(ResourceKind.EVENT, test_event.id, outsider.id, Role.MEMBER)
        await db_session.commit()

        assert change.before.role is Role.VIEWER
        assert change.after.role is Role.MEMBER

        count = (await db_session.execute(
            select(func.count()).select_from(EventPermission).where(
                EventPermission.event_id == test_event.id,
                EventPermission.user_id == outsider.id,
            )
        )).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_role_is_normalized(self, db_session, test_rule, outsider):
        change = await GrantStore(db_session).put_grant(ResourceKind.RULE, test_rule.id, outsider.id, " Member ")
        assert change.after.granted_role == "member"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["admin", "editor", ""])
    async def test_rejects_non_grantable_roles(self, db_session, test_event, outsider, role):
        with pytest.raises(InvalidGrantError):
            await GrantStore(db_session).put_grant(ResourceKind.EVENT, test_event.id, outsider.id, role)

    @pytest.mark.asyncio
    async def test_rejects_organization_grants(self, db_session, outsider):
        with pytest.raises(InvalidGrantError):
            await GrantStore(db_session).put_grant(ResourceKind.ORGANIZATION, uuid.uuid4(), outsider.id, "viewer")

    @pytest.mark.asyncio
    async def test_rejects_malformed_ids(self, db_session, test_event):
        with pytest.raises(InvalidGrantError):
            await GrantStore(db_session).put_grant(ResourceKind.EVENT, test_event.id, "nobody", "viewer")


class TestListAndRevoke:

    @pytest.mark.asyncio
    async def test_list_grants(self, db_session, test_event, outsider, admin):
        store = GrantStore(db_session)
        await store.put_grant(ResourceKind.EVENT, test_event.id, outsider.id, "viewer")
        await store.put_grant(ResourceKind.EVENT, test_event.id, admin.id, "owner")
        await db_session.commit()

        grants = await store.list_grants(ResourceKind.EVENT, test_event.id)
        assert {g.principal_id for g in grants} == {outsider.id, admin.id}
        assert await store.list_grants(ResourceKind.EVENT, uuid.uuid4()) == []

    @pytest.mark.asyncio
    async def test_revoke(self, db_session, test_rule, outsider):
        store = GrantStore(db_session)
        await store.put_grant(ResourceKind.RULE, test_rule.id, outsider.id, "member")
        await db_session.commit()

        change = await store.revoke_grant(ResourceKind.RULE, test_rule.id, outsider.id)
        await db_session.commit()
        assert change.before.role is Role.MEMBER
        assert change.after is None
        assert (await store.get_grant(ResourceKind.RULE, test_rule.id, outsider.id)).not_found

    @pytest.mark.asyncio
    async def test_revoke_missing_is_noop(self, db_session, test_rule, outsider):
        change = await GrantStore(db_session).revoke_grant(ResourceKind.RULE, test_rule.id, outsider.id)
        assert change.before is None and change.after is None

    @pytest.mark.asyncio
    async def test_list_failure_raises(self, db_engine, session_maker, test_event):
        async with db_engine.begin() as conn:
            await conn.exec_driver_sql("DROP TABLE event_permissions")

        async with session_maker() as session:
            with pytest.raises(StoreFailureError):
                await GrantStore(session).list_grants(ResourceKind.EVENT, test_event.id)


class TestAsUuid:

    def test_coercion(self):
        value = uuid.uuid4()
        assert as_uuid(value) is value
        assert as_uuid(str(value)) == value
        assert as_uuid("nope") is None
        assert as_uuid(None) is None
