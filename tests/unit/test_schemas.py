"""Unit tests for request/response schemas."""

import uuid

import pytest

from eventgate.kernel.models.audit_log import AuditAction
from eventgate.schemas.audit import MAX_OFFSET, AuditEntryCreate, PaginationAndSorting


class TestPaginationCoercion:

    def test_defaults(self):
        opts = PaginationAndSorting()
        assert opts.page_index == 0
        assert opts.page_size == 10
        assert opts.sorting == []
        assert opts.q == ""
        assert opts.offset == 0

    def test_accepts_camel_case(self):
        opts = PaginationAndSorting(pageIndex="2", pageSize="25")
        assert (opts.page_index, opts.page_size, opts.offset) == (2, 25, 50)

    @pytest.mark.parametrize("value", [None, "", "abc", "-1", -3, "1.5"])
    def test_bad_page_index_becomes_zero(self, value):
        assert PaginationAndSorting(page_index=value).page_index == 0

    @pytest.mark.parametrize("value", [None, "", "abc", "0", -10])
    def test_bad_page_size_becomes_ten(self, value):
        assert PaginationAndSorting(page_size=value).page_size == 10

    def test_page_size_is_capped(self):
        assert PaginationAndSorting(page_size=5000).page_size == 100

    @pytest.mark.parametrize("value", ["99999999999999999999", 2 ** 63, float("inf")])
    def test_page_index_past_offset_range_becomes_zero(self, value):
        opts = PaginationAndSorting(page_index=value, page_size=100)
        assert opts.page_index == 0
        assert opts.offset == 0

    def test_largest_page_index_keeps_offset_in_range(self):
        opts = PaginationAndSorting(page_index=MAX_OFFSET // 100, page_size=100)
        assert opts.page_index == MAX_OFFSET // 100
        assert opts.offset <= MAX_OFFSET

    def test_sorting_from_json(self):
        opts = PaginationAndSorting(sorting='[{"id": "action", "desc": true}]')
        assert len(opts.sorting) == 1
        assert opts.sorting[0].id == "action"
        assert opts.sorting[0].desc is True

    @pytest.mark.parametrize("value", ["not json", "{}", '[{"desc": true}]', 42])
    def test_malformed_sorting_is_empty(self, value):
        assert PaginationAndSorting(sorting=value).sorting == []

    def test_q_is_stripped(self):
        assert PaginationAndSorting(q="  checkout ").q == "checkout"


class TestAuditEntryCreate:

    def test_ids_are_stringified(self):
        entity_id, actor_id = uuid.uuid4(), uuid.uuid4()
        entry = AuditEntryCreate(
            team_slug="acme",
            action=AuditAction.CREATE,
            entity_type="event",
            entity_id=entity_id,
            actor_id=actor_id,
            after={"label": "New"},
        )
        assert entry.entity_id == str(entity_id)
        assert entry.actor_id == str(actor_id)
        assert entry.before is None
        assert entry.created_at.tzinfo is not None

    def test_action_must_be_known(self):
        with pytest.raises(ValueError):
            AuditEntryCreate(team_slug="acme", action="archive", entity_type="event")
