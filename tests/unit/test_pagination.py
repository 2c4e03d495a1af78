"""
Unit tests for cursor pagination
"""

import pytest

from mcp_gateway.adapters import InMemoryAdapter
from mcp_gateway.infrastructure.error_handling import ErrorCode, InvalidCursorError
from mcp_gateway.pagination import Paginator, filter_fingerprint


@pytest.fixture
def letters():
    return InMemoryAdapter("letters", [{"id": c, "kind": "vowel" if c in "ae" else "consonant"} for c in "abcde"])


@pytest.fixture
def paginator(clock):
    return Paginator(secret=b"k", max_page_size=100, default_page_size=25, cursor_ttl=60, clock=clock)


def ids(page):
    return [item["id"] for item in page.items]


class TestPaginate:
    """Page slicing and continuation"""

    @pytest.mark.asyncio
    async def test_five_items_page_size_two(self, paginator, letters):
        first = await paginator.paginate(letters.list, {}, page_size=2)
        assert ids(first) == ["a", "b"]
        assert first.next_cursor is not None
        assert first.may_be_stale is False

        second = await paginator.paginate(letters.list, {}, page_size=2, cursor=first.next_cursor)
        assert ids(second) == ["c", "d"]
        assert second.next_cursor is not None
        assert second.may_be_stale is True

        third = await paginator.paginate(letters.list, {}, page_size=2, cursor=second.next_cursor)
        assert ids(third) == ["e"]
        assert third.next_cursor is None
        assert third.to_dict()["hasMore"] is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [1, 2, 3, 4, 5, 7, 100])
    async def test_replay_has_no_gap_or_overlap(self, paginator, letters, size):
        seen, cursor = [], None
        while True:
            page = await paginator.paginate(letters.list, {}, page_size=size, cursor=cursor)
            assert len(page.items) <= size
            seen.extend(ids(page))
            cursor = page.next_cursor
            if cursor is None:
                break
        assert seen == list("abcde")

    @pytest.mark.asyncio
    async def test_exact_fit_has_no_next_cursor(self, paginator, letters):
        page = await paginator.paginate(letters.list, {}, page_size=5)
        assert ids(page) == list("abcde")
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_filter_is_applied(self, paginator, letters):
        page = await paginator.paginate(letters.list, {"kind": "vowel"}, page_size=10)
        assert ids(page) == ["a", "e"]

    @pytest.mark.asyncio
    async def test_empty_result(self, paginator, letters):
        page = await paginator.paginate(letters.list, {"kind": "digit"})
        assert page.items == []
        assert page.to_dict()["nextPageToken"] is None


class TestPageSize:
    """Clamping to [1, max]"""

    def test_clamping(self, paginator):
        assert paginator.clamp_page_size(None) == 25
        assert paginator.clamp_page_size(0) == 1
        assert paginator.clamp_page_size(-4) == 1
        assert paginator.clamp_page_size(500) == 100
        assert paginator.clamp_page_size(40) == 40

    def test_requires_secret(self):
        with pytest.raises(ValueError):
            Paginator(secret=b"")


class TestCursorValidation:
    """Cursors are bound to their filter, signed and short-lived"""

    @pytest.mark.asyncio
    async def test_cursor_rejected_for_other_filter(self, paginator, letters):
        page = await paginator.paginate(letters.list, {"kind": "consonant"}, page_size=1)
        with pytest.raises(InvalidCursorError) as exc_info:
            await paginator.paginate(letters.list, {"kind": "vowel"}, page_size=1, cursor=page.next_cursor)
        assert exc_info.value.code is ErrorCode.INVALID_CURSOR

    @pytest.mark.asyncio
    async def test_tampered_cursor_rejected(self, paginator, letters):
        page = await paginator.paginate(letters.list, {}, page_size=1)
        payload, tag = page.next_cursor.split(".")
        forged = paginator.encode_cursor(3, {}).split(".")[0] + "." + tag
        with pytest.raises(InvalidCursorError):
            paginator.decode_cursor(forged, {})

    @pytest.mark.parametrize("cursor", ["garbage", "a.b.c", "", "###.###"])
    def test_malformed_cursor_rejected(self, paginator, cursor):
        with pytest.raises(InvalidCursorError):
            paginator.decode_cursor(cursor, {})

    def test_cursor_from_other_secret_rejected(self, paginator, clock):
        other = Paginator(secret=b"other", clock=clock)
        with pytest.raises(InvalidCursorError):
            paginator.decode_cursor(other.encode_cursor(2, {}), {})

    def test_expired_cursor_rejected(self, paginator, clock):
        cursor = paginator.encode_cursor(2, {})
        clock.advance(61)
        with pytest.raises(InvalidCursorError):
            paginator.decode_cursor(cursor, {})

    def test_round_trip_offset(self, paginator):
        assert paginator.decode_cursor(paginator.encode_cursor(42, {"a": 1}), {"a": 1}) == 42

    def test_fingerprint_ignores_key_order(self):
        assert filter_fingerprint({"a": 1, "b": 2}) == filter_fingerprint({"b": 2, "a": 1})
        assert filter_fingerprint(None) == filter_fingerprint({})
        assert filter_fingerprint({"a": 1}) != filter_fingerprint({"a": 2})
