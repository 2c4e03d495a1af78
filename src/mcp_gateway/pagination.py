"""
Cursor Pagination
Opaque, signed page tokens bound to the filter they were issued for

Token layout: base64url(JSON payload) "." base64url(HMAC-SHA256 tag). The
payload carries the next offset, a fingerprint of the filter and the issue
time. Offsets are not stable under concurrent mutation, so every continuation
page is flagged mayBeStale.
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from .infrastructure.error_handling import InvalidCursorError

logger = logging.getLogger(__name__)

# (filter, offset, limit) -> items
PageSource = Callable[[Mapping[str, Any], int, int], Awaitable[List[Any]]]

_TAG_BYTES = 16


def filter_fingerprint(filter: Optional[Mapping[str, Any]]) -> str:
    """Stable digest of a filter mapping, independent of key order"""
    canonical = json.dumps(filter or {}, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


@dataclass
class Page:
    """One bounded slice of a result set"""
    items: List[Any]
    next_cursor: Optional[str]
    may_be_stale: bool
    page_size: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "nextPageToken": self.next_cursor,
            "hasMore": self.next_cursor is not None,
            "pageSize": self.page_size,
            "mayBeStale": self.may_be_stale,
        }


class Paginator:
    """Turns (filter, pageSize, cursor) into a Page and the next cursor"""

    def __init__(self,
                 secret: bytes,
                 max_page_size: int = MAX_PAGE_SIZE,
                 default_page_size: int = DEFAULT_PAGE_SIZE,
                 cursor_ttl: float = 3600.0,
                 clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("Paginator needs a non-empty signing secret")
        self._secret = secret
        self.max_page_size = max_page_size
        self.default_page_size = min(default_page_size, max_page_size)
        self.cursor_ttl = cursor_ttl
        self.clock = clock

    def clamp_page_size(self, page_size: Optional[int]) -> int:
        if page_size is None:
            return self.default_page_size
        return max(1, min(int(page_size), self.max_page_size))

    def _sign(self, payload: bytes) -> bytes:
        return hmac.new(self._secret, payload, hashlib.sha256).digest()[:_TAG_BYTES]

    def encode_cursor(self, offset: int, filter: Optional[Mapping[str, Any]]) -> str:
        payload = json.dumps(
            {"o": offset, "f": filter_fingerprint(filter), "t": int(self.clock())},
            separators=(",", ":"),
        ).encode("utf-8")
        return f"{_b64encode(payload)}.{_b64encode(self._sign(payload))}"

    def decode_cursor(self, cursor: str, filter: Optional[Mapping[str, Any]]) -> int:
        """Return the offset a cursor points at, or raise InvalidCursorError"""
        try:
            encoded_payload, encoded_tag = cursor.split(".", 1)
            payload = _b64decode(encoded_payload)
            tag = _b64decode(encoded_tag)
        except (ValueError, AttributeError) as e:
            raise InvalidCursorError("Malformed pageToken") from e

        if not hmac.compare_digest(tag, self._sign(payload)):
            raise InvalidCursorError("pageToken signature does not match")

        try:
            data = json.loads(payload)
            offset, fingerprint, issued_at = int(data["o"]), data["f"], float(data["t"])
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidCursorError("Malformed pageToken") from e

        if fingerprint != filter_fingerprint(filter):
            raise InvalidCursorError(
                "pageToken was issued for a different filter",
                suggestion="Repeat the original filter, or restart the listing without pageToken",
            )
        if self.clock() - issued_at > self.cursor_ttl:
            raise InvalidCursorError("pageToken has expired")
        if offset < 0:
            raise InvalidCursorError("Malformed pageToken")
        return offset

    async def paginate(self,
                       source: PageSource,
                       filter: Optional[Mapping[str, Any]] = None,
                       page_size: Optional[int] = None,
                       cursor: Optional[str] = None) -> Page:
        size = self.clamp_page_size(page_size)
        offset = self.decode_cursor(cursor, filter) if cursor else 0

        # One extra row tells us whether another page exists
        rows = list(await source(filter or {}, offset, size + 1))
        has_more = len(rows) > size
        items = rows[:size]

        next_cursor = self.encode_cursor(offset + len(items), filter) if has_more else None
        logger.debug(f"Served page offset={offset} size={len(items)} has_more={has_more}")
        return Page(items=items, next_cursor=next_cursor, may_be_stale=cursor is not None, page_size=size)
