from __future__ import annotations

from datetime import UTC, datetime

import httpx
from pydantic import BaseModel, Field

# Headers describing the wire encoding of the original body. The snapshot
# holds the decoded body, so replaying them would corrupt the replay.
_WIRE_HEADERS = frozenset(
    {"content-encoding", "content-length", "transfer-encoding", "connection", "keep-alive"}
)


class CacheKey(BaseModel, frozen=True):
    """Identity of a cached request: method plus canonical absolute URL."""

    method: str = "GET"
    url: str


class ResponseSnapshot(BaseModel):
    """Fully buffered, replayable copy of a response."""

    url: str
    status_code: int
    reason: str = ""
    headers: list[tuple[str, str]] = []
    content: bytes = b""
    opaque: bool = False  # Captured by a reduced-visibility (no-cors) fetch
    stored_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_response(
        cls, response: httpx.Response, *, url: str, opaque: bool = False
    ) -> ResponseSnapshot:
        """Snapshot a response whose body has already been read."""
        return cls(
            url=url,
            status_code=response.status_code,
            reason=response.reason_phrase,
            headers=[
                (name, value)
                for name, value in response.headers.multi_items()
                if name.lower() not in _WIRE_HEADERS
            ],
            content=response.content,
            opaque=opaque,
        )

    def to_response(self, request: httpx.Request | None = None) -> httpx.Response:
        """Build a fresh, independently readable response from the snapshot."""
        return httpx.Response(
            status_code=self.status_code,
            headers=self.headers,
            content=self.content,
            request=request,
            extensions={"reason_phrase": self.reason.encode("ascii", "replace")},
        )
