"""Duplicate-before-use for single-consumption response bodies.

A network response body can be read once. Any response that is both stored
and returned is buffered exactly once here, before either consumer sees it,
and handed out as two independent copies backed by the same bytes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from zencache.models.cache import ResponseSnapshot

if TYPE_CHECKING:
    import httpx


async def duplicate_response(
    response: httpx.Response,
    request: httpx.Request,
    *,
    url: str,
    opaque: bool = False,
) -> tuple[httpx.Response, ResponseSnapshot]:
    """Buffer ``response`` and return ``(caller_copy, stored_copy)``.

    The caller copy is a fresh ``httpx.Response`` bound to ``request`` (the
    request the caller issued); the stored copy is a ``ResponseSnapshot``
    ready for the bucket. The network stream is closed afterwards.
    """
    try:
        await response.aread()
    finally:
        await response.aclose()
    snapshot = ResponseSnapshot.from_response(response, url=url, opaque=opaque)
    return snapshot.to_response(request), snapshot
