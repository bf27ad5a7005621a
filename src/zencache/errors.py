from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    BUCKET_OPEN_FAILED = "BUCKET_OPEN_FAILED"
    INVALID_LIFECYCLE_TRANSITION = "INVALID_LIFECYCLE_TRANSITION"
    ASSET_FETCH_FAILED = "ASSET_FETCH_FAILED"
    API_UNAVAILABLE = "API_UNAVAILABLE"
    NETWORK_ERROR = "NETWORK_ERROR"
    URL_NOT_ALLOWED = "URL_NOT_ALLOWED"


class ZenCacheError(Exception):
    """Raised for all expected failure conditions of the agent.

    Caught by the host adapters (transport, proxy) and serialised for the
    calling application. Never swallowed inside strategy code: a failure
    the agent cannot recover from locally must reach the page.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }
