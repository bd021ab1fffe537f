from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    CATALOG_READ_FAILED = "CATALOG_READ_FAILED"
    UPSTREAM_FETCH_FAILED = "UPSTREAM_FETCH_FAILED"
    SCOREBOARD_FETCH_FAILED = "SCOREBOARD_FETCH_FAILED"
    STORE_READ_FAILED = "STORE_READ_FAILED"
    NOT_CACHED = "NOT_CACHED"


class GuideCacheError(Exception):
    """Raised for all expected failure conditions of the freshness engine.

    Upstream clients raise it for per-channel and per-league failures, which
    the refresh coordinator and the sports poller absorb. The durable store
    raises it for catalog-read failures, which propagate out of ``refresh``
    and are serialised into the HTTP error envelope by server.py.
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
