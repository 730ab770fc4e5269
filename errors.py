"""Error taxonomy shared by the Log Access API, the HTTP client and the UI layer.

``InvalidRequest`` is always a caller bug and is never retried.
``StoreUnavailable`` covers backend failures; ``StoreInitializationError``
is the structured variant raised when the store cannot be opened.
``NetworkFailure`` means the request never completed and is treated like
``StoreUnavailable`` by the UI.
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "InvalidRequest",
    "LogAccessError",
    "NetworkFailure",
    "StoreInitializationError",
    "StoreUnavailable",
    "check_result",
]


class LogAccessError(Exception):
    """Base class for every failure crossing the log-access boundary."""

    status_code: int = 500
    code: str = "LOG_ACCESS_ERROR"

    def __init__(self, message: str, *, code: str | None = None, cause: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Diagnostic triple (plus the error class name) for JSON responses."""
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "cause": None if self.cause is None else str(self.cause),
        }


class InvalidRequest(LogAccessError):
    status_code = 400
    code = "INVALID_REQUEST"


class StoreUnavailable(LogAccessError):
    status_code = 500
    code = "STORE_UNAVAILABLE"


class StoreInitializationError(StoreUnavailable):
    code = "STORE_INIT_FAILED"


class NetworkFailure(LogAccessError):
    status_code = 503
    code = "NETWORK_FAILURE"


_ERROR_TYPES: dict[str, type[LogAccessError]] = {
    "invalid_request": InvalidRequest,
    "store_unavailable": StoreUnavailable,
    "network": NetworkFailure,
}


def check_result(result: dict[str, Any]) -> dict[str, Any]:
    """Raise the matching ``LogAccessError`` if the client returned an error dict."""
    if isinstance(result, dict) and result.get("status") == "error":
        exc_type = _ERROR_TYPES.get(result.get("error_type", ""), StoreUnavailable)
        raise exc_type(result.get("message") or "Medication log request failed")
    return result
