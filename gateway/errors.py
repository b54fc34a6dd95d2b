# =============================================================================
# Errors — ServiceError and the Canonical Error Envelope
# =============================================================================
#
# Services raise ServiceError (status + canonical code + message). The
# exception handlers registered in main.py translate it into:
#
#   {
#     "error": {"message": "...", "code": "NOT_FOUND"},
#     "fieldErrors": {...},          # only for structural validation
#     "requestId": "<uuid4>",
#     "ts": "2026-01-01T00:00:00+00:00"
#   }
#
# Anything that is not a ServiceError becomes a generic 500; its details are
# logged server-side and never sent to the client.
# =============================================================================

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any, Literal

ErrorCode = Literal[
    "BAD_REQUEST",
    "UNAUTHORIZED",
    "FORBIDDEN",
    "NOT_FOUND",
    "METHOD_NOT_ALLOWED",
    "CONFLICT",
    "VALIDATION_ERROR",
    "TOO_MANY_REQUESTS",
    "INTERNAL",
]

_STATUS_CODES: dict[int, ErrorCode] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "TOO_MANY_REQUESTS",
}


def status_to_code(status: int) -> ErrorCode:
    """Map an HTTP status to its canonical error code (INTERNAL otherwise)."""
    return _STATUS_CODES.get(status, "INTERNAL")


class ServiceError(Exception):
    """
    Structured failure raised by the service layer.

    Args:
        message: Client-facing message.
        status: HTTP status code (default 500).
        code: Canonical code override; derived from status when omitted.
        details: Extra context, logged server-side only.
        field_errors: Field -> message map for structural validation errors.
        headers: Extra response headers (e.g. Retry-After).
    """

    def __init__(
        self,
        message: str,
        status: int = 500,
        code: ErrorCode | None = None,
        details: Any = None,
        field_errors: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code: ErrorCode = code or status_to_code(status)
        self.details = details
        self.field_errors = field_errors
        self.headers = headers

    def __repr__(self) -> str:
        return f"ServiceError(status={self.status}, code={self.code!r}, message={self.message!r})"


def make_request_id() -> str:
    """Fresh correlation id for one error response."""
    return str(uuid.uuid4())


def error_payload(
    message: str,
    status: int,
    code: ErrorCode | None = None,
    field_errors: dict[str, str] | None = None,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Build the JSON error envelope returned for every failed request."""
    payload: dict[str, Any] = {
        "error": {
            "message": message,
            "code": code or status_to_code(status),
        },
        "requestId": request_id or make_request_id(),
        "ts": datetime.now(UTC).isoformat(),
    }
    if field_errors:
        payload["fieldErrors"] = field_errors
    return payload
