"""
JSON response helpers and error mapping for the HTTP boundary.

Why:
    Course endpoints expose user- and role-scoped data, so every response is
    marked `private, no-store`. Typed course errors are mapped to one status
    per status class so routes can let them propagate.
"""
from __future__ import annotations

from typing import Any

from fastapi.responses import JSONResponse, Response

from backend.courses import errors

_STATUS_BY_CLASS = {
    errors.UNAUTHENTICATED: 401,
    errors.FORBIDDEN: 403,
    errors.NOT_FOUND: 404,
    errors.VALIDATION: 400,
    errors.CONFLICT: 409,
}

PRIVATE_HEADERS = {"Cache-Control": "private, no-store"}


def status_for(exc: errors.CourseError) -> int:
    return _STATUS_BY_CLASS.get(exc.status_class, 400)


def _json_private(payload: Any, *, status_code: int = 200) -> JSONResponse:
    """Return a JSONResponse with cache disabled for shared caches and browsers."""
    return JSONResponse(content=payload, status_code=status_code, headers=dict(PRIVATE_HEADERS))


def _no_content() -> Response:
    return Response(status_code=204, headers=dict(PRIVATE_HEADERS))


def error_response(exc: errors.CourseError) -> JSONResponse:
    return _json_private(exc.to_dict(), status_code=status_for(exc))


def bad_request(detail: str, message: str) -> JSONResponse:
    return _json_private(
        {"error": errors.ValidationError.code, "detail": detail, "message": message},
        status_code=400,
    )
