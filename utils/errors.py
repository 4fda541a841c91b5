from __future__ import annotations

from typing import Any

from rest_framework import status
from rest_framework.response import Response

from lending.exceptions import LendingError, NotFound


def error_response(
    detail: str,
    *,
    status_code: int,
    code: str | None = None,
    fields: dict[str, Any] | None = None,
) -> Response:
    """Build the ``{"detail", "code"?, "fields"?}`` error envelope."""
    payload: dict[str, Any] = {"detail": detail}
    if code:
        payload["code"] = code
    if fields:
        payload["fields"] = fields
    return Response(payload, status=int(status_code))


def lending_error_response(exc: LendingError) -> Response:
    """Envelope for a domain error: 404 for missing records, 400 otherwise."""
    status_code = status.HTTP_404_NOT_FOUND if isinstance(exc, NotFound) else status.HTTP_400_BAD_REQUEST
    return error_response(exc.detail, status_code=status_code, code=exc.code, fields=exc.fields or None)
