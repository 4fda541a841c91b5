from __future__ import annotations

from typing import Any

from rest_framework.exceptions import APIException
from rest_framework.response import Response
from rest_framework.views import exception_handler

from lending.exceptions import LendingError
from utils.errors import lending_error_response


def drf_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """Global DRF exception handler.

    Normalizes errors to:
      {"detail": str, "code"?: str, "fields"?: dict}

    - LendingError => 400 (404 for NotFound) with its code and fields
    - ValidationError => fields populated
    - APIException => code populated
    """

    if isinstance(exc, LendingError):
        return lending_error_response(exc)

    resp = exception_handler(exc, context)
    if resp is None:
        return None

    data: dict[str, Any] = {}
    raw = resp.data

    if isinstance(raw, dict):
        if "detail" in raw and isinstance(raw.get("detail"), (str, list, dict)):
            data["detail"] = raw.get("detail")
        else:
            # Treat as validation-style dict of fields.
            data["detail"] = "Invalid request"
            data["fields"] = raw
    elif isinstance(raw, list):
        data["detail"] = "Invalid request"
        data["fields"] = {"non_field_errors": raw}
    elif raw is None:
        data["detail"] = "Request failed"
    else:
        data["detail"] = str(raw)

    if isinstance(exc, APIException):
        code = exc.get_codes()
        if isinstance(code, str):
            data["code"] = code
        elif isinstance(code, (dict, list)):
            data["code"] = "validation_error"
        else:
            data["code"] = getattr(exc, "default_code", "error")

    # Ensure detail is string for common cases
    if isinstance(data.get("detail"), (list, dict)):
        data["detail"] = "Invalid request"

    resp.data = data

    # Ensure 500s have a consistent envelope
    if int(resp.status_code or 0) >= 500 and not data.get("detail"):
        resp.data = {"detail": "Server error", "code": "server_error"}

    return resp
