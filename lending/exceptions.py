from __future__ import annotations

from typing import Any


class LendingError(Exception):
    """Base class for invalid lending operations.

    ``code`` is surfaced in the HTTP error envelope.
    """

    code = "lending_error"

    def __init__(self, detail: str, *, code: str | None = None, fields: dict[str, Any] | None = None):
        super().__init__(detail)
        self.detail = detail
        if code:
            self.code = code
        self.fields = fields or {}


class NotFound(LendingError):
    code = "not_found"


class InvalidAmount(LendingError):
    code = "invalid_amount"


class InvalidState(LendingError):
    code = "invalid_state"


class InsufficientFunds(LendingError):
    code = "insufficient_funds"
