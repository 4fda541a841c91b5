"""Business identifiers for borrowers, applications, loans and receipts."""
from __future__ import annotations

import logging
import re
import time
from typing import Iterable, Optional, Set

logger = logging.getLogger(__name__)

MAX_SEQUENCE = 999


def _initial(name: Optional[str]) -> str:
    name = (name or "").strip()
    return name[0].upper() if name else "X"


class BorrowerIdGenerator:
    """Initials-plus-sequence borrower ids, unique within one process run.

    The used set is process-local: two concurrent runs can still collide.
    """

    def __init__(self, used: Optional[Iterable[str]] = None, clock=None):
        self.used: Set[str] = set(used or ())
        self._clock = clock or time.time

    @classmethod
    def from_database(cls) -> "BorrowerIdGenerator":
        from lending.models import Borrower

        used = Borrower.objects.values_list("borrower_id", flat=True)
        gen = cls(used)
        logger.info("Loaded %d existing borrower IDs", len(gen.used))
        return gen

    def generate(self, first_name: Optional[str], last_name: Optional[str]) -> str:
        prefix = _initial(first_name) + _initial(last_name)
        for i in range(1, MAX_SEQUENCE + 1):
            candidate = f"{prefix}{i:03d}"
            if candidate not in self.used:
                self.used.add(candidate)
                return candidate

        # All 999 taken: timestamp suffix, bumped until unused
        suffix = int(self._clock() * 1000) % 1_000_000
        candidate = f"{prefix}{suffix:06d}"
        while candidate in self.used:
            suffix += 1
            candidate = f"{prefix}{suffix:06d}"
        self.used.add(candidate)
        logger.warning("Borrower ID sequence exhausted for %s; using %s", prefix, candidate)
        return candidate


def _timestamp_id(prefix: str) -> str:
    return f"{prefix}{str(int(time.time() * 1000))[-6:]}"


def next_sequential_id(model, field: str, prefix: str) -> str:
    """Next ``<prefix>NNN`` id after the highest existing one for ``model.field``.

    Falls back to the prefix plus the last six digits of the epoch-ms clock
    when the lookup fails.
    """
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    try:
        values = model.objects.filter(**{f"{field}__startswith": prefix}).values_list(field, flat=True)
        highest = 0
        for value in values:
            m = pattern.match(value or "")
            if m:
                highest = max(highest, int(m.group(1)))
    except Exception:
        logger.exception("Error generating %s id", prefix)
        return _timestamp_id(prefix)
    return f"{prefix}{highest + 1:03d}"


def generate_application_id() -> str:
    from lending.models import LoanApplication

    return next_sequential_id(LoanApplication, "application_id", "APP")


def generate_loan_id() -> str:
    from lending.models import Loan

    return next_sequential_id(Loan, "loan_id", "LN")


def generate_borrower_id() -> str:
    from lending.models import Borrower

    return next_sequential_id(Borrower, "borrower_id", "B")


def generate_receipt_number() -> str:
    from lending.models import Repayment

    return next_sequential_id(Repayment, "receipt_number", "REC")
