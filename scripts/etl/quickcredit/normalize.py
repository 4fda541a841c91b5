"""Field normalizers shared by the importers and repair actions."""
from __future__ import annotations

import logging
import random
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Container, Optional, Tuple

from dateutil import parser as date_parser

logger = logging.getLogger("quickcredit_etl")

COUNTRY_CODE = "256"
_NON_AMOUNT = re.compile(r"[^\d.\-]")
_NON_DIGIT = re.compile(r"\D")
_ISO = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})(?:[T\s].*)?$")
_YEAR_FIRST = re.compile(r"^\d{4}\D")
_DMY = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")


def parse_date(value) -> Optional[date]:
    """Parse YYYY-MM-DD, DD/MM/YYYY or DD-MM-YYYY, then a free-form fallback.

    Year-first text (with or without a time part) is read year, month, day;
    everything else falls back to day-first.

    Returns None for blanks and for anything unparseable or dated 1900 or earlier.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None

    m = _ISO.match(text)
    if m:
        y, mo, d = (int(g) for g in m.groups())
    else:
        m = _DMY.match(text)
        if m:
            d, mo, y = (int(g) for g in m.groups())
    if m:
        try:
            return date(y, mo, d)
        except ValueError:
            logger.warning("Could not parse date: %s", text)
            return None

    try:
        if _YEAR_FIRST.match(text):
            parsed = date_parser.parse(text, yearfirst=True, dayfirst=False)
        else:
            parsed = date_parser.parse(text, dayfirst=True)
    except (ValueError, OverflowError):
        parsed = None
    if parsed is not None and parsed.year > 1900:
        return parsed.date()
    logger.warning("Could not parse date: %s", text)
    return None


def parse_amount(value) -> Decimal:
    """Strip everything but digits, '.' and '-'; Decimal('0') when nothing usable remains."""
    if value is None:
        return Decimal("0")
    cleaned = _NON_AMOUNT.sub("", str(value))
    if not cleaned:
        return Decimal("0")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        return Decimal("0")
    return amount if amount.is_finite() else Decimal("0")


NATIONAL_DIGITS = 9


def normalize_phone(value) -> Optional[str]:
    """Prefix a number with +256; None only when it holds no digits.

    ``256...`` keeps its code, ``0...`` drops the trunk zero and anything
    else is taken as the national number. The result is not length-checked;
    see :func:`is_valid_phone`.
    """
    if value is None:
        return None
    digits = _NON_DIGIT.sub("", str(value))
    if not digits:
        return None
    if digits.startswith(COUNTRY_CODE):
        return f"+{digits}"
    if digits.startswith("0"):
        return f"+{COUNTRY_CODE}{digits[1:]}"
    return f"+{COUNTRY_CODE}{digits}"


def is_valid_phone(phone: Optional[str]) -> bool:
    """True for a +256 number with a nine-digit national part."""
    if not phone or not phone.startswith(f"+{COUNTRY_CODE}"):
        return False
    return len(phone) == 1 + len(COUNTRY_CODE) + NATIONAL_DIGITS


def split_name(full_name: Optional[str]) -> Tuple[str, str]:
    parts = (full_name or "").split()
    first = parts[0] if parts else "Unknown"
    last = " ".join(parts[1:]) or "User"
    return first, last


def fabricate_phone(used: Container[str], rng: Optional[random.Random] = None) -> str:
    """Random +256700XXXXXX number not present in ``used``."""
    rng = rng or random
    while True:
        candidate = f"+{COUNTRY_CODE}700{rng.randint(0, 999999):06d}"
        if candidate not in used:
            return candidate
