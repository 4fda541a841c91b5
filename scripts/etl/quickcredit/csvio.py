"""CSV reading for the QuickCredit export files.

The spreadsheets are exported as comma-delimited text with optional double
quotes; headers carry stray whitespace and some exports start with a BOM.
"""
from __future__ import annotations

import csv
import io
from pathlib import Path
from typing import Dict, Iterable, List


def _rows(lines: Iterable[str]) -> List[Dict[str, str]]:
    reader = csv.reader(lines)
    header: List[str] = []
    out: List[Dict[str, str]] = []
    for cells in reader:
        if not cells or all(not c.strip() for c in cells):
            continue
        if not header:
            header = [h.strip() for h in cells]
            continue
        row = {}
        for i, name in enumerate(header):
            if not name:
                continue
            row[name] = cells[i] if i < len(cells) else ""
        out.append(row)
    return out


def parse_text(text: str) -> List[Dict[str, str]]:
    """Parse CSV text into header-keyed dicts; missing trailing cells read as ""."""
    if text.startswith("\ufeff"):
        text = text[1:]
    return _rows(io.StringIO(text, newline=""))


def read_rows(path: Path) -> List[Dict[str, str]]:
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        return _rows(f)


def pick(row: Dict[str, str], *aliases: str, default: str = "") -> str:
    """First alias whose trimmed value is non-empty."""
    for name in aliases:
        value = (row.get(name) or "").strip()
        if value:
            return value
    return default
