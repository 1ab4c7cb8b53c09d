"""Exam date parsing and formatting.

Exam dates arrive from spreadsheets in several shapes (``DD-MM-YYYY``,
``DD/MM/YY``, ISO dates, Excel serial numbers). They are stored as
``DD-MM-YYYY`` strings, which do not sort chronologically as text, so every
ordering by date goes through :func:`exam_date_sort_key`.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any, Tuple

_DMY_PATTERN = re.compile(r"^(\d{1,2})[-/.](\d{1,2})[-/.](\d{2,4})")
_ISO_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_EXCEL_SERIAL_PATTERN = re.compile(r"^\d{5}(\.\d+)?$")
_EXCEL_EPOCH = date(1899, 12, 30)

MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_exam_date(value: Any) -> date | None:
    """Return the calendar date for ``value`` or ``None`` when unparseable."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    if _EXCEL_SERIAL_PATTERN.match(text):
        serial = float(text)
        return _EXCEL_EPOCH + timedelta(days=int(round(serial)))

    iso_match = _ISO_PATTERN.match(text)
    if iso_match:
        year, month, day = (int(part) for part in iso_match.groups())
        return _safe_date(year, month, day)

    dmy_match = _DMY_PATTERN.match(text)
    if dmy_match:
        day_raw, month_raw, year_raw = dmy_match.groups()
        year = int(year_raw)
        if len(year_raw) == 2:
            year += 2000
        return _safe_date(year, int(month_raw), int(day_raw))

    return None


def normalize_exam_date(value: Any) -> str:
    """Return ``value`` as ``DD-MM-YYYY``, or stripped text when unparseable."""

    parsed = parse_exam_date(value)
    if parsed is None:
        return "" if value is None else str(value).strip()
    return f"{parsed.day:02d}-{parsed.month:02d}-{parsed.year}"


def format_exam_date(value: Any, style: str = "dd/mm/yyyy") -> str:
    """Format an exam date for display.

    ``style`` is ``"dd/mm/yyyy"`` or ``"dd-mmm-yy"``. Input that cannot be
    parsed is returned unchanged (as text).
    """

    if value is None or value == "":
        return ""

    parsed = parse_exam_date(value)
    if parsed is None:
        return str(value)

    if style == "dd-mmm-yy":
        month = MONTH_ABBREVIATIONS[parsed.month - 1]
        return f"{parsed.day:02d}-{month}-{str(parsed.year)[-2:]}"
    return f"{parsed.day:02d}/{parsed.month:02d}/{parsed.year}"


def exam_date_sort_key(value: Any) -> Tuple[int, date]:
    """Sort key ordering parsed dates chronologically, unparseable ones last."""

    parsed = parse_exam_date(value)
    if parsed is None:
        return (1, date.max)
    return (0, parsed)


__all__ = [
    "parse_exam_date",
    "normalize_exam_date",
    "format_exam_date",
    "exam_date_sort_key",
]
