"""Normalise raw result rows before they are written to MongoDB."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple

from .analytics import clean_student_id, format_number, to_number
from .dates import normalize_exam_date
from .db import ERROR_REPORT_COLLECTION, RESULTS_COLLECTION, SCORE_FIELDS

logger = logging.getLogger(__name__)

DATE_FIELDS = ("DATE", "Exam_Date")

NUMERIC_FIELDS = SCORE_FIELDS + ("Q_No", "National_Wide_Error", "Key_Value", "Year")

DUPLICATE_KEYS: Dict[str, Tuple[str, ...]] = {
    RESULTS_COLLECTION: ("STUD_ID", "Test"),
    ERROR_REPORT_COLLECTION: ("STUD_ID", "Test", "Q_No"),
}


def normalize_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    """Trim keys and text, coerce marks to numbers and dates to ``DD-MM-YYYY``."""

    document: Dict[str, Any] = {}
    for raw_key, value in row.items():
        key = str(raw_key).strip()
        if isinstance(value, str):
            value = value.strip()

        if key == "STUD_ID":
            value = clean_student_id(to_number(value) if _is_spreadsheet_number(value) else value)
        elif key in DATE_FIELDS:
            value = normalize_exam_date(value)
        elif key in NUMERIC_FIELDS:
            number = to_number(value)
            value = format_number(number) if number is not None else value

        document[key] = value
    return document


def _is_spreadsheet_number(value: Any) -> bool:
    # Spreadsheets turn long ids into floats or scientific notation. Plain
    # digit strings are ids as typed and keep their leading zeros.
    if isinstance(value, float):
        return True
    if not isinstance(value, str) or to_number(value) is None:
        return False
    text = value.strip()
    return "." in text or "e" in text.lower()


def duplicate_key(collection_name: str, document: Mapping[str, Any]) -> Tuple[str, ...] | None:
    fields = DUPLICATE_KEYS.get(collection_name)
    if not fields:
        return None
    return tuple(str(document.get(field, "")).strip().upper() for field in fields)


def prepare_documents(
    collection_name: str,
    rows: Iterable[Mapping[str, Any]],
    existing_keys: Iterable[Tuple[str, ...]] = (),
) -> Tuple[List[Dict[str, Any]], int]:
    """Normalise rows and drop those whose duplicate key was already seen.

    Returns the documents to insert and the number of skipped duplicates.
    Collections without a duplicate key are normalised only.
    """

    seen: Set[Tuple[str, ...]] = set(existing_keys)
    documents: List[Dict[str, Any]] = []
    skipped = 0

    for row in rows:
        document = normalize_row(row) if collection_name in DUPLICATE_KEYS else dict(row)
        key = duplicate_key(collection_name, document)
        if key is not None:
            if key in seen:
                skipped += 1
                continue
            seen.add(key)
        documents.append(document)

    if skipped:
        logger.info("Skipped %d duplicate row(s) for %s", skipped, collection_name)
    return documents, skipped


__all__ = ["normalize_row", "duplicate_key", "prepare_documents"]
