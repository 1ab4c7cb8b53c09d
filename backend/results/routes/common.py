"""Helpers shared by the route blueprints."""

from __future__ import annotations

import csv
import io
import logging
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from flask import Response, jsonify
from pymongo.errors import PyMongoError

from ..config import ConfigError

logger = logging.getLogger(__name__)

DB_UNAVAILABLE_MESSAGE = "Database unavailable. Please try again later."


def _json_error(message: str, status: int, details: Dict[str, Any] | None = None):
    payload: Dict[str, Any] = {"error": message}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def _clean_string(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def handle_config_error(exc: ConfigError):
    logger.exception("Missing configuration for MongoDB")
    return _json_error(str(exc), 500)


def handle_db_error(action: str, exc: PyMongoError):
    logger.exception("%s due to MongoDB error", action)
    return _json_error(DB_UNAVAILABLE_MESSAGE, 503)


def as_double(field: str) -> Dict[str, Any]:
    """Aggregation expression reading ``field`` as a number (null when not numeric)."""

    return {
        "$convert": {
            "input": f"${field}",
            "to": "double",
            "onError": None,
            "onNull": None,
        }
    }


def parse_number_arg(raw_value: str | None, *, name: str) -> float | None:
    cleaned = _clean_string(raw_value)
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        raise ValueError(f"{name} must be a number.") from None


def csv_response(
    rows: Iterable[Mapping[str, Any]],
    fieldnames: Sequence[str],
    filename: str,
) -> Response:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=list(fieldnames), extrasaction="ignore")
    writer.writeheader()

    for row in rows:
        writer.writerow({name: _csv_value(row.get(name)) for name in fieldnames})

    response = Response(output.getvalue(), mimetype="text/csv")
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    return value


def export_filename(base: str, parts: List[str]) -> str:
    """``base.csv`` or ``base_<part>_<part>.csv`` with unsafe characters replaced."""

    suffix = "_".join(part for part in parts if part)
    name = f"{base}_{suffix}" if suffix else base
    safe = "".join(char if char.isalnum() or char in "-_" else "_" for char in name)
    return f"{safe}.csv"


__all__ = [
    "_json_error",
    "_clean_string",
    "as_double",
    "handle_config_error",
    "handle_db_error",
    "parse_number_arg",
    "csv_response",
    "export_filename",
]
