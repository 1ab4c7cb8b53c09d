"""Question-level error reports built from the ERP export."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from flask import Blueprint, jsonify, request
from pymongo.errors import PyMongoError

from ..analytics import (
    SUBJECT_ORDER,
    count_errors,
    group_errors_by_student,
    group_questions_by_test,
    to_number,
)
from ..config import ConfigError
from ..dates import exam_date_sort_key
from ..db import get_error_report_collection, get_results_collection, serialize_error_row
from ..filters import ERROR_COLUMNS, RESULT_COLUMNS, FilterParams, build_match, parse_filter_params
from ..utils.paging import QueryArgError, parse_limit
from .common import (
    _clean_string,
    _json_error,
    handle_config_error,
    handle_db_error,
)

errors_bp = Blueprint("errors", __name__, url_prefix="/api/erp")

logger = logging.getLogger(__name__)

SUBJECT_CHOICES = ("ALL",) + tuple(SUBJECT_ORDER)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _error_row_sort_key(row: Dict[str, Any]):
    subject = str(row.get("Subject") or "").strip().upper()
    q_no = to_number(row.get("Q_No"))
    return (
        exam_date_sort_key(row.get("Exam_Date")),
        str(row.get("Student_Name") or "").upper(),
        row.get("STUD_ID") is None,
        str(row.get("STUD_ID") or ""),
        SUBJECT_ORDER.get(subject, 99),
        q_no if q_no is not None else 0.0,
    )


def _load_error_rows(params: FilterParams, limit: int | None = None) -> List[Dict[str, Any]]:
    collection = get_error_report_collection()
    cursor = collection.find(build_match(params, ERROR_COLUMNS), projection={"_id": 0})

    # Exam dates are stored as DD-MM-YYYY text, so ordering happens here and
    # the limit is applied to the ordered rows.
    rows = [serialize_error_row(doc) for doc in cursor]
    rows.sort(key=_error_row_sort_key)
    if limit is not None:
        rows = rows[:limit]
    return rows


def _load_participants(params: FilterParams) -> Dict[str, int]:
    collection = get_results_collection()
    match = build_match(params, RESULT_COLUMNS)

    pipeline: List[Dict[str, Any]] = []
    if match:
        pipeline.append({"$match": match})
    pipeline.extend(
        [
            {"$group": {"_id": "$Test", "students": {"$addToSet": "$STUD_ID"}}},
            {"$project": {"_id": 0, "test": "$_id", "count": {"$size": "$students"}}},
        ]
    )

    participants: Dict[str, int] = {}
    for doc in collection.aggregate(pipeline):
        test = doc.get("test")
        if test is None:
            continue
        participants[str(test)] = int(doc.get("count", 0) or 0)
    return participants


@errors_bp.get("/report")
def error_report():
    try:
        limit_value = parse_limit(request.args.get("limit"), default=5000, maximum=50000)
    except QueryArgError as exc:
        return _json_error(str(exc), 400)

    params = parse_filter_params(request.args)
    grouped = _clean_string(request.args.get("grouped")).lower() in _TRUE_VALUES

    try:
        rows = _load_error_rows(params, limit_value)
        if grouped:
            return jsonify(group_errors_by_student(rows))
        return jsonify(rows)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to load error report", exc)


@errors_bp.get("/participants")
def participants():
    params = parse_filter_params(request.args)

    try:
        return jsonify(_load_participants(params))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to count participants", exc)


@errors_bp.get("/error-count-report")
def error_count_report():
    params = parse_filter_params(request.args)
    if not params.test:
        return _json_error("Select at least one test.", 400, {"test": "At least one test is required."})

    try:
        return jsonify(count_errors(_load_error_rows(params)))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to count errors", exc)


@errors_bp.get("/question-report")
def question_report():
    params = parse_filter_params(request.args)
    if not params.test:
        return _json_error("Select at least one test.", 400, {"test": "At least one test is required."})

    subject = _clean_string(request.args.get("subject")).upper() or "ALL"
    if subject not in SUBJECT_CHOICES:
        return _json_error(
            "subject must be one of: " + ", ".join(SUBJECT_CHOICES) + ".",
            400,
        )

    try:
        rows = _load_error_rows(params)
        if subject != "ALL":
            rows = [
                row
                for row in rows
                if str(row.get("Subject") or "").strip().upper() == subject
            ]
        return jsonify(group_questions_by_test(rows, _load_participants(params)))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to build question report", exc)


__all__ = ["errors_bp"]
