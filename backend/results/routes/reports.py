"""Reports and analytics endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from flask import Blueprint, jsonify, request
from pymongo.errors import PyMongoError

from ..analytics import (
    AVERAGE_FIELDS,
    EXAM_STAT_COLUMNS,
    MAX_COLUMNS,
    RANK_METHODS,
    SCORE_BANDS,
    THRESHOLD_COLUMNS,
    achieved_counts,
    aggregate_targets,
    band_stat_key,
    band_target_key,
    clean_student_id,
    column_averages,
    filter_min_total,
    format_number,
    merge_exam_counts,
    merge_exam_stats,
    range_counts,
    rank_students,
    score_bounds,
    summarize_exam_stats,
    to_number,
)
from ..config import ConfigError
from ..dates import exam_date_sort_key, normalize_exam_date
from ..db import get_results_collection, get_targets_collection
from ..filters import FilterParams, build_match, parse_filter_params
from .common import (
    _clean_string,
    _json_error,
    as_double,
    csv_response,
    export_filename,
    handle_config_error,
    handle_db_error,
    parse_number_arg,
)

reports_bp = Blueprint("reports", __name__)

logger = logging.getLogger(__name__)

STUDENT_FIELDS: Tuple[str, ...] = (
    "STUD_ID",
    "name",
    "campus",
    "tot",
    "air",
    "bot",
    "b_rank",
    "zoo",
    "z_rank",
    "bio",
    "phy",
    "p_rank",
    "che",
    "c_rank",
    "t_app",
)

MARK_AVERAGE_FIELDS = ("tot", "bot", "zoo", "phy", "che")

DEFAULT_TARGET_THRESHOLD = 710


def _with_match(match: Dict[str, Any], stages: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if match:
        return [{"$match": match}] + stages
    return stages


def _exam_stats_pipeline(match: Dict[str, Any]) -> List[Dict[str, Any]]:
    group: Dict[str, Any] = {
        "_id": {"Test": "$Test", "DATE": "$DATE"},
        "Attn": {"$sum": 1},
    }
    for max_key, field in MAX_COLUMNS.items():
        group[max_key] = {"$max": as_double(field)}
    for column in THRESHOLD_COLUMNS:
        group[column.key] = {
            "$sum": {"$cond": [{"$gt": [as_double(column.field), column.threshold]}, 1, 0]}
        }

    projection: Dict[str, Any] = {"_id": 0, "Test": "$_id.Test", "DATE": "$_id.DATE"}
    for key in EXAM_STAT_COLUMNS:
        projection[key] = 1

    return _with_match(match, [{"$group": group}, {"$project": projection}])


def _student_averages_pipeline(match: Dict[str, Any]) -> List[Dict[str, Any]]:
    group: Dict[str, Any] = {
        "_id": "$STUD_ID",
        "name": {"$max": "$NAME_OF_THE_STUDENT"},
        "campus": {"$max": "$CAMPUS_NAME"},
        "t_app": {"$sum": {"$cond": [{"$ifNull": ["$Test", False]}, 1, 0]}},
    }
    for average_key, field in AVERAGE_FIELDS.items():
        group[average_key] = {"$avg": as_double(field)}

    return _with_match(
        match,
        [
            {"$group": group},
            {"$addFields": {"STUD_ID": "$_id"}},
            {"$project": {"_id": 0}},
        ],
    )


def _exam_counts_pipeline(match: Dict[str, Any]) -> List[Dict[str, Any]]:
    group: Dict[str, Any] = {"_id": {"Test": "$Test", "DATE": "$DATE"}}
    for band in SCORE_BANDS:
        group[band_stat_key(band)] = {
            "$sum": {"$cond": [{"$gte": [as_double("Tot_720"), band]}, 1, 0]}
        }
    return _with_match(match, [{"$group": group}])


def _load_exam_stats(match: Dict[str, Any]) -> List[Dict[str, Any]]:
    collection = get_results_collection()
    return merge_exam_stats(collection.aggregate(_exam_stats_pipeline(match)))


def _load_student_averages(match: Dict[str, Any]) -> List[Dict[str, Any]]:
    collection = get_results_collection()

    students: List[Dict[str, Any]] = []
    for doc in collection.aggregate(_student_averages_pipeline(match)):
        student: Dict[str, Any] = {
            "STUD_ID": clean_student_id(doc.get("STUD_ID")),
            "name": doc.get("name"),
            "campus": doc.get("campus"),
            "t_app": int(doc.get("t_app", 0) or 0),
        }
        for average_key in AVERAGE_FIELDS:
            student[average_key] = format_number(to_number(doc.get(average_key)))
        bot = to_number(student.get("bot")) or 0.0
        zoo = to_number(student.get("zoo")) or 0.0
        student["bio"] = format_number(bot + zoo)
        students.append(student)

    students.sort(key=lambda item: -(to_number(item.get("tot")) or 0.0))
    return students


def _load_exams(match: Dict[str, Any]) -> List[Dict[str, Any]]:
    collection = get_results_collection()
    pipeline = _with_match(
        match,
        [
            {"$group": {"_id": {"Test": "$Test", "DATE": "$DATE"}}},
            {"$project": {"_id": 0, "Test": "$_id.Test", "DATE": "$_id.DATE"}},
        ],
    )

    exams: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for doc in collection.aggregate(pipeline):
        test = _clean_string(doc.get("Test"))
        exam_date = normalize_exam_date(doc.get("DATE"))
        exams.setdefault((test.upper(), exam_date), {"Test": test, "DATE": exam_date})

    return sorted(
        exams.values(),
        key=lambda exam: (exam_date_sort_key(exam["DATE"]), exam["Test"]),
    )


def _parse_rank_method() -> str:
    method = _clean_string(request.args.get("rank_method")).lower() or "competition"
    if method not in RANK_METHODS:
        raise ValueError("rank_method must be one of: " + ", ".join(RANK_METHODS) + ".")
    return method


def _merit_list(params: FilterParams, method: str, minimum: float | None) -> Dict[str, Any]:
    match = build_match(params)
    students = _load_student_averages(match)
    exams = _load_exams(match)

    selected = filter_min_total(students, minimum) if minimum is not None else students
    ranked = rank_students(selected, key="tot", method=method)

    averages = column_averages(ranked, MARK_AVERAGE_FIELDS, digits=1)
    if averages is not None:
        averages.update(column_averages(ranked, ("air",), digits=0) or {})

    return {
        "students": ranked,
        "exams": exams,
        "t_cnt": len(exams),
        "rank_method": method,
        "min_total": format_number(minimum),
        "range_counts": range_counts(students),
        "bounds": score_bounds(students),
        "averages": averages,
    }


@reports_bp.get("/api/exam-stats")
def exam_stats():
    match = build_match(parse_filter_params(request.args))

    try:
        return jsonify(_load_exam_stats(match))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to compute exam statistics", exc)


@reports_bp.get("/api/analysis-report")
def analysis_report():
    match = build_match(parse_filter_params(request.args))

    try:
        students = _load_student_averages(match)
        exams = _load_exams(match)
        return jsonify({"students": students, "exams": exams, "t_cnt": len(exams)})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to generate analysis report", exc)


@reports_bp.get("/api/reports/analysis-summary")
def analysis_summary():
    match = build_match(parse_filter_params(request.args))

    try:
        stats = _load_exam_stats(match)
        students = _load_student_averages(match)
        return jsonify(
            {
                "exam_stats": stats,
                "summary": summarize_exam_stats(students, stats),
                "totals": column_averages(students, AVERAGE_FIELDS.keys(), digits=0),
            }
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to summarise exam statistics", exc)


@reports_bp.get("/api/reports/merit-list")
def merit_list():
    try:
        method = _parse_rank_method()
        minimum = parse_number_arg(request.args.get("min_total"), name="min_total")
    except ValueError as exc:
        return _json_error(str(exc), 400)

    params = parse_filter_params(request.args)

    try:
        return jsonify(_merit_list(params, method, minimum))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to generate merit list", exc)


def _threshold_options() -> List[Dict[str, Any]]:
    return [
        {
            "label": f">= {band}",
            "key": band_target_key(band),
            "statsKey": band_stat_key(band),
            "value": band,
        }
        for band in SCORE_BANDS
    ]


@reports_bp.get("/api/reports/target-vs-achieved")
def target_vs_achieved():
    try:
        threshold = parse_number_arg(request.args.get("threshold"), name="threshold")
    except ValueError as exc:
        return _json_error(str(exc), 400)

    if threshold is None:
        threshold = DEFAULT_TARGET_THRESHOLD
    if threshold not in SCORE_BANDS:
        return _json_error(
            "threshold must be one of: " + ", ".join(str(band) for band in SCORE_BANDS) + ".",
            400,
        )

    params = parse_filter_params(request.args)
    match = build_match(params)

    try:
        targets = list(get_targets_collection().find({}, projection={"_id": 0}))
        exam_counts = merge_exam_counts(
            get_results_collection().aggregate(_exam_counts_pipeline(match))
        )
        students = _load_student_averages(match)

        detail = filter_min_total(students, threshold)
        return jsonify(
            {
                "thresholds": _threshold_options(),
                "selected": int(threshold),
                "target": aggregate_targets(targets, params.campus, params.stream),
                "achieved": achieved_counts(exam_counts),
                "exam_count": len(exam_counts),
                "students": detail,
            }
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to compare targets", exc)


@reports_bp.get("/api/reports/exam-stats.csv")
def export_exam_stats_csv():
    params = parse_filter_params(request.args)

    try:
        rows = _load_exam_stats(build_match(params))
        fieldnames = ("DATE", "Test") + EXAM_STAT_COLUMNS
        return csv_response(rows, fieldnames, export_filename("exam_stats", params.test))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to export exam statistics", exc)


@reports_bp.get("/api/reports/analysis-report.csv")
def export_analysis_report_csv():
    params = parse_filter_params(request.args)

    try:
        rows = _load_student_averages(build_match(params))
        return csv_response(rows, STUDENT_FIELDS, export_filename("analysis_report", params.test))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to export analysis report", exc)


@reports_bp.get("/api/reports/merit-list.csv")
def export_merit_list_csv():
    try:
        method = _parse_rank_method()
        minimum = parse_number_arg(request.args.get("min_total"), name="min_total")
    except ValueError as exc:
        return _json_error(str(exc), 400)

    params = parse_filter_params(request.args)

    try:
        payload = _merit_list(params, method, minimum)
        fieldnames = ("rank",) + STUDENT_FIELDS
        return csv_response(payload["students"], fieldnames, export_filename("merit_list", params.stream))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to export merit list", exc)


__all__ = ["reports_bp"]
