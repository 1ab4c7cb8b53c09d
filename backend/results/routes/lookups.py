"""Filter options, student lists and raw result lookups."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from flask import Blueprint, jsonify, request
from pymongo.errors import PyMongoError

from .. import config
from ..analytics import clean_student_id, format_number
from ..cache import TTLCache
from ..config import ConfigError
from ..dates import exam_date_sort_key
from ..db import (
    get_results_collection,
    get_targets_collection,
    serialize_result,
    serialize_target,
)
from ..filters import build_match, cache_key, cascading_option_matches, parse_filter_params
from ..utils.paging import QueryArgError, parse_limit
from .common import (
    _clean_string,
    _json_error,
    as_double,
    handle_config_error,
    handle_db_error,
)

lookups_bp = Blueprint("lookups", __name__, url_prefix="/api")

logger = logging.getLogger(__name__)

# One entry per distinct filter combination.
LOOKUP_CACHE_ENTRIES = 128

lookup_cache = TTLCache(max_entries=LOOKUP_CACHE_ENTRIES)

HISTORY_FIELDS = (
    "Test",
    "DATE",
    "Tot_720",
    "AIR",
    "Botany",
    "Zoology",
    "Physics",
    "Chemistry",
    "NAME_OF_THE_STUDENT",
    "CAMPUS_NAME",
    "STUD_ID",
)


def _ranked_results_pipeline(match: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
    pipeline: List[Dict[str, Any]] = []
    if match:
        pipeline.append({"$match": match})
    pipeline.extend(
        [
            {"$addFields": {"_total": as_double("Tot_720")}},
            {"$sort": {"_total": -1, "NAME_OF_THE_STUDENT": 1}},
            {"$limit": limit},
        ]
    )
    return pipeline


def _distinct_options(collection, column: str, match: Dict[str, Any]) -> List[Any]:
    values = collection.distinct(column, match)
    cleaned = [value for value in values if value is not None and _clean_string(value)]
    return sorted(cleaned, key=lambda value: str(value))


@lookups_bp.get("/filters")
def filter_options():
    key = cache_key("filters", request.args)
    cached = lookup_cache.get(key)
    if cached is not None:
        logger.debug("Filter options served from cache")
        return jsonify(cached)

    params = parse_filter_params(request.args)

    try:
        collection = get_results_collection()
        payload: Dict[str, List[Any]] = {}
        for output_key, (column, match) in cascading_option_matches(params).items():
            payload[output_key] = _distinct_options(collection, column, match)

        logger.info(
            "Loaded filter options: %d campuses, %d streams, %d tests",
            len(payload["campuses"]),
            len(payload["streams"]),
            len(payload["tests"]),
        )
        lookup_cache.set(key, payload, config.get_cache_ttl("filters"))
        return jsonify(payload)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to load filter options", exc)


@lookups_bp.get("/students")
def list_students():
    try:
        limit_value = parse_limit(request.args.get("limit"), default=100, maximum=500)
    except QueryArgError as exc:
        return _json_error(str(exc), 400)

    match = build_match(parse_filter_params(request.args))

    try:
        collection = get_results_collection()
        pipeline = _ranked_results_pipeline(match, limit_value)
        pipeline.append(
            {
                "$project": {
                    "_id": 0,
                    "id": "$STUD_ID",
                    "name": "$NAME_OF_THE_STUDENT",
                    "score": "$_total",
                    "physics": as_double("Physics"),
                    "chemistry": as_double("Chemistry"),
                    "botany": as_double("Botany"),
                    "zoology": as_double("Zoology"),
                    "grade": "$CAMPUS_NAME",
                }
            }
        )

        students = []
        for doc in collection.aggregate(pipeline):
            student = dict(doc)
            student["id"] = clean_student_id(student.get("id"))
            for field in ("score", "physics", "chemistry", "botany", "zoology"):
                student[field] = format_number(student.get(field))
            students.append(student)
        return jsonify(students)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to list students", exc)


@lookups_bp.get("/top10")
def top_ten():
    match = build_match(parse_filter_params(request.args))

    try:
        collection = get_results_collection()
        pipeline = _ranked_results_pipeline(match, 10)
        pipeline.append({"$project": {"_id": 0, "name": "$NAME_OF_THE_STUDENT", "score": "$_total"}})

        top = [
            {"name": doc.get("name"), "score": format_number(doc.get("score"))}
            for doc in collection.aggregate(pipeline)
        ]
        return jsonify(top)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to load top students", exc)


@lookups_bp.get("/performance")
def performance():
    match = build_match(parse_filter_params(request.args))

    try:
        pass_mark = config.get_pass_mark()
        collection = get_results_collection()

        total = "$_total"
        pipeline: List[Dict[str, Any]] = []
        if match:
            pipeline.append({"$match": match})
        pipeline.extend(
            [
                {"$addFields": {"_total": as_double("Tot_720")}},
                {
                    "$facet": {
                        "summary": [
                            {
                                "$group": {
                                    "_id": None,
                                    "passed": {
                                        "$sum": {"$cond": [{"$gte": [total, pass_mark]}, 1, 0]}
                                    },
                                    "failed": {
                                        "$sum": {
                                            "$cond": [
                                                {
                                                    "$and": [
                                                        {"$ne": [total, None]},
                                                        {"$lt": [total, pass_mark]},
                                                    ]
                                                },
                                                1,
                                                0,
                                            ]
                                        }
                                    },
                                    "average": {"$avg": total},
                                }
                            }
                        ],
                        "campuses": [
                            {"$group": {"_id": "$CAMPUS_NAME", "value": {"$avg": total}}},
                            {"$sort": {"value": -1}},
                            {"$limit": 5},
                            {"$project": {"_id": 0, "label": "$_id", "value": 1}},
                        ],
                    }
                },
            ]
        )

        aggregated = list(collection.aggregate(pipeline))
        facet = aggregated[0] if aggregated else {}
        summary = facet.get("summary") or [{}]
        summary_doc = summary[0] if summary else {}

        campus_performance = [
            {
                "label": item.get("label"),
                "value": round(item["value"], 2) if isinstance(item.get("value"), (int, float)) else None,
            }
            for item in facet.get("campuses", [])
        ]

        average = summary_doc.get("average")
        return jsonify(
            {
                "pass": int(summary_doc.get("passed", 0) or 0),
                "fail": int(summary_doc.get("failed", 0) or 0),
                "average": round(average, 2) if isinstance(average, (int, float)) else 0,
                "campusPerformance": campus_performance,
            }
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to compute performance", exc)


def _student_selector(student_id: str, name: str) -> Dict[str, Any] | None:
    if student_id:
        candidates: List[Any] = [student_id]
        if student_id.isdigit():
            candidates.append(int(student_id))
        return {"STUD_ID": {"$in": candidates}}
    if name:
        return {"NAME_OF_THE_STUDENT": name}
    return None


@lookups_bp.get("/history")
def student_history():
    student_id = _clean_string(request.args.get("id"))
    name = _clean_string(request.args.get("name"))

    filter_match = build_match(parse_filter_params(request.args))
    selector = _student_selector(student_id, name)

    try:
        collection = get_results_collection()

        if selector is None and not filter_match:
            top = list(collection.aggregate(_ranked_results_pipeline({}, 1)))
            if not top:
                return jsonify([])
            selector = {"STUD_ID": top[0].get("STUD_ID")}

        clauses = [clause for clause in (selector, filter_match) if clause]
        match: Dict[str, Any] = clauses[0] if len(clauses) == 1 else {"$and": clauses}

        projection = {field: 1 for field in HISTORY_FIELDS}
        projection["_id"] = 0

        rows = [serialize_result(doc) for doc in collection.find(match, projection=projection)]
        rows.sort(key=lambda row: exam_date_sort_key(row.get("DATE")))
        for row in rows:
            row["STUD_ID"] = clean_student_id(row.get("STUD_ID"))
        return jsonify(rows)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to load student history", exc)


@lookups_bp.get("/studentsByCampus")
def students_by_campus():
    key = cache_key("students", request.args)
    cached = lookup_cache.get(key)
    if cached is not None:
        logger.debug("Student list served from cache")
        return jsonify(cached)

    match = build_match(parse_filter_params(request.args))

    try:
        collection = get_results_collection()
        pipeline: List[Dict[str, Any]] = []
        if match:
            pipeline.append({"$match": match})
        pipeline.extend(
            [
                {"$group": {"_id": {"id": "$STUD_ID", "name": "$NAME_OF_THE_STUDENT"}}},
                {"$project": {"_id": 0, "id": "$_id.id", "name": "$_id.name"}},
                {"$sort": {"name": 1, "id": 1}},
            ]
        )

        students = [
            {"id": clean_student_id(doc.get("id")), "name": doc.get("name")}
            for doc in collection.aggregate(pipeline)
        ]
        lookup_cache.set(key, students, config.get_cache_ttl("students"))
        return jsonify(students)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to list students by campus", exc)


@lookups_bp.get("/targets")
def list_targets():
    try:
        collection = get_targets_collection()
        cursor = collection.find(
            {}, projection={"_id": 0}, sort=[("NAME_OF_THE_CAMPUS", 1), ("Stream", 1)]
        )
        return jsonify([serialize_target(doc) for doc in cursor])
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to list targets", exc)


__all__ = ["lookups_bp", "lookup_cache"]
