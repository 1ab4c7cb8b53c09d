"""Translate dashboard filter query parameters into MongoDB match documents."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Iterable, List, Mapping, Tuple

IGNORED_VALUES = frozenset({"", "All", "__ALL__"})

# query parameter -> FilterParams attribute
QUERY_PARAMS: Dict[str, str] = {
    "campus": "campus",
    "stream": "stream",
    "test": "test",
    "testType": "test_type",
    "topAll": "top_all",
    "studentSearch": "student_search",
    "studentNames": "student_names",
}


@dataclass(frozen=True)
class FilterColumns:
    """Column names of the filter dimensions in one collection."""

    campus: str
    stream: str
    test: str
    test_type: str
    top_all: str
    student_id: str
    student_name: str


RESULT_COLUMNS = FilterColumns(
    campus="CAMPUS_NAME",
    stream="Stream",
    test="Test",
    test_type="Test_Type",
    top_all="Top_ALL",
    student_id="STUD_ID",
    student_name="NAME_OF_THE_STUDENT",
)

ERROR_COLUMNS = FilterColumns(
    campus="Branch",
    stream="Stream",
    test="Test",
    test_type="Test_Type",
    top_all="Top_ALL",
    student_id="STUD_ID",
    student_name="Student_Name",
)

DIMENSIONS: Tuple[str, ...] = ("campus", "stream", "test", "test_type", "top_all")


@dataclass
class FilterParams:
    campus: List[str] = field(default_factory=list)
    stream: List[str] = field(default_factory=list)
    test: List[str] = field(default_factory=list)
    test_type: List[str] = field(default_factory=list)
    top_all: List[str] = field(default_factory=list)
    student_search: List[str] = field(default_factory=list)
    student_names: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(getattr(self, item.name) for item in fields(self))


def clean_values(values: Iterable[Any]) -> List[str]:
    """Strip values and drop blanks and the "everything" markers."""

    cleaned: List[str] = []
    for value in values:
        if value is None:
            continue
        text = str(value).strip()
        if text in IGNORED_VALUES or text in cleaned:
            continue
        cleaned.append(text)
    return cleaned


def _get_list(args: Mapping[str, Any], key: str) -> List[Any]:
    getlist = getattr(args, "getlist", None)
    if callable(getlist):
        return list(getlist(key))
    value = args.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def parse_filter_params(args: Mapping[str, Any]) -> FilterParams:
    """Read the repeated filter query parameters from a request args mapping."""

    values = {
        attribute: clean_values(_get_list(args, name))
        for name, attribute in QUERY_PARAMS.items()
    }
    return FilterParams(**values)


def _student_id_values(value: str) -> List[Any]:
    candidates: List[Any] = [value]
    try:
        candidates.append(int(value))
    except ValueError:
        pass
    return candidates


def _student_search_clause(
    values: List[str], columns: FilterColumns
) -> Dict[str, Any] | None:
    ids: List[Any] = []
    text_clauses: List[Dict[str, Any]] = []

    for value in values:
        if value.isdigit():
            ids.extend(_student_id_values(value))
        else:
            pattern = re.escape(value)
            text_clauses.append({columns.student_name: {"$regex": pattern, "$options": "i"}})
            text_clauses.append({columns.student_id: {"$regex": pattern, "$options": "i"}})

    alternatives: List[Dict[str, Any]] = []
    if ids:
        alternatives.append({columns.student_id: {"$in": ids}})
    alternatives.extend(text_clauses)

    if not alternatives:
        return None
    if len(alternatives) == 1:
        return alternatives[0]
    return {"$or": alternatives}


def build_match(
    params: FilterParams,
    columns: FilterColumns = RESULT_COLUMNS,
    ignore: Iterable[str] = (),
) -> Dict[str, Any]:
    """Build the ``$match`` document for the selected filters.

    ``ignore`` names dimensions (``campus``, ``stream``, ``test``,
    ``test_type``, ``top_all``, ``student_search``, ``student_names``) to
    leave unconstrained.
    """

    ignored = set(ignore)
    clauses: List[Dict[str, Any]] = []

    for dimension in DIMENSIONS:
        if dimension in ignored:
            continue
        values = getattr(params, dimension)
        if values:
            clauses.append({getattr(columns, dimension): {"$in": list(values)}})

    if params.student_names and "student_names" not in ignored:
        clauses.append({columns.student_name: {"$in": list(params.student_names)}})

    if params.student_search and "student_search" not in ignored:
        search_clause = _student_search_clause(params.student_search, columns)
        if search_clause:
            clauses.append(search_clause)

    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _not_blank(column: str) -> Dict[str, Any]:
    return {column: {"$nin": [None, ""]}}


def cascading_option_matches(
    params: FilterParams, columns: FilterColumns = RESULT_COLUMNS
) -> Dict[str, Tuple[str, Dict[str, Any]]]:
    """Column and match for each filter option list.

    Each list is narrowed by the selections made in the lists before it:
    campus, stream, test type, test, top-all.
    """

    order = (
        ("campuses", "campus"),
        ("streams", "stream"),
        ("testTypes", "test_type"),
        ("tests", "test"),
        ("topAll", "top_all"),
    )

    matches: Dict[str, Tuple[str, Dict[str, Any]]] = {}
    applied: List[Dict[str, Any]] = []

    for output_key, dimension in order:
        column = getattr(columns, dimension)
        matches[output_key] = (column, {"$and": applied + [_not_blank(column)]})

        values = getattr(params, dimension)
        if values:
            applied = applied + [{column: {"$in": list(values)}}]

    return matches


def cache_key(prefix: str, args: Mapping[str, Any]) -> str:
    """Stable cache key for a multi-valued args mapping."""

    keys = sorted(args.keys())
    parts = []
    for key in keys:
        values = sorted(str(value) for value in _get_list(args, key))
        parts.append(f"{key}={'|'.join(values)}")
    return f"{prefix}:{'&'.join(parts)}"


__all__ = [
    "FilterColumns",
    "FilterParams",
    "RESULT_COLUMNS",
    "ERROR_COLUMNS",
    "clean_values",
    "parse_filter_params",
    "build_match",
    "cascading_option_matches",
    "cache_key",
]
