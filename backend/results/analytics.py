"""Aggregation, ranking and grouping over exam result rows.

Everything here works on plain dicts as returned by the database layer, so
the report endpoints and their CSV exports share one implementation.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Sequence, Tuple

from .dates import exam_date_sort_key, normalize_exam_date, parse_exam_date


class ThresholdColumn(NamedTuple):
    key: str
    field: str
    average_key: str
    threshold: float


MAX_COLUMNS: Dict[str, str] = {
    "Max_T": "Tot_720",
    "Max_B": "Botany",
    "Max_Z": "Zoology",
    "Max_P": "Physics",
    "Max_C": "Chemistry",
}

THRESHOLD_COLUMNS: Tuple[ThresholdColumn, ...] = (
    ThresholdColumn("T_700", "Tot_720", "tot", 700),
    ThresholdColumn("T_680", "Tot_720", "tot", 680),
    ThresholdColumn("T_650", "Tot_720", "tot", 650),
    ThresholdColumn("T_600", "Tot_720", "tot", 600),
    ThresholdColumn("T_550", "Tot_720", "tot", 550),
    ThresholdColumn("T_530", "Tot_720", "tot", 530),
    ThresholdColumn("T_450", "Tot_720", "tot", 450),
    ThresholdColumn("B_160", "Botany", "bot", 160),
    ThresholdColumn("Z_160", "Zoology", "zoo", 160),
    ThresholdColumn("P_120", "Physics", "phy", 120),
    ThresholdColumn("P_100", "Physics", "phy", 100),
    ThresholdColumn("C_130", "Chemistry", "che", 130),
    ThresholdColumn("C_100", "Chemistry", "che", 100),
)

THRESHOLD_BY_KEY = {column.key: column for column in THRESHOLD_COLUMNS}

# Column order of the exam statistics table.
EXAM_STAT_COLUMNS: Tuple[str, ...] = (
    "Attn",
    "Max_T",
    "T_700",
    "T_680",
    "T_650",
    "T_600",
    "T_550",
    "T_530",
    "T_450",
    "Max_B",
    "B_160",
    "Max_Z",
    "Z_160",
    "Max_P",
    "P_120",
    "P_100",
    "Max_C",
    "C_130",
    "C_100",
)

# Per-student averaged fields and the result columns they come from.
AVERAGE_FIELDS: Dict[str, str] = {
    "tot": "Tot_720",
    "air": "AIR",
    "bot": "Botany",
    "b_rank": "B_Rank",
    "zoo": "Zoology",
    "z_rank": "Z_Rank",
    "phy": "Physics",
    "p_rank": "P_Rank",
    "che": "Chemistry",
    "c_rank": "C_Rank",
}

SCORE_BANDS: Tuple[int, ...] = (
    710,
    700,
    685,
    655,
    640,
    595,
    570,
    550,
    530,
    490,
    450,
    400,
    300,
    200,
)

SR_ELITE_ALIASES = frozenset({"SR_ELITE_SET_01", "SR_ELITE_SET_02", "SR ELITE"})

SUBJECT_ORDER: Dict[str, int] = {
    "PHYSICS": 1,
    "CHEMISTRY": 2,
    "BOTANY": 3,
    "ZOOLOGY": 4,
}

# Subject name -> (count prefix, mark column, rank column)
SUBJECT_COLUMNS: Dict[str, Tuple[str, str, str]] = {
    "BOTANY": ("bot", "Botany", "B_Rank"),
    "ZOOLOGY": ("zoo", "Zoology", "Z_Rank"),
    "PHYSICS": ("phy", "Physics", "P_Rank"),
    "CHEMISTRY": ("che", "Chemistry", "C_Rank"),
}

RANK_METHODS = ("competition", "dense")


def to_number(value: Any) -> float | None:
    """Return ``value`` as a float, or ``None`` for blanks and junk."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "")
        if not text or text == "-":
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def format_number(value: float | int | None) -> float | int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    number = float(value)
    if abs(number - round(number)) < 1e-9:
        return int(round(number))
    return round(number, 2)


def round_half_up(value: float, digits: int = 0) -> float | int:
    """Round like a spreadsheet does (0.5 goes up), not banker's rounding."""

    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    if digits == 0:
        return int(rounded)
    return rounded


def clean_student_id(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def band_target_key(band: int) -> str:
    return f">= {band}M"


def band_stat_key(band: int) -> str:
    return f"T_{band}"


def _date_desc_key(row: Mapping[str, Any], date_field: str, name_field: str):
    parsed = parse_exam_date(row.get(date_field))
    name = str(row.get(name_field) or "")
    if parsed is None:
        return (1, 0, name)
    return (0, -parsed.toordinal(), name)


def merge_exam_stats(rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Merge exam statistic rows that describe the same test on the same date.

    Attendance and threshold counts are summed, maxima are maximised. The
    result is ordered by date, newest first.
    """

    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}

    for row in rows:
        test = str(row.get("Test") or "").strip()
        exam_date = normalize_exam_date(row.get("DATE"))
        key = (test.upper(), exam_date)

        entry = merged.get(key)
        if entry is None:
            entry = {"DATE": exam_date, "Test": test, "Attn": 0}
            for max_key in MAX_COLUMNS:
                entry[max_key] = None
            for column in THRESHOLD_COLUMNS:
                entry[column.key] = 0
            merged[key] = entry

        entry["Attn"] += int(to_number(row.get("Attn")) or 0)

        for max_key in MAX_COLUMNS:
            value = to_number(row.get(max_key))
            if value is not None and (entry[max_key] is None or value > entry[max_key]):
                entry[max_key] = value

        for column in THRESHOLD_COLUMNS:
            entry[column.key] += int(to_number(row.get(column.key)) or 0)

    result = []
    for entry in merged.values():
        for max_key in MAX_COLUMNS:
            entry[max_key] = format_number(entry[max_key])
        result.append(entry)

    result.sort(key=lambda item: _date_desc_key(item, "DATE", "Test"))
    return result


def merge_exam_counts(
    rows: Iterable[Mapping[str, Any]],
    bands: Iterable[int] = SCORE_BANDS,
) -> List[Dict[str, Any]]:
    """Merge per-exam score band counts on upper-cased test and normalised date."""

    bands = list(bands)
    merged: Dict[Tuple[str, str], Dict[str, Any]] = {}

    for row in rows:
        group_id = row.get("_id")
        source = group_id if isinstance(group_id, Mapping) else row
        test = str(source.get("Test") or "").strip()
        exam_date = normalize_exam_date(source.get("DATE"))
        key = (test.upper(), exam_date)

        entry = merged.get(key)
        if entry is None:
            entry = {"DATE": exam_date, "Test": test}
            for band in bands:
                entry[band_stat_key(band)] = 0
            merged[key] = entry

        for band in bands:
            stat_key = band_stat_key(band)
            entry[stat_key] += int(to_number(row.get(stat_key)) or 0)

    result = list(merged.values())
    result.sort(key=lambda item: _date_desc_key(item, "DATE", "Test"))
    return result


def rank_students(
    students: Sequence[Mapping[str, Any]],
    key: str = "tot",
    method: str = "competition",
) -> List[Dict[str, Any]]:
    """Return copies of ``students`` ordered by ``key`` with a ``rank`` added.

    Ties are decided on the rounded value. ``competition`` ranking leaves
    gaps after ties (1, 2, 2, 4); ``dense`` does not (1, 2, 2, 3). Students
    without a value sort last and share the final rank.
    """

    if method not in RANK_METHODS:
        raise ValueError("rank method must be one of: " + ", ".join(RANK_METHODS) + ".")

    def sort_key(student: Mapping[str, Any]):
        value = to_number(student.get(key))
        return (value is None, -(value or 0.0))

    ordered = sorted(students, key=sort_key)

    ranked: List[Dict[str, Any]] = []
    previous: Any = None
    competition_rank = 0
    dense_rank = 0

    for index, student in enumerate(ordered):
        value = to_number(student.get(key))
        rounded = round_half_up(value) if value is not None else None
        if index == 0 or rounded != previous:
            competition_rank = index + 1
            dense_rank += 1
        previous = rounded

        entry = dict(student)
        entry["rank"] = competition_rank if method == "competition" else dense_rank
        ranked.append(entry)

    return ranked


def summarize_exam_stats(
    students: Sequence[Mapping[str, Any]],
    exam_stats: Sequence[Mapping[str, Any]],
) -> Dict[str, Any] | None:
    """Footer row for the exam statistics table.

    Threshold columns count students by their averaged marks across the
    selection; maxima come from the individual exam rows.
    """

    if not students or not exam_stats:
        return None

    summary: Dict[str, Any] = {}
    for key in EXAM_STAT_COLUMNS:
        if key == "Attn":
            summary[key] = len(students)
        elif key in MAX_COLUMNS:
            values = [to_number(row.get(key)) or 0.0 for row in exam_stats]
            summary[key] = format_number(max(values))
        else:
            column = THRESHOLD_BY_KEY[key]
            summary[key] = sum(
                1
                for student in students
                if (to_number(student.get(column.average_key)) or 0.0) > column.threshold
            )
    return summary


def column_averages(
    students: Sequence[Mapping[str, Any]],
    fields: Iterable[str],
    digits: int = 0,
) -> Dict[str, Any] | None:
    if not students:
        return None

    count = len(students)
    averages: Dict[str, Any] = {}
    for field in fields:
        total = sum(to_number(student.get(field)) or 0.0 for student in students)
        averages[field] = round_half_up(total / count, digits)
    return averages


def filter_min_total(
    students: Sequence[Mapping[str, Any]], minimum: float, key: str = "tot"
) -> List[Mapping[str, Any]]:
    return [
        student
        for student in students
        if (to_number(student.get(key)) or 0.0) >= minimum
    ]


def range_counts(
    students: Sequence[Mapping[str, Any]],
    minimums: Iterable[int] = SCORE_BANDS,
    key: str = "tot",
) -> List[Dict[str, Any]]:
    return [
        {
            "label": f">={minimum}",
            "min": minimum,
            "count": len(filter_min_total(students, minimum, key)),
        }
        for minimum in minimums
    ]


def score_bounds(
    students: Sequence[Mapping[str, Any]], key: str = "tot"
) -> Dict[str, Any]:
    values = [to_number(student.get(key)) for student in students]
    numbers = [value for value in values if value is not None]
    if not numbers:
        return {"highest": 0, "lowest": 0}
    return {"highest": format_number(max(numbers)), "lowest": format_number(min(numbers))}


def _map_stream(value: Any) -> str:
    upper = str(value or "").strip().upper()
    return "SR ELITE" if upper in SR_ELITE_ALIASES else upper


def aggregate_targets(
    targets: Iterable[Mapping[str, Any]],
    campuses: Sequence[str] = (),
    streams: Sequence[str] = (),
    bands: Iterable[int] = SCORE_BANDS,
) -> Dict[str, Any]:
    """Sum the target counts of every target row in the campus/stream selection."""

    selected = list(targets)

    if campuses:
        wanted_campuses = {str(campus).strip().upper() for campus in campuses}
        selected = [
            row
            for row in selected
            if str(row.get("NAME_OF_THE_CAMPUS") or "").strip().upper() in wanted_campuses
        ]

    if streams:
        wanted_streams = {_map_stream(stream) for stream in streams}
        selected = [row for row in selected if _map_stream(row.get("Stream")) in wanted_streams]

    totals: Dict[str, Any] = {}
    for band in bands:
        key = band_target_key(band)
        totals[key] = format_number(sum(to_number(row.get(key)) or 0.0 for row in selected))
    return totals


def achieved_counts(
    exam_counts: Sequence[Mapping[str, Any]],
    bands: Iterable[int] = SCORE_BANDS,
) -> Dict[str, Any]:
    """Average number of students per exam reaching each score band."""

    if not exam_counts:
        return {}

    total_exams = len(exam_counts)
    counts: Dict[str, Any] = {}
    for band in bands:
        stat_key = band_stat_key(band)
        summed = sum(to_number(row.get(stat_key)) or 0.0 for row in exam_counts)
        counts[band_target_key(band)] = format_number(round_half_up(summed / total_exams, 1))
    return counts


def _score(row: Mapping[str, Any], field: str):
    return format_number(to_number(row.get(field)))


def group_errors_by_student(rows: Iterable[Mapping[str, Any]]) -> List[Dict[str, Any]]:
    """Group error rows as student -> tests (by date) -> question rows."""

    grouped: Dict[Tuple[str, str], Dict[str, Any]] = {}

    for row in rows:
        student_id = clean_student_id(row.get("STUD_ID"))
        student_name = str(row.get("Student_Name") or "").strip()
        student = grouped.get((student_id, student_name))
        if student is None:
            student = {
                "info": {
                    "id": student_id,
                    "name": student_name,
                    "branch": row.get("Branch"),
                    "stream": row.get("Stream"),
                },
                "tests": {},
            }
            grouped[(student_id, student_name)] = student

        test_name = row.get("Test")
        test = student["tests"].get(test_name)
        if test is None:
            test = {
                "meta": {
                    "testName": test_name,
                    "date": row.get("Exam_Date"),
                    "tot": _score(row, "Tot_720"),
                    "air": _score(row, "AIR"),
                    "bot": _score(row, "Botany"),
                    "b_rank": _score(row, "B_Rank"),
                    "zoo": _score(row, "Zoology"),
                    "z_rank": _score(row, "Z_Rank"),
                    "phy": _score(row, "Physics"),
                    "p_rank": _score(row, "P_Rank"),
                    "chem": _score(row, "Chemistry"),
                    "c_rank": _score(row, "C_Rank"),
                },
                "questions": [],
            }
            student["tests"][test_name] = test

        test["questions"].append(dict(row))

    result = []
    for student in grouped.values():
        tests = sorted(
            student["tests"].values(),
            key=lambda test: exam_date_sort_key(test["meta"]["date"]),
        )
        result.append({"info": student["info"], "tests": tests})
    return result


def _ordered_test_names(rows: Sequence[Mapping[str, Any]]) -> List[str]:
    earliest: Dict[str, Any] = {}
    for row in rows:
        name = row.get("Test")
        if name is None:
            continue
        key = exam_date_sort_key(row.get("Exam_Date"))
        if name not in earliest or key < earliest[name]:
            earliest[name] = key
    return sorted(earliest, key=lambda name: (earliest[name], str(name)))


def count_errors(rows: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Per student and test, marks/ranks plus wrong (W) and unattempted (U) counts."""

    rows = list(rows)
    students: Dict[str, Dict[str, Any]] = {}

    for row in rows:
        test_name = row.get("Test")
        if test_name is None:
            continue

        student_id = clean_student_id(row.get("STUD_ID"))
        student = students.get(student_id)
        if student is None:
            student = {
                "STUD_ID": student_id,
                "name": row.get("Student_Name"),
                "campus": row.get("Branch"),
                "tests": {},
            }
            students[student_id] = student

        entry = student["tests"].get(test_name)
        if entry is None:
            entry = {"tot": _score(row, "Tot_720"), "air": _score(row, "AIR")}
            for prefix, mark_field, rank_field in SUBJECT_COLUMNS.values():
                entry[prefix] = _score(row, mark_field)
                entry[f"{prefix}_rank"] = _score(row, rank_field)
                entry[f"{prefix}_w"] = 0
                entry[f"{prefix}_u"] = 0
            student["tests"][test_name] = entry

        subject = SUBJECT_COLUMNS.get(str(row.get("Subject") or "").strip().upper())
        marker = str(row.get("W_U") or "").strip().upper()
        if subject and marker in ("W", "U"):
            entry[f"{subject[0]}_{marker.lower()}"] += 1

    ordered_students = sorted(
        students.values(),
        key=lambda student: (str(student.get("name") or "").upper(), student["STUD_ID"]),
    )
    return {"tests": _ordered_test_names(rows), "students": ordered_students}


def _question_number(value: Any) -> int:
    number = to_number(value)
    return int(number) if number is not None else 0


def group_questions_by_test(
    rows: Iterable[Mapping[str, Any]],
    participants: Mapping[str, int] | None = None,
) -> List[Dict[str, Any]]:
    """Group error rows per test and question, listing wrong students by campus."""

    participants = participants or {}
    tests: Dict[Any, Dict[str, Any]] = {}

    for row in rows:
        test_name = row.get("Test")
        test = tests.get(test_name)
        if test is None:
            test = {"testName": test_name, "date": row.get("Exam_Date"), "questions": {}}
            tests[test_name] = test

        subject = row.get("Subject")
        q_no = row.get("Q_No")
        question_key = (str(subject or "").strip().upper(), _question_number(q_no))
        question = test["questions"].get(question_key)
        if question is None:
            question = {
                "qNo": format_number(to_number(q_no)),
                "subject": subject,
                "topic": row.get("Topic"),
                "subTopic": row.get("Sub_Topic"),
                "qUrl": row.get("Q_URL"),
                "sUrl": row.get("S_URL"),
                "keyValue": row.get("Key_Value"),
                "nationalError": format_number(to_number(row.get("National_Wide_Error"))),
                "wrongStudents": [],
            }
            test["questions"][question_key] = question

        question["wrongStudents"].append(
            {"name": row.get("Student_Name"), "campus": row.get("Branch")}
        )

    processed = []
    for test in tests.values():
        questions = []
        for question in test["questions"].values():
            by_campus: Dict[str, List[Any]] = {}
            for student in question["wrongStudents"]:
                by_campus.setdefault(student["campus"] or "", []).append(student["name"])
            questions.append(
                {
                    **question,
                    "byCampus": by_campus,
                    "wrongCount": len(question["wrongStudents"]),
                    "totalCount": int(participants.get(test["testName"], 0) or 0),
                }
            )

        questions.sort(
            key=lambda question: (
                SUBJECT_ORDER.get(str(question["subject"] or "").strip().upper(), 99),
                _question_number(question["qNo"]),
            )
        )
        processed.append(
            {"testName": test["testName"], "date": test["date"], "questions": questions}
        )

    processed.sort(key=lambda test: exam_date_sort_key(test["date"]))
    return processed


__all__ = [
    "MAX_COLUMNS",
    "THRESHOLD_COLUMNS",
    "EXAM_STAT_COLUMNS",
    "AVERAGE_FIELDS",
    "SCORE_BANDS",
    "RANK_METHODS",
    "to_number",
    "format_number",
    "round_half_up",
    "clean_student_id",
    "band_target_key",
    "band_stat_key",
    "merge_exam_stats",
    "merge_exam_counts",
    "rank_students",
    "summarize_exam_stats",
    "column_averages",
    "filter_min_total",
    "range_counts",
    "score_bounds",
    "aggregate_targets",
    "achieved_counts",
    "group_errors_by_student",
    "count_errors",
    "group_questions_by_test",
]
