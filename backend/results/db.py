"""MongoDB helpers for the application."""

from pymongo import ASCENDING, DESCENDING, IndexModel, MongoClient
from pymongo.collection import Collection

from .analytics import format_number, to_number
from .config import get_db_name, get_mongo_uri

_MONGO_CLIENT = None
_MONGO_DB = None

RESULTS_COLLECTION = "medical_results"
ERROR_REPORT_COLLECTION = "erp_report"
TARGETS_COLLECTION = "targets"
ACTIVITY_LOGS_COLLECTION = "activity_logs"

SCORE_FIELDS = (
    "Tot_720",
    "AIR",
    "Botany",
    "B_Rank",
    "Zoology",
    "Z_Rank",
    "Physics",
    "P_Rank",
    "Chemistry",
    "C_Rank",
)


def _get_client():
    """Create (or reuse) a MongoDB client using the configured URI."""

    global _MONGO_CLIENT

    if _MONGO_CLIENT is None:
        _MONGO_CLIENT = MongoClient(get_mongo_uri(), serverSelectionTimeoutMS=5000)
    return _MONGO_CLIENT


def get_db():
    """Return the application's MongoDB database instance."""

    global _MONGO_DB

    if _MONGO_DB is None:
        _MONGO_DB = _get_client()[get_db_name()]
    return _MONGO_DB


def ping():
    """Round-trip to the server; raises ``PyMongoError`` when unreachable."""

    get_db().command("ping")


_results_indexes_created = False
_error_report_indexes_created = False
_targets_indexes_created = False
_activity_logs_indexes_created = False


def _ensure_results_indexes(collection: Collection) -> None:
    global _results_indexes_created
    if _results_indexes_created:
        return

    collection.create_indexes(
        [
            IndexModel(
                [("STUD_ID", ASCENDING), ("Test", ASCENDING)],
                name="stud_test",
                background=True,
            ),
            IndexModel(
                [
                    ("CAMPUS_NAME", ASCENDING),
                    ("Stream", ASCENDING),
                    ("Test_Type", ASCENDING),
                    ("Test", ASCENDING),
                ],
                name="filter_dimensions",
                background=True,
            ),
            IndexModel(
                [("Tot_720", DESCENDING)],
                name="total_desc",
                background=True,
            ),
            IndexModel(
                [("NAME_OF_THE_STUDENT", ASCENDING)],
                name="student_name_asc",
                background=True,
            ),
        ]
    )
    _results_indexes_created = True


def get_results_collection() -> Collection:
    """Return the collection holding one document per student and test."""

    collection = get_db()[RESULTS_COLLECTION]
    _ensure_results_indexes(collection)
    return collection


def serialize_result(document):
    """Convert a result document into a JSON-serialisable dict."""

    result = {key: value for key, value in document.items() if key != "_id"}
    if "_id" in document:
        result["_id"] = str(document["_id"])

    for field in SCORE_FIELDS:
        if field in result:
            result[field] = format_number(to_number(result[field]))

    return result


def _ensure_error_report_indexes(collection: Collection) -> None:
    global _error_report_indexes_created
    if _error_report_indexes_created:
        return

    indexes = [
        IndexModel(
            [("STUD_ID", ASCENDING), ("Test", ASCENDING), ("Q_No", ASCENDING)],
            name="stud_test_question",
            background=True,
        ),
        IndexModel(
            [("Test", ASCENDING), ("Subject", ASCENDING)],
            name="test_subject",
            background=True,
        ),
        IndexModel(
            [("Branch", ASCENDING), ("Stream", ASCENDING)],
            name="branch_stream",
            background=True,
        ),
    ]
    collection.create_indexes(indexes)
    _error_report_indexes_created = True


def get_error_report_collection() -> Collection:
    """Return the question-level error report collection."""

    collection = get_db()[ERROR_REPORT_COLLECTION]
    _ensure_error_report_indexes(collection)
    return collection


def serialize_error_row(document):
    """Serialize an error report row for JSON responses."""

    row = serialize_result(document)
    q_no = to_number(row.get("Q_No"))
    if q_no is not None:
        row["Q_No"] = format_number(q_no)
    national = to_number(row.get("National_Wide_Error"))
    if national is not None:
        row["National_Wide_Error"] = format_number(national)
    if "W_U" in row and row["W_U"] is not None:
        row["W_U"] = str(row["W_U"]).strip().upper()
    return row


def _ensure_targets_indexes(collection: Collection) -> None:
    global _targets_indexes_created
    if _targets_indexes_created:
        return

    collection.create_index(
        [("NAME_OF_THE_CAMPUS", ASCENDING), ("Stream", ASCENDING)],
        name="campus_stream",
        background=True,
    )
    _targets_indexes_created = True


def get_targets_collection() -> Collection:
    """Return the per-campus target counts collection."""

    collection = get_db()[TARGETS_COLLECTION]
    _ensure_targets_indexes(collection)
    return collection


def serialize_target(document):
    target = {key: value for key, value in document.items() if key != "_id"}
    for key, value in list(target.items()):
        if key.startswith(">="):
            target[key] = format_number(to_number(value)) or 0
    return target


def _ensure_activity_logs_indexes(collection: Collection) -> None:
    global _activity_logs_indexes_created
    if _activity_logs_indexes_created:
        return

    indexes = [
        IndexModel(
            [("timestamp", DESCENDING)],
            name="timestamp_desc",
            background=True,
        ),
        IndexModel(
            [("email", ASCENDING), ("timestamp", DESCENDING)],
            name="email_timestamp",
            background=True,
        ),
    ]
    collection.create_indexes(indexes)
    _activity_logs_indexes_created = True


def get_activity_logs_collection() -> Collection:
    """Return the activity log collection ensuring indexes exist."""

    collection = get_db()[ACTIVITY_LOGS_COLLECTION]
    _ensure_activity_logs_indexes(collection)
    return collection


def serialize_activity_log(document):
    """Serialize an activity log document for JSON responses."""

    details = document.get("details")
    if details is not None and not isinstance(details, (dict, list, str, int, float)):
        details = str(details)

    return {
        "_id": str(document.get("_id", "")),
        "email": document.get("email"),
        "name": document.get("name"),
        "campus": document.get("campus"),
        "action": document.get("action"),
        "details": details,
        "timestamp": document.get("timestamp"),
    }


__all__ = [
    "get_db",
    "ping",
    "SCORE_FIELDS",
    "get_results_collection",
    "serialize_result",
    "get_error_report_collection",
    "serialize_error_row",
    "get_targets_collection",
    "serialize_target",
    "get_activity_logs_collection",
    "serialize_activity_log",
]
