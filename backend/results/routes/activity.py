"""Dashboard activity log endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from flask import Blueprint, jsonify, request
from pymongo.errors import PyMongoError

from ..config import ConfigError
from ..db import get_activity_logs_collection, serialize_activity_log
from ..utils.paging import QueryArgError, parse_page_request
from .common import _clean_string, _json_error, handle_config_error, handle_db_error

activity_bp = Blueprint("activity", __name__, url_prefix="/api/activity-logs")

logger = logging.getLogger(__name__)

MAX_ACTION_LENGTH = 200

SORT_FIELDS = ("timestamp", "email", "action")


def _validate_activity_payload(
    payload: Dict[str, Any] | None,
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    if payload is None or not isinstance(payload, dict):
        return {}, {"_global": "Request body must be a JSON object."}

    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}

    email = _clean_string(payload.get("email"))
    if not email:
        errors["email"] = "Email is required."
    elif "@" not in email or "." not in email.split("@")[-1]:
        errors["email"] = "Enter a valid email address."
    else:
        cleaned["email"] = email.lower()

    action = _clean_string(payload.get("action"))
    if not action:
        errors["action"] = "Action is required."
    elif len(action) > MAX_ACTION_LENGTH:
        errors["action"] = f"Action must be at most {MAX_ACTION_LENGTH} characters."
    else:
        cleaned["action"] = action

    cleaned["name"] = _clean_string(payload.get("name")) or "Unknown"
    cleaned["campus"] = _clean_string(payload.get("campus")) or "Not Set"

    details = payload.get("details")
    if details is not None and not isinstance(details, (dict, list, str, int, float)):
        errors["details"] = "Details must be an object, array or scalar."
    else:
        cleaned["details"] = details

    return cleaned, errors


@activity_bp.post("")
def record_activity():
    data = request.get_json(silent=True)
    cleaned, errors = _validate_activity_payload(data)
    if errors:
        details = {k: v for k, v in errors.items() if k != "_global"}
        message = errors.get("_global", "Validation failed.")
        return _json_error(message, 400, details if details else None)

    cleaned["timestamp"] = datetime.now(timezone.utc).isoformat()

    try:
        collection = get_activity_logs_collection()
        result = collection.insert_one(cleaned)
        logger.info("Recorded activity %r for %s", cleaned["action"], cleaned["email"])
        return jsonify({"ok": True, "id": str(result.inserted_id)}), 201
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to record activity", exc)


@activity_bp.get("")
def list_activity():
    try:
        paging = parse_page_request(
            request.args,
            sort_fields=SORT_FIELDS,
            default_sort="-timestamp",
        )
    except QueryArgError as exc:
        return _json_error(str(exc), 400)

    filters: Dict[str, Any] = {}
    email = _clean_string(request.args.get("email")).lower()
    action = _clean_string(request.args.get("action"))
    if email:
        filters["email"] = email
    if action:
        filters["action"] = action

    try:
        collection = get_activity_logs_collection()
        window = paging.window(collection.count_documents(filters))

        cursor = (
            collection.find(filters)
            .sort(paging.sort)
            .skip(window.skip)
            .limit(window.page_size)
        )
        payload = window.as_dict()
        payload["items"] = [serialize_activity_log(doc) for doc in cursor]
        payload["sort"] = paging.sort_label
        return jsonify(payload)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to list activity logs", exc)


__all__ = ["activity_bp"]
