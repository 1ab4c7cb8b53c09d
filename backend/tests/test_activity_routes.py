"""Activity log recording and listing."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path
from unittest import mock

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from bson import ObjectId
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from app import app


class ActivityRoutesTestCase(unittest.TestCase):
    def setUp(self) -> None:
        app.config["TESTING"] = True
        self.client = app.test_client()

        patcher = mock.patch("results.routes.activity.get_activity_logs_collection")
        self.collection = patcher.start().return_value
        self.addCleanup(patcher.stop)

    def test_record_activity_fills_defaults(self) -> None:
        inserted_id = ObjectId()
        self.collection.insert_one.return_value.inserted_id = inserted_id

        response = self.client.post(
            "/api/activity-logs",
            json={"email": " Teacher@School.org ", "action": "Viewed merit list", "details": {"stream": "SR ELITE"}},
        )

        self.assertEqual(201, response.status_code)
        self.assertEqual({"ok": True, "id": str(inserted_id)}, response.get_json())

        document = self.collection.insert_one.call_args[0][0]
        self.assertEqual("teacher@school.org", document["email"])
        self.assertEqual("Unknown", document["name"])
        self.assertEqual("Not Set", document["campus"])
        self.assertEqual({"stream": "SR ELITE"}, document["details"])
        self.assertTrue(document["timestamp"].endswith("+00:00"))

    def test_record_activity_validation(self) -> None:
        response = self.client.post("/api/activity-logs", json={"email": "not-an-email"})

        self.assertEqual(400, response.status_code)
        self.assertEqual(
            {
                "error": "Validation failed.",
                "details": {
                    "email": "Enter a valid email address.",
                    "action": "Action is required.",
                },
            },
            response.get_json(),
        )
        self.collection.insert_one.assert_not_called()

    def test_record_activity_requires_json_object(self) -> None:
        response = self.client.post("/api/activity-logs", data="hello", content_type="text/plain")

        self.assertEqual(400, response.status_code)
        self.assertEqual({"error": "Request body must be a JSON object."}, response.get_json())

    def test_record_activity_database_error(self) -> None:
        self.collection.insert_one.side_effect = PyMongoError("write failed")

        response = self.client.post(
            "/api/activity-logs", json={"email": "a@b.org", "action": "Logged in"}
        )

        self.assertEqual(503, response.status_code)

    def test_list_activity_pages_and_filters(self) -> None:
        self.collection.count_documents.return_value = 3
        cursor = self.collection.find.return_value.sort.return_value.skip.return_value.limit
        cursor.return_value = [
            {
                "_id": ObjectId(),
                "email": "a@b.org",
                "name": "A",
                "campus": "MADHAPUR",
                "action": "Logged in",
                "details": None,
                "timestamp": "2025-01-19T10:00:00+00:00",
            }
        ]

        response = self.client.get("/api/activity-logs?page=5&page_size=2&email=A@B.org")

        payload = response.get_json()
        self.assertEqual(200, response.status_code)
        self.assertEqual(2, payload["page"])
        self.assertEqual(3, payload["total"])
        self.assertFalse(payload["has_next"])
        self.assertTrue(payload["has_prev"])
        self.assertEqual("-timestamp", payload["sort"])
        self.assertEqual("Logged in", payload["items"][0]["action"])

        self.collection.count_documents.assert_called_once_with({"email": "a@b.org"})
        self.collection.find.return_value.sort.assert_called_once_with([("timestamp", DESCENDING)])
        self.collection.find.return_value.sort.return_value.skip.assert_called_once_with(2)
        cursor.assert_called_once_with(2)

    def test_list_activity_rejects_unknown_sort(self) -> None:
        response = self.client.get("/api/activity-logs?sort=password")

        self.assertEqual(400, response.status_code)
        self.collection.count_documents.assert_not_called()


if __name__ == "__main__":
    unittest.main()
