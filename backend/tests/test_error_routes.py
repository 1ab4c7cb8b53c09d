"""Question-level error report endpoints."""

from __future__ import annotations

import sys
import unittest
from pathlib import Path
from unittest import mock

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from pymongo.errors import PyMongoError

from app import app


def _row(student_id, name, test, exam_date, subject, q_no, marker, branch="MADHAPUR"):
    return {
        "STUD_ID": student_id,
        "Student_Name": name,
        "Branch": branch,
        "Stream": "SR ELITE",
        "Exam_Date": exam_date,
        "Test": test,
        "Tot_720": "661",
        "AIR": "40",
        "Physics": "152",
        "Subject": subject,
        "Q_No": q_no,
        "W_U": marker,
        "National_Wide_Error": "38.5",
    }


ROWS = [
    _row("240102", "SAGAN J S", "GT-02", "19-01-2025", "BOTANY", "101", "u"),
    _row("240102", "SAGAN J S", "GT-02", "19-01-2025", "PHYSICS", "12", "W"),
    _row("240101", "ABHIRAM M", "GT-02", "19-01-2025", "PHYSICS", "12", "W", "KUKATPALLY"),
    _row("240102", "SAGAN J S", "GT-01", "05-01-2025", "CHEMISTRY", "60", "W"),
]


class ErrorRoutesTestCase(unittest.TestCase):
    def setUp(self) -> None:
        app.config["TESTING"] = True
        self.client = app.test_client()

        errors_patcher = mock.patch("results.routes.errors.get_error_report_collection")
        self.errors = errors_patcher.start().return_value
        self.addCleanup(errors_patcher.stop)
        self.errors.find.return_value = list(ROWS)

        results_patcher = mock.patch("results.routes.errors.get_results_collection")
        self.results = results_patcher.start().return_value
        self.addCleanup(results_patcher.stop)
        self.results.aggregate.return_value = [
            {"test": "GT-02", "count": 2},
            {"test": "GT-01", "count": 3},
        ]

    def test_report_rows_are_ordered(self) -> None:
        response = self.client.get("/api/erp/report?campus=MADHAPUR")

        rows = response.get_json()
        self.assertEqual(200, response.status_code)
        self.assertEqual(
            [
                ("GT-01", "SAGAN J S", "CHEMISTRY"),
                ("GT-02", "ABHIRAM M", "PHYSICS"),
                ("GT-02", "SAGAN J S", "PHYSICS"),
                ("GT-02", "SAGAN J S", "BOTANY"),
            ],
            [(row["Test"], row["Student_Name"], row["Subject"]) for row in rows],
        )
        self.assertEqual("U", rows[3]["W_U"])
        self.assertEqual(101, rows[3]["Q_No"])
        self.assertEqual({"Branch": {"$in": ["MADHAPUR"]}}, self.errors.find.call_args[0][0])

    def test_report_grouped_by_student(self) -> None:
        response = self.client.get("/api/erp/report?grouped=1&limit=100")

        grouped = response.get_json()
        self.assertEqual(["240102", "240101"], [student["info"]["id"] for student in grouped])
        self.assertEqual(["GT-01", "GT-02"], [test["meta"]["testName"] for test in grouped[0]["tests"]])

    def test_report_limit_keeps_earliest_rows(self) -> None:
        self.errors.find.return_value = [
            _row("240102", "SAGAN J S", "T2", "01-03-2026", "PHYSICS", "3", "W"),
            _row("240102", "SAGAN J S", "T1", "01-01-2026", "PHYSICS", "7", "W"),
        ]

        response = self.client.get("/api/erp/report?limit=1")

        rows = response.get_json()
        self.assertEqual(1, len(rows))
        self.assertEqual(("T1", "01-01-2026"), (rows[0]["Test"], rows[0]["Exam_Date"]))

    def test_report_limit_validation(self) -> None:
        response = self.client.get("/api/erp/report?limit=50001")

        self.assertEqual(400, response.status_code)
        self.errors.find.assert_not_called()

    def test_participants(self) -> None:
        response = self.client.get("/api/erp/participants?test=GT-01&test=GT-02")

        self.assertEqual({"GT-02": 2, "GT-01": 3}, response.get_json())
        pipeline = self.results.aggregate.call_args[0][0]
        self.assertEqual({"$match": {"Test": {"$in": ["GT-01", "GT-02"]}}}, pipeline[0])

    def test_error_count_requires_a_test(self) -> None:
        response = self.client.get("/api/erp/error-count-report")

        self.assertEqual(400, response.status_code)
        self.assertEqual(
            {"error": "Select at least one test.", "details": {"test": "At least one test is required."}},
            response.get_json(),
        )

    def test_error_count_report(self) -> None:
        response = self.client.get("/api/erp/error-count-report?test=GT-01&test=GT-02")

        payload = response.get_json()
        self.assertEqual(["GT-01", "GT-02"], payload["tests"])
        sagan = next(s for s in payload["students"] if s["STUD_ID"] == "240102")
        self.assertEqual(1, sagan["tests"]["GT-02"]["phy_w"])
        self.assertEqual(1, sagan["tests"]["GT-02"]["bot_u"])
        self.assertEqual(1, sagan["tests"]["GT-01"]["che_w"])

    def test_question_report_for_one_subject(self) -> None:
        response = self.client.get("/api/erp/question-report?test=GT-02&subject=physics")

        report = response.get_json()
        self.assertEqual(200, response.status_code)
        self.assertEqual(["GT-02"], [test["testName"] for test in report])
        questions = report[0]["questions"]
        self.assertEqual(1, len(questions))
        self.assertEqual(2, questions[0]["wrongCount"])
        self.assertEqual(2, questions[0]["totalCount"])
        self.assertEqual({"MADHAPUR": ["SAGAN J S"], "KUKATPALLY": ["ABHIRAM M"]}, questions[0]["byCampus"])

    def test_question_report_validation(self) -> None:
        for query in ["subject=PHYSICS", "test=GT-02&subject=MATHS"]:
            with self.subTest(query=query):
                response = self.client.get(f"/api/erp/question-report?{query}")
                self.assertEqual(400, response.status_code)

    def test_database_errors_map_to_503(self) -> None:
        self.errors.find.side_effect = PyMongoError("not primary")

        response = self.client.get("/api/erp/error-count-report?test=GT-02")

        self.assertEqual(503, response.status_code)


if __name__ == "__main__":
    unittest.main()
