"""Exam date parsing, normalisation and ordering."""

from __future__ import annotations

import sys
import unittest
from datetime import date, datetime
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from results.dates import (
    exam_date_sort_key,
    format_exam_date,
    normalize_exam_date,
    parse_exam_date,
)


class ParseExamDateTestCase(unittest.TestCase):
    def test_supported_shapes(self) -> None:
        for raw, expected in [
            ("05-01-2025", date(2025, 1, 5)),
            ("5/1/2025", date(2025, 1, 5)),
            ("05/01/25", date(2025, 1, 5)),
            ("2025-01-19", date(2025, 1, 19)),
            ("2025-01-19T00:00:00Z", date(2025, 1, 19)),
            ("45658", date(2025, 1, 1)),
            (datetime(2025, 3, 2, 9, 30), date(2025, 3, 2)),
            (date(2025, 3, 2), date(2025, 3, 2)),
        ]:
            with self.subTest(raw=raw):
                self.assertEqual(expected, parse_exam_date(raw))

    def test_invalid_values(self) -> None:
        for raw in [None, "", "   ", "31-02-2025", "next week"]:
            with self.subTest(raw=raw):
                self.assertIsNone(parse_exam_date(raw))


class FormatExamDateTestCase(unittest.TestCase):
    def test_normalize(self) -> None:
        self.assertEqual("05-01-2025", normalize_exam_date("5/1/2025"))
        self.assertEqual("01-01-2025", normalize_exam_date("45658"))
        self.assertEqual("TBD", normalize_exam_date(" TBD "))
        self.assertEqual("", normalize_exam_date(None))

    def test_display_styles(self) -> None:
        self.assertEqual("19/01/2025", format_exam_date("19-01-2025"))
        self.assertEqual("19-Jan-25", format_exam_date("19-01-2025", style="dd-mmm-yy"))
        self.assertEqual("TBD", format_exam_date("TBD"))
        self.assertEqual("", format_exam_date(None))


class SortKeyTestCase(unittest.TestCase):
    def test_chronological_with_unparseable_last(self) -> None:
        values = ["01-02-2025", "unknown", "19-01-2025", "05-01-2025"]

        self.assertEqual(
            ["05-01-2025", "19-01-2025", "01-02-2025", "unknown"],
            sorted(values, key=exam_date_sort_key),
        )


if __name__ == "__main__":
    unittest.main()
