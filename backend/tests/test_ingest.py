"""Row normalisation and duplicate detection used when loading data."""

from __future__ import annotations

import json
import sys
import unittest
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from results.ingest import duplicate_key, normalize_row, prepare_documents

SEED_PATH = BACKEND_DIR.parent / "scripts" / "seed.json"


class NormalizeRowTestCase(unittest.TestCase):
    def test_spreadsheet_values_are_cleaned(self) -> None:
        row = {
            " STUD_ID ": "2.40101E+05",
            "NAME_OF_THE_STUDENT": " ABHIRAM M ",
            "DATE": "5/1/2025",
            "Tot_720": "686",
            "AIR": "-",
            "Physics": 166.0,
        }

        self.assertEqual(
            {
                "STUD_ID": "240101",
                "NAME_OF_THE_STUDENT": "ABHIRAM M",
                "DATE": "05-01-2025",
                "Tot_720": 686,
                "AIR": "-",
                "Physics": 166,
            },
            normalize_row(row),
        )

    def test_text_ids_are_kept(self) -> None:
        self.assertEqual("NEET-07", normalize_row({"STUD_ID": " NEET-07 "})["STUD_ID"])

    def test_digit_ids_keep_leading_zeros(self) -> None:
        self.assertEqual("00123", normalize_row({"STUD_ID": "00123"})["STUD_ID"])
        self.assertEqual("00123", normalize_row({"STUD_ID": " 00123 "})["STUD_ID"])

    def test_float_ids_are_converted(self) -> None:
        self.assertEqual("240101", normalize_row({"STUD_ID": 240101.0})["STUD_ID"])
        self.assertEqual("240101", normalize_row({"STUD_ID": "240101.0"})["STUD_ID"])
        self.assertEqual("240101", normalize_row({"STUD_ID": 240101})["STUD_ID"])


class PrepareDocumentsTestCase(unittest.TestCase):
    def test_duplicate_results_are_skipped(self) -> None:
        rows = [
            {"STUD_ID": "240101", "Test": "GT-01", "Tot_720": "686"},
            {"STUD_ID": 240101, "Test": "gt-01", "Tot_720": "690"},
            {"STUD_ID": "240101", "Test": "GT-02", "Tot_720": "702"},
        ]

        documents, skipped = prepare_documents("medical_results", rows)

        self.assertEqual(1, skipped)
        self.assertEqual([686, 702], [doc["Tot_720"] for doc in documents])

    def test_existing_keys_count_as_seen(self) -> None:
        rows = [{"STUD_ID": "240101", "Test": "GT-02", "Q_No": "12"}]

        documents, skipped = prepare_documents(
            "erp_report", rows, existing_keys=[("240101", "GT-02", "12")]
        )

        self.assertEqual(([], 1), (documents, skipped))

    def test_collections_without_key_are_copied(self) -> None:
        rows = [{"NAME_OF_THE_CAMPUS": "MADHAPUR", ">= 710M": 1}] * 2

        documents, skipped = prepare_documents("targets", rows)

        self.assertEqual(0, skipped)
        self.assertEqual(2, len(documents))
        self.assertIsNone(duplicate_key("targets", rows[0]))

    def test_seed_file_loads(self) -> None:
        with SEED_PATH.open("r", encoding="utf-8") as seed_file:
            seed = json.load(seed_file)

        results, skipped = prepare_documents("medical_results", seed["medical_results"])

        self.assertEqual(1, skipped)
        self.assertTrue(all(doc["DATE"].count("-") == 2 for doc in results))


if __name__ == "__main__":
    unittest.main()
