from __future__ import annotations

import sys
import unittest
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from pymongo import ASCENDING, DESCENDING

from results.utils.paging import QueryArgError, parse_limit, parse_page_request

SORT_FIELDS = ("timestamp", "email")


class PageRequestTestCase(unittest.TestCase):
    def test_defaults(self) -> None:
        paging = parse_page_request({}, sort_fields=SORT_FIELDS, default_sort="-timestamp")

        self.assertEqual(1, paging.page)
        self.assertEqual(20, paging.page_size)
        self.assertEqual([("timestamp", DESCENDING)], paging.sort)
        self.assertEqual("-timestamp", paging.sort_label)

    def test_explicit_values(self) -> None:
        paging = parse_page_request(
            {"page": "3", "page_size": "50", "sort": "email"},
            sort_fields=SORT_FIELDS,
            default_sort="-timestamp",
        )

        self.assertEqual((3, 50), (paging.page, paging.page_size))
        self.assertEqual([("email", ASCENDING)], paging.sort)
        self.assertEqual("email", paging.sort_label)

    def test_invalid_values(self) -> None:
        for args in [
            {"page": "0"},
            {"page": "two"},
            {"page_size": "201"},
            {"sort": "-password"},
        ]:
            with self.subTest(args=args):
                with self.assertRaises(QueryArgError):
                    parse_page_request(args, sort_fields=SORT_FIELDS, default_sort="email")

    def test_window_is_clamped_to_last_page(self) -> None:
        paging = parse_page_request(
            {"page": "5", "page_size": "20"}, sort_fields=SORT_FIELDS, default_sort="email"
        )

        window = paging.window(45)

        self.assertEqual((3, 40), (window.page, window.skip))
        self.assertEqual(
            {"page": 3, "page_size": 20, "total": 45, "has_next": False, "has_prev": True},
            window.as_dict(),
        )

    def test_window_without_items(self) -> None:
        paging = parse_page_request({"page": "4"}, sort_fields=SORT_FIELDS, default_sort="email")

        window = paging.window(0)

        self.assertEqual(
            {"page": 1, "page_size": 20, "total": 0, "has_next": False, "has_prev": False},
            window.as_dict(),
        )
        self.assertEqual(0, window.skip)


class LimitTestCase(unittest.TestCase):
    def test_default_and_explicit(self) -> None:
        self.assertEqual(100, parse_limit(None, default=100, maximum=500))
        self.assertEqual(100, parse_limit("", default=100, maximum=500))
        self.assertEqual(25, parse_limit(" 25 ", default=100, maximum=500))

    def test_invalid(self) -> None:
        for raw in ["0", "-3", "ten", "501"]:
            with self.subTest(raw=raw):
                with self.assertRaises(QueryArgError):
                    parse_limit(raw, default=100, maximum=500)


if __name__ == "__main__":
    unittest.main()
