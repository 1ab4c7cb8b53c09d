"""Environment driven configuration."""

from __future__ import annotations

import os
import sys
import unittest
from pathlib import Path
from unittest import mock

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from results import config
from results.config import ConfigError


class ConfigTestCase(unittest.TestCase):
    def setUp(self) -> None:
        config.reset_cache()
        self.addCleanup(config.reset_cache)

    def _env(self, **values: str):
        return mock.patch.dict(os.environ, values, clear=True)

    def test_missing_uri(self) -> None:
        with self._env():
            with self.assertRaises(ConfigError):
                config.get_mongo_uri()

    def test_db_name_from_uri_path(self) -> None:
        with self._env(MONGODB_URI="mongodb://localhost:27017/school?retryWrites=true"):
            self.assertEqual("school", config.get_db_name())

    def test_db_name_env_wins(self) -> None:
        with self._env(MONGODB_URI="mongodb://localhost:27017/school", MONGODB_DB="reports"):
            self.assertEqual("reports", config.get_db_name())

    def test_db_name_required(self) -> None:
        with self._env(MONGODB_URI="mongodb://localhost:27017"):
            with self.assertRaises(ConfigError):
                config.get_db_name()

    def test_pass_mark(self) -> None:
        with self._env():
            self.assertEqual(360, config.get_pass_mark())
        with self._env(PASS_MARK="400"):
            self.assertEqual(400, config.get_pass_mark())
        for bad in ["abc", "-1"]:
            with self.subTest(value=bad), self._env(PASS_MARK=bad):
                with self.assertRaises(ConfigError):
                    config.get_pass_mark()

    def test_cache_ttls(self) -> None:
        with self._env(CACHE_TTL_STUDENTS="5"):
            self.assertEqual(300, config.get_cache_ttl("filters"))
            self.assertEqual(5, config.get_cache_ttl("students"))
            self.assertEqual(60, config.get_cache_ttl("other"))

    def test_cors_origins(self) -> None:
        with self._env():
            self.assertEqual("*", config.get_cors_origins())
        with self._env(CORS_ORIGINS="http://localhost:3000, https://reports.example.org"):
            self.assertEqual(
                ["http://localhost:3000", "https://reports.example.org"],
                config.get_cors_origins(),
            )

    def test_log_level(self) -> None:
        with self._env(LOG_LEVEL="debug"):
            self.assertEqual("DEBUG", config.get_log_level())


if __name__ == "__main__":
    unittest.main()
