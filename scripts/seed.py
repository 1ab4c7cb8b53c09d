"""Seed helper that loads sample result documents into MongoDB."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv
from pymongo import MongoClient
from pymongo.errors import PyMongoError

ROOT_DIR = Path(__file__).resolve().parent.parent
BACKEND_DIR = ROOT_DIR / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from results.config import ConfigError, get_db_name, get_log_level, get_mongo_uri
from results.ingest import prepare_documents

ENV_PATH = BACKEND_DIR / ".env"
SEED_PATH = Path(__file__).resolve().parent / "seed.json"

logger = logging.getLogger("seed")


def load_env() -> None:
    if ENV_PATH.exists():
        load_dotenv(ENV_PATH)


def read_seed_file(path: Path = SEED_PATH) -> Dict[str, List[Dict[str, Any]]]:
    with path.open("r", encoding="utf-8") as seed_file:
        data = json.load(seed_file)
    if not isinstance(data, dict):
        raise ValueError("Seed file must contain an object of collections")
    for collection_name, documents in data.items():
        if not isinstance(documents, list):
            raise ValueError(
                f"Seed data for collection '{collection_name}' must be a list"
            )
    return data


def main() -> None:
    load_env()
    logging.basicConfig(level=get_log_level(), format="%(levelname)s %(message)s")
    try:
        uri = get_mongo_uri()
        db_name = get_db_name()
    except ConfigError as exc:  # pragma: no cover - simple CLI utility
        logger.error("Configuration error: %s", exc)
        raise SystemExit(1)

    client = MongoClient(uri, serverSelectionTimeoutMS=5000)
    database = client[db_name]

    try:
        seed_data = read_seed_file()

        for collection_name, rows in seed_data.items():
            documents, skipped = prepare_documents(collection_name, rows)

            collection = database[collection_name]
            collection.delete_many({})
            if documents:
                collection.insert_many(documents)

            logger.info(
                "Loaded %d document(s) into '%s' (%d duplicate(s) skipped)",
                len(documents),
                collection_name,
                skipped,
            )

        logger.info("Seeding complete for database '%s'.", db_name)
    except PyMongoError as exc:  # pragma: no cover - requires Mongo connection
        logger.error("MongoDB error: %s", exc)
        raise SystemExit(1)
    finally:
        client.close()


if __name__ == "__main__":
    main()
