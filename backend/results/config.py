"""Application configuration helpers."""

import os

from dotenv import load_dotenv

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
_DOTENV_PATH = os.path.join(_BASE_DIR, ".env")

if os.path.exists(_DOTENV_PATH):
    load_dotenv(_DOTENV_PATH)


class ConfigError(RuntimeError):
    """Raised when configuration values are missing or invalid."""


_MONGO_URI_CACHE = None
_DB_NAME_CACHE = None

DEFAULT_PASS_MARK = 360
DEFAULT_CACHE_TTLS = {
    "FILTERS": 300,
    "STUDENTS": 120,
}


def get_mongo_uri():
    """Return the MongoDB connection string from the environment."""

    global _MONGO_URI_CACHE

    if _MONGO_URI_CACHE:
        return _MONGO_URI_CACHE

    uri = os.getenv("MONGODB_URI")
    if not uri:
        raise ConfigError("MONGODB_URI is not set. Define it in backend/.env.")

    _MONGO_URI_CACHE = uri
    return uri


def get_db_name():
    """Return the database name derived from the MongoDB URI or env var."""

    global _DB_NAME_CACHE

    if _DB_NAME_CACHE:
        return _DB_NAME_CACHE

    db_name = os.getenv("MONGODB_DB")
    if db_name:
        _DB_NAME_CACHE = db_name
        return db_name

    uri = get_mongo_uri()
    main = uri.split("?", 1)[0].rstrip("/")
    if not main:
        raise ConfigError(
            "Database name not found. Provide it via MONGODB_URI or MONGODB_DB."
        )

    if "://" in main:
        after_scheme = main.split("://", 1)[1]
    else:
        after_scheme = main

    if "/" not in after_scheme:
        raise ConfigError(
            "Database name not found. Provide it via MONGODB_URI or MONGODB_DB."
        )

    candidate = after_scheme.split("/", 1)[1]
    if not candidate:
        raise ConfigError(
            "Database name not found. Provide it via MONGODB_URI or MONGODB_DB."
        )

    _DB_NAME_CACHE = candidate
    return candidate


def _int_env(name, default):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer.") from None
    if value < 0:
        raise ConfigError(f"{name} must not be negative.")
    return value


def get_pass_mark():
    """Return the total (out of 720) at or above which a result counts as a pass."""

    return _int_env("PASS_MARK", DEFAULT_PASS_MARK)


def get_cache_ttl(name, default=None):
    """Return the cache lifetime in seconds for ``CACHE_TTL_<NAME>``."""

    key = name.upper()
    if default is None:
        default = DEFAULT_CACHE_TTLS.get(key, 60)
    return _int_env(f"CACHE_TTL_{key}", default)


def get_cors_origins():
    raw = os.getenv("CORS_ORIGINS", "").strip()
    if not raw or raw == "*":
        return "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_log_level():
    return os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def reset_cache():
    """Forget cached connection settings (used when the environment changes)."""

    global _MONGO_URI_CACHE, _DB_NAME_CACHE
    _MONGO_URI_CACHE = None
    _DB_NAME_CACHE = None


__all__ = [
    "ConfigError",
    "get_mongo_uri",
    "get_db_name",
    "get_pass_mark",
    "get_cache_ttl",
    "get_cors_origins",
    "get_log_level",
    "reset_cache",
]
