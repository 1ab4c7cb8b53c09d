"""Application route blueprints and helpers."""

from .activity import activity_bp
from .errors import errors_bp
from .lookups import lookup_cache, lookups_bp
from .reports import reports_bp

__all__ = ["activity_bp", "errors_bp", "lookups_bp", "lookup_cache", "reports_bp"]
