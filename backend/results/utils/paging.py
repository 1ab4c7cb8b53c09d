"""Parsing of ``page``, ``page_size``, ``sort`` and ``limit`` query arguments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence, Tuple

from pymongo import ASCENDING, DESCENDING


class QueryArgError(ValueError):
    """Raised when a paging, sort or limit query argument is invalid."""


@dataclass
class PageWindow:
    page: int
    page_size: int
    total: int
    skip: int

    @property
    def last_page(self) -> int:
        return -(-self.total // self.page_size)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "page_size": self.page_size,
            "total": self.total,
            "has_next": self.page < self.last_page,
            "has_prev": self.page > 1,
        }


@dataclass
class PageRequest:
    page: int
    page_size: int
    sort_field: str
    sort_direction: int

    @property
    def sort(self) -> List[Tuple[str, int]]:
        return [(self.sort_field, self.sort_direction)]

    @property
    def sort_label(self) -> str:
        prefix = "-" if self.sort_direction == DESCENDING else ""
        return prefix + self.sort_field

    def window(self, total: int) -> PageWindow:
        """Clamp the requested page to the pages that exist for ``total`` items."""

        last_page = max(1, -(-total // self.page_size))
        page = min(self.page, last_page)
        return PageWindow(
            page=page,
            page_size=self.page_size,
            total=total,
            skip=(page - 1) * self.page_size,
        )


def read_int(
    raw_value: Any,
    *,
    name: str,
    default: int,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int:
    text = "" if raw_value is None else str(raw_value).strip()
    if not text:
        value = default
    else:
        try:
            value = int(text)
        except ValueError:
            raise QueryArgError(f"{name} must be an integer.") from None

    if minimum is not None and value < minimum:
        raise QueryArgError(f"{name} must be ≥ {minimum}.")
    if maximum is not None and value > maximum:
        raise QueryArgError(f"{name} must be ≤ {maximum}.")
    return value


def parse_limit(raw_value: Any, *, default: int, maximum: int) -> int:
    """Row limit for list endpoints: a positive integer up to ``maximum``."""

    value = read_int(raw_value, name="limit", default=default, maximum=maximum)
    if value < 1:
        raise QueryArgError("limit must be a positive integer.")
    return value


def parse_sort(raw_value: Any, *, fields: Sequence[str], default: str) -> Tuple[str, int]:
    """``field`` sorts ascending, ``-field`` descending; ``field`` must be listed."""

    value = str(raw_value or "").strip() or default
    direction = DESCENDING if value.startswith("-") else ASCENDING
    field = value.lstrip("-")

    if field not in fields:
        options = [option for name in sorted(fields) for option in (name, f"-{name}")]
        raise QueryArgError("sort must be one of: " + ", ".join(options) + ".")
    return field, direction


def parse_page_request(
    args: Mapping[str, Any],
    *,
    sort_fields: Sequence[str],
    default_sort: str,
    default_page_size: int = 20,
    max_page_size: int = 200,
) -> PageRequest:
    page = read_int(args.get("page"), name="page", default=1, minimum=1)
    page_size = read_int(
        args.get("page_size"),
        name="page_size",
        default=default_page_size,
        minimum=1,
        maximum=max_page_size,
    )
    field, direction = parse_sort(args.get("sort"), fields=sort_fields, default=default_sort)
    return PageRequest(page=page, page_size=page_size, sort_field=field, sort_direction=direction)


__all__ = [
    "QueryArgError",
    "PageRequest",
    "PageWindow",
    "read_int",
    "parse_limit",
    "parse_sort",
    "parse_page_request",
]
