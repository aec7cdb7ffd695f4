# Overview: Named filter predicates and pagination for ledger queries.

"""
Query filters.

Each query declares the filter names it accepts and how each one maps to a
SQLAlchemy predicate. Callers pass a plain mapping; unknown names are rejected
instead of being spliced into SQL.
"""

from __future__ import annotations

from typing import Callable, Mapping

from ..errors import ValidationError
from ..time_utils import range_end, range_start

DEFAULT_LIMIT = 50
MAX_LIMIT = 500

FilterSpec = Mapping[str, Callable]


def equals(column):
    return lambda value: column == value


def date_from(column):
    return lambda value: column >= range_start(value)


def date_to(column):
    def _pred(value):
        bound, inclusive = range_end(value)
        return column <= bound if inclusive else column < bound
    return _pred


def build_predicates(filters: Mapping | None, spec: FilterSpec) -> list:
    """Translate ``{name: value}`` into predicates. None values are skipped."""
    predicates = []
    for name, value in (filters or {}).items():
        if name not in spec:
            raise ValidationError(
                f"Unknown filter: {name}",
                details={"filter": name, "allowed": sorted(spec)},
            )
        if value is None:
            continue
        try:
            predicates.append(spec[name](value))
        except ValueError as exc:
            raise ValidationError(f"Invalid value for filter {name}", details={"filter": name}) from exc
    return predicates


def paginate(query, limit: int | None = None, offset: int | None = None):
    """Return ``(items, total)`` for an already ordered query."""
    limit = DEFAULT_LIMIT if limit is None else limit
    offset = offset or 0
    if limit < 1 or offset < 0:
        raise ValidationError("limit must be positive and offset non-negative",
                              details={"limit": limit, "offset": offset})
    limit = min(limit, MAX_LIMIT)
    total = query.order_by(None).count()
    items = query.limit(limit).offset(offset).all()
    return items, total
