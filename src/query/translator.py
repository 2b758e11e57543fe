"""
Predicate-to-query translator -- folds CompiledFilters into a SQLAlchemy
Select, one ``.where()`` per predicate, in order.

  eq / neq / gt / gte / lt / lte        -> comparison
  contains / not_contains               -> ILIKE '%v%' / NOT ILIKE '%v%'
  starts_with / ends_with               -> ILIKE 'v%' / ILIKE '%v'
  in / matches_any                      -> IN (empty list matches nothing)
  not_in                                -> NOT IN (empty list excludes nothing);
                                           CapabilityError if the store lacks it
  is_null / is_not_null                 -> IS NULL / IS NOT NULL
  between                               -> >= min AND <= max (inclusive)
  contains_any                          -> (ILIKE OR ILIKE ...), empty matches nothing
  contains_all                          -> ILIKE AND ILIKE ..., empty is no restriction

Pattern literals are escaped, so `%` and `_` in a value match themselves.

Predicates on a one-to-many relation (see `related_clause`) become
correlated EXISTS / NOT EXISTS subqueries so a base row is matched once,
however many related rows it has.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Iterable

from pydantic import ValidationError
from sqlalchemy import and_, column, false, or_
from sqlalchemy.sql import ColumnElement, Select

from src.rules.model import CompiledFilter, Operator
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

ColumnResolver = Callable[[str], ColumnElement]
# field -> (correlated subquery, column on it) for one-to-many fields, else None
RelatedResolver = Callable[[str], "tuple[Select, ColumnElement] | None"]


class CapabilityError(RuntimeError):
    """The query store cannot express a predicate."""


@dataclass(frozen=True)
class StoreCapabilities:
    supports_not_in: bool = True

    @classmethod
    def from_settings(cls) -> "StoreCapabilities":
        return cls(supports_not_in=get_settings().store_supports_not_in)


def coerce_filters(filters: Iterable[CompiledFilter | dict[str, Any]]) -> list[CompiledFilter]:
    """Parse raw dict predicates; malformed ones are dropped with a warning."""
    result: list[CompiledFilter] = []
    for idx, f in enumerate(filters):
        if isinstance(f, CompiledFilter):
            result.append(f)
            continue
        try:
            result.append(CompiledFilter.model_validate(f))
        except ValidationError as exc:
            logger.warning("Dropping malformed filter #%d: %d validation error(s)", idx, exc.error_count())
    return result


def filter_clause(
    f: CompiledFilter, col: ColumnElement, capabilities: StoreCapabilities,
) -> ColumnElement | None:
    """SQL expression for one predicate; None means "no restriction"."""
    op, v = f.operator, f.value

    if op is Operator.eq:
        return col == v
    if op is Operator.neq:
        return col != v
    if op is Operator.gt:
        return col > v
    if op is Operator.gte:
        return col >= v
    if op is Operator.lt:
        return col < v
    if op is Operator.lte:
        return col <= v

    if op is Operator.contains:
        return col.icontains(str(v), autoescape=True)
    if op is Operator.not_contains:
        return ~col.icontains(str(v), autoescape=True)
    if op is Operator.starts_with:
        return col.istartswith(str(v), autoescape=True)
    if op is Operator.ends_with:
        return col.iendswith(str(v), autoescape=True)

    if op in (Operator.in_, Operator.matches_any):
        return col.in_(v) if v else false()
    if op is Operator.not_in:
        if not capabilities.supports_not_in:
            raise CapabilityError(
                f"The query store does not support 'not_in' (field '{f.field}')"
            )
        return col.not_in(v) if v else None

    if op is Operator.is_null:
        return col.is_(None)
    if op is Operator.is_not_null:
        return col.is_not(None)

    if op is Operator.between:
        low, high = v
        return and_(col >= low, col <= high)

    if op is Operator.contains_any:
        if not v:
            return false()
        return or_(*[col.icontains(str(term), autoescape=True) for term in v])
    if op is Operator.contains_all:
        if not v:
            return None
        return and_(*[col.icontains(str(term), autoescape=True) for term in v])

    raise CapabilityError(f"Unsupported operator '{op.value}'")


# Negative operators on a one-to-many relation hold when *no* related row
# satisfies the positive form.
_POSITIVE_FORM = {
    Operator.neq: Operator.eq,
    Operator.not_contains: Operator.contains,
    Operator.not_in: Operator.in_,
    Operator.is_null: Operator.is_not_null,
}


def related_clause(
    f: CompiledFilter, col: ColumnElement, related: Select, capabilities: StoreCapabilities,
) -> ColumnElement | None:
    """EXISTS / NOT EXISTS predicate for a column on a one-to-many relation.

    *related* is the correlated subquery selecting the base row's related
    rows; *col* is a column of that subquery's table.  ``not_in`` is
    expressed as NOT EXISTS ... IN, so it needs no store support.
    """
    positive = _POSITIVE_FORM.get(f.operator)
    if positive is not None:
        f = CompiledFilter(field=f.field, operator=positive, value=f.value)
    clause = filter_clause(f, col, capabilities)
    if clause is None:
        return None
    match = related.where(clause).exists()
    return ~match if positive is not None else match


def apply_filters(
    stmt: Select,
    filters: Iterable[CompiledFilter | dict[str, Any]],
    resolve_column: ColumnResolver | None = None,
    capabilities: StoreCapabilities | None = None,
    resolve_related: RelatedResolver | None = None,
) -> Select:
    """Return *stmt* with every predicate ANDed into its WHERE clause."""
    resolve = resolve_column or column
    caps = capabilities or StoreCapabilities.from_settings()
    for f in coerce_filters(filters):
        related = resolve_related(f.field) if resolve_related else None
        if related is not None:
            subquery, col = related
            clause = related_clause(f, col, subquery, caps)
        else:
            clause = filter_clause(f, resolve(f.field), caps)
        if clause is not None:
            stmt = stmt.where(clause)
    return stmt
