"""
Validates a QueryConfiguration against the schema.

Checks performed:
  1. Base table is the schema's base table
  2. Every requested join exists and has a supported join type
  3. Every referenced field (select, group by, aggregation, order by,
     filter) resolves through the field catalog
  4. Aggregations use a supported function; '*' only with count;
     sum / avg only on numeric fields
  5. Order direction is asc / desc; limit is positive
  6. The query projects something
  7. Grouped queries: every selected or ordered field is grouped or is an
     aggregation
  8. sum / avg / count of a field outside a one-to-many join is rejected
     while that join is part of the FROM clause
"""
from __future__ import annotations

from src.governance.semantic_loader import load_semantic_model, SemanticModel
from src.query.models import AGGREGATE_FUNCTIONS, DIRECTIONS, JOIN_TYPES, QueryConfiguration


class QueryValidationError(ValueError):
    """A query configuration failed validation; ``errors`` lists every problem."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors) or "Invalid query configuration")
        self.errors = list(errors)


def _unknown_field(name: str, model: SemanticModel) -> str:
    return (
        f"Unknown field '{name}'. "
        f"Allowed: {', '.join(model.get_field_names())} "
        f"(or qualify a column with a join: {', '.join(model.get_join_names())})"
    )


def validate_query_config(
    config: QueryConfiguration,
    model: SemanticModel | None = None,
    *,
    require_projection: bool = True,
) -> list[str]:
    """Return a list of validation error messages (empty list = config is valid).

    Parameters
    ----------
    config : QueryConfiguration
        The merged widget + rule-set configuration.
    model : SemanticModel, optional
        If None, loads the default schema from disk.
    require_projection : bool
        False for count queries, which project nothing of their own.
    """
    if model is None:
        model = load_semantic_model()

    errors: list[str] = []

    if config.base_table != model.base_table:
        errors.append(
            f"Unknown base table '{config.base_table}'. Allowed: {model.base_table}"
        )
        return errors  # nothing else resolves without the base

    for j in config.joins:
        if model.join(j.table) is None:
            errors.append(
                f"Unknown join '{j.table}'. Allowed: {', '.join(model.get_join_names())}"
            )
        if j.join_type.lower() not in JOIN_TYPES:
            errors.append(
                f"Unsupported join type '{j.join_type}' for '{j.table}'. "
                f"Allowed: {', '.join(JOIN_TYPES)}"
            )

    def check_field(name: str) -> bool:
        if model.resolve_field(name) is None:
            errors.append(_unknown_field(name, model))
            return False
        return True

    for name in config.select_columns:
        check_field(name)
    for name in config.group_by:
        check_field(name)

    agg_labels: set[str] = set()
    for agg in config.aggregations:
        fn = agg.function.lower()
        agg_labels.add(agg.label)
        if fn not in AGGREGATE_FUNCTIONS:
            errors.append(
                f"Unsupported aggregation '{agg.function}'. Allowed: {', '.join(AGGREGATE_FUNCTIONS)}"
            )
            continue
        if agg.field == "*":
            if fn != "count":
                errors.append(f"Aggregation '{fn}' cannot be applied to '*'; only count can.")
            continue
        if not check_field(agg.field):
            continue
        ref = model.resolve_field(agg.field)
        if fn in ("sum", "avg") and ref.type != "number":
            errors.append(f"Aggregation '{fn}' needs a numeric field; '{agg.field}' is {ref.type}.")

    for o in config.order_by:
        if o.direction.lower() not in DIRECTIONS:
            errors.append(f"Invalid order direction '{o.direction}'. Allowed: asc, desc")
        if o.field not in agg_labels:
            check_field(o.field)

    for f in config.compiled_filters:
        check_field(f.field)

    if config.limit <= 0:
        errors.append(f"Limit must be positive, got {config.limit}.")

    if require_projection and not (config.select_columns or config.group_by or config.aggregations):
        errors.append("Nothing to select: add select columns, group-by fields or aggregations.")

    if config.is_grouped:
        grouped = set(config.group_by)
        for name in config.select_columns:
            if name not in grouped:
                ref = model.resolve_field(name)
                where = f" (from join '{ref.join}')" if ref and ref.join else ""
                errors.append(
                    f"Field '{name}'{where} must appear in group_by or be aggregated "
                    "when the query is grouped."
                )
        for o in config.order_by:
            if o.field not in grouped and o.field not in agg_labels:
                errors.append(
                    f"Cannot order by '{o.field}': it is neither grouped nor an aggregation."
                )

    errors.extend(_repeated_aggregates(config, model, agg_labels))

    return errors


def _repeated_aggregates(
    config: QueryConfiguration, model: SemanticModel, agg_labels: set[str],
) -> list[str]:
    """sum / avg / count over a field that a one-to-many join in FROM repeats."""
    fan_out: set[str] = set()
    for j in config.joins:
        edge = model.join(j.table)
        if edge is not None and edge.fans_out:
            fan_out.add(edge.name)
    projected = list(config.select_columns) + list(config.group_by)
    projected += [a.field for a in config.aggregations if a.field != "*"]
    projected += [o.field for o in config.order_by if o.field not in agg_labels]
    for name in projected:
        ref = model.resolve_field(name)
        if ref is not None and ref.join is not None and model.joins[ref.join].fans_out:
            fan_out.add(ref.join)
    if not fan_out:
        return []

    errors = []
    for agg in config.aggregations:
        fn = agg.function.lower()
        if agg.field == "*" or fn not in ("sum", "avg", "count"):
            continue
        ref = model.resolve_field(agg.field)
        if ref is not None and ref.join not in fan_out:
            errors.append(
                f"Aggregation '{fn}' of '{agg.field}' would repeat once per "
                f"'{', '.join(sorted(fan_out))}' row; filter on that join instead of selecting it."
            )
    return errors
