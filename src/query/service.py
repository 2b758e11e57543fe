"""
Query service -- orchestrates flatten -> merge -> validate -> generate -> execute.

The widget's static configuration is merged with the flattened rule set on
every run; the merged QueryConfiguration is never stored.  Rule predicates
are fixed at authoring time, so nothing here compiles or calls out to a
compiler.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Iterable

from sqlalchemy.engine import Engine

from src.query.models import QueryConfiguration, WidgetConfig, DateRange
from src.query.sql_generator import generate_count, generate_select, render_sql
from src.query.translator import StoreCapabilities
from src.rules.flattener import flatten
from src.rules.model import CompiledFilter, Operator, Rule
from src.rules.preview import Counter
from src.governance.semantic_loader import SemanticModel, load_semantic_model
from src.governance.validator import QueryValidationError
from src.db.executor import execute_readonly, execute_scalar
from src.core.logging import get_logger

logger = get_logger(__name__)


class QueryResult:
    def __init__(
        self,
        config: QueryConfiguration,
        sql: str,
        rows: list[dict[str, Any]],
        errors: list[str],
        latency_ms: int = 0,
    ):
        self.config = config
        self.sql = sql
        self.rows = rows
        self.errors = errors
        self.latency_ms = latency_ms

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def success(self) -> bool:
        return not self.errors


def date_range_filters(date_range: DateRange | None) -> list[CompiledFilter]:
    """A widget date range as leading gte / lte predicates."""
    if date_range is None:
        return []
    filters = []
    if date_range.start is not None:
        filters.append(CompiledFilter(
            field=date_range.field, operator=Operator.gte, value=date_range.start.isoformat(),
        ))
    if date_range.end is not None:
        filters.append(CompiledFilter(
            field=date_range.field, operator=Operator.lte, value=date_range.end.isoformat(),
        ))
    return filters


def build_query_configuration(widget: WidgetConfig, rules: Iterable[Rule]) -> QueryConfiguration:
    """Merge the widget's static configuration with the flattened rule set."""
    filters = date_range_filters(widget.date_range) + flatten(rules)
    return QueryConfiguration(
        base_table=widget.base_table,
        joins=widget.joins,
        select_columns=widget.select_columns,
        compiled_filters=filters,
        group_by=widget.group_by,
        aggregations=widget.aggregations,
        order_by=widget.order_by,
        limit=widget.limit,
    )


def run_query(
    widget: WidgetConfig,
    rules: Iterable[Rule],
    *,
    execute: bool = True,
    engine: Engine | None = None,
    model: SemanticModel | None = None,
    capabilities: StoreCapabilities | None = None,
) -> QueryResult:
    """End-to-end: widget + rules -> rows.

    Parameters
    ----------
    widget : WidgetConfig
        Static query definition of the report widget.
    rules : iterable of Rule
        The widget's rule set, in authored order.
    execute : bool
        If True, run the generated SQL.  If False, return the SQL only (dry-run).
    engine : Engine, optional
        Defaults to the shared PostgreSQL engine.

    Validation problems come back in ``errors``.  CapabilityError and
    QueryExecutionError propagate to the caller.
    """
    t0 = time.perf_counter()
    model = model or load_semantic_model()
    config = build_query_configuration(widget, rules)
    logger.info("Query.run | base=%s | filters=%d | execute=%s",
                config.base_table, len(config.compiled_filters), execute)

    try:
        stmt = generate_select(config, model, capabilities)
    except QueryValidationError as exc:
        latency = int((time.perf_counter() - t0) * 1000)
        return QueryResult(config=config, sql="", rows=[], errors=exc.errors, latency_ms=latency)

    sql = render_sql(stmt)
    rows: list[dict[str, Any]] = []
    if execute:
        rows = execute_readonly(stmt, engine=engine)

    latency = int((time.perf_counter() - t0) * 1000)
    logger.info("Query.run done | rows=%d | latency_ms=%d", len(rows), latency)
    return QueryResult(config=config, sql=sql, rows=rows, errors=[], latency_ms=latency)


def count_matching(
    widget: WidgetConfig,
    filters: Iterable[CompiledFilter],
    *,
    engine: Engine | None = None,
    model: SemanticModel | None = None,
    capabilities: StoreCapabilities | None = None,
) -> int:
    """Number of base rows the widget's joins and *filters* admit."""
    config = build_query_configuration(widget, []).model_copy(update={
        "compiled_filters": date_range_filters(widget.date_range) + list(filters),
    })
    stmt = generate_count(config, model, capabilities)
    return int(execute_scalar(stmt, engine=engine) or 0)


def count_rows(
    widget: WidgetConfig,
    rules: Iterable[Rule],
    *,
    engine: Engine | None = None,
    model: SemanticModel | None = None,
    capabilities: StoreCapabilities | None = None,
) -> int:
    return count_matching(widget, flatten(rules), engine=engine, model=model, capabilities=capabilities)


def make_store_counter(widget: WidgetConfig, engine: Engine | None = None) -> Counter:
    """Counter for RowCountPreview that runs the count query off the event loop."""
    async def counter(filters: list[CompiledFilter]) -> int:
        return await asyncio.to_thread(count_matching, widget, filters, engine=engine)
    return counter
