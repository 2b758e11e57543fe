"""
SQL Generator -- turns a validated QueryConfiguration into a SQLAlchemy
Select.

Tables, aliases and join columns come entirely from the schema; the
generator never invents its own table references.  Joins named in the
configuration keep their requested type; joins needed only because a
referenced field lives behind them are added with the schema's default type.
Filters on a one-to-many join that nothing projects become correlated
EXISTS subqueries, so each base row appears at most once.
"""
from __future__ import annotations

from sqlalchemy import column, distinct, func, literal_column, select, table
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Dialect
from sqlalchemy.sql import ColumnElement, Select
from sqlalchemy.sql.selectable import FromClause

from src.query.models import Aggregation, QueryConfiguration, label_for
from src.query.translator import StoreCapabilities, apply_filters
from src.governance.semantic_loader import FieldRef, JoinEdge, SemanticModel, load_semantic_model
from src.governance.validator import QueryValidationError, validate_query_config
from src.core.logging import get_logger

logger = get_logger(__name__)


# ── Sources ──────────────────────────────────────────────

def _aliased_table(model: SemanticModel, name: str, alias: str):
    tdef = model.table(name)
    columns = tdef.columns if tdef else []
    return table(name, *[column(c) for c in columns]).alias(alias)


def _projected_fields(config: QueryConfiguration) -> list[str]:
    agg_labels = {a.label for a in config.aggregations}
    fields: list[str] = []
    fields.extend(config.select_columns)
    fields.extend(config.group_by)
    fields.extend(a.field for a in config.aggregations if a.field != "*")
    fields.extend(o.field for o in config.order_by if o.field not in agg_labels)
    return fields


def required_joins(config: QueryConfiguration, model: SemanticModel) -> list[tuple[JoinEdge, str]]:
    """Joins to emit, in order, with the join type to use for each.

    A one-to-many join is emitted only when named in the configuration or
    when a projected field needs it; filters on its fields alone go through
    a correlated EXISTS instead.
    """
    result: list[tuple[JoinEdge, str]] = []
    seen: set[str] = set()

    for j in config.joins:
        edge = model.join(j.table)
        if edge is not None and edge.name not in seen:
            seen.add(edge.name)
            result.append((edge, j.join_type.lower()))

    filter_fields = [f.field for f in config.compiled_filters]
    for name, from_filter in [(n, False) for n in _projected_fields(config)] + [(n, True) for n in filter_fields]:
        ref = model.resolve_field(name)
        if ref is None or ref.join is None or ref.join in seen:
            continue
        edge = model.joins[ref.join]
        if from_filter and edge.fans_out:
            continue
        seen.add(edge.name)
        result.append((edge, edge.join_type))
        logger.debug("Auto-joining '%s' for field '%s'", edge.name, name)

    return result


class _Sources:
    """FROM clause plus field -> aliased column routing for one query."""

    def __init__(self, config: QueryConfiguration, model: SemanticModel):
        self.model = model
        self.base = _aliased_table(model, model.base_table, model.base_alias)
        self.aliases = {None: self.base}
        self.fans_out = False
        from_clause: FromClause = self.base
        for edge, join_type in required_joins(config, model):
            target = _aliased_table(model, edge.table, edge.alias)
            self.aliases[edge.name] = target
            self.fans_out = self.fans_out or edge.fans_out
            on = self.base.c[edge.left_column] == target.c[edge.right_column]
            from_clause = from_clause.join(
                target, on, isouter=join_type == "left", full=join_type == "full",
            )
        self.from_clause = from_clause

    def _ref(self, field: str) -> FieldRef:
        ref = self.model.resolve_field(field)
        if ref is None:
            raise QueryValidationError([f"Unknown field '{field}'"])
        return ref

    def column(self, field: str) -> ColumnElement:
        ref = self._ref(field)
        return self.aliases[ref.join].c[ref.column]

    def related(self, field: str) -> tuple[Select, ColumnElement] | None:
        """Correlated subquery for a filter on a one-to-many join not in FROM."""
        ref = self._ref(field)
        if ref.join is None or ref.join in self.aliases:
            return None
        edge = self.model.joins[ref.join]
        if not edge.fans_out:
            return None
        target = _aliased_table(self.model, edge.table, edge.alias)
        subquery = (
            select(literal_column("1"))
            .select_from(target)
            .where(self.base.c[edge.left_column] == target.c[edge.right_column])
            .correlate(self.base)
        )
        return subquery, target.c[ref.column]

    def row_count(self) -> ColumnElement:
        """count(*), or a distinct count of base keys when a join fans out."""
        if self.fans_out and self.model.base_key:
            return func.count(distinct(self.base.c[self.model.base_key]))
        return func.count()


def _aggregate(agg: Aggregation, sources: _Sources) -> ColumnElement:
    fn = agg.function.lower()
    if agg.field == "*":
        return func.count().label(agg.label)
    return getattr(func, fn)(sources.column(agg.field)).label(agg.label)


def _validated(config: QueryConfiguration, model: SemanticModel, require_projection: bool) -> None:
    errors = validate_query_config(config, model, require_projection=require_projection)
    if errors:
        logger.warning("Query configuration rejected: %s", errors)
        raise QueryValidationError(errors)


# ── Public API ───────────────────────────────────────────

def generate_select(
    config: QueryConfiguration,
    model: SemanticModel | None = None,
    capabilities: StoreCapabilities | None = None,
) -> Select:
    """Build the SELECT for *config*.

    Raises
    ------
    QueryValidationError
        If the configuration does not validate against the schema.
    CapabilityError
        If a predicate cannot be expressed by the store.
    """
    model = model or load_semantic_model()
    _validated(config, model, require_projection=True)
    sources = _Sources(config, model)

    labelled: dict[str, ColumnElement] = {}
    if config.is_grouped:
        for g in config.group_by:
            labelled[g] = sources.column(g).label(label_for(g))
        for agg in config.aggregations:
            labelled[agg.label] = _aggregate(agg, sources)
    else:
        for c in config.select_columns:
            labelled[c] = sources.column(c).label(label_for(c))

    stmt = select(*labelled.values()).select_from(sources.from_clause)
    stmt = apply_filters(stmt, config.compiled_filters, sources.column, capabilities, sources.related)

    if config.group_by:
        stmt = stmt.group_by(*[sources.column(g) for g in config.group_by])

    for o in config.order_by:
        expr = labelled.get(o.field)
        if expr is None:
            expr = sources.column(o.field)
        stmt = stmt.order_by(expr.desc() if o.direction.lower() == "desc" else expr.asc())

    max_rows = model.security.max_rows
    if config.limit > max_rows:
        logger.info("Clamping limit %d to max_rows %d", config.limit, max_rows)
    stmt = stmt.limit(min(config.limit, max_rows))

    logger.info("Generated SQL:\n%s", render_sql(stmt))
    return stmt


def generate_count(
    config: QueryConfiguration,
    model: SemanticModel | None = None,
    capabilities: StoreCapabilities | None = None,
) -> Select:
    """``SELECT count(*)`` over the rows *config*'s joins and filters admit."""
    model = model or load_semantic_model()
    # count only the rows the filters and explicit joins admit
    config = config.model_copy(update={
        "select_columns": [], "group_by": [], "aggregations": [], "order_by": [],
    })
    _validated(config, model, require_projection=False)
    sources = _Sources(config, model)

    stmt = select(sources.row_count().label("row_count")).select_from(sources.from_clause)
    return apply_filters(stmt, config.compiled_filters, sources.column, capabilities, sources.related)


def render_sql(stmt: Select, dialect: Dialect | None = None) -> str:
    """Render *stmt* with literal values inlined (PostgreSQL dialect by default)."""
    dialect = dialect or postgresql.dialect(paramstyle="named")
    return str(stmt.compile(dialect=dialect, compile_kwargs={"literal_binds": True}))
