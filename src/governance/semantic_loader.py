"""
Loads, parses, and caches the schema YAML into strongly-typed objects.

The schema is the single source of truth for:
  - the base table and its alias
  - the column set of every table a query may touch
  - approved joins (target table, alias, join columns, default join type)
  - the field catalog rules and widgets reference, and which join reaches
    each field
  - security rules (read only, max rows)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_SEMANTIC_PATH = Path(__file__).resolve().parents[2] / "semantic_layer" / "semantic_model.yml"

FIELD_TYPES = ("string", "number", "date", "boolean")


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class TableDef:
    name: str
    columns: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class JoinEdge:
    name: str
    table: str
    alias: str
    left_column: str    # on the base table
    right_column: str   # on the joined table
    join_type: str      # inner | left | full
    cardinality: str = "one"   # one | many (rows per base row)

    @property
    def fans_out(self) -> bool:
        return self.cardinality == "many"


@dataclass(frozen=True)
class FieldDef:
    name: str
    type: str
    column: str
    join: str | None = None     # None -> base table
    description: str = ""
    sample_values: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FieldRef:
    """Where a (possibly qualified) field name lands in a query."""

    name: str
    join: str | None
    column: str
    type: str


@dataclass(frozen=True)
class SecurityRules:
    read_only: bool = True
    max_rows: int = 1000


@dataclass
class SemanticModel:
    """Fully parsed schema."""

    version: int
    base_table: str
    base_alias: str
    tables: dict[str, TableDef]     # keyed by table name
    joins: dict[str, JoinEdge]      # keyed by join name
    fields: dict[str, FieldDef]     # keyed by field name
    security: SecurityRules
    base_key: str | None = None     # unique row key of the base table

    # ── Convenience look-ups ─────────────────────────

    def table(self, name: str) -> TableDef | None:
        return self.tables.get(name)

    def join(self, name: str) -> JoinEdge | None:
        """Look a join up by name, falling back to its alias."""
        edge = self.joins.get(name)
        if edge is not None:
            return edge
        for j in self.joins.values():
            if j.alias == name:
                return j
        return None

    def field(self, name: str) -> FieldDef | None:
        return self.fields.get(name)

    def get_field_names(self) -> list[str]:
        return list(self.fields.keys())

    def get_join_names(self) -> list[str]:
        return list(self.joins.keys())

    def get_fields_list(self) -> list[dict[str, Any]]:
        """Return the field catalog as a list of dicts (for API responses)."""
        result = []
        for f in self.fields.values():
            edge = self.joins.get(f.join) if f.join else None
            result.append({
                "name": f.name,
                "type": f.type,
                "table": edge.table if edge else self.base_table,
                "join": f.join,
                "description": f.description,
                "sample_values": list(f.sample_values),
            })
        return result

    def get_joins_list(self) -> list[dict[str, Any]]:
        return [
            {"name": j.name, "table": j.table, "alias": j.alias,
             "join_type": j.join_type, "cardinality": j.cardinality}
            for j in self.joins.values()
        ]

    # ── Field routing ────────────────────────────────

    def _type_of(self, join: str | None, column: str) -> str:
        for f in self.fields.values():
            if f.join == join and f.column == column:
                return f.type
        return "string"

    def _qualified(self, name: str) -> FieldRef | None:
        prefix, column = name.split(".", 1)

        if prefix in (self.base_table, self.base_alias):
            base = self.tables.get(self.base_table)
            if base is not None and column in base.columns:
                return FieldRef(name, None, column, self._type_of(None, column))
            return None

        edge = self.join(prefix)
        if edge is None:
            # A bare table name is fine as long as only one join reaches it
            candidates = [j for j in self.joins.values() if j.table == prefix]
            if len(candidates) != 1:
                return None
            edge = candidates[0]

        target = self.tables.get(edge.table)
        if target is None or column not in target.columns:
            return None
        return FieldRef(name, edge.name, column, self._type_of(edge.name, column))

    def resolve_field(self, name: str) -> FieldRef | None:
        """Route *name* to a join (or the base table) and a column.

        Accepts catalog names (``carrier_name``) and qualified names
        (``carrier.carrier_name``, ``origin.state``, ``s.retail``).
        Returns None for unknown or ambiguous names.
        """
        if not name:
            return None
        fdef = self.fields.get(name)
        if fdef is not None:
            return FieldRef(name, fdef.join, fdef.column, fdef.type)
        if "." in name:
            return self._qualified(name)
        return None

    def alias_to_table(self) -> dict[str, str]:
        """Return a map of alias -> table name."""
        mapping = {self.base_alias: self.base_table}
        for j in self.joins.values():
            mapping[j.alias] = j.table
        return mapping


# ── Parsing ──────────────────────────────────────────────

def _parse_table(raw: dict[str, Any]) -> TableDef:
    return TableDef(name=raw["name"], columns=list(raw.get("columns") or []))


def _parse_join(raw: dict[str, Any]) -> JoinEdge:
    cardinality = raw.get("cardinality", "one")
    if cardinality not in ("one", "many"):
        raise ValueError(f"Join '{raw.get('name')}' has unknown cardinality '{cardinality}'")
    return JoinEdge(
        name=raw["name"],
        table=raw["table"],
        alias=raw.get("alias") or raw["name"],
        left_column=raw["left_column"],
        right_column=raw["right_column"],
        join_type=raw.get("type", "left"),
        cardinality=cardinality,
    )


def _parse_field(raw: dict[str, Any]) -> FieldDef:
    ftype = raw.get("type", "string")
    if ftype not in FIELD_TYPES:
        raise ValueError(f"Field '{raw.get('name')}' has unknown type '{ftype}'")
    return FieldDef(
        name=raw["name"],
        type=ftype,
        column=raw.get("column") or raw["name"],
        join=raw.get("join"),
        description=raw.get("description", ""),
        sample_values=[str(v) for v in raw.get("sample_values") or []],
    )


def _parse_security(raw: dict[str, Any] | None) -> SecurityRules:
    if not raw:
        return SecurityRules()
    return SecurityRules(
        read_only=raw.get("read_only", True),
        max_rows=raw.get("max_rows", 1000),
    )


def _parse_model(raw_yaml: dict[str, Any]) -> SemanticModel:
    base = raw_yaml.get("base") or {}
    tables = {t["name"]: _parse_table(t) for t in raw_yaml.get("tables", [])}
    joins = {j["name"]: _parse_join(j) for j in raw_yaml.get("joins", [])}
    fields = {f["name"]: _parse_field(f) for f in raw_yaml.get("fields", [])}

    for f in fields.values():
        if f.join is not None and f.join not in joins:
            raise ValueError(f"Field '{f.name}' names unknown join '{f.join}'")

    return SemanticModel(
        version=raw_yaml.get("version", 1),
        base_table=base["table"],
        base_alias=base.get("alias") or base["table"],
        tables=tables,
        joins=joins,
        fields=fields,
        security=_parse_security(raw_yaml.get("security")),
        base_key=base.get("key"),
    )


# ── Public API ───────────────────────────────────────────

def parse_semantic_model(raw_yaml: dict[str, Any]) -> SemanticModel:
    """Build a SemanticModel from already-loaded YAML (tests, alternate schemas)."""
    return _parse_model(raw_yaml)


@lru_cache
def load_semantic_model() -> SemanticModel:
    """Load and cache the schema from YAML."""
    with open(_SEMANTIC_PATH) as f:
        raw = yaml.safe_load(f)
    return _parse_model(raw)


def get_field_names() -> list[str]:
    return load_semantic_model().get_field_names()
