"""
Query configuration -- the structured form a report query takes between the
rule set and SQL.

WidgetConfig is the static part a report widget stores; QueryConfiguration
is rebuilt from it plus the flattened rule set on every execution and is
never persisted.  Wire names are camelCase (``baseTable``); Python names
are snake_case and both are accepted on input.
"""
from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.rules.model import CompiledFilter

AGGREGATE_FUNCTIONS = ("sum", "avg", "count", "min", "max")
JOIN_TYPES = ("inner", "left", "full")
DIRECTIONS = ("asc", "desc")

DEFAULT_DATE_FIELD = "pickup_date"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def label_for(field: str) -> str:
    """Result-column label for a (possibly qualified) field name."""
    return field.replace(".", "_")


class JoinSpec(_CamelModel):
    table: str = Field(..., description="Join name from the schema, e.g. 'carrier'")
    join_type: str = Field("left", description="inner | left | full")


class Aggregation(_CamelModel):
    field: str = Field(..., description="Field name, or '*' for count")
    function: str = Field("count", description="sum | avg | count | min | max")

    @property
    def label(self) -> str:
        if self.field == "*":
            return f"{self.function.lower()}_all"
        return f"{self.function.lower()}_{label_for(self.field)}"


class OrderBy(_CamelModel):
    field: str = Field(..., description="Field name or aggregation label")
    direction: str = Field("asc", description="asc | desc")


class DateRange(_CamelModel):
    field: str = DEFAULT_DATE_FIELD
    start: date | None = None
    end: date | None = None


class WidgetConfig(_CamelModel):
    """Static query definition stored with a report widget."""

    base_table: str = "shipment"
    joins: list[JoinSpec] = Field(default_factory=list)
    select_columns: list[str] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list)
    aggregations: list[Aggregation] = Field(default_factory=list)
    order_by: list[OrderBy] = Field(default_factory=list)
    limit: int = Field(1000, description="Maximum rows to return")
    date_range: DateRange | None = None


class QueryConfiguration(_CamelModel):
    """Everything needed to generate one SELECT."""

    base_table: str = "shipment"
    joins: list[JoinSpec] = Field(default_factory=list)
    select_columns: list[str] = Field(default_factory=list)
    compiled_filters: list[CompiledFilter] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list)
    aggregations: list[Aggregation] = Field(default_factory=list)
    order_by: list[OrderBy] = Field(default_factory=list)
    limit: int = 1000

    @property
    def is_grouped(self) -> bool:
        return bool(self.group_by or self.aggregations)
