"""POST /query/plan, /query/execute, /query/count -- report query endpoints."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter, HTTPException

from src.query.service import build_query_configuration, count_rows, run_query
from src.query.models import WidgetConfig
from src.query.sql_generator import generate_select, render_sql
from src.query.translator import CapabilityError
from src.rules.model import CompiledFilter
from src.rules.serialization import load_rules
from src.governance.validator import QueryValidationError
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class QueryRequest(BaseModel):
    widget: WidgetConfig = Field(default_factory=WidgetConfig)
    rules: list[Any] = Field(default_factory=list, description="The widget's rule set")


class PlanResponse(BaseModel):
    sql: str
    filters: list[CompiledFilter]
    errors: list[str]


class ExecuteResponse(BaseModel):
    sql: str
    rows: list[dict]
    row_count: int
    latency_ms: int


class CountResponse(BaseModel):
    count: int



@router.post("/plan", response_model=PlanResponse)
def plan_endpoint(req: QueryRequest):
    """Dry-run: widget + rules -> SQL (no execution)."""
    config = build_query_configuration(req.widget, load_rules(req.rules))
    try:
        sql = render_sql(generate_select(config))
    except QueryValidationError as exc:
        return PlanResponse(sql="", filters=config.compiled_filters, errors=exc.errors)
    except CapabilityError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return PlanResponse(sql=sql, filters=config.compiled_filters, errors=[])


@router.post("/execute", response_model=ExecuteResponse)
def execute_endpoint(req: QueryRequest):
    """Full pipeline: flatten -> merge -> validate -> SQL -> execute."""
    try:
        result = run_query(req.widget, load_rules(req.rules))
    except CapabilityError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if result.errors:
        raise HTTPException(status_code=422, detail=result.errors)
    return ExecuteResponse(
        sql=result.sql,
        rows=result.rows,
        row_count=result.row_count,
        latency_ms=result.latency_ms,
    )


@router.post("/count", response_model=CountResponse)
def count_endpoint(req: QueryRequest):
    """Row count for the current rule set (the preview's query)."""
    try:
        count = count_rows(req.widget, load_rules(req.rules))
    except QueryValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors)
    except CapabilityError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return CountResponse(count=count)
