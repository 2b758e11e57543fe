"""
GET /fields, GET /catalog -- schema metadata for the rule editor.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from src.governance.semantic_loader import load_semantic_model
from src.rules.heuristic import PATTERN_TABLE_VERSION, pattern_table_rows
from src.rules.model import Operator

router = APIRouter()



class FieldItem(BaseModel):
    name: str
    type: str
    table: str
    join: str | None = None
    description: str = ""
    sample_values: list[str] = []


class JoinItem(BaseModel):
    name: str
    table: str
    alias: str
    join_type: str
    cardinality: str = "one"


class CatalogResponse(BaseModel):
    base_table: str
    fields: list[FieldItem]
    joins: list[JoinItem]
    operators: list[str]
    max_rows: int
    pattern_table_version: str
    pattern_table: list[dict]



@router.get("/fields", response_model=list[FieldItem])
def list_fields() -> list[FieldItem]:
    """Return the field catalog rules may reference."""
    model = load_semantic_model()
    return [FieldItem(**f) for f in model.get_fields_list()]


@router.get("/catalog", response_model=CatalogResponse)
def full_catalog() -> CatalogResponse:
    """Return the complete catalog for the rule editor."""
    model = load_semantic_model()
    return CatalogResponse(
        base_table=model.base_table,
        fields=[FieldItem(**f) for f in model.get_fields_list()],
        joins=[JoinItem(**j) for j in model.get_joins_list()],
        operators=[op.value for op in Operator],
        max_rows=model.security.max_rows,
        pattern_table_version=PATTERN_TABLE_VERSION,
        pattern_table=pattern_table_rows(),
    )
