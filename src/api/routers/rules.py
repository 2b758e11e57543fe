"""POST /rules/compile, /rules/flatten, /rules/normalize -- rule authoring endpoints."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from fastapi import APIRouter

from src.rules.compiler import compile_prompt
from src.rules.flattener import flatten, summarize_filters
from src.rules.model import CompiledFilter, CompiledRule
from src.rules.serialization import deserialize_rules, load_rules, serialize_rules
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class CompileRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=500, description="Natural-language rule")
    sample_data: list[dict[str, Any]] | None = Field(None, description="A few example rows")
    provider: str | None = Field(None, description="service | mock | openai | anthropic")


class CompileResponse(BaseModel):
    status: str
    compiled_rule: CompiledRule | None = None
    explanation: str | None = None
    error: str | None = None
    source: str


class FlattenRequest(BaseModel):
    rules: list[Any] = Field(default_factory=list, description="Rule set, legacy entries allowed")


class FlattenResponse(BaseModel):
    filters: list[CompiledFilter]
    summary: str


class NormalizeRequest(BaseModel):
    payload: str | None = Field(None, description="Stored rule-set JSON")


class NormalizeResponse(BaseModel):
    payload: str
    rule_count: int



@router.post("/compile", response_model=CompileResponse)
async def compile_endpoint(req: CompileRequest):
    """Prompt -> compiled rule (remote compiler, falling back to the local heuristic)."""
    outcome = await compile_prompt(req.prompt, sample_data=req.sample_data, provider=req.provider)
    return CompileResponse(
        status="compiled" if outcome.ok else "error",
        compiled_rule=outcome.compiled_rule,
        explanation=outcome.explanation,
        error=outcome.error,
        source=outcome.source,
    )


@router.post("/flatten", response_model=FlattenResponse)
def flatten_endpoint(req: FlattenRequest):
    """Rule set -> the ordered predicates a query would run with."""
    filters = flatten(load_rules(req.rules))
    return FlattenResponse(filters=filters, summary=summarize_filters(filters))


@router.post("/normalize", response_model=NormalizeResponse)
def normalize_endpoint(req: NormalizeRequest):
    """Upgrade a stored payload to the current format."""
    rules = deserialize_rules(req.payload)
    return NormalizeResponse(payload=serialize_rules(rules), rule_count=len(rules))
