"""
Remote compilation adapter -- sends a prompt plus the field catalog to a
compiler and returns the structured response.

Providers (``compiler_provider`` setting, overridable per call):
  service   -- POST to ``compiler_service_url`` with a bearer token
  mock      -- ``call_llm`` mock mode (a JSON reply built from the local
               pattern table, parsed like any model reply)
  openai    -- ``call_llm`` via OpenAI
  anthropic -- ``call_llm`` via Anthropic

Every failure is raised as RemoteCompilationError with a ``reason`` so the
caller can log why it fell back.  Only used while authoring, never at query
time.
"""
from __future__ import annotations

import asyncio
import json
import re
from typing import Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.rules.llm_client import call_llm
from src.rules.model import CompiledRule, Operator
from src.governance.semantic_loader import SemanticModel, load_semantic_model
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import timer

logger = get_logger(__name__)

REASONS = ("credentials", "network", "status", "payload", "unavailable")


class RemoteCompilationError(RuntimeError):
    """The remote compiler could not produce a compiled rule."""

    def __init__(self, message: str, reason: str = "unavailable"):
        super().__init__(message)
        self.reason = reason


# ── Wire models ──────────────────────────────────────────

class FieldInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    type: Literal["string", "number", "date", "boolean"] = "string"
    sample_values: list[str] | None = Field(None, alias="sampleValues")


class CompilationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str
    available_fields: list[FieldInfo] = Field(default_factory=list, alias="availableFields")
    sample_data: list[dict[str, Any]] | None = Field(None, alias="sampleData")


class CompilationResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    compiled_rule: CompiledRule | None = Field(None, alias="compiledRule")
    explanation: str | None = None
    error: str | None = None


def field_catalog(model: SemanticModel | None = None) -> list[FieldInfo]:
    """The field catalog in the shape the compiler expects."""
    model = model or load_semantic_model()
    return [
        FieldInfo(name=f.name, type=f.type, sample_values=list(f.sample_values) or None)
        for f in model.fields.values()
    ]


# ── Response parsing ─────────────────────────────────────

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def _strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_response(data: Any) -> CompilationResponse:
    """Validate a decoded response body; raise on anything unusable."""
    if not isinstance(data, dict):
        raise RemoteCompilationError("Compiler response is not a JSON object", "payload")
    try:
        response = CompilationResponse.model_validate(data)
    except ValidationError as exc:
        raise RemoteCompilationError(
            f"Compiler response failed validation: {exc.error_count()} error(s)", "payload",
        ) from exc

    if response.compiled_rule is None:
        if response.error:
            raise RemoteCompilationError(response.error, "status")
        raise RemoteCompilationError("Compiler response has no compiledRule", "payload")
    return response


# ── Hosted service ───────────────────────────────────────

async def _compile_via_service(
    request: CompilationRequest, client: httpx.AsyncClient | None,
) -> CompilationResponse:
    settings = get_settings()
    if not settings.compiler_service_url:
        raise RemoteCompilationError("compiler_service_url is not set", "unavailable")
    if not settings.compiler_service_token:
        raise RemoteCompilationError("Not authenticated: compiler_service_token is not set", "credentials")

    owns_client = client is None
    http = client or httpx.AsyncClient()
    try:
        resp = await http.post(
            settings.compiler_service_url,
            json=request.model_dump(by_alias=True, exclude_none=True),
            headers={"Authorization": f"Bearer {settings.compiler_service_token}"},
        )
    except httpx.InvalidURL as exc:
        raise RemoteCompilationError(f"Invalid compiler_service_url: {exc}", "unavailable") from exc
    except httpx.HTTPError as exc:
        raise RemoteCompilationError(f"Compiler service unreachable: {exc}", "network") from exc
    finally:
        if owns_client:
            await http.aclose()

    if resp.status_code in (401, 403):
        raise RemoteCompilationError(f"Compiler service rejected credentials (HTTP {resp.status_code})", "credentials")
    if not resp.is_success:
        message = f"Compilation failed (HTTP {resp.status_code})"
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and (body.get("message") or body.get("error")):
            message = str(body.get("message") or body.get("error"))
        raise RemoteCompilationError(message, "status")

    try:
        data = resp.json()
    except ValueError as exc:
        raise RemoteCompilationError("Compiler service returned non-JSON body", "payload") from exc
    return parse_response(data)


# ── Direct LLM ───────────────────────────────────────────

_OPERATOR_LIST = ", ".join(op.value for op in Operator)


def build_llm_prompt(request: CompilationRequest) -> str:
    """Prompt for providers that talk to a model directly."""
    fields = "\n".join(
        f"  - {f.name} ({f.type})"
        + (f" e.g. {', '.join(f.sample_values[:3])}" if f.sample_values else "")
        for f in request.available_fields
    )
    sample = ""
    if request.sample_data:
        sample = "\nSample rows:\n" + json.dumps(request.sample_data[:5], default=str) + "\n"
    return (
        "Convert the filter request below into JSON of the form\n"
        '{"compiledRule": {"filters": [{"field": ..., "operator": ..., "value": ...}]},'
        ' "explanation": "..."}\n'
        "Use only these fields:\n"
        f"{fields}\n"
        f"Operators: {_OPERATOR_LIST}\n"
        "between takes [min, max]; in/not_in/contains_any/contains_all/matches_any take a list;"
        " is_null/is_not_null take null.\n"
        f"{sample}"
        "Return ONLY the JSON object.\n\n"
        f"Request: {request.prompt}"
    )


async def _compile_via_llm(request: CompilationRequest, provider: str) -> CompilationResponse:
    prompt = build_llm_prompt(request)
    try:
        text = await asyncio.to_thread(call_llm, prompt, provider)
    except NotImplementedError as exc:
        raise RemoteCompilationError(str(exc), "unavailable") from exc
    except RuntimeError as exc:
        reason = "credentials" if "api_key" in str(exc) else "unavailable"
        raise RemoteCompilationError(str(exc), reason) from exc
    except Exception as exc:  # SDK transport / API errors
        raise RemoteCompilationError(f"LLM call failed: {exc}", "network") from exc

    try:
        data = json.loads(_strip_fences(text))
    except json.JSONDecodeError as exc:
        raise RemoteCompilationError("LLM reply is not valid JSON", "payload") from exc
    return parse_response(data)


# ── Public API ───────────────────────────────────────────

async def compile_remote(
    prompt: str,
    available_fields: list[FieldInfo] | None = None,
    sample_data: list[dict[str, Any]] | None = None,
    *,
    provider: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> CompilationResponse:
    """Compile *prompt* remotely.

    Parameters
    ----------
    prompt : str
        The natural-language rule.
    available_fields : list[FieldInfo], optional
        Defaults to the schema's field catalog.
    sample_data : list[dict], optional
        A few example rows to ground the compiler.
    provider : str, optional
        Override ``compiler_provider`` from settings.
    client : httpx.AsyncClient, optional
        Injected HTTP client for the ``service`` provider.

    Raises
    ------
    RemoteCompilationError
        On any failure; ``reason`` tells which kind.
    """
    provider = (provider or get_settings().compiler_provider).lower()
    if available_fields is None:
        available_fields = field_catalog()
    request = CompilationRequest(
        prompt=prompt, available_fields=available_fields, sample_data=sample_data,
    )

    with timer() as t:
        if provider == "service":
            response = await _compile_via_service(request, client)
        else:
            response = await _compile_via_llm(request, provider)

    logger.info(
        "Remote compile provider=%s -> %d filter(s) in %d ms",
        provider, len(response.compiled_rule.filters), t["elapsed_ms"],
    )
    return response
