"""
Rule compiler -- prompt -> CompiledRule with a fallback chain:

  1. remote compiler (service or LLM provider)
  2. local heuristic, when the remote fails for any reason
  3. error, when the heuristic cannot parse the prompt either

Failures never escape: the outcome carries either a compiled rule or an
error message, and ``apply_outcome`` records it on the AI rule.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from src.rules.heuristic import compile_prompt_locally
from src.rules.model import AIRule, CompiledRule
from src.rules.remote import FieldInfo, RemoteCompilationError, compile_remote
from src.core.logging import get_logger

logger = get_logger(__name__)

PARSE_FAILURE_MESSAGE = (
    "Could not understand this rule. Try something like "
    "'shipments over $1,000 from CA' or 'carrier is FedEx'."
)


@dataclass
class CompilationOutcome:
    compiled_rule: CompiledRule | None = None
    explanation: str | None = None
    error: str | None = None
    source: str = "none"            # remote | local | none
    fallback_reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.compiled_rule is not None


async def compile_prompt(
    prompt: str,
    available_fields: list[FieldInfo] | None = None,
    sample_data: list[dict[str, Any]] | None = None,
    *,
    provider: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> CompilationOutcome:
    """Compile *prompt*, falling back to the local heuristic."""
    if not prompt or not prompt.strip():
        return CompilationOutcome(error="Prompt is empty")

    fallback_reason: str | None = None
    try:
        response = await compile_remote(
            prompt, available_fields, sample_data, provider=provider, client=client,
        )
    except RemoteCompilationError as exc:
        fallback_reason = exc.reason
        logger.warning("Remote compile failed (%s): %s -- falling back to local heuristic", exc.reason, exc)
    else:
        compiled = response.compiled_rule
        return CompilationOutcome(
            compiled_rule=compiled,
            explanation=response.explanation or compiled.explanation,
            source="remote",
        )

    local = compile_prompt_locally(prompt)
    if local is None:
        logger.info("Local heuristic could not parse prompt either")
        return CompilationOutcome(error=PARSE_FAILURE_MESSAGE, fallback_reason=fallback_reason)

    logger.info("Compiled locally -> %d filter(s)", len(local.filters))
    return CompilationOutcome(
        compiled_rule=local,
        explanation=local.explanation,
        source="local",
        fallback_reason=fallback_reason,
    )


def apply_outcome(rule: AIRule, outcome: CompilationOutcome) -> AIRule:
    """Move *rule* to ``compiled`` or ``error`` according to *outcome*."""
    if outcome.compiled_rule is not None:
        return rule.with_compiled(outcome.compiled_rule, outcome.explanation)
    return rule.with_error(outcome.error or "Unknown error")
