"""
LLM client abstraction -- provider-agnostic wrapper used by the remote rule
compiler when it talks to a model directly instead of the hosted service.

Supported providers:
  mock      -- answer from the local pattern table as JSON (tests / offline dev)
  openai    -- OpenAI ChatCompletion (gpt-4o-mini default)
  anthropic -- Anthropic Messages (claude-3-haiku default)

Configuration is read from Settings (env / .env).
"""
from __future__ import annotations

import importlib
import json
import re
from typing import Callable

from src.rules.flattener import summarize_filters
from src.rules.heuristic import compile_prompt_locally
from src.rules.model import CompiledRule
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import timer

logger = get_logger(__name__)


_OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
_ANTHROPIC_DEFAULT_MODEL = "claude-3-haiku-20240307"

_SYSTEM_PROMPT = "You compile shipment-report filter requests into JSON filter rules. Reply with JSON only."
_MAX_REPLY_TOKENS = 512


_REQUEST_MARKER = "Request: "
_CATALOG_LINE = re.compile(r"^\s+- (\w[\w.]*) \(", re.MULTILINE)


def _call_mock(prompt: str) -> str:
    """Answer like a model would, using the local pattern table.

    Reads the request and field list out of the compile prompt, so offline
    runs go through the same JSON reply parsing as a real provider.
    """
    request = prompt.rsplit(_REQUEST_MARKER, 1)[-1].strip()
    allowed = set(_CATALOG_LINE.findall(prompt))
    compiled = compile_prompt_locally(request)
    if compiled is not None and allowed:
        compiled = CompiledRule(filters=[f for f in compiled.filters if f.field in allowed])
    if compiled is None or not compiled.filters:
        logger.info("LLM mock mode -- no pattern matched")
        return json.dumps({"error": f"[MOCK] could not compile: {request[:200]}"})

    logger.info("LLM mock mode -- %d filter(s) from pattern table", len(compiled.filters))
    return json.dumps({
        "compiledRule": compiled.model_dump(mode="json", include={"filters"}),
        "explanation": f"[MOCK] {summarize_filters(compiled.filters)}",
    })


def _api_key(name: str) -> str:
    key = getattr(get_settings(), f"{name}_api_key")
    if not key:
        raise RuntimeError(
            f"{name}_api_key is not set.  "
            f"Set {name.upper()}_API_KEY in your .env file or environment."
        )
    return key


def _import_sdk(name: str):
    try:
        return importlib.import_module(name)
    except ImportError as exc:
        raise RuntimeError(
            f"The '{name}' package is not installed.  "
            "Run: pip install 'shipment-rule-compiler[llm]'"
        ) from exc


def _call_openai(prompt: str) -> str:
    """OpenAI chat completion in JSON mode."""
    api_key = _api_key("openai")
    client = _import_sdk("openai").OpenAI(api_key=api_key)
    response = client.chat.completions.create(
        model=_OPENAI_DEFAULT_MODEL,
        messages=[
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        response_format={"type": "json_object"},
        temperature=0.0,
        max_tokens=_MAX_REPLY_TOKENS,
    )
    text = response.choices[0].message.content or ""
    logger.info("OpenAI reply (%d chars)", len(text))
    return text


def _call_anthropic(prompt: str) -> str:
    api_key = _api_key("anthropic")
    client = _import_sdk("anthropic").Anthropic(api_key=api_key)
    response = client.messages.create(
        model=_ANTHROPIC_DEFAULT_MODEL,
        max_tokens=_MAX_REPLY_TOKENS,
        temperature=0.0,
        system=_SYSTEM_PROMPT,
        messages=[{"role": "user", "content": prompt}],
    )
    text = "".join(block.text for block in response.content if getattr(block, "type", "") == "text")
    logger.info("Anthropic reply (%d chars)", len(text))
    return text


_PROVIDERS: dict[str, Callable[[str], str]] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
}


def call_llm(prompt: str, provider: str | None = None) -> str:
    """Send *prompt* to *provider* (default: ``compiler_provider``) and return the raw reply.

    Raises NotImplementedError for an unknown provider and RuntimeError for a
    missing key or SDK; the remote compiler maps both to failure reasons.
    """
    if provider is None:
        provider = get_settings().compiler_provider.lower()

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    with timer() as t:
        reply = fn(prompt)
    logger.info(
        "LLM provider=%s prompt_len=%d reply_len=%d in %d ms",
        provider, len(prompt), len(reply), t["elapsed_ms"],
    )
    return reply
