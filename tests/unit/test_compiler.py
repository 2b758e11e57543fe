"""
Unit tests -- compile fallback chain: remote -> local heuristic -> error.
"""
import asyncio

import httpx
import pytest

from src.core.config import get_settings
from src.rules.compiler import PARSE_FAILURE_MESSAGE, apply_outcome, compile_prompt
from src.rules.heuristic import compile_prompt_locally
from src.rules.model import AIRule, AIRuleStatus


def _run(prompt: str, handler=None, provider: str = "service"):
    async def go():
        if handler is None:
            return await compile_prompt(prompt, provider=provider)
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await compile_prompt(prompt, provider=provider, client=client)
    return asyncio.run(go())


@pytest.fixture
def service_settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "compiler_service_url", "https://compiler.test/compile")
    monkeypatch.setattr(settings, "compiler_service_token", "t")
    return settings


def _down(request):
    raise httpx.ConnectError("down", request=request)


def test_remote_success_wins(service_settings):
    body = {"compiledRule": {"filters": [{"field": "miles", "operator": "lt", "value": 5}]},
            "explanation": "short hauls"}
    outcome = _run("short hauls", lambda r: httpx.Response(200, json=body))
    assert outcome.source == "remote"
    assert outcome.compiled_rule.filters[0].field == "miles"
    assert outcome.explanation == "short hauls"


@pytest.mark.parametrize("prompt", [
    "show shipments over $1,500 from CA",
    'contains "drawer system" or "toolbox"',
    "FedEx loads between $100 and $500",
])
def test_remote_failure_equals_local(service_settings, prompt):
    outcome = _run(prompt, _down)
    assert outcome.source == "local"
    assert outcome.fallback_reason == "network"
    assert outcome.compiled_rule == compile_prompt_locally(prompt)


def test_missing_credentials_falls_back(service_settings, monkeypatch):
    monkeypatch.setattr(service_settings, "compiler_service_token", "")
    outcome = _run("over $10", lambda r: httpx.Response(200, json={}))
    assert outcome.source == "local"
    assert outcome.fallback_reason == "credentials"


def test_mock_provider_compiles_remotely():
    outcome = _run("over $10 from TX", provider="mock")
    assert outcome.source == "remote"
    assert outcome.fallback_reason is None
    assert outcome.compiled_rule.filters == compile_prompt_locally("over $10 from TX").filters


def test_unknown_provider_falls_back_locally():
    outcome = _run("over $10 from TX", provider="banana")
    assert outcome.source == "local"
    assert outcome.fallback_reason == "unavailable"
    assert len(outcome.compiled_rule.filters) == 2


def test_unparseable_everywhere_is_error():
    outcome = _run("make it better", provider="mock")
    assert not outcome.ok
    assert outcome.source == "none"
    assert outcome.error == PARSE_FAILURE_MESSAGE


def test_empty_prompt_is_error():
    outcome = _run("   ", provider="mock")
    assert outcome.error == "Prompt is empty"


def test_apply_outcome_compiled():
    outcome = _run("over $10", provider="mock")
    rule = apply_outcome(AIRule(prompt="over $10").begin_compile(), outcome)
    assert rule.status is AIRuleStatus.compiled
    assert "retail gt 10" in rule.explanation


def test_apply_outcome_error():
    outcome = _run("make it better", provider="mock")
    rule = apply_outcome(AIRule(prompt="make it better").begin_compile(), outcome)
    assert rule.status is AIRuleStatus.error
    assert rule.compiled_rule is None
    assert rule.error == PARSE_FAILURE_MESSAGE
