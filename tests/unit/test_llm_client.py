"""
Unit tests -- LLM client: mock mode + dispatch.
"""
import json

import pytest
from src.rules.llm_client import call_llm
from src.rules.remote import CompilationRequest, FieldInfo, build_llm_prompt


def _prompt(request: str, *fields: str) -> str:
    return build_llm_prompt(CompilationRequest(
        prompt=request, available_fields=[FieldInfo(name=f) for f in fields],
    ))


def test_mock_replies_with_compiled_json():
    result = json.loads(call_llm(_prompt("shipments over $1,500 from CA", "retail", "origin_state"), provider="mock"))
    assert result["compiledRule"]["filters"] == [
        {"field": "retail", "operator": "gt", "value": 1500},
        {"field": "origin_state", "operator": "eq", "value": "CA"},
    ]
    assert result["explanation"].startswith("[MOCK]")


def test_mock_keeps_to_listed_fields():
    result = json.loads(call_llm(_prompt("shipments over $1,500 from CA", "origin_state"), provider="mock"))
    assert [f["field"] for f in result["compiledRule"]["filters"]] == ["origin_state"]


def test_mock_reports_unparseable_request():
    result = json.loads(call_llm(_prompt("make it better", "retail"), provider="mock"))
    assert "compiledRule" not in result
    assert "make it better" in result["error"]


def test_unknown_provider_raises():
    with pytest.raises(NotImplementedError, match="not supported"):
        call_llm("hi", provider="banana")


def test_openai_missing_key_raises(monkeypatch):
    from src.core.config import get_settings
    monkeypatch.setattr(get_settings(), "openai_api_key", "")
    with pytest.raises(RuntimeError, match="openai_api_key"):
        call_llm("hi", provider="openai")


def test_anthropic_missing_key_raises(monkeypatch):
    from src.core.config import get_settings
    monkeypatch.setattr(get_settings(), "anthropic_api_key", "")
    with pytest.raises(RuntimeError, match="anthropic_api_key"):
        call_llm("hi", provider="anthropic")
