"""
Unit tests -- rule model: operator shapes, strict predicates, AI rule states.
"""
import pytest
from pydantic import ValidationError

from src.rules.model import (
    AIRule,
    AIRuleStatus,
    CompiledFilter,
    CompiledRule,
    Condition,
    FilterRule,
    Operator,
    ValueShape,
    required_shape,
    rule_adapter,
)


# ── Operator shapes ──────────────────────────────────────

def test_in_operator_wire_value():
    assert Operator.in_.value == "in"
    assert Operator("in") is Operator.in_


@pytest.mark.parametrize("op,shape", [
    (Operator.eq, ValueShape.SCALAR),
    (Operator.contains, ValueShape.SCALAR),
    (Operator.is_null, ValueShape.NONE),
    (Operator.between, ValueShape.RANGE),
    (Operator.in_, ValueShape.LIST),
    (Operator.contains_all, ValueShape.LIST),
])
def test_required_shape(op, shape):
    assert required_shape(op) is shape


# ── CompiledFilter ───────────────────────────────────────

def test_compiled_filter_accepts_scalar():
    f = CompiledFilter(field="retail", operator="gt", value=1500)
    assert f.operator is Operator.gt
    assert f.value == 1500


def test_compiled_filter_strips_field():
    f = CompiledFilter(field="  origin_state ", operator="eq", value="CA")
    assert f.field == "origin_state"


def test_compiled_filter_rejects_blank_field():
    with pytest.raises(ValidationError):
        CompiledFilter(field="  ", operator="eq", value="CA")


def test_compiled_filter_rejects_unknown_operator():
    with pytest.raises(ValidationError):
        CompiledFilter(field="retail", operator="roughly", value=1)


def test_null_operator_drops_value():
    f = CompiledFilter(field="carrier_name", operator="is_null", value="ignored")
    assert f.value is None


def test_between_needs_numeric_pair():
    assert CompiledFilter(field="miles", operator="between", value=(100, 500)).value == [100, 500]
    with pytest.raises(ValidationError):
        CompiledFilter(field="miles", operator="between", value=[100])
    with pytest.raises(ValidationError):
        CompiledFilter(field="miles", operator="between", value=["a", "b"])
    with pytest.raises(ValidationError):
        CompiledFilter(field="miles", operator="between", value=[True, 5])


def test_list_operator_needs_list():
    with pytest.raises(ValidationError):
        CompiledFilter(field="carrier_name", operator="in", value="FedEx Freight")


def test_list_operator_accepts_empty_list():
    assert CompiledFilter(field="carrier_name", operator="in", value=[]).value == []


def test_scalar_operator_rejects_list_and_none():
    with pytest.raises(ValidationError):
        CompiledFilter(field="retail", operator="eq", value=[1, 2])
    with pytest.raises(ValidationError):
        CompiledFilter(field="retail", operator="eq", value=None)


def test_from_condition():
    c = Condition(field="retail", operator="lte", value=10)
    assert CompiledFilter.from_condition(c) == CompiledFilter(field="retail", operator="lte", value=10)


# ── Conditions are lenient ───────────────────────────────

def test_condition_allows_half_filled():
    c = Condition(field="", operator="bogus")
    assert c.field == ""
    assert c.operator == "bogus"


# ── AI rule states ───────────────────────────────────────

def _compiled() -> CompiledRule:
    return CompiledRule(filters=[CompiledFilter(field="retail", operator="gt", value=1)], explanation="x")


def test_compiled_status_requires_rule():
    with pytest.raises(ValidationError):
        AIRule(prompt="p", status="compiled")


def test_with_prompt_resets_to_pending():
    rule = AIRule(prompt="over 1").with_compiled(_compiled())
    edited = rule.with_prompt("over 2")
    assert edited.status is AIRuleStatus.pending
    assert edited.compiled_rule is None
    assert edited.explanation is None
    assert not edited.contributes


def test_same_prompt_is_noop():
    rule = AIRule(prompt="over 1").with_compiled(_compiled())
    assert rule.with_prompt("over 1") is rule


def test_with_error_clears_compiled_rule():
    rule = AIRule(prompt="p").with_compiled(_compiled()).with_error("boom")
    assert rule.status is AIRuleStatus.error
    assert rule.compiled_rule is None
    assert rule.error == "boom"


def test_with_compiled_uses_rule_explanation_by_default():
    rule = AIRule(prompt="p").begin_compile().with_compiled(_compiled())
    assert rule.status is AIRuleStatus.compiled
    assert rule.explanation == "x"
    assert rule.contributes


def test_disabled_rule_does_not_contribute():
    rule = AIRule(prompt="p", enabled=False).with_compiled(_compiled())
    assert not rule.contributes


# ── Discriminated union ──────────────────────────────────

def test_rule_adapter_dispatches_on_type():
    assert isinstance(rule_adapter.validate_python({"type": "filter"}), FilterRule)
    ai = rule_adapter.validate_python({"type": "ai", "prompt": "p"})
    assert isinstance(ai, AIRule)


def test_rule_adapter_reads_camel_case_compiled_rule():
    ai = rule_adapter.validate_python({
        "type": "ai", "prompt": "p", "status": "compiled",
        "compiledRule": {"filters": [{"field": "retail", "operator": "gt", "value": 5}]},
    })
    assert ai.compiled_rule.filters[0].value == 5


def test_rule_ids_are_unique():
    assert FilterRule().id != FilterRule().id
