"""
Unit tests -- local heuristic compiler: pattern table categories and order.
"""
import pytest

from src.rules.heuristic import (
    PATTERN_TABLE,
    PATTERN_TABLE_VERSION,
    compile_prompt_locally,
    extract_by_category,
    metric_field_for,
    parse_simple_logic,
    pattern_table_rows,
)
from src.rules.model import CompiledFilter, Operator


def _filters(prompt: str) -> list[tuple]:
    compiled = compile_prompt_locally(prompt)
    assert compiled is not None, prompt
    return [(f.field, f.operator, f.value) for f in compiled.filters]


# ── Reference prompts ────────────────────────────────────

def test_over_amount_from_state():
    compiled = compile_prompt_locally("show shipments over $1,500 from CA")
    assert compiled.filters == [
        CompiledFilter(field="retail", operator="gt", value=1500),
        CompiledFilter(field="origin_state", operator="eq", value="CA"),
    ]


def test_quoted_literals():
    compiled = compile_prompt_locally('anything with "drawer system" or "toolbox"')
    assert compiled.filters == [
        CompiledFilter(field="item_description", operator="contains_any",
                       value=["drawer system", "toolbox"]),
    ]


def test_unparseable_prompt_returns_none():
    assert compile_prompt_locally("make it better") is None


@pytest.mark.parametrize("prompt", ["", "   "])
def test_blank_prompt_returns_none(prompt):
    assert compile_prompt_locally(prompt) is None


# ── Numeric categories ───────────────────────────────────

def test_range():
    assert _filters("loads between $100 and $500") == [("retail", Operator.between, [100, 500])]


def test_upper_bound_with_weight_unit():
    assert _filters("shipments under 1000 lbs") == [("total_weight", Operator.lt, 1000)]


def test_lower_bound_with_miles_unit():
    assert _filters("more than 800 miles") == [("miles", Operator.gt, 800)]


def test_field_keyword_overrides_default_metric():
    assert _filters("heavy loads above 20,000") == [("total_weight", Operator.gt, 20000)]


def test_decimal_values_stay_float():
    assert _filters("over $99.50") == [("retail", Operator.gt, 99.5)]


def test_metric_field_default():
    assert metric_field_for("over 10 dollars", 7) == "retail"


def test_lower_and_upper_bound_both_emitted():
    assert _filters("over $100 but under $900") == [
        ("retail", Operator.gt, 100),
        ("retail", Operator.lt, 900),
    ]


# ── Literal set ──────────────────────────────────────────

def test_product_keyword_without_quotes():
    assert _filters("cargoglide orders") == [("item_description", Operator.contains_any, ["cargoglide"])]


def test_longest_product_keyword_wins():
    assert _filters("drawer system loads") == [("item_description", Operator.contains_any, ["drawer system"])]


def test_quotes_take_precedence_over_keywords():
    assert _filters('toolbox sales of "bed slide"') == [
        ("item_description", Operator.contains_any, ["bed slide"]),
    ]


# ── States ───────────────────────────────────────────────

def test_destination_state():
    assert _filters("loads to TX") == [("destination_state", Operator.eq, "TX")]


def test_origin_and_destination():
    assert _filters("from CA to NY") == [
        ("origin_state", Operator.eq, "CA"),
        ("destination_state", Operator.eq, "NY"),
    ]


def test_invalid_state_code_ignored():
    assert _filters("from XX to NY") == [("destination_state", Operator.eq, "NY")]


def test_lowercase_state_not_matched():
    assert compile_prompt_locally("from ca") is None


# ── Vocabularies ─────────────────────────────────────────

def test_single_carrier_is_eq():
    assert _filters("fedex loads") == [("carrier_name", Operator.eq, "FedEx Freight")]


def test_several_carriers_is_in():
    assert _filters("FedEx or XPO loads") == [
        ("carrier_name", Operator.in_, ["FedEx Freight", "XPO Logistics"]),
    ]


def test_status_and_mode():
    assert _filters("delivered LTL shipments") == [
        ("status_name", Operator.eq, "Delivered"),
        ("mode_name", Operator.eq, "LTL"),
    ]


def test_mode_synonyms_collapse():
    assert _filters("truckload and ftl") == [("mode_name", Operator.eq, "TL")]


# ── Table & metadata ─────────────────────────────────────

def test_pattern_table_order():
    assert [c.name for c in PATTERN_TABLE] == [
        "range", "lower_bound", "upper_bound", "literal_set",
        "origin", "destination", "carrier", "status", "mode",
    ]


def test_extract_by_category_reports_hits_only():
    hits = extract_by_category("over $10 from TX")
    assert set(hits) == {"lower_bound", "origin"}


def test_explanation_mentions_local_parse():
    compiled = compile_prompt_locally("over $10")
    assert compiled.explanation == "Parsed locally: retail gt 10"


def test_parse_simple_logic_alias():
    assert parse_simple_logic("over $10") == compile_prompt_locally("over $10")


def test_deterministic():
    prompt = "FedEx shipments over $2,000 from TX to CA"
    assert compile_prompt_locally(prompt) == compile_prompt_locally(prompt)


def test_pattern_table_rows():
    rows = pattern_table_rows()
    assert rows[0] == {"order": 1, "category": "range", "field": "numeric metric"}
    assert len(rows) == len(PATTERN_TABLE)
    assert PATTERN_TABLE_VERSION
