"""
Unit tests -- schema loader: parsing, field routing, catalog helpers.
"""
import pytest

from src.governance.semantic_loader import (
    FieldRef,
    load_semantic_model,
    parse_semantic_model,
)


@pytest.fixture(scope="module")
def model():
    return load_semantic_model()


def test_base_table(model):
    assert model.base_table == "shipment"
    assert model.base_alias == "s"


def test_loader_is_cached():
    assert load_semantic_model() is load_semantic_model()


def test_joins_parsed(model):
    assert set(model.get_join_names()) == {"carrier", "origin", "destination", "shipment_item"}
    origin = model.join("origin")
    assert origin.table == "shipment_address"
    assert origin.left_column == "origin_address_id"
    assert origin.join_type == "left"
    assert model.join("shipment_item").join_type == "inner"


def test_join_cardinality(model):
    assert model.join("shipment_item").fans_out
    assert not model.join("carrier").fans_out
    assert model.base_key == "load_id"


def test_join_lookup_by_alias(model):
    assert model.join("da").name == "destination"


def test_security(model):
    assert model.security.read_only is True
    assert model.security.max_rows == 1000


# ── Field routing ────────────────────────────────────────

def test_base_field(model):
    assert model.resolve_field("retail") == FieldRef("retail", None, "retail", "number")


def test_joined_catalog_field(model):
    assert model.resolve_field("origin_state") == FieldRef("origin_state", "origin", "state", "string")
    assert model.resolve_field("destination_state").join == "destination"


def test_qualified_by_join_name(model):
    ref = model.resolve_field("carrier.carrier_name")
    assert (ref.join, ref.column, ref.type) == ("carrier", "carrier_name", "string")


def test_qualified_by_alias(model):
    assert model.resolve_field("oa.city").join == "origin"


def test_qualified_base_column(model):
    ref = model.resolve_field("shipment.miles")
    assert ref.join is None
    assert ref.type == "number"


def test_qualified_unique_table_name(model):
    assert model.resolve_field("shipment_item.quantity").join == "shipment_item"


def test_ambiguous_table_name_rejected(model):
    # shipment_address is reached by both origin and destination
    assert model.resolve_field("shipment_address.state") is None


@pytest.mark.parametrize("name", ["", "nonexistent", "carrier.nope", "nowhere.state"])
def test_unknown_fields(model, name):
    assert model.resolve_field(name) is None


# ── Catalog helpers ──────────────────────────────────────

def test_fields_list(model):
    items = {f["name"]: f for f in model.get_fields_list()}
    assert items["carrier_name"]["table"] == "carrier"
    assert items["retail"]["table"] == "shipment"
    assert items["retail"]["join"] is None


def test_alias_to_table(model):
    aliases = model.alias_to_table()
    assert aliases["s"] == "shipment"
    assert aliases["oa"] == aliases["da"] == "shipment_address"


# ── Parsing errors ───────────────────────────────────────

def _raw(**overrides):
    raw = {
        "base": {"table": "t", "alias": "t"},
        "tables": [{"name": "t", "columns": ["a"]}],
        "joins": [],
        "fields": [{"name": "a", "type": "number"}],
    }
    raw.update(overrides)
    return raw


def test_parse_minimal_model():
    m = parse_semantic_model(_raw())
    assert m.resolve_field("a").column == "a"
    assert m.security.max_rows == 1000


def test_unknown_field_type_rejected():
    with pytest.raises(ValueError, match="unknown type"):
        parse_semantic_model(_raw(fields=[{"name": "a", "type": "blob"}]))


def test_field_with_unknown_join_rejected():
    with pytest.raises(ValueError, match="unknown join"):
        parse_semantic_model(_raw(fields=[{"name": "a", "join": "ghost"}]))
