"""
Shared fixtures -- a small in-memory shipment store built from the seed
script's table definitions.
"""
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from pipelines.seed.seed_data import (
    carrier, create_tables, insert_rows, shipment, shipment_address, shipment_item,
)
from src.governance.semantic_loader import load_semantic_model, SemanticModel
from src.query.models import OrderBy, QueryConfiguration
from src.query.sql_generator import generate_select
from src.db.executor import execute_readonly


CARRIERS = [
    {"carrier_id": 1, "carrier_name": "FedEx Freight", "scac": "FXFE"},
    {"carrier_id": 2, "carrier_name": "XPO Logistics", "scac": "CNWY"},
]

ADDRESSES = [
    {"address_id": 1, "city": "Los Angeles", "state": "CA", "postal_code": "90001"},
    {"address_id": 2, "city": "Dallas", "state": "TX", "postal_code": "75201"},
    {"address_id": 3, "city": "New York", "state": "NY", "postal_code": "10001"},
]


def _load(load_id, carrier_id, origin, dest, retail, miles, weight, pickup, mode, status):
    return {
        "load_id": load_id, "customer_id": 10 + load_id, "carrier_id": carrier_id,
        "origin_address_id": origin, "destination_address_id": dest,
        "retail": retail, "miles": miles, "total_weight": weight,
        "pickup_date": pickup, "delivery_date": pickup,
        "mode_name": mode, "status_name": status, "equipment_name": "Van",
    }


SHIPMENTS = [
    _load(1, 1, 1, 2, 100.0, 400.0, 500.0, date(2024, 1, 10), "LTL", "Delivered"),
    _load(2, 2, 1, 3, 500.0, 2800.0, 12000.0, date(2024, 2, 15), "TL", "In Transit"),
    _load(3, 1, 2, 1, 1600.0, 1400.0, 3000.0, date(2024, 3, 20), "LTL", "Delivered"),
    _load(4, 2, 3, 2, 2500.0, 1500.0, 800.0, date(2024, 4, 5), "Partial", "Cancelled"),
    _load(5, None, 2, 3, 99.5, 1500.0, 200.0, date(2024, 5, 1), "LTL", "Picked Up"),
]

ITEMS = [
    {"item_id": 1, "load_id": 1, "description": "Drawer System 48in", "quantity": 2, "weight": 250.0},
    {"item_id": 2, "load_id": 2, "description": "Crossover toolbox", "quantity": 1, "weight": 90.0},
    {"item_id": 3, "load_id": 3, "description": "CargoGlide 1000 bed slide", "quantity": 1, "weight": 400.0},
    {"item_id": 4, "load_id": 4, "description": "Single drawer unit", "quantity": 3, "weight": 120.0},
    {"item_id": 5, "load_id": 5, "description": "Pallet of brackets", "quantity": 8, "weight": 200.0},
    {"item_id": 6, "load_id": 1, "description": "Drawer liner", "quantity": 4, "weight": 12.0},
    {"item_id": 7, "load_id": 2, "description": "Tie-down straps", "quantity": 6, "weight": 8.0},
]


@pytest.fixture(scope="session")
def model() -> SemanticModel:
    return load_semantic_model()


@pytest.fixture
def store():
    """SQLite engine holding the five-load fixture data set."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    insert_rows(engine, carrier, CARRIERS)
    insert_rows(engine, shipment_address, ADDRESSES)
    insert_rows(engine, shipment, SHIPMENTS)
    insert_rows(engine, shipment_item, ITEMS)
    yield engine
    engine.dispose()


@pytest.fixture
def load_ids(store, model):
    """Run filters against the store and return the matching load ids, sorted."""
    def run(filters, capabilities=None) -> list[int]:
        config = QueryConfiguration(
            select_columns=["load_id"],
            compiled_filters=filters,
            order_by=[OrderBy(field="load_id")],
        )
        stmt = generate_select(config, model, capabilities)
        return [r["load_id"] for r in execute_readonly(stmt, engine=store)]
    return run
