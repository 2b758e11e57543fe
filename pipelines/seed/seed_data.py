"""
Seed data generator -- creates the shipment schema and fills it with
realistic freight data.

Generates:
  - carriers from a fixed list
  - ~1 500 addresses
  - ~5 000 shipments (loads)
  - 1-3 line items per shipment

The table definitions below mirror ``semantic_layer/semantic_model.yml`` and
are also used by the test suite to build in-memory SQLite stores.
Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import os
import random
from datetime import date, timedelta
from pathlib import Path

from dotenv import load_dotenv
from faker import Faker
from sqlalchemy import (
    Column, Date, Float, ForeignKey, Integer, MetaData, String, Table,
    create_engine, delete,
)
from sqlalchemy.engine import Engine

# ── Load .env from project root ─────────────────────────
_PROJECT_ROOT = Path(__file__).resolve().parents[2]
load_dotenv(_PROJECT_ROOT / ".env")

fake = Faker("en_US")

# ── Schema ───────────────────────────────────────────────

metadata = MetaData()

carrier = Table(
    "carrier", metadata,
    Column("carrier_id", Integer, primary_key=True),
    Column("carrier_name", String(100), nullable=False),
    Column("scac", String(4)),
)

shipment_address = Table(
    "shipment_address", metadata,
    Column("address_id", Integer, primary_key=True),
    Column("city", String(100)),
    Column("state", String(2)),
    Column("postal_code", String(10)),
)

shipment = Table(
    "shipment", metadata,
    Column("load_id", Integer, primary_key=True),
    Column("customer_id", Integer),
    Column("carrier_id", Integer, ForeignKey("carrier.carrier_id")),
    Column("origin_address_id", Integer, ForeignKey("shipment_address.address_id")),
    Column("destination_address_id", Integer, ForeignKey("shipment_address.address_id")),
    Column("retail", Float),
    Column("miles", Float),
    Column("total_weight", Float),
    Column("pickup_date", Date),
    Column("delivery_date", Date),
    Column("mode_name", String(20)),
    Column("status_name", String(30)),
    Column("equipment_name", String(30)),
)

shipment_item = Table(
    "shipment_item", metadata,
    Column("item_id", Integer, primary_key=True),
    Column("load_id", Integer, ForeignKey("shipment.load_id")),
    Column("description", String(200)),
    Column("quantity", Integer),
    Column("weight", Float),
)

# ── Tunables ─────────────────────────────────────────────
NUM_ADDRESSES = 1_500
NUM_SHIPMENTS = 5_000
MAX_ITEMS_PER_SHIPMENT = 3
NUM_CUSTOMERS = 300

CARRIERS = [
    ("FedEx Freight", "FXFE"),
    ("XPO Logistics", "CNWY"),
    ("Old Dominion", "ODFL"),
    ("Estes Express", "EXLA"),
    ("Saia", "SAIA"),
    ("R+L Carriers", "RLCA"),
]
MODES = ["LTL", "TL", "Partial"]
MODE_WEIGHTS = [0.60, 0.30, 0.10]
STATUSES = ["Delivered", "In Transit", "Picked Up", "Cancelled"]
STATUS_WEIGHTS = [0.70, 0.15, 0.10, 0.05]
EQUIPMENT = ["Van", "Flatbed", "Reefer"]
PRODUCTS = [
    "CargoGlide 1000 bed slide", "CargoGlide 2200 bed slide",
    "Drawer System 48in", "Drawer System 60in", "Single drawer unit",
    "Crossover toolbox", "Chest toolbox", "Side-mount toolbox",
]

# ── Helper: date ranges ─────────────────────────────────
DATE_START = date(2024, 1, 1)
DATE_END = date(2025, 12, 31)
DATE_RANGE_DAYS = (DATE_END - DATE_START).days


def _rand_date() -> date:
    return DATE_START + timedelta(days=random.randint(0, DATE_RANGE_DAYS))


def _db_url() -> str:
    user = os.getenv("POSTGRES_USER", "rules")
    pw = os.getenv("POSTGRES_PASSWORD", "rules_pw")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    db = os.getenv("POSTGRES_DB", "shipments")
    return f"postgresql://{user}:{pw}@{host}:{port}/{db}"


# ── Generators ───────────────────────────────────────────

def gen_carriers() -> list[dict]:
    return [
        {"carrier_id": cid, "carrier_name": name, "scac": scac}
        for cid, (name, scac) in enumerate(CARRIERS, 1)
    ]


def gen_addresses(n: int = NUM_ADDRESSES) -> list[dict]:
    rows = []
    for aid in range(1, n + 1):
        rows.append({
            "address_id": aid,
            "city": fake.city(),
            "state": fake.state_abbr(include_territories=False),
            "postal_code": fake.postcode(),
        })
    return rows


def gen_shipments(
    carriers: list[dict], addresses: list[dict], n: int = NUM_SHIPMENTS,
) -> tuple[list[dict], list[dict]]:
    """Returns (shipments, shipment_items)."""
    carrier_ids = [c["carrier_id"] for c in carriers]
    address_ids = [a["address_id"] for a in addresses]
    shipments: list[dict] = []
    items: list[dict] = []
    item_id = 1

    for load_id in range(1, n + 1):
        pickup = _rand_date()
        origin, destination = random.sample(address_ids, 2)
        miles = round(random.uniform(50, 2_800), 1)
        shipments.append({
            "load_id": load_id,
            "customer_id": random.randint(1, NUM_CUSTOMERS),
            "carrier_id": random.choice(carrier_ids),
            "origin_address_id": origin,
            "destination_address_id": destination,
            "retail": round(random.uniform(150.0, 6_000.0), 2),
            "miles": miles,
            "total_weight": round(random.uniform(100, 40_000), 0),
            "pickup_date": pickup,
            "delivery_date": pickup + timedelta(days=max(1, int(miles // 500))),
            "mode_name": random.choices(MODES, weights=MODE_WEIGHTS, k=1)[0],
            "status_name": random.choices(STATUSES, weights=STATUS_WEIGHTS, k=1)[0],
            "equipment_name": random.choice(EQUIPMENT),
        })

        for _ in range(random.randint(1, MAX_ITEMS_PER_SHIPMENT)):
            items.append({
                "item_id": item_id,
                "load_id": load_id,
                "description": random.choice(PRODUCTS),
                "quantity": random.randint(1, 20),
                "weight": round(random.uniform(20, 900), 1),
            })
            item_id += 1

    return shipments, items


# ── Load helpers ─────────────────────────────────────────

def create_tables(engine: Engine) -> None:
    metadata.create_all(engine)


def insert_rows(engine: Engine, table: Table, rows: list[dict], batch_size: int = 2000) -> None:
    """Insert rows into *table* in batches (executemany)."""
    if not rows:
        return
    with engine.begin() as conn:
        for i in range(0, len(rows), batch_size):
            conn.execute(table.insert(), rows[i : i + batch_size])


def seed(engine: Engine, num_shipments: int = NUM_SHIPMENTS, rng_seed: int = 42) -> dict[str, int]:
    """(Re)create the schema on *engine* and fill it.  Returns row counts per table."""
    Faker.seed(rng_seed)
    random.seed(rng_seed)

    create_tables(engine)
    with engine.begin() as conn:
        for t in reversed(metadata.sorted_tables):
            conn.execute(delete(t))

    carriers = gen_carriers()
    addresses = gen_addresses()
    shipments, items = gen_shipments(carriers, addresses, num_shipments)

    insert_rows(engine, carrier, carriers)
    insert_rows(engine, shipment_address, addresses)
    insert_rows(engine, shipment, shipments)
    insert_rows(engine, shipment_item, items)

    return {
        "carrier": len(carriers),
        "shipment_address": len(addresses),
        "shipment": len(shipments),
        "shipment_item": len(items),
    }


# ── Main ─────────────────────────────────────────────────

def main():
    print("═══ Seed Data Generator ═══")
    engine = create_engine(_db_url(), echo=False)
    counts = seed(engine)
    for table_name, n in counts.items():
        print(f"  ✓ {table_name}: {n:,} rows")
    print(f"\nDone -- seeded {counts['shipment']:,} shipments.")


if __name__ == "__main__":
    main()
