from __future__ import annotations

import logging
import random
from datetime import date, timedelta

from freshops import kv
from freshops.db import ensure_schema, q
from freshops.models import CLIENT_RESTAURANT, CLIENT_SUPERMARKET, UNIT_KG, UNIT_PC, PricingSettings
from freshops.services.capital import ENTRY_INITIAL, add_entry
from freshops.services.catalog import (
    list_clients,
    list_products,
    load_pricing_settings,
    load_product_margins,
    save_client,
    save_pricing_settings,
    save_product,
    save_product_margin,
)
from freshops.services.orders import build_line, create_order
from freshops.services.pricing import apply_suggested_prices, client_price_map
from freshops.services.waste import record_waste

logger = logging.getLogger(__name__)

# name, unit, cost per unit, shelf life, margin %
DEFAULT_PRODUCTS = [
    ("Basil", UNIT_KG, 60.0, 5, 80.0),
    ("Rocket", UNIT_KG, 45.0, 4, 75.0),
    ("Mint", UNIT_KG, 35.0, 5, 70.0),
    ("Cherry Tomatoes", UNIT_KG, 40.0, 7, 65.0),
    ("Iceberg Lettuce", UNIT_PC, 12.0, 6, 60.0),
]

# name, type, phone, credit days
DEFAULT_CLIENTS = [
    ("Olive Bistro", CLIENT_RESTAURANT, "+20 100 000 0001", 15),
    ("Green Market", CLIENT_SUPERMARKET, "+20 100 000 0002", 30),
    ("Harbor Grill", CLIENT_RESTAURANT, "+20 100 000 0003", 0),
]

KG_PACK_SIZES = [0.25, 0.5, 1.0]


def upsert_reference_data(conn) -> None:
    """Seed pricing settings once; catalog rows are only added to an empty store."""
    ensure_schema(conn)
    if kv.get_blob(conn, kv.PRICING_SETTINGS_KEY) is None:
        save_pricing_settings(conn, PricingSettings())

    if not list_products(conn):
        for name, unit, cost, shelf, margin in DEFAULT_PRODUCTS:
            pid = save_product(conn, name=name, unit=unit, cost_per_unit=cost, shelf_life_days=shelf)
            save_product_margin(conn, pid, margin)

    if not list_clients(conn):
        for name, ctype, phone, credit in DEFAULT_CLIENTS:
            save_client(conn, name=name, client_type=ctype, phone=phone, credit_days=credit)


# Children before parents.
DATA_TABLES = [
    "order_items",
    "payments",
    "orders",
    "inventory_batches",
    "client_pricing_history",
    "client_pricing",
    "clients",
    "products",
    "kv_settings",
]

SETTINGS_KEYS = [
    kv.PRICING_SETTINGS_KEY,
    kv.PRODUCT_MARGINS_KEY,
    kv.WEIGHT_VARIANTS_KEY,
    kv.CAPITAL_LEDGER_KEY,
    kv.WASTE_LINKS_KEY,
    kv.LAST_ORDER_KEY,
]


def wipe_all(conn) -> None:
    # Keep schema, delete data.
    for t in DATA_TABLES:
        conn.execute(f"DELETE FROM {t};")
    conn.commit()
    logger.info("All data wiped")


def table_counts(conn) -> dict[str, int]:
    return {t: int(q(conn, f"SELECT COUNT(*) AS n FROM {t}")[0]["n"]) for t in DATA_TABLES}


def store_checks(conn) -> dict:
    """
    Consistency checks for the Data Management page: which settings blobs
    exist, and counts of records the cascades should not leave behind.
    """
    present = {r["key"] for r in q(conn, "SELECT key FROM kv_settings")}
    order_ids = {int(r["id"]) for r in q(conn, "SELECT id FROM orders")}
    links = kv.get_id_map(conn, kv.WASTE_LINKS_KEY)
    return {
        "settings_present": {k: k in present for k in SETTINGS_KEYS},
        "orders_without_payment": int(
            q(conn, "SELECT COUNT(*) AS n FROM orders o WHERE NOT EXISTS (SELECT 1 FROM payments p WHERE p.order_id = o.id)")[0]["n"]
        ),
        "orders_without_items": int(
            q(conn, "SELECT COUNT(*) AS n FROM orders o WHERE NOT EXISTS (SELECT 1 FROM order_items i WHERE i.order_id = o.id)")[0]["n"]
        ),
        "waste_links_to_missing_orders": sum(
            1 for link in links.values() if (link or {}).get("order_id") not in order_ids
        ),
    }


def load_demo_data(conn, *, seed: int = 7) -> None:
    random.seed(seed)
    upsert_reference_data(conn)

    settings = load_pricing_settings(conn)
    products = list_products(conn)
    clients = list_clients(conn)
    margins = load_product_margins(conn)

    for c in clients:
        apply_suggested_prices(conn, c.id, products, settings, margins)

    add_entry(conn, ENTRY_INITIAL, 20000, "Opening capital", (date.today() - timedelta(days=14)).isoformat())

    # Two weeks of orders so both trend windows have data
    order_ids = []
    for _ in range(10):
        client = random.choice(clients)
        prices = client_price_map(conn, client.id)
        order_day = date.today() - timedelta(days=random.randint(0, 14))

        lines = []
        for p in random.sample(products, k=random.randint(1, 3)):
            if p.is_kg:
                line = build_line(
                    p,
                    prices.get(p.id),
                    package_size=random.choice(KG_PACK_SIZES),
                    num_packages=random.randint(2, 12),
                )
            else:
                line = build_line(p, prices.get(p.id), count=random.randint(5, 30))
            lines.append(line)

        result = create_order(
            conn,
            client_id=client.id,
            order_date=order_day.isoformat(),
            delivery_date=(order_day + timedelta(days=1)).isoformat(),
            lines=lines,
            transport_cost=float(random.choice([0, 50, 80, 120])),
            packaging_cost=float(random.choice([0, 20, 40])),
        )
        order_ids.append((result.order_id, client.id))

    # A few harvest batches, one linked to an order
    for j, p in enumerate(products[:3]):
        link_order, link_client = order_ids[j] if j == 0 else (None, None)
        harvested = round(random.uniform(20, 60), 2)
        record_waste(
            conn,
            product_id=p.id,
            harvest_date=(date.today() - timedelta(days=j + 1)).isoformat(),
            harvested_qty=harvested,
            damaged_qty=round(harvested * random.uniform(0.0, 0.08), 2),
            expired_qty=round(harvested * random.uniform(0.0, 0.05), 2),
            client_id=link_client,
            order_id=link_order,
        )

    n = len(q(conn, "SELECT id FROM orders"))
    logger.info("Demo data loaded: %s orders", n)
