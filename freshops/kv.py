"""
Scoped JSON settings stored as named blobs.

Pricing settings, product margins, weight variants, the capital ledger and waste
links are small documents without relational structure, so each lives under a
fixed key in ``kv_settings``.
"""
from __future__ import annotations

import json
from typing import Any

from freshops.db import q, x
from freshops.errors import StoreError
from freshops.utils import iso_now

PRICING_SETTINGS_KEY = "pricing_settings"
PRODUCT_MARGINS_KEY = "product_margins"
WEIGHT_VARIANTS_KEY = "weight_variants"
CAPITAL_LEDGER_KEY = "capital_ledger"
WASTE_LINKS_KEY = "waste_order_links"
LAST_ORDER_KEY = "last_order"


def get_blob(conn, key: str, default: Any = None) -> Any:
    rows = q(conn, "SELECT value FROM kv_settings WHERE key=?", (key,))
    if not rows:
        return default
    try:
        return json.loads(rows[0]["value"])
    except ValueError as e:
        raise StoreError(f"Setting '{key}' is not valid JSON.") from e


def put_blob(conn, key: str, value: Any) -> None:
    x(
        conn,
        """
        INSERT INTO kv_settings (key, value, updated_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
        """,
        (key, json.dumps(value), iso_now()),
    )


def get_id_map(conn, key: str) -> dict[int, Any]:
    # JSON object keys are strings; ids are ints everywhere else.
    raw = get_blob(conn, key, {}) or {}
    return {int(k): v for k, v in raw.items()}


def put_id_map(conn, key: str, mapping: dict[int, Any]) -> None:
    put_blob(conn, key, {str(k): v for k, v in mapping.items()})
