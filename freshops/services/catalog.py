from __future__ import annotations

import logging
from typing import Optional

from freshops import db, kv
from freshops.db import q
from freshops.errors import ValidationError
from freshops.models import (
    CLIENT_TYPES,
    CLIENT_RESTAURANT,
    DEFAULT_CREDIT_DAYS,
    DEFAULT_SHELF_LIFE_DAYS,
    UNITS,
    Client,
    PricingSettings,
    Product,
    WeightVariant,
)
from freshops.utils import iso_now

logger = logging.getLogger(__name__)


def _clean(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = str(s).strip()
    return s if s else None


# -------------------------
# Products
# -------------------------

def list_products(conn) -> list[Product]:
    return [Product.from_row(r) for r in q(conn, "SELECT * FROM products ORDER BY name, id")]


def get_product(conn, product_id: int) -> Optional[Product]:
    rows = q(conn, "SELECT * FROM products WHERE id=?", (int(product_id),))
    return Product.from_row(rows[0]) if rows else None


def save_product(
    conn,
    *,
    name: str,
    unit: str,
    cost_per_unit,
    shelf_life_days: Optional[int] = None,
    name_local: Optional[str] = None,
    product_id: Optional[int] = None,
) -> int:
    name = _clean(name)
    if not name:
        raise ValidationError("Product name is required.")
    if cost_per_unit is None or str(cost_per_unit).strip() == "":
        raise ValidationError("Cost per unit is required.")
    try:
        cost = float(cost_per_unit)
    except (TypeError, ValueError):
        raise ValidationError("Cost per unit must be a number.")
    if cost < 0:
        raise ValidationError("Cost per unit must be >= 0.")
    unit = str(unit or "").strip().lower()
    if unit not in UNITS:
        raise ValidationError("Unit must be 'kg' or 'pc'.")

    row = {
        "name": name,
        "name_local": _clean(name_local),
        "unit": unit,
        "cost_per_unit": cost,
        "shelf_life_days": int(shelf_life_days or DEFAULT_SHELF_LIFE_DAYS),
    }
    if product_id is None:
        row["created_at"] = iso_now()
    else:
        row["id"] = int(product_id)
    pid = db.upsert(conn, "products", row)
    logger.info("Saved product %s (%s)", pid, name)
    return pid


def delete_product(conn, product_id: int) -> None:
    db.delete(conn, "products", id=int(product_id))
    logger.info("Deleted product %s", product_id)


# -------------------------
# Clients
# -------------------------

def list_clients(conn) -> list[Client]:
    return [Client.from_row(r) for r in q(conn, "SELECT * FROM clients ORDER BY name, id")]


def get_client(conn, client_id: int) -> Optional[Client]:
    rows = q(conn, "SELECT * FROM clients WHERE id=?", (int(client_id),))
    return Client.from_row(rows[0]) if rows else None


def save_client(
    conn,
    *,
    name: str,
    client_type: str = CLIENT_RESTAURANT,
    phone: Optional[str] = None,
    credit_days: Optional[int] = DEFAULT_CREDIT_DAYS,
    name_local: Optional[str] = None,
    client_id: Optional[int] = None,
) -> int:
    name = _clean(name)
    if not name:
        raise ValidationError("Client name is required.")
    client_type = str(client_type or "").strip().lower()
    if client_type not in CLIENT_TYPES:
        raise ValidationError("Client type must be 'restaurant' or 'supermarket'.")
    if credit_days is not None and int(credit_days) < 0:
        raise ValidationError("Credit days must be >= 0.")

    row = {
        "name": name,
        "name_local": _clean(name_local),
        "type": client_type,
        "phone": _clean(phone),
        "credit_days": None if credit_days is None else int(credit_days),
    }
    if client_id is None:
        row["created_at"] = iso_now()
    else:
        row["id"] = int(client_id)
    cid = db.upsert(conn, "clients", row)
    logger.info("Saved client %s (%s)", cid, name)
    return cid


def delete_client(conn, client_id: int) -> None:
    db.delete(conn, "clients", id=int(client_id))
    logger.info("Deleted client %s", client_id)


# -------------------------
# Scoped pricing settings
# -------------------------

def load_pricing_settings(conn) -> PricingSettings:
    return PricingSettings.from_dict(kv.get_blob(conn, kv.PRICING_SETTINGS_KEY))


def save_pricing_settings(conn, settings: PricingSettings) -> None:
    kv.put_blob(conn, kv.PRICING_SETTINGS_KEY, settings.to_dict())
    logger.info("Pricing settings saved: overhead=%s%% labor=%s%%", settings.overhead_pct, settings.labor_pct)


def load_product_margins(conn) -> dict[int, float]:
    return {k: float(v or 0) for k, v in kv.get_id_map(conn, kv.PRODUCT_MARGINS_KEY).items()}


def save_product_margin(conn, product_id: int, profit_margin_pct: float) -> None:
    if float(profit_margin_pct) < 0:
        raise ValidationError("Profit margin must be >= 0.")
    margins = load_product_margins(conn)
    margins[int(product_id)] = float(profit_margin_pct)
    kv.put_id_map(conn, kv.PRODUCT_MARGINS_KEY, margins)


def load_weight_variants(conn) -> dict[int, list[WeightVariant]]:
    raw = kv.get_id_map(conn, kv.WEIGHT_VARIANTS_KEY)
    return {pid: [WeightVariant.from_dict(v) for v in (rows or [])] for pid, rows in raw.items()}


def _check_variants(variants: list[WeightVariant]) -> None:
    for v in variants:
        if v.weight <= 0:
            raise ValidationError("Pack weight must be > 0.")
        if v.price < 0:
            raise ValidationError("Pack price must be >= 0.")


def save_weight_variants(conn, product_id: int, variants: list[WeightVariant]) -> None:
    _check_variants(variants)
    all_variants = kv.get_id_map(conn, kv.WEIGHT_VARIANTS_KEY)
    all_variants[int(product_id)] = [v.to_dict() for v in variants]
    kv.put_id_map(conn, kv.WEIGHT_VARIANTS_KEY, all_variants)


def replace_weight_variants(conn, variants_by_product: dict[int, list[WeightVariant]]) -> None:
    """Overwrite the variants of every product in the map in one write; others are kept."""
    all_variants = kv.get_id_map(conn, kv.WEIGHT_VARIANTS_KEY)
    for pid, variants in variants_by_product.items():
        _check_variants(variants)
        all_variants[int(pid)] = [v.to_dict() for v in variants]
    kv.put_id_map(conn, kv.WEIGHT_VARIANTS_KEY, all_variants)
