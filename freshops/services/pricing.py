"""
Bidirectional price / margin solving and client price lists.

A ``PackQuote`` keeps {pack_size, total_cost, margin_pct, pack_price, price_per_unit}
consistent under any edit order. Margin is the durable intent:

- editing pack_price re-derives margin (size unchanged)
- editing margin re-derives pack_price (size unchanged)
- editing pack_size re-costs, then re-derives pack_price holding margin
- changing overhead/labor re-costs every quote, holding each margin

Quotes hold full precision; ``display()`` is the only place values are rounded.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional

from freshops.db import q, x
from freshops.errors import CascadeError, StoreError, ValidationError
from freshops.services.autosave import STATUS_ERROR, save_concurrently
from freshops.services.catalog import (
    list_products,
    load_pricing_settings,
    load_weight_variants,
    replace_weight_variants,
    save_pricing_settings,
)
from freshops.models import CLIENT_SUPERMARKET, PricingSettings, Product, WeightVariant
from freshops.services.costing import total_cost
from freshops.utils import iso_now, parse_number, round2, safe_div

logger = logging.getLogger(__name__)


def price_from_margin(total_cost: float, margin_pct: float) -> float:
    return float(total_cost) * (1 + float(margin_pct) / 100)


def margin_from_price(total_cost: float, price: float) -> float:
    if total_cost <= 0:
        return 0.0
    return (float(price) - float(total_cost)) / float(total_cost) * 100


def price_per_unit(pack_price: float, pack_size: float) -> float:
    return float(pack_price) / float(pack_size) if pack_size > 0 else 0.0


# -------------------------
# Quote state
# -------------------------

@dataclass(frozen=True)
class PackQuote:
    product_id: int
    base_cost: float
    pack_size: float
    margin_pct: float
    pack_price: float
    settings: PricingSettings

    @classmethod
    def for_product(
        cls,
        product: Product,
        settings: PricingSettings,
        margin_pct: float = 0.0,
        pack_size: float = 1.0,
    ) -> "PackQuote":
        tc = total_cost(product.cost_per_unit, settings, pack_size)
        return cls(
            product_id=product.id,
            base_cost=float(product.cost_per_unit),
            pack_size=float(pack_size),
            margin_pct=float(margin_pct),
            pack_price=price_from_margin(tc, margin_pct),
            settings=settings,
        )

    @property
    def total_cost(self) -> float:
        return total_cost(self.base_cost, self.settings, self.pack_size)

    @property
    def price_per_unit(self) -> float:
        return price_per_unit(self.pack_price, self.pack_size)

    def with_pack_price(self, pack_price: float) -> "PackQuote":
        return replace(
            self,
            pack_price=float(pack_price),
            margin_pct=margin_from_price(self.total_cost, pack_price),
        )

    def with_margin(self, margin_pct: float) -> "PackQuote":
        return replace(
            self,
            margin_pct=float(margin_pct),
            pack_price=price_from_margin(self.total_cost, margin_pct),
        )

    def with_pack_size(self, pack_size: float) -> "PackQuote":
        resized = replace(self, pack_size=float(pack_size))
        return replace(resized, pack_price=price_from_margin(resized.total_cost, self.margin_pct))

    def with_settings(self, settings: PricingSettings) -> "PackQuote":
        recosted = replace(self, settings=settings)
        return replace(recosted, pack_price=price_from_margin(recosted.total_cost, self.margin_pct))

    def display(self) -> dict:
        return {
            "product_id": self.product_id,
            "pack_size": round2(self.pack_size),
            "total_cost": round2(self.total_cost),
            "margin_pct": round2(self.margin_pct),
            "pack_price": round2(self.pack_price),
            "price_per_unit": round2(self.price_per_unit),
        }


def reprice_all(quotes: Iterable[PackQuote], settings: PricingSettings) -> list[PackQuote]:
    return [qt.with_settings(settings) for qt in quotes]


# -------------------------
# Edit drafts (text -> number boundary)
# -------------------------

EDIT_PACK_PRICE = "pack_price"
EDIT_MARGIN = "margin_pct"
EDIT_PACK_SIZE = "pack_size"

_FIELD_LABELS = {
    EDIT_PACK_PRICE: "Pack price",
    EDIT_MARGIN: "Margin %",
    EDIT_PACK_SIZE: "Pack size",
}


@dataclass(frozen=True)
class QuoteDraft:
    """Raw text as typed. Blank fields mean the user has not edited them."""

    pack_size: str = ""
    margin_pct: str = ""
    pack_price: str = ""

    def parse(self) -> dict[str, float]:
        out: dict[str, float] = {}
        for field, label in _FIELD_LABELS.items():
            v = parse_number(getattr(self, field), field=label, minimum=0.0)
            if v is not None:
                out[field] = v
        return out

    @classmethod
    def from_quote(cls, quote: PackQuote) -> "QuoteDraft":
        d = quote.display()
        return cls(pack_size=f"{d['pack_size']:g}", margin_pct=f"{d['margin_pct']:g}", pack_price=f"{d['pack_price']:.2f}")


def apply_draft(quote: PackQuote, field: str, text) -> PackQuote:
    if field not in _FIELD_LABELS:
        raise ValidationError(f"Unknown pricing field: {field}")
    value = parse_number(text, field=_FIELD_LABELS[field], minimum=0.0)
    if value is None:
        return quote
    if field == EDIT_PACK_PRICE:
        return quote.with_pack_price(value)
    if field == EDIT_MARGIN:
        return quote.with_margin(value)
    return quote.with_pack_size(value)


# -------------------------
# Pricing modes (per client type)
# -------------------------

class PricingMode(ABC):
    name = ""
    price_label = ""

    @abstractmethod
    def line_revenue(self, line) -> float:
        ...


class PerUnitPricing(PricingMode):
    """Restaurants: selling price is per base unit (kg or pc)."""

    name = "per_unit"
    price_label = "Price/Unit"

    def line_revenue(self, line) -> float:
        return float(line.selling_price) * float(line.quantity)


class PerPackPricing(PricingMode):
    """Supermarkets: selling price is per pack when the line tracks packs."""

    name = "per_pack"
    price_label = "Price/Pack"

    def line_revenue(self, line) -> float:
        if line.num_packages:
            return float(line.selling_price) * float(line.num_packages)
        return float(line.selling_price) * float(line.quantity)


PER_UNIT = PerUnitPricing()
PER_PACK = PerPackPricing()


def pricing_mode(client_type: Optional[str]) -> PricingMode:
    return PER_PACK if client_type == CLIENT_SUPERMARKET else PER_UNIT


# -------------------------
# Client price lists
# -------------------------

def _require_exists(conn, table: str, row_id: int, label: str) -> None:
    if not q(conn, f"SELECT 1 FROM {table} WHERE id=?", (int(row_id),)):
        raise ValidationError(f"{label} not found.")


def set_client_price(conn, client_id: int, product_id: int, selling_price) -> int:
    """
    Upsert the (client, product) selling price and append the change to history.
    """
    if client_id is None or product_id is None:
        raise ValidationError("Client and product are required.")
    price = parse_number(selling_price, field="Selling price", minimum=0.0)
    if not price:
        raise ValidationError("Selling price must be > 0.")
    _require_exists(conn, "clients", client_id, "Client")
    _require_exists(conn, "products", product_id, "Product")

    ts = iso_now()
    x(
        conn,
        """
        INSERT INTO client_pricing (client_id, product_id, selling_price, last_updated)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(client_id, product_id)
        DO UPDATE SET selling_price=excluded.selling_price, last_updated=excluded.last_updated
        """,
        (int(client_id), int(product_id), float(price), ts),
    )
    pricing_id = int(
        q(conn, "SELECT id FROM client_pricing WHERE client_id=? AND product_id=?", (int(client_id), int(product_id)))[0]["id"]
    )

    try:
        x(
            conn,
            """
            INSERT INTO client_pricing_history (client_id, product_id, selling_price, changed_at)
            VALUES (?, ?, ?, ?)
            """,
            (int(client_id), int(product_id), float(price), ts),
        )
    except StoreError as e:
        logger.warning("Price %s saved but history append failed: %s", pricing_id, e)
        raise CascadeError(
            "Price saved but its history entry was not recorded.", completed=["client_pricing"]
        ) from e
    return pricing_id


def set_price_for_clients(conn, client_ids: Iterable[int], product_id: int, selling_price) -> list[int]:
    client_ids = list(client_ids)
    if not client_ids:
        raise ValidationError("Select at least one client.")
    return [set_client_price(conn, cid, product_id, selling_price) for cid in client_ids]


def list_client_prices(conn, client_id: Optional[int] = None) -> list[dict]:
    where, params = ("WHERE cp.client_id=?", (int(client_id),)) if client_id is not None else ("", ())
    rows = q(
        conn,
        f"""
        SELECT cp.*, p.name AS product_name, p.unit, p.cost_per_unit,
               c.name AS client_name, c.type AS client_type
        FROM client_pricing cp
        JOIN products p ON p.id = cp.product_id
        JOIN clients c ON c.id = cp.client_id
        {where}
        ORDER BY c.name, p.name
        """,
        params,
    )
    return [dict(r) for r in rows]


def client_price_map(conn, client_id: int) -> dict[int, float]:
    rows = q(conn, "SELECT product_id, selling_price FROM client_pricing WHERE client_id=?", (int(client_id),))
    return {int(r["product_id"]): float(r["selling_price"]) for r in rows}


def price_history(conn, client_id: int, product_id: int) -> list[dict]:
    rows = q(
        conn,
        """
        SELECT * FROM client_pricing_history
        WHERE client_id=? AND product_id=?
        ORDER BY changed_at DESC, id DESC
        """,
        (int(client_id), int(product_id)),
    )
    return [dict(r) for r in rows]


def delete_client_price(conn, pricing_id: int) -> None:
    x(conn, "DELETE FROM client_pricing WHERE id=?", (int(pricing_id),))


def suggested_price(product: Product, settings: PricingSettings, margin_pct: float) -> float:
    return price_from_margin(total_cost(product.cost_per_unit, settings), margin_pct)


def apply_suggested_prices(
    conn,
    client_id: int,
    products: Iterable[Product],
    settings: PricingSettings,
    margins: Mapping[int, float],
) -> dict[int, float]:
    applied: dict[int, float] = {}
    for p in products:
        price = round2(suggested_price(p, settings, margins.get(p.id, 0.0)))
        if price <= 0:
            continue
        set_client_price(conn, client_id, p.id, price)
        applied[p.id] = price
    logger.info("Applied %d suggested prices to client %s", len(applied), client_id)
    return applied


# -------------------------
# Weight variants (size-based calculator)
# -------------------------

def quote_from_variant(product: Product, variant: WeightVariant, settings: PricingSettings) -> PackQuote:
    quote = PackQuote.for_product(product, settings, pack_size=variant.weight)
    return quote.with_pack_price(variant.price)


def variant_rows(product: Product, variants: Iterable[WeightVariant], settings: PricingSettings) -> list[dict]:
    rows = []
    for v in variants:
        qt = quote_from_variant(product, v, settings)
        rows.append(
            {
                "weight": v.weight,
                "price": v.price,
                "price_per_kg": round2(safe_div(v.price, v.weight)),
                "pack_cost": round2(qt.total_cost),
                "margin_pct": round2(qt.margin_pct),
            }
        )
    return rows


def variants_from_quotes(quotes: Iterable[PackQuote]) -> list[WeightVariant]:
    return [WeightVariant(weight=round(qt.pack_size, 3), price=round2(qt.pack_price)) for qt in quotes]


def reprice_variants(
    products: Iterable[Product],
    variants_by_product: Mapping[int, list[WeightVariant]],
    old: PricingSettings,
    new: PricingSettings,
) -> dict[int, list[WeightVariant]]:
    """
    Re-derive every stored pack price for new overhead/labor, holding the margin
    each variant had under the old settings. Variants without a cost to hold a
    margin against (zero base cost) keep their price.
    """
    by_id = {p.id: p for p in products}
    out: dict[int, list[WeightVariant]] = {}
    for pid, variants in variants_by_product.items():
        product = by_id.get(pid)
        if product is None or not variants:
            continue
        repriced = []
        for v in variants:
            quote = quote_from_variant(product, v, old)
            if quote.total_cost <= 0:
                repriced.append(v)
            else:
                repriced.extend(variants_from_quotes(reprice_all([quote], new)))
        out[pid] = repriced
    return out


def change_pricing_settings(conn, settings: PricingSettings) -> str:
    """
    Persist new overhead/labor and the stored pack prices they imply.

    The settings and the repriced variants are written in parallel. When a
    write fails, CascadeError lists the writes that did persist (StoreError if
    none did).
    """
    previous = load_pricing_settings(conn)
    repriced = reprice_variants(list_products(conn), load_weight_variants(conn), previous, settings)
    completed: list[str] = []

    def _save_settings():
        save_pricing_settings(conn, settings)
        completed.append("pricing_settings")

    def _save_variants():
        replace_weight_variants(conn, repriced)
        completed.append("weight_variants")

    tasks = [_save_settings]
    if repriced:
        tasks.append(_save_variants)
    status = save_concurrently(tasks)
    if status == STATUS_ERROR:
        if completed:
            raise CascadeError("Pricing settings change was only partly saved.", completed=completed)
        raise StoreError("Pricing settings change was not saved.")
    logger.info("Repriced variants for %d products", len(repriced))
    return status
