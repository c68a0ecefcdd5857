"""
Landed cost per unit / per pack.

    total_cost = base_cost_per_unit x pack_size x (1 + overhead% + labor%)

Overhead and labor are global loaders carried in a frozen ``PricingSettings``
snapshot, never read from ambient state. No rounding happens here; callers round
at display/persist time.
"""
from __future__ import annotations

from typing import Iterable, Mapping

import pandas as pd

from freshops.models import PricingSettings, Product


def total_cost(base_cost_per_unit: float, settings: PricingSettings, pack_size: float = 1.0) -> float:
    return float(base_cost_per_unit) * float(pack_size) * settings.loader


def recost_all(products: Iterable[Product], settings: PricingSettings) -> dict[int, float]:
    return {p.id: total_cost(p.cost_per_unit, settings) for p in products}


def cost_breakdown(product: Product, settings: PricingSettings, margin_pct: float = 0.0) -> dict:
    # Local import: pricing depends on costing, not the other way round.
    from freshops.services.pricing import price_from_margin

    base = float(product.cost_per_unit)
    tc = total_cost(base, settings)
    price = price_from_margin(tc, margin_pct)
    return {
        "product_id": product.id,
        "product": product.name,
        "product_local": product.name_local or "",
        "unit": product.unit,
        "base_cost": base,
        "overhead_pct": float(settings.overhead_pct),
        "overhead_amount": base * float(settings.overhead_pct) / 100,
        "labor_pct": float(settings.labor_pct),
        "labor_amount": base * float(settings.labor_pct) / 100,
        "total_cost": tc,
        "margin_pct": float(margin_pct),
        "profit_amount": price - tc,
        "suggested_price": price,
    }


def price_list(
    products: Iterable[Product],
    settings: PricingSettings,
    margins: Mapping[int, float],
) -> pd.DataFrame:
    rows = [cost_breakdown(p, settings, margins.get(p.id, 0.0)) for p in products]
    df = pd.DataFrame(rows)
    if df.empty:
        return df
    money_cols = ["base_cost", "overhead_amount", "labor_amount", "total_cost", "profit_amount", "suggested_price"]
    df[money_cols] = df[money_cols].round(2)
    return df
