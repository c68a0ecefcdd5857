from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Mapping, Optional

import pandas as pd

from freshops.db import q
from freshops.models import PricingSettings
from freshops.services.costing import total_cost
from freshops.services.pricing import list_client_prices, price_from_margin
from freshops.utils import safe_div, to_date

HISTORY_COLUMNS = [
    "order_item_id", "order_id", "order_date", "client_id", "client_name",
    "product_id", "product_name", "unit", "base_cost",
    "quantity", "selling_price_used", "total_revenue", "total_cost",
]


def load_item_history(conn) -> pd.DataFrame:
    rows = q(
        conn,
        """
        SELECT
          oi.id AS order_item_id, oi.order_id, o.order_date, o.client_id,
          COALESCE(c.name, 'Unknown') AS client_name,
          oi.product_id, p.name AS product_name, p.unit, p.cost_per_unit AS base_cost,
          oi.quantity, oi.selling_price_used, oi.total_revenue, oi.total_cost
        FROM order_items oi
        JOIN products p ON p.id = oi.product_id
        JOIN orders o ON o.id = oi.order_id
        LEFT JOIN clients c ON c.id = o.client_id
        ORDER BY o.order_date, oi.id
        """,
    )
    df = pd.DataFrame([dict(r) for r in rows], columns=HISTORY_COLUMNS)
    for col in ["base_cost", "quantity", "selling_price_used", "total_revenue", "total_cost"]:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)
    return df


# -------------------------
# Per-product rollup
# -------------------------

@dataclass(frozen=True)
class ProductStats:
    product_id: int
    name: str
    unit: str
    base_cost: float
    total_qty: float
    total_revenue: float
    total_cost: float
    order_count: int
    avg_selling_price: float
    min_selling_price: float
    max_selling_price: float
    margin: float


def product_stats(df: pd.DataFrame) -> list[ProductStats]:
    if df.empty:
        return []
    agg = df.groupby("product_id").agg(
        name=("product_name", "first"),
        unit=("unit", "first"),
        base_cost=("base_cost", "first"),
        total_qty=("quantity", "sum"),
        total_revenue=("total_revenue", "sum"),
        total_cost=("total_cost", "sum"),
        order_count=("selling_price_used", "size"),
        min_price=("selling_price_used", "min"),
        max_price=("selling_price_used", "max"),
    )

    out = []
    for pid, r in agg.iterrows():
        revenue = float(r["total_revenue"])
        out.append(
            ProductStats(
                product_id=int(pid),
                name=str(r["name"]),
                unit=str(r["unit"]),
                base_cost=float(r["base_cost"]),
                total_qty=float(r["total_qty"]),
                total_revenue=revenue,
                total_cost=float(r["total_cost"]),
                order_count=int(r["order_count"]),
                avg_selling_price=safe_div(revenue, float(r["total_qty"])),
                min_selling_price=float(r["min_price"]) if pd.notna(r["min_price"]) else 0.0,
                max_selling_price=float(r["max_price"]) if pd.notna(r["max_price"]) else 0.0,
                margin=safe_div(revenue - float(r["total_cost"]), revenue) * 100.0,
            )
        )
    return sorted(out, key=lambda s: s.total_revenue, reverse=True)


def client_stats(df: pd.DataFrame) -> pd.DataFrame:
    if df.empty:
        return pd.DataFrame(columns=["client_id", "client_name", "total_revenue", "total_qty", "total_orders"])
    agg = (
        df.groupby("client_id")
        .agg(
            client_name=("client_name", "first"),
            total_revenue=("total_revenue", "sum"),
            total_qty=("quantity", "sum"),
            total_orders=("order_id", "nunique"),
        )
        .reset_index()
        .sort_values("total_revenue", ascending=False)
    )
    return agg.reset_index(drop=True)


# -------------------------
# Trend
# -------------------------

def trend_pct(recent: float, previous: float) -> float:
    if previous > 0:
        return (recent - previous) / previous * 100.0
    return 100.0 if recent > 0 else 0.0


@dataclass(frozen=True)
class ProductTrend:
    product_id: int
    recent_revenue: float
    previous_revenue: float
    trend_pct: float


def _days_ago(df: pd.DataFrame, today: date) -> pd.Series:
    dates = pd.to_datetime(df["order_date"]).dt.normalize()
    return (pd.Timestamp(today) - dates).dt.days


def product_trends(df: pd.DataFrame, today: Optional[date] = None) -> dict[int, ProductTrend]:
    """Recent = orders 0-7 days old, previous = 8-14 days old."""
    if df.empty:
        return {}
    today = to_date(today or date.today())
    frame = df.assign(days_ago=_days_ago(df, today))
    recent = frame[(frame["days_ago"] >= 0) & (frame["days_ago"] <= 7)].groupby("product_id")["total_revenue"].sum()
    previous = frame[(frame["days_ago"] >= 8) & (frame["days_ago"] <= 14)].groupby("product_id")["total_revenue"].sum()

    out = {}
    for pid in frame["product_id"].unique():
        r = float(recent.get(pid, 0.0))
        p = float(previous.get(pid, 0.0))
        out[int(pid)] = ProductTrend(product_id=int(pid), recent_revenue=r, previous_revenue=p, trend_pct=trend_pct(r, p))
    return out


# -------------------------
# Stock recommendation
# -------------------------

STOCK_INCREASE = "increase"
STOCK_DECREASE = "decrease"
STOCK_STABLE = "stable"
_STOCK_ORDER = {STOCK_INCREASE: 0, STOCK_DECREASE: 1, STOCK_STABLE: 2}


@dataclass(frozen=True)
class StockRecommendation:
    product_id: int
    name: str
    total_qty: float
    order_count: int
    day_span: int
    velocity: float
    action: str


def stock_action(order_count: int, velocity: float) -> str:
    if order_count >= 3 and velocity > 2:
        return STOCK_INCREASE
    if order_count <= 1 and velocity < 0.5:
        return STOCK_DECREASE
    return STOCK_STABLE


def stock_recommendations(df: pd.DataFrame) -> list[StockRecommendation]:
    if df.empty:
        return []
    frame = df.assign(order_ts=pd.to_datetime(df["order_date"]))
    agg = frame.groupby("product_id").agg(
        name=("product_name", "first"),
        total_qty=("quantity", "sum"),
        order_count=("quantity", "size"),
        first=("order_ts", "min"),
        last=("order_ts", "max"),
    )

    out = []
    for pid, r in agg.iterrows():
        span = max(1, int((r["last"] - r["first"]).days))
        velocity = float(r["total_qty"]) / span
        out.append(
            StockRecommendation(
                product_id=int(pid),
                name=str(r["name"]),
                total_qty=float(r["total_qty"]),
                order_count=int(r["order_count"]),
                day_span=span,
                velocity=velocity,
                action=stock_action(int(r["order_count"]), velocity),
            )
        )
    return sorted(out, key=lambda s: (_STOCK_ORDER[s.action], s.name))


# -------------------------
# Price suggestions (advisory only)
# -------------------------

SUGGEST_RAISE = "raise"
SUGGEST_LOWER = "lower"
SUGGEST_STANDARDIZE = "standardize"
SUGGEST_UNDERPRICED = "underpriced"


@dataclass(frozen=True)
class PriceSuggestion:
    product_id: int
    product: str
    kind: str
    message: str


def price_suggestions(
    stats: list[ProductStats],
    settings: PricingSettings,
    margins: Mapping[int, float],
) -> list[PriceSuggestion]:
    tips: list[PriceSuggestion] = []
    for s in stats:
        suggested = price_from_margin(total_cost(s.base_cost, settings), margins.get(s.product_id, 0.0))

        if s.order_count >= 3 and s.margin < 25:
            tips.append(PriceSuggestion(
                s.product_id, s.name, SUGGEST_RAISE,
                f"High demand ({s.order_count} orders) but low margin ({s.margin:.1f}%). "
                f"Consider raising price from avg {s.avg_selling_price:.2f} to {s.avg_selling_price * 1.1:.2f}.",
            ))
        elif s.order_count <= 1 and s.margin > 40:
            tips.append(PriceSuggestion(
                s.product_id, s.name, SUGGEST_LOWER,
                f"Low demand ({s.order_count} orders) with high margin ({s.margin:.1f}%). "
                "Consider lowering price to boost sales.",
            ))

        if s.min_selling_price > 0 and s.max_selling_price > 0:
            spread = (s.max_selling_price - s.min_selling_price) / s.min_selling_price * 100.0
            if spread > 20:
                tips.append(PriceSuggestion(
                    s.product_id, s.name, SUGGEST_STANDARDIZE,
                    f"Price varies {spread:.0f}% across clients "
                    f"({s.min_selling_price:.2f} to {s.max_selling_price:.2f}). Consider standardizing.",
                ))

        if suggested > 0 and s.avg_selling_price > 0 and s.avg_selling_price < suggested * 0.9:
            tips.append(PriceSuggestion(
                s.product_id, s.name, SUGGEST_UNDERPRICED,
                f"Avg selling price ({s.avg_selling_price:.2f}) is below suggested ({suggested:.2f}). "
                "You may be underpricing.",
            ))
    return tips


def pricing_overview(conn) -> pd.DataFrame:
    df = pd.DataFrame(list_client_prices(conn))
    if df.empty:
        return df
    sp = pd.to_numeric(df["selling_price"], errors="coerce").fillna(0.0)
    cost = pd.to_numeric(df["cost_per_unit"], errors="coerce").fillna(0.0)
    df["margin_on_price"] = ((sp - cost) / sp.where(sp > 0)).fillna(0.0) * 100.0
    return df
