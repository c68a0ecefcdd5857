from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from freshops.db import q
from freshops.services.capital import CapitalPosition, capital_position, list_entries
from freshops.utils import safe_div, to_date


@dataclass(frozen=True)
class DashboardMetrics:
    revenue: float
    profit: float
    avg_margin: float
    base_cost: float
    transport_cost: float
    packaging_cost: float
    total_cost: float
    waste_pct: float
    waste_value: float
    outstanding: float
    total_collected: float
    base_cost_collected: float
    top_client_pct: float
    order_count: int

    def pct_of_revenue(self, amount: float) -> float:
        return safe_div(amount, self.revenue) * 100.0

    @property
    def transport_pct(self) -> float:
        return self.pct_of_revenue(self.transport_cost)


def weekly_metrics(conn, today: Optional[date] = None, window_days: int = 7) -> DashboardMetrics:
    """
    Order figures cover the trailing window; waste, receivables and client
    concentration are all-time.
    """
    since = (to_date(today or date.today()) - timedelta(days=int(window_days))).isoformat()

    o = q(
        conn,
        """
        SELECT
          COUNT(1) AS n,
          COALESCE(SUM(total_revenue),0) AS revenue,
          COALESCE(SUM(net_profit),0) AS profit,
          COALESCE(AVG(margin_percentage),0) AS avg_margin,
          COALESCE(SUM(transport_cost),0) AS transport,
          COALESCE(SUM(packaging_cost),0) AS packaging
        FROM orders
        WHERE order_date >= ?
        """,
        (since,),
    )[0]

    base = q(
        conn,
        """
        SELECT COALESCE(SUM(oi.total_cost),0) AS base_cost
        FROM order_items oi
        JOIN orders o ON o.id = oi.order_id
        WHERE o.order_date >= ?
        """,
        (since,),
    )[0]

    w = q(
        conn,
        """
        SELECT
          COALESCE(SUM(harvested_qty),0) AS harvested,
          COALESCE(SUM(damaged_qty + expired_qty),0) AS wasted,
          COALESCE(SUM(waste_value),0) AS value
        FROM inventory_batches
        """,
    )[0]

    p = q(
        conn,
        """
        SELECT
          COALESCE(SUM(CASE WHEN status='paid' THEN amount ELSE 0 END),0) AS collected,
          COALESCE(SUM(CASE WHEN status!='paid' THEN amount ELSE 0 END),0) AS outstanding
        FROM payments
        """,
    )[0]

    collected_base = q(
        conn,
        """
        SELECT COALESCE(SUM(oi.total_cost),0) AS base_cost
        FROM payments p
        JOIN order_items oi ON oi.order_id = p.order_id
        WHERE p.status='paid'
        """,
    )[0]

    by_client = q(
        conn,
        "SELECT client_id, COALESCE(SUM(total_revenue),0) AS revenue FROM orders GROUP BY client_id",
    )
    all_revenue = sum(float(r["revenue"]) for r in by_client)
    top = max((float(r["revenue"]) for r in by_client), default=0.0)

    base_cost = float(base["base_cost"])
    transport = float(o["transport"])
    packaging = float(o["packaging"])

    return DashboardMetrics(
        revenue=float(o["revenue"]),
        profit=float(o["profit"]),
        avg_margin=float(o["avg_margin"]),
        base_cost=base_cost,
        transport_cost=transport,
        packaging_cost=packaging,
        total_cost=base_cost + transport + packaging,
        waste_pct=safe_div(float(w["wasted"]), float(w["harvested"])) * 100.0,
        waste_value=float(w["value"]),
        outstanding=float(p["outstanding"]),
        total_collected=float(p["collected"]),
        base_cost_collected=float(collected_base["base_cost"]),
        top_client_pct=safe_div(top, all_revenue) * 100.0,
        order_count=int(o["n"]),
    )


def dashboard_capital(conn, metrics: DashboardMetrics) -> CapitalPosition:
    # Farmer obligation is the base cost of orders in the reporting window.
    return capital_position(
        list_entries(conn),
        collected=metrics.total_collected,
        outstanding=metrics.outstanding,
        farmer_owed=metrics.base_cost,
    )
