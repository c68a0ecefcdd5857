from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Iterable, Optional

from freshops import kv
from freshops.db import q, x
from freshops.errors import CascadeError, IncompleteDeletion, StoreError, ValidationError
from freshops.models import UNIT_KG, Client, Product
from freshops.services.catalog import get_client
from freshops.services.pricing import pricing_mode
from freshops.services.receivables import create_payment, due_date, get_payment_for_order
from freshops.utils import iso_now, safe_div, to_date

logger = logging.getLogger(__name__)

ZONE_GREEN = "green"
ZONE_YELLOW = "yellow"
ZONE_RED = "red"

GREEN_MIN_MARGIN = 75.0
YELLOW_MIN_MARGIN = 65.0


def classify_margin(margin: float) -> str:
    if margin >= GREEN_MIN_MARGIN:
        return ZONE_GREEN
    if margin >= YELLOW_MIN_MARGIN:
        return ZONE_YELLOW
    return ZONE_RED


@dataclass
class OrderLine:
    product_id: int
    quantity: float                      # total base units (kg or pcs)
    selling_price: float                 # per unit, or per pack for supermarkets
    cost: float                          # farmer cost per base unit (snapshot)
    unit: str = UNIT_KG
    product_name: str = ""
    package_size: Optional[float] = None
    num_packages: Optional[int] = None

    @property
    def total_cost(self) -> float:
        return float(self.cost) * float(self.quantity)

    @classmethod
    def from_dict(cls, d: dict) -> "OrderLine":
        return cls(**{k: d[k] for k in cls.__dataclass_fields__ if k in d})


def build_line(
    product: Product,
    client_price: Optional[float],
    *,
    package_size: Optional[float] = None,
    num_packages: Optional[int] = None,
    count: Optional[float] = None,
) -> OrderLine:
    """
    kg products are entered as package size x number of packages; pc products as a count.
    Price and cost are copied from the current catalog and frozen on the line.
    """
    if not client_price:
        raise ValidationError(f"No price set for {product.name} for this client.")

    if product.is_kg:
        size = float(package_size or 0)
        n = int(num_packages or 0)
        qty = size * n
        name = f"{product.name} ({size:g}kg × {n})"
    else:
        size, n = None, None
        qty = float(count or 0)
        name = product.name

    if qty <= 0:
        raise ValidationError("Invalid quantity.")

    return OrderLine(
        product_id=product.id,
        quantity=qty,
        selling_price=float(client_price),
        cost=float(product.cost_per_unit),
        unit=product.unit,
        product_name=name,
        package_size=size,
        num_packages=n,
    )


@dataclass(frozen=True)
class OrderTotals:
    revenue: float
    farmer_cost: float
    logistics: float
    total_cost: float
    profit: float
    margin: float

    @property
    def margin_percentage(self) -> float:
        return round(self.margin, 2)

    @property
    def zone(self) -> str:
        # Derived from the stored (rounded) margin so the pair never disagrees.
        return classify_margin(self.margin_percentage)


def line_revenue(line: OrderLine, client_type: Optional[str]) -> float:
    return pricing_mode(client_type).line_revenue(line)


def compute_totals(
    lines: Iterable[OrderLine],
    transport_cost: float,
    packaging_cost: float,
    client_type: Optional[str],
) -> OrderTotals:
    mode = pricing_mode(client_type)
    lines = list(lines)
    revenue = sum(mode.line_revenue(l) for l in lines)
    farmer_cost = sum(l.total_cost for l in lines)
    logistics = float(transport_cost or 0) + float(packaging_cost or 0)
    total = farmer_cost + logistics
    profit = revenue - total
    return OrderTotals(
        revenue=revenue,
        farmer_cost=farmer_cost,
        logistics=logistics,
        total_cost=total,
        profit=profit,
        margin=safe_div(profit, revenue) * 100.0,
    )


def validate_order(
    client: Optional[Client],
    lines: list[OrderLine],
    order_date,
    delivery_date,
    transport_cost: float,
    packaging_cost: float,
) -> None:
    if client is None:
        raise ValidationError("Select a client.")
    if not lines:
        raise ValidationError("Add at least one item.")
    if to_date(delivery_date) < to_date(order_date):
        raise ValidationError("Delivery date must be on or after the order date.")
    if float(transport_cost or 0) < 0:
        raise ValidationError("Transport cost cannot be negative.")
    if float(packaging_cost or 0) < 0:
        raise ValidationError("Packaging cost cannot be negative.")
    for l in lines:
        if float(l.quantity) <= 0:
            raise ValidationError("Item quantities must be > 0.")
        if float(l.selling_price) < 0 or float(l.cost) < 0:
            raise ValidationError("Item price and cost cannot be negative.")


@dataclass(frozen=True)
class OrderResult:
    order_id: int
    payment_id: Optional[int]
    totals: OrderTotals


def _insert_items(conn, order_id: int, lines: list[OrderLine], client_type: Optional[str]) -> None:
    for l in lines:
        x(
            conn,
            """
            INSERT INTO order_items (
                order_id, product_id, quantity,
                selling_price_used, cost_used, total_revenue, total_cost
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                int(order_id),
                int(l.product_id),
                float(l.quantity),
                float(l.selling_price),
                float(l.cost),
                float(line_revenue(l, client_type)),
                float(l.total_cost),
            ),
        )


def _order_values(totals: OrderTotals) -> tuple:
    return (
        float(totals.revenue),
        float(totals.total_cost),
        float(totals.profit),
        float(totals.margin_percentage),
        totals.zone,
    )


def create_order(
    conn,
    *,
    client_id: int,
    order_date,
    delivery_date,
    lines: list[OrderLine],
    transport_cost: float = 0.0,
    packaging_cost: float = 0.0,
) -> OrderResult:
    client = get_client(conn, client_id) if client_id is not None else None
    validate_order(client, lines, order_date, delivery_date, transport_cost, packaging_cost)
    totals = compute_totals(lines, transport_cost, packaging_cost, client.type)

    order_id = x(
        conn,
        """
        INSERT INTO orders (
            client_id, order_date, delivery_date, transport_cost, packaging_cost,
            total_revenue, total_cost, net_profit, margin_percentage, margin_zone, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            int(client.id),
            to_date(order_date).isoformat(),
            to_date(delivery_date).isoformat(),
            float(transport_cost or 0),
            float(packaging_cost or 0),
            *_order_values(totals),
            iso_now(),
        ),
    )

    completed = ["orders"]
    try:
        _insert_items(conn, order_id, lines, client.type)
        completed.append("order_items")
        payment_id = create_payment(
            conn,
            order_id=order_id,
            amount=totals.revenue,
            due=due_date(delivery_date, client.credit_days),
        )
        completed.append("payments")
    except StoreError as e:
        logger.warning("Order %s partially created (%s): %s", order_id, ", ".join(completed), e)
        raise CascadeError(
            f"Order {order_id} was saved but not all of its records were written.", completed=completed
        ) from e

    logger.info(
        "Created order %s for client %s: revenue=%.2f margin=%.2f%% (%s)",
        order_id, client.id, totals.revenue, totals.margin_percentage, totals.zone,
    )
    return OrderResult(order_id=int(order_id), payment_id=int(payment_id), totals=totals)


def update_order(
    conn,
    order_id: int,
    *,
    client_id: int,
    order_date,
    delivery_date,
    lines: list[OrderLine],
    transport_cost: float = 0.0,
    packaging_cost: float = 0.0,
) -> OrderResult:
    """
    Rewrite an order in place: replace all items and resync the existing receivable.
    """
    if get_order(conn, order_id) is None:
        raise ValidationError("Order not found.")
    client = get_client(conn, client_id) if client_id is not None else None
    validate_order(client, lines, order_date, delivery_date, transport_cost, packaging_cost)
    totals = compute_totals(lines, transport_cost, packaging_cost, client.type)

    x(
        conn,
        """
        UPDATE orders SET
            client_id=?, order_date=?, delivery_date=?, transport_cost=?, packaging_cost=?,
            total_revenue=?, total_cost=?, net_profit=?, margin_percentage=?, margin_zone=?
        WHERE id=?
        """,
        (
            int(client.id),
            to_date(order_date).isoformat(),
            to_date(delivery_date).isoformat(),
            float(transport_cost or 0),
            float(packaging_cost or 0),
            *_order_values(totals),
            int(order_id),
        ),
    )

    completed = ["orders"]
    try:
        x(conn, "DELETE FROM order_items WHERE order_id=?", (int(order_id),))
        _insert_items(conn, order_id, lines, client.type)
        completed.append("order_items")

        due = due_date(delivery_date, client.credit_days)
        payment = get_payment_for_order(conn, order_id)
        if payment is None:
            logger.warning("Order %s had no receivable; creating one", order_id)
            payment_id = create_payment(conn, order_id=order_id, amount=totals.revenue, due=due)
        else:
            payment_id = int(payment["id"])
            x(
                conn,
                "UPDATE payments SET amount=?, due_date=? WHERE id=?",
                (float(totals.revenue), due, payment_id),
            )
        completed.append("payments")
    except StoreError as e:
        logger.warning("Order %s partially updated (%s): %s", order_id, ", ".join(completed), e)
        raise CascadeError(
            f"Order {order_id} was updated but not all of its records were written.", completed=completed
        ) from e

    logger.info("Updated order %s: revenue=%.2f margin=%.2f%%", order_id, totals.revenue, totals.margin_percentage)
    return OrderResult(order_id=int(order_id), payment_id=payment_id, totals=totals)


def delete_order(conn, order_id: int) -> None:
    """
    Delete children first (items, then the receivable), then the order.
    """
    steps = [
        ("order_items", "DELETE FROM order_items WHERE order_id=?"),
        ("payments", "DELETE FROM payments WHERE order_id=?"),
        ("orders", "DELETE FROM orders WHERE id=?"),
    ]
    completed: list[str] = []
    for name, sql in steps:
        try:
            x(conn, sql, (int(order_id),))
        except StoreError as e:
            if not completed:
                raise
            logger.warning("Order %s delete stopped at %s after %s", order_id, name, ", ".join(completed))
            raise IncompleteDeletion(
                f"Order {order_id} was only partly deleted ({', '.join(completed)} removed).",
                completed=completed,
            ) from e
        completed.append(name)
    logger.info("Deleted order %s", order_id)


# -------------------------
# Reads
# -------------------------

def list_orders(conn) -> list[dict]:
    rows = q(
        conn,
        """
        SELECT o.*, c.name AS client_name, c.type AS client_type
        FROM orders o
        LEFT JOIN clients c ON c.id = o.client_id
        ORDER BY o.delivery_date DESC, o.order_date DESC, o.id DESC
        """,
    )
    return [dict(r) for r in rows]


def get_order(conn, order_id: int) -> Optional[dict]:
    rows = q(
        conn,
        """
        SELECT o.*, c.name AS client_name, c.type AS client_type,
               c.phone AS client_phone, c.credit_days
        FROM orders o
        LEFT JOIN clients c ON c.id = o.client_id
        WHERE o.id=?
        """,
        (int(order_id),),
    )
    return dict(rows[0]) if rows else None


def list_order_items(conn, order_id: int) -> list[dict]:
    rows = q(
        conn,
        """
        SELECT oi.*, p.name AS product_name, p.unit
        FROM order_items oi
        LEFT JOIN products p ON p.id = oi.product_id
        WHERE oi.order_id=?
        ORDER BY oi.id
        """,
        (int(order_id),),
    )
    return [dict(r) for r in rows]


def recover_packages(item: dict) -> tuple[Optional[float], Optional[int]]:
    """
    Package info is not stored on items; for kg lines it is recovered from the
    revenue/price ratio.
    """
    if item.get("unit") != UNIT_KG:
        return None, None
    price = float(item.get("selling_price_used") or 0)
    revenue = float(item.get("total_revenue") or 0)
    if price <= 0 or revenue <= 0:
        return None, None
    n = int(round(revenue / price))
    if n <= 0:
        return None, None
    return float(item["quantity"]) / n, n


def lines_from_order(conn, order_id: int) -> list[OrderLine]:
    lines = []
    for item in list_order_items(conn, order_id):
        size, n = recover_packages(item)
        name = item.get("product_name") or "Unknown"
        lines.append(
            OrderLine(
                product_id=int(item["product_id"]),
                quantity=float(item["quantity"]),
                selling_price=float(item["selling_price_used"]),
                cost=float(item["cost_used"]),
                unit=item.get("unit") or "pc",
                product_name=f"{name} ({size:g}kg × {n})" if size and n else name,
                package_size=size,
                num_packages=n,
            )
        )
    return lines


def client_order_count(conn, client_id: int) -> int:
    return int(q(conn, "SELECT COUNT(1) AS n FROM orders WHERE client_id=?", (int(client_id),))[0]["n"])


# -------------------------
# Last-order draft
# -------------------------

def remember_last_order(conn, *, client_id: int, transport_cost: float, packaging_cost: float, lines: list[OrderLine]) -> None:
    kv.put_blob(
        conn,
        kv.LAST_ORDER_KEY,
        {
            "client_id": client_id,
            "transport_cost": float(transport_cost or 0),
            "packaging_cost": float(packaging_cost or 0),
            "lines": [asdict(l) for l in lines],
        },
    )


def last_order_draft(conn) -> Optional[dict]:
    draft = kv.get_blob(conn, kv.LAST_ORDER_KEY)
    if not draft:
        return None
    draft["lines"] = [OrderLine.from_dict(d) for d in draft.get("lines", [])]
    return draft
