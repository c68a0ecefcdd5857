"""
Harvest batches, waste valuation and the waste -> order deduction.

    waste_pct   = (damaged + expired) / harvested x 100   (0 when harvested = 0)
    waste_value = (damaged + expired) x (product cost + packaging cost per unit)

A batch linked to an order deducts its waste value from that order's revenue,
profit and receivable exactly once. Deleting the batch later does not restore
the order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from freshops import kv
from freshops.db import q, x
from freshops.errors import CascadeError, StoreError, ValidationError
from freshops.services.catalog import get_client, get_product
from freshops.services.orders import get_order
from freshops.utils import iso_now, round2, safe_div, to_date

logger = logging.getLogger(__name__)


def waste_qty(pkg_size: float, count: float, is_kg_product: bool) -> float:
    if is_kg_product:
        return float(pkg_size or 0) * float(count or 0)
    return float(count or 0)


def waste_pct(harvested_qty: float, damaged_qty: float, expired_qty: float) -> float:
    return round2(safe_div(float(damaged_qty) + float(expired_qty), float(harvested_qty)) * 100.0)


def waste_value(damaged_qty: float, expired_qty: float, product_cost_per_unit: float, packaging_cost_per_unit: float = 0.0) -> float:
    unit_cost = float(product_cost_per_unit or 0) + float(packaging_cost_per_unit or 0)
    return round2((float(damaged_qty) + float(expired_qty)) * unit_cost)


def waste_zone(pct: float) -> str:
    if pct > 10:
        return "red"
    if pct > 5:
        return "yellow"
    return "green"


def _non_negative(v, label: str) -> float:
    try:
        f = float(v or 0)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number.")
    if f < 0:
        raise ValidationError("No negative quantities.")
    return f


def save_batch(
    conn,
    *,
    product_id: int,
    harvest_date,
    harvested_qty,
    damaged_qty=0,
    expired_qty=0,
    sold_qty=0,
    packaging_cost_per_unit=0,
    batch_id: Optional[int] = None,
) -> int:
    """
    Insert or update a batch. Waste % and value are always recomputed from the
    counts, the product's current cost and the batch's packaging cost.
    """
    if product_id is None:
        raise ValidationError("Product and harvested qty required.")
    if harvested_qty is None or str(harvested_qty).strip() == "":
        raise ValidationError("Product and harvested qty required.")
    product = get_product(conn, product_id)
    if product is None:
        raise ValidationError("Product not found.")

    h = _non_negative(harvested_qty, "Harvested qty")
    d = _non_negative(damaged_qty, "Damaged qty")
    e = _non_negative(expired_qty, "Expired qty")
    s = _non_negative(sold_qty, "Sold qty")
    pkg = _non_negative(packaging_cost_per_unit, "Packaging cost")

    pct = waste_pct(h, d, e)
    value = waste_value(d, e, product.cost_per_unit, pkg)
    hd = to_date(harvest_date).isoformat()

    if batch_id is None:
        new_id = x(
            conn,
            """
            INSERT INTO inventory_batches (
                product_id, harvest_date, harvested_qty, damaged_qty, expired_qty, sold_qty,
                packaging_cost_per_unit, waste_percentage, waste_value, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (int(product.id), hd, h, d, e, s, pkg, pct, value, iso_now()),
        )
        logger.info("Batch %s saved: waste %.2f%% valued %.2f", new_id, pct, value)
        return int(new_id)

    x(
        conn,
        """
        UPDATE inventory_batches SET
            product_id=?, harvest_date=?, harvested_qty=?, damaged_qty=?, expired_qty=?, sold_qty=?,
            packaging_cost_per_unit=?, waste_percentage=?, waste_value=?
        WHERE id=?
        """,
        (int(product.id), hd, h, d, e, s, pkg, pct, value, int(batch_id)),
    )
    logger.info("Batch %s updated: waste %.2f%% valued %.2f", batch_id, pct, value)
    return int(batch_id)


def edit_batch_counts(conn, batch_id: int, *, harvested_qty, damaged_qty, expired_qty) -> int:
    b = get_batch(conn, batch_id)
    if b is None:
        raise ValidationError("Batch not found.")
    return save_batch(
        conn,
        batch_id=int(batch_id),
        product_id=int(b["product_id"]),
        harvest_date=b["harvest_date"],
        harvested_qty=harvested_qty,
        damaged_qty=damaged_qty,
        expired_qty=expired_qty,
        sold_qty=b["sold_qty"],
        packaging_cost_per_unit=b["packaging_cost_per_unit"],
    )


def get_batch(conn, batch_id: int) -> Optional[dict]:
    rows = q(conn, "SELECT * FROM inventory_batches WHERE id=?", (int(batch_id),))
    return dict(rows[0]) if rows else None


def list_batches(conn) -> list[dict]:
    rows = q(
        conn,
        """
        SELECT b.*, p.name AS product_name, p.unit, p.cost_per_unit
        FROM inventory_batches b
        LEFT JOIN products p ON p.id = b.product_id
        ORDER BY b.harvest_date DESC, b.id DESC
        """,
    )
    return [dict(r) for r in rows]


def delete_batch(conn, batch_id: int) -> None:
    # Any deduction already applied to a linked order stays in place.
    x(conn, "DELETE FROM inventory_batches WHERE id=?", (int(batch_id),))
    logger.info("Batch %s deleted; linked order deductions are not reversed", batch_id)


# -------------------------
# Deduction cascade
# -------------------------

@dataclass(frozen=True)
class DeductionResult:
    order_id: int
    waste_value: float
    total_revenue: float
    net_profit: float
    payment_id: Optional[int]
    payment_amount: Optional[float]


def deduct_waste_from_order(conn, order_id: int, value: float) -> DeductionResult:
    order = get_order(conn, order_id)
    if order is None:
        raise ValidationError("Order not found.")

    value = float(value)
    new_revenue = max(0.0, float(order["total_revenue"] or 0) - value)
    new_profit = float(order["net_profit"] or 0) - value
    x(
        conn,
        "UPDATE orders SET total_revenue=?, net_profit=? WHERE id=?",
        (new_revenue, new_profit, int(order_id)),
    )

    try:
        rows = q(conn, "SELECT id, amount FROM payments WHERE order_id=?", (int(order_id),))
        payment_id, new_amount = None, None
        if rows:
            payment_id = int(rows[0]["id"])
            new_amount = max(0.0, float(rows[0]["amount"] or 0) - value)
            x(conn, "UPDATE payments SET amount=? WHERE id=?", (new_amount, payment_id))
        else:
            logger.warning("Order %s has no receivable; only the order was reduced", order_id)
    except StoreError as e:
        logger.warning("Waste deducted from order %s but its receivable was not updated: %s", order_id, e)
        raise CascadeError(
            f"Order {order_id} was reduced but its receivable was not.", completed=["orders"]
        ) from e

    logger.info("Deducted waste %.2f from order %s", value, order_id)
    return DeductionResult(
        order_id=int(order_id),
        waste_value=value,
        total_revenue=new_revenue,
        net_profit=new_profit,
        payment_id=payment_id,
        payment_amount=new_amount,
    )


@dataclass(frozen=True)
class WasteRecord:
    batch_id: int
    waste_value: float
    deduction: Optional[DeductionResult]


def record_waste(
    conn,
    *,
    product_id: int,
    harvest_date,
    harvested_qty,
    damaged_qty=0,
    expired_qty=0,
    sold_qty=0,
    packaging_cost_per_unit=0,
    client_id: Optional[int] = None,
    order_id: Optional[int] = None,
) -> WasteRecord:
    """
    Save a new batch and, when it is linked to an order, deduct its waste value
    from that order and receivable once.
    """
    if order_id is not None and get_order(conn, order_id) is None:
        raise ValidationError("Linked order not found.")

    batch_id = save_batch(
        conn,
        product_id=product_id,
        harvest_date=harvest_date,
        harvested_qty=harvested_qty,
        damaged_qty=damaged_qty,
        expired_qty=expired_qty,
        sold_qty=sold_qty,
        packaging_cost_per_unit=packaging_cost_per_unit,
    )
    value = float(get_batch(conn, batch_id)["waste_value"])

    deduction = None
    if order_id is not None and value > 0:
        try:
            deduction = deduct_waste_from_order(conn, order_id, value)
        except CascadeError as e:
            raise CascadeError(str(e), completed=["inventory_batches", *e.completed]) from e
        except StoreError as e:
            raise CascadeError(
                f"Batch {batch_id} saved but the order deduction failed.", completed=["inventory_batches"]
            ) from e
        _save_link(conn, batch_id, client_id=client_id, order_id=order_id, value=value)

    return WasteRecord(batch_id=batch_id, waste_value=value, deduction=deduction)


def _save_link(conn, batch_id: int, *, client_id: Optional[int], order_id: int, value: float) -> None:
    order = get_order(conn, order_id) or {}
    client = get_client(conn, client_id) if client_id is not None else None
    links = kv.get_id_map(conn, kv.WASTE_LINKS_KEY)
    links[int(batch_id)] = {
        "client_id": client_id,
        "client_name": client.name if client else (order.get("client_name") or ""),
        "order_id": int(order_id),
        "order_label": f"{order.get('client_name') or ''} - {order.get('delivery_date') or ''}",
        "deducted_value": float(value),
    }
    kv.put_id_map(conn, kv.WASTE_LINKS_KEY, links)


def waste_links(conn) -> dict[int, dict]:
    return kv.get_id_map(conn, kv.WASTE_LINKS_KEY)
