from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from freshops.db import q, x
from freshops.errors import ValidationError
from freshops.models import DEFAULT_CREDIT_DAYS
from freshops.utils import add_days, iso_now, iso_today, to_date

logger = logging.getLogger(__name__)

STATUS_UNPAID = "unpaid"
STATUS_PAID = "paid"


def due_date(delivery_date, credit_days: Optional[int]) -> str:
    days = DEFAULT_CREDIT_DAYS if credit_days is None else int(credit_days)
    return add_days(delivery_date, days)


def get_payment_for_order(conn, order_id: int) -> Optional[dict]:
    rows = q(conn, "SELECT * FROM payments WHERE order_id=?", (int(order_id),))
    return dict(rows[0]) if rows else None


def create_payment(conn, *, order_id: int, amount: float, due: str, invoice_date: Optional[str] = None) -> int:
    return x(
        conn,
        """
        INSERT INTO payments (order_id, amount, invoice_date, due_date, status, created_at)
        VALUES (?, ?, ?, ?, 'unpaid', ?)
        """,
        (int(order_id), float(amount), invoice_date or iso_today(), str(due), iso_now()),
    )


def list_payments(conn) -> list[dict]:
    rows = q(
        conn,
        """
        SELECT p.*, o.client_id, o.delivery_date, o.total_revenue AS order_revenue,
               c.name AS client_name
        FROM payments p
        JOIN orders o ON o.id = p.order_id
        LEFT JOIN clients c ON c.id = o.client_id
        ORDER BY p.due_date ASC, p.id ASC
        """,
    )
    return [dict(r) for r in rows]


def mark_paid(conn, payment_id: int, paid_date: Optional[str] = None) -> None:
    x(
        conn,
        "UPDATE payments SET status='paid', paid_date=? WHERE id=?",
        (paid_date or iso_today(), int(payment_id)),
    )
    logger.info("Payment %s marked paid", payment_id)


def update_payment_amount(conn, payment_id: int, amount) -> None:
    try:
        amt = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("Enter a valid amount.")
    if amt <= 0:
        raise ValidationError("Enter a valid amount.")
    x(conn, "UPDATE payments SET amount=? WHERE id=?", (amt, int(payment_id)))
    logger.info("Payment %s amount set to %.2f", payment_id, amt)


def delete_payment(conn, payment_id: int) -> None:
    x(conn, "DELETE FROM payments WHERE id=?", (int(payment_id),))
    logger.info("Payment %s deleted", payment_id)


def outstanding_total(payments: list[dict]) -> float:
    return sum(float(p["amount"] or 0) for p in payments if p["status"] != STATUS_PAID)


def collected_total(payments: list[dict]) -> float:
    return sum(float(p["amount"] or 0) for p in payments if p["status"] == STATUS_PAID)


def days_past_due(due, today: Optional[date] = None) -> int:
    """Positive when overdue, negative when days are left."""
    return (to_date(today or date.today()) - to_date(due)).days


def display_status(payment: dict, today: Optional[date] = None) -> str:
    if payment["status"] != STATUS_PAID and days_past_due(payment["due_date"], today) > 0:
        return "overdue"
    return str(payment["status"])
