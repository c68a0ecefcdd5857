from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

from freshops.errors import ValidationError
from freshops.models import CLIENT_SUPERMARKET
from freshops.services.orders import get_order, list_order_items, recover_packages

WHATSAPP_URL = "https://wa.me/{phone}?text={text}"
INVOICE_MESSAGE = "Dear {name}, please find attached your invoice for {date}."


def invoice_payload(conn, order_id: int) -> dict:
    """Everything an invoice renderer needs for one order."""
    order = get_order(conn, order_id)
    if order is None:
        raise ValidationError("Order not found.")

    is_super = order.get("client_type") == CLIENT_SUPERMARKET
    items = []
    for item in list_order_items(conn, order_id):
        # Pack counts are only recoverable from per-pack (supermarket) prices.
        size, n = recover_packages(item) if is_super else (None, None)
        qty = float(item["quantity"])
        cost = float(item["cost_used"] or 0)
        items.append(
            {
                "product": item.get("product_name") or "Unknown",
                "quantity": qty,
                "unit": item.get("unit") or "",
                "price": float(item["selling_price_used"] or 0),
                "total": float(item["total_revenue"] or 0),
                "base_cost": cost,
                "total_base_cost": cost * qty,
                "package_size": size,
                "num_packages": n,
            }
        )

    return {
        "order_id": int(order["id"]),
        "client_name": order.get("client_name") or "Unknown",
        "order_date": order["order_date"],
        "delivery_date": order["delivery_date"],
        "is_supermarket": is_super,
        "total_revenue": float(order["total_revenue"] or 0),
        "items": items,
    }


@dataclass(frozen=True)
class MessageHandoff:
    phone: str
    text: str
    url: str


def message_handoff(client_name: str, phone: Optional[str], delivery_date: str) -> MessageHandoff:
    digits = re.sub(r"\D", "", phone or "")
    if not digits:
        raise ValidationError("Client has no phone number.")
    text = INVOICE_MESSAGE.format(name=client_name, date=delivery_date)
    return MessageHandoff(phone=digits, text=text, url=WHATSAPP_URL.format(phone=digits, text=quote(text)))
