from __future__ import annotations

import pytest

from freshops.errors import CascadeError, IncompleteDeletion, StoreError, ValidationError
from freshops.db import q
from freshops.services.catalog import get_client, get_product, save_product
from freshops.services.orders import (
    OrderLine,
    build_line,
    classify_margin,
    client_order_count,
    compute_totals,
    create_order,
    delete_order,
    get_order,
    last_order_draft,
    lines_from_order,
    list_order_items,
    list_orders,
    remember_last_order,
    update_order,
)
from freshops.services.receivables import get_payment_for_order


@pytest.mark.parametrize(
    "margin, zone",
    [(75, "green"), (74.9, "yellow"), (65, "yellow"), (64.9, "red"), (-10, "red")],
)
def test_classify_margin_boundaries(margin, zone):
    assert classify_margin(margin) == zone


def _basil_line(seeded, price=200.0, size=0.5, packs=4):
    return build_line(get_product(seeded.conn, seeded.basil), price, package_size=size, num_packages=packs)


def test_build_line_kg_and_pc(seeded):
    kg = _basil_line(seeded)
    assert kg.quantity == 2.0
    assert kg.num_packages == 4
    assert kg.product_name == "Basil (0.5kg × 4)"

    pc = build_line(get_product(seeded.conn, seeded.lettuce), 15, count=12)
    assert pc.quantity == 12
    assert pc.cost == 10


def test_build_line_requires_price_and_quantity(seeded):
    basil = get_product(seeded.conn, seeded.basil)
    with pytest.raises(ValidationError):
        build_line(basil, None, package_size=1, num_packages=1)
    with pytest.raises(ValidationError):
        build_line(basil, 100, package_size=1, num_packages=0)


def test_totals_per_unit_vs_per_pack(seeded):
    line = _basil_line(seeded, price=50.0)  # 2kg as 4 packs
    restaurant = compute_totals([line], 10, 5, "restaurant")
    supermarket = compute_totals([line], 10, 5, "supermarket")
    assert restaurant.revenue == pytest.approx(100.0)
    assert supermarket.revenue == pytest.approx(200.0)
    assert restaurant.total_cost == pytest.approx(215.0)
    assert restaurant.profit == pytest.approx(-115.0)


def test_totals_zero_revenue_has_zero_margin():
    line = OrderLine(product_id=1, quantity=1, selling_price=0, cost=5)
    t = compute_totals([line], 0, 0, "restaurant")
    assert t.margin == 0.0
    assert t.zone == "red"


def _create(seeded, client=None, lines=None, **kw):
    kw.setdefault("order_date", "2024-01-08")
    kw.setdefault("delivery_date", "2024-01-10")
    return create_order(
        seeded.conn,
        client_id=client or seeded.bistro,
        lines=lines or [_basil_line(seeded)],
        **kw,
    )


def test_create_order_opens_receivable(seeded):
    res = _create(seeded, transport_cost=20, packaging_cost=10)
    order = get_order(seeded.conn, res.order_id)
    payment = get_payment_for_order(seeded.conn, res.order_id)

    assert order["total_revenue"] == pytest.approx(400.0)
    assert order["total_cost"] == pytest.approx(230.0)
    assert order["net_profit"] == pytest.approx(170.0)
    assert order["margin_percentage"] == 42.5
    assert order["margin_zone"] == "red"
    assert payment["due_date"] == "2024-01-25"
    assert payment["amount"] == order["total_revenue"]
    assert payment["status"] == "unpaid"


def test_null_credit_days_defaults_to_thirty(seeded):
    res = _create(seeded, client=seeded.market)
    assert get_payment_for_order(seeded.conn, res.order_id)["due_date"] == "2024-02-09"


@pytest.mark.parametrize(
    "kw",
    [
        {"delivery_date": "2024-01-01"},
        {"transport_cost": -1},
        {"packaging_cost": -1},
    ],
)
def test_create_order_validation_writes_nothing(seeded, kw):
    with pytest.raises(ValidationError):
        _create(seeded, **kw)
    assert list_orders(seeded.conn) == []


def test_create_order_requires_lines(seeded):
    with pytest.raises(ValidationError):
        create_order(seeded.conn, client_id=seeded.bistro, order_date="2024-01-01", delivery_date="2024-01-01", lines=[])


def test_snapshot_survives_product_cost_change(seeded):
    res = _create(seeded)
    save_product(seeded.conn, name="Basil", unit="kg", cost_per_unit=999, product_id=seeded.basil)
    item = list_order_items(seeded.conn, res.order_id)[0]
    assert item["cost_used"] == 100.0
    assert get_order(seeded.conn, res.order_id)["total_cost"] == pytest.approx(200.0)


def test_update_order_never_duplicates(seeded):
    res = _create(seeded)
    new_lines = [
        _basil_line(seeded, price=300.0, size=1.0, packs=1),
        build_line(get_product(seeded.conn, seeded.lettuce), 20, count=5),
    ]
    update_order(
        seeded.conn,
        res.order_id,
        client_id=seeded.bistro,
        order_date="2024-01-08",
        delivery_date="2024-01-12",
        lines=new_lines,
    )
    items = list_order_items(seeded.conn, res.order_id)
    payments = q(seeded.conn, "SELECT * FROM payments WHERE order_id=?", (res.order_id,))

    assert len(items) == 2
    assert len(payments) == 1
    assert payments[0]["amount"] == pytest.approx(400.0)
    assert payments[0]["due_date"] == "2024-01-27"


def test_update_order_recreates_missing_receivable(seeded):
    res = _create(seeded)
    seeded.conn.execute("DELETE FROM payments WHERE order_id=?", (res.order_id,))
    update_order(
        seeded.conn,
        res.order_id,
        client_id=seeded.bistro,
        order_date="2024-01-08",
        delivery_date="2024-01-10",
        lines=[_basil_line(seeded)],
    )
    assert get_payment_for_order(seeded.conn, res.order_id) is not None


def test_create_order_partial_failure_names_completed_steps(seeded, failing):
    line = _basil_line(seeded)
    conn = failing(seeded.conn, r"INSERT INTO payments")
    with pytest.raises(CascadeError) as exc:
        create_order(conn, client_id=seeded.bistro, order_date="2024-01-08", delivery_date="2024-01-10", lines=[line])
    assert exc.value.completed == ("orders", "order_items")
    assert len(list_orders(seeded.conn)) == 1


def test_delete_order_removes_children(seeded):
    res = _create(seeded)
    delete_order(seeded.conn, res.order_id)
    assert get_order(seeded.conn, res.order_id) is None
    assert list_order_items(seeded.conn, res.order_id) == []
    assert get_payment_for_order(seeded.conn, res.order_id) is None


def test_delete_order_first_step_failure_is_clean(seeded, failing):
    res = _create(seeded)
    conn = failing(seeded.conn, r"DELETE FROM order_items")
    with pytest.raises(StoreError) as exc:
        delete_order(conn, res.order_id)
    assert not isinstance(exc.value, CascadeError)
    assert get_order(seeded.conn, res.order_id) is not None


def test_delete_order_later_failure_is_incomplete(seeded, failing):
    res = _create(seeded)
    conn = failing(seeded.conn, r"DELETE FROM payments")
    with pytest.raises(IncompleteDeletion) as exc:
        delete_order(conn, res.order_id)
    assert exc.value.completed == ("order_items",)
    assert list_order_items(seeded.conn, res.order_id) == []


def test_lines_from_order_recovers_packages(seeded):
    res = _create(seeded, client=seeded.market, lines=[_basil_line(seeded, price=60.0, size=0.25, packs=8)])
    (line,) = lines_from_order(seeded.conn, res.order_id)
    assert line.num_packages == 8
    assert line.package_size == pytest.approx(0.25)
    assert line.product_name == "Basil (0.25kg × 8)"


def test_reads_and_last_order_draft(seeded):
    _create(seeded)
    _create(seeded, delivery_date="2024-01-20")
    assert [o["delivery_date"] for o in list_orders(seeded.conn)] == ["2024-01-20", "2024-01-10"]
    assert client_order_count(seeded.conn, seeded.bistro) == 2

    assert last_order_draft(seeded.conn) is None
    line = _basil_line(seeded)
    remember_last_order(seeded.conn, client_id=seeded.bistro, transport_cost=15, packaging_cost=0, lines=[line])
    draft = last_order_draft(seeded.conn)
    assert draft["client_id"] == seeded.bistro
    assert draft["lines"] == [line]
    assert get_client(seeded.conn, draft["client_id"]).name == "Bistro"
