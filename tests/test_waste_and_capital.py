from __future__ import annotations

import pytest

from freshops.errors import CascadeError, ValidationError
from freshops.services.capital import (
    CapitalEntry,
    add_entry,
    capital_position,
    delete_entry,
    list_entries,
    manual_cash,
)
from freshops.services.catalog import get_product
from freshops.services.orders import build_line, create_order, get_order
from freshops.services.receivables import get_payment_for_order, update_payment_amount
from freshops.services.waste import (
    deduct_waste_from_order,
    delete_batch,
    edit_batch_counts,
    get_batch,
    record_waste,
    save_batch,
    waste_links,
    waste_pct,
    waste_qty,
    waste_value,
    waste_zone,
)


def _order(seeded, price=500.0):
    basil = get_product(seeded.conn, seeded.basil)
    line = build_line(basil, price, package_size=1, num_packages=2)
    return create_order(
        seeded.conn,
        client_id=seeded.bistro,
        order_date="2024-03-01",
        delivery_date="2024-03-02",
        lines=[line],
    ).order_id


def test_waste_formulas():
    assert waste_qty(0.25, 8, True) == 2.0
    assert waste_qty(0.25, 8, False) == 8
    assert waste_pct(0, 5, 5) == 0
    assert waste_pct(30, 2, 1) == 10.0
    assert waste_value(2, 1, 100, 0.5) == 301.5


@pytest.mark.parametrize("pct, zone", [(0, "green"), (5, "green"), (5.1, "yellow"), (10, "yellow"), (10.5, "red")])
def test_waste_zone(pct, zone):
    assert waste_zone(pct) == zone


def test_save_batch_derives_fields(seeded):
    bid = save_batch(seeded.conn, product_id=seeded.basil, harvest_date="2024-03-01", harvested_qty=40, damaged_qty=2, expired_qty=2, packaging_cost_per_unit=5)
    b = get_batch(seeded.conn, bid)
    assert b["waste_percentage"] == 10.0
    assert b["waste_value"] == 420.0

    edit_batch_counts(seeded.conn, bid, harvested_qty=40, damaged_qty=1, expired_qty=0)
    b = get_batch(seeded.conn, bid)
    assert b["waste_percentage"] == 2.5
    assert b["waste_value"] == 105.0


@pytest.mark.parametrize("kw", [{"harvested_qty": None}, {"harvested_qty": 10, "damaged_qty": -1}])
def test_save_batch_validation(seeded, kw):
    with pytest.raises(ValidationError):
        save_batch(seeded.conn, product_id=seeded.basil, harvest_date="2024-03-01", **kw)


def test_deduction_cascade(seeded):
    oid = _order(seeded)  # revenue 1000, profit 800
    res = deduct_waste_from_order(seeded.conn, oid, 150)
    order = get_order(seeded.conn, oid)

    assert order["total_revenue"] == 850.0
    assert order["net_profit"] == 650.0
    assert res.payment_amount == 850.0
    assert get_payment_for_order(seeded.conn, oid)["amount"] == 850.0


def test_deduction_floors_revenue_and_payment_but_not_profit(seeded):
    oid = _order(seeded, price=60.0)  # revenue 120, profit -80
    payment = get_payment_for_order(seeded.conn, oid)
    update_payment_amount(seeded.conn, payment["id"], 100)

    deduct_waste_from_order(seeded.conn, oid, 150)
    order = get_order(seeded.conn, oid)
    assert order["total_revenue"] == 0.0
    assert order["net_profit"] == -230.0
    assert get_payment_for_order(seeded.conn, oid)["amount"] == 0.0


def test_deduction_without_payment_only_touches_order(seeded):
    oid = _order(seeded)
    seeded.conn.execute("DELETE FROM payments WHERE order_id=?", (oid,))
    res = deduct_waste_from_order(seeded.conn, oid, 100)
    assert res.payment_id is None
    assert get_order(seeded.conn, oid)["total_revenue"] == 900.0


def test_deduction_payment_failure_is_cascade(seeded, failing):
    oid = _order(seeded)
    conn = failing(seeded.conn, r"UPDATE payments")
    with pytest.raises(CascadeError) as exc:
        deduct_waste_from_order(conn, oid, 100)
    assert exc.value.completed == ("orders",)
    assert get_order(seeded.conn, oid)["total_revenue"] == 900.0
    assert get_payment_for_order(seeded.conn, oid)["amount"] == 1000.0


def test_record_waste_links_and_deducts_once(seeded):
    oid = _order(seeded)
    rec = record_waste(
        seeded.conn,
        product_id=seeded.basil,
        harvest_date="2024-03-02",
        harvested_qty=20,
        damaged_qty=1,
        expired_qty=0.5,
        client_id=seeded.bistro,
        order_id=oid,
    )
    assert rec.waste_value == 150.0
    assert get_order(seeded.conn, oid)["total_revenue"] == 850.0

    link = waste_links(seeded.conn)[rec.batch_id]
    assert link["order_id"] == oid
    assert link["client_name"] == "Bistro"
    assert link["deducted_value"] == 150.0

    # One-way: deleting or editing the batch leaves the order as it is.
    edit_batch_counts(seeded.conn, rec.batch_id, harvested_qty=20, damaged_qty=0, expired_qty=0)
    delete_batch(seeded.conn, rec.batch_id)
    assert get_order(seeded.conn, oid)["total_revenue"] == 850.0
    assert rec.batch_id in waste_links(seeded.conn)


def test_damaged_and_expired_use_their_own_pack_sizes(seeded):
    rec = record_waste(
        seeded.conn,
        product_id=seeded.basil,
        harvest_date="2024-03-02",
        harvested_qty=20,
        damaged_qty=waste_qty(0.25, 4, True),
        expired_qty=waste_qty(0.5, 3, True),
    )
    b = get_batch(seeded.conn, rec.batch_id)
    assert b["damaged_qty"] == 1.0
    assert b["expired_qty"] == 1.5
    assert rec.waste_value == 250.0


def test_record_waste_without_link_or_value_skips_deduction(seeded):
    oid = _order(seeded)
    rec = record_waste(seeded.conn, product_id=seeded.basil, harvest_date="2024-03-02", harvested_qty=20, order_id=oid)
    assert rec.deduction is None
    assert waste_links(seeded.conn) == {}
    assert get_order(seeded.conn, oid)["total_revenue"] == 1000.0


# -------------------------
# Capital
# -------------------------

def test_capital_example():
    entries = [
        CapitalEntry(id="a", date="2024-01-01", type="initial", amount=5000, description="seed"),
        CapitalEntry(id="b", date="2024-01-02", type="withdrawal", amount=-1200, description="rent"),
    ]
    assert manual_cash(entries) == 3800
    pos = capital_position(entries, collected=300, outstanding=700, farmer_owed=1000)
    assert pos.cash_in_hand == 4100
    assert pos.projected == 3800


def test_ledger_entries_are_prepended_and_validated(conn):
    add_entry(conn, "initial", 1000, "Opening", "2024-01-01")
    newest = add_entry(conn, "deposit", "250", "Top up")
    assert [e.id for e in list_entries(conn)][0] == newest.id
    assert manual_cash(list_entries(conn)) == 1250

    with pytest.raises(ValidationError):
        add_entry(conn, "deposit", 0, "Nothing")
    with pytest.raises(ValidationError):
        add_entry(conn, "deposit", 10, "  ")
    with pytest.raises(ValidationError):
        add_entry(conn, "loan", 10, "Bank")

    delete_entry(conn, newest.id)
    assert manual_cash(list_entries(conn)) == 1000
