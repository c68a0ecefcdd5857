from __future__ import annotations

import pytest

from freshops import db
from freshops.errors import CascadeError, StoreError, ValidationError
from freshops.models import PricingSettings, WeightVariant
from freshops.services.catalog import (
    get_client,
    list_products,
    load_pricing_settings,
    load_product_margins,
    load_weight_variants,
    save_client,
    save_pricing_settings,
    save_product,
    save_product_margin,
    save_weight_variants,
)
from freshops.services.pricing import (
    apply_suggested_prices,
    client_price_map,
    list_client_prices,
    price_history,
    set_client_price,
    set_price_for_clients,
)


def test_history_is_append_only_across_upserts(seeded):
    c = seeded.conn
    first = set_client_price(c, seeded.bistro, seeded.basil, 150)
    second = set_client_price(c, seeded.bistro, seeded.basil, "175.5")

    assert first == second
    assert client_price_map(c, seeded.bistro) == {seeded.basil: 175.5}
    assert [h["selling_price"] for h in price_history(c, seeded.bistro, seeded.basil)] == [175.5, 150.0]


@pytest.mark.parametrize("price", [0, -5, "", "abc"])
def test_price_must_be_positive_number(seeded, price):
    with pytest.raises(ValidationError):
        set_client_price(seeded.conn, seeded.bistro, seeded.basil, price)


def test_unknown_client_is_rejected(seeded):
    with pytest.raises(ValidationError):
        set_client_price(seeded.conn, 999, seeded.basil, 10)


def test_set_price_for_several_clients(seeded):
    set_price_for_clients(seeded.conn, [seeded.bistro, seeded.market], seeded.lettuce, 25)
    rows = list_client_prices(seeded.conn)
    assert sorted(r["client_name"] for r in rows) == ["Bistro", "Market"]
    assert {r["selling_price"] for r in rows} == {25.0}


def test_history_failure_is_reported_as_cascade(seeded, failing):
    conn = failing(seeded.conn, r"INSERT INTO client_pricing_history")
    with pytest.raises(CascadeError) as exc:
        set_client_price(conn, seeded.bistro, seeded.basil, 99)
    assert exc.value.completed == ("client_pricing",)
    assert client_price_map(seeded.conn, seeded.bistro) == {seeded.basil: 99.0}


def test_apply_suggested_prices_rounds_to_cents(seeded):
    c = seeded.conn
    settings = PricingSettings(overhead_pct=10, labor_pct=0)
    applied = apply_suggested_prices(c, seeded.bistro, list_products(c), settings, {seeded.basil: 33.333})
    # lettuce has no margin: 10 x 1.1
    assert applied == {seeded.basil: 146.67, seeded.lettuce: 11.0}


def test_pricing_settings_default_and_persist(conn):
    assert load_pricing_settings(conn) == PricingSettings(overhead_pct=15, labor_pct=0)
    save_pricing_settings(conn, PricingSettings(overhead_pct=20, labor_pct=3))
    assert load_pricing_settings(conn) == PricingSettings(overhead_pct=20, labor_pct=3)


def test_margins_and_variants_are_keyed_by_product(seeded):
    c = seeded.conn
    save_product_margin(c, seeded.basil, 70)
    save_weight_variants(c, seeded.basil, [WeightVariant(0.25, 40), WeightVariant(0.5, 75)])
    assert load_product_margins(c) == {seeded.basil: 70.0}
    assert load_weight_variants(c)[seeded.basil][1] == WeightVariant(0.5, 75)

    with pytest.raises(ValidationError):
        save_weight_variants(c, seeded.basil, [WeightVariant(0, 10)])


def test_catalog_validation(conn):
    with pytest.raises(ValidationError):
        save_product(conn, name=" ", unit="kg", cost_per_unit=1)
    with pytest.raises(ValidationError):
        save_product(conn, name="Dill", unit="box", cost_per_unit=1)
    with pytest.raises(ValidationError):
        save_client(conn, name="X", client_type="wholesaler")


def test_zero_credit_days_is_kept(conn):
    cid = save_client(conn, name="Cash Only", credit_days=0)
    assert get_client(conn, cid).effective_credit_days == 0


def test_capability_interface(seeded):
    c = seeded.conn
    rows = db.get(c, "products", order_by="id")
    assert [r["name"] for r in rows] == ["Basil", "Lettuce"]
    db.upsert(c, "products", {"id": seeded.lettuce, "cost_per_unit": 12.0})
    assert db.get_one(c, "products", id=seeded.lettuce)["cost_per_unit"] == 12.0

    with pytest.raises(StoreError):
        db.get(c, "sqlite_master")
    with pytest.raises(StoreError):
        db.delete(c, "products")
