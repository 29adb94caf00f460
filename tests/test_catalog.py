import asyncio

import pytest

from stockpick.core.catalog import add_product, brands, get_product, list_products, parse_field, update_product
from stockpick.db.store import DocumentStore
from stockpick.models import OrderItem, Product, Weight
from stockpick.utils.formatters import ordered_text, short_date, status_text
from stockpick.utils.validators import parse_quantity, require_sku


def _make_store(tmp_path) -> DocumentStore:
    store = DocumentStore(str(tmp_path / "db.sqlite"))
    store.init_db()
    return store


def test_add_list_and_update_products(tmp_path) -> None:
    store = _make_store(tmp_path)

    async def scenario():
        await add_product(store, " B-1 ", "rice", "Alpha", weight_value=1, weight_unit="kg", package_quantity=6)
        await add_product(store, "Z-1", "oil", "Zeta")
        await add_product(store, "A-1", "beans", "alpha")
        await update_product(store, "Z-1", {"stockQuantity": 9})
        return await list_products(store), await list_products(store, "Zeta"), await get_product(store, "B-1")

    everything, zeta, rice = asyncio.run(scenario())

    assert [p.id for p in everything] == ["A-1", "B-1", "Z-1"]
    assert [(p.id, p.stock_quantity) for p in zeta] == [("Z-1", 9)]
    assert rice.stock_quantity == 0
    assert rice.units_per_package == 6
    assert str(rice.weight) == "1 kg"
    assert brands(everything) == ["Alpha", "Zeta", "alpha"]


def test_add_product_requires_sku(tmp_path) -> None:
    with pytest.raises(ValueError):
        asyncio.run(add_product(_make_store(tmp_path), "  ", "x"))


def test_parse_field() -> None:
    assert parse_field("pack", "12") == ("packageQuantity", 12)
    assert parse_field("COST", "3,5") == ("cost", 3.5)
    assert parse_field("image", "http://x") == ("imageUrl", "http://x")
    with pytest.raises(ValueError):
        parse_field("colour", "red")


def test_units_per_package_defaults_to_one() -> None:
    assert Product(id="A", name="x", package_quantity=0).units_per_package == 1
    assert Product.from_doc({"id": "A", "name": "x"}).units_per_package == 1
    assert str(Weight(None, "kg")) == "-"


def test_order_item_from_doc_defaults() -> None:
    item = OrderItem.from_doc({"id": "i1", "productId": "A", "quantityOrdered": 4, "status": "weird"})
    assert item.quantity_picked == 4
    assert item.status == "pending"
    assert ordered_text(item) == "4 pcs"

    pkg = OrderItem("i2", "B", 12, order_type="package", packages_ordered=2, package_quantity=6)
    assert ordered_text(pkg) == "12 pcs (2 pkg × 6)"


def test_formatters() -> None:
    assert status_text("no-such-status") == "no-such-status"
    assert short_date("2024-03-05T14:07:00+00:00") == "05.03.24 14:07"
    assert short_date(None) == ""
    assert short_date("yesterday") == "yesterday"


def test_validators() -> None:
    assert parse_quantity(" 3 ") == 3
    with pytest.raises(ValueError):
        parse_quantity("-1")
    with pytest.raises(ValueError):
        parse_quantity("two")
    assert require_sku(" SKU ") == "SKU"
    with pytest.raises(ValueError):
        require_sku("/cancel")


def test_add_product_refuses_existing_sku(tmp_path) -> None:
    store = _make_store(tmp_path)

    async def scenario():
        await add_product(store, "A-1", "beans", "Alpha")
        await update_product(store, "A-1", {"stockQuantity": 40})
        with pytest.raises(ValueError, match="already exists"):
            await add_product(store, "A-1", "beans again", "Alpha")
        return await get_product(store, "A-1")

    kept = asyncio.run(scenario())
    assert kept.name == "beans"
    assert kept.stock_quantity == 40
