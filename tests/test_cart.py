import logging

from stockpick.core.cart import CartStore, cart_storage_key, check_stock
from stockpick.errors import PersistenceError
from stockpick.models import OrderItem, Product
from stockpick.storage.local import LocalStorage


class _Clock:
    def __init__(self, t: float = 1_700_000_000.0) -> None:
        self.t = t

    def __call__(self) -> float:
        return self.t


class _BrokenStorage(LocalStorage):
    def set_item(self, key: str, value: str) -> None:
        raise PersistenceError("disk full")


def _make_cart(storage=None, clock=None, key: str = "warehouse_cart") -> CartStore:
    return CartStore(storage or LocalStorage(), key, clock=clock or _Clock())


def _products() -> list[Product]:
    return [
        Product(id="A", name="Olive oil", brand="Zeta", package_quantity=6),
        Product(id="B", name="Rice", brand="Alpha"),
    ]


def test_quantities_never_negative_and_items_match_positive_lines() -> None:
    cart = _make_cart()
    ops = [
        ("add", "A", 2),
        ("remove", "A", 5),
        ("add", "B", -3),
        ("set", "C", 4),
        ("set", "A", -1),
        ("add", "A", 1),
        ("remove", "C", 1),
        ("remove", "Z", 1),
    ]
    for op, pid, n in ops:
        {"add": cart.add, "remove": cart.remove, "set": cart.set_quantity}[op](pid, n)
        assert all(q >= 0 for q in cart.cart.values())
        assert {p for p, _ in cart.items()} == {p for p, q in cart.cart.items() if q > 0}

    assert dict(cart.items()) == {"A": 1, "C": 3}
    assert cart.item_count() == 2
    assert cart.total_quantity() == 4


def test_toggle_package_mode_is_its_own_inverse() -> None:
    cart = _make_cart()
    cart.add("A", 3)
    assert cart.is_package_mode("A") is False
    cart.toggle_package_mode("A")
    assert cart.is_package_mode("A") is True
    cart.toggle_package_mode("A")
    assert cart.is_package_mode("A") is False
    # the held quantity is never rescaled
    assert cart.quantity("A") == 3


def test_removing_line_to_zero_resets_package_mode() -> None:
    cart = _make_cart()
    cart.add("A", 2)
    cart.toggle_package_mode("A")
    cart.remove("A", 2)
    assert cart.quantity("A") == 0
    assert cart.is_package_mode("A") is False

    cart.add("B", 1)
    cart.toggle_package_mode("B")
    cart.set_quantity("B", 0)
    assert cart.is_package_mode("B") is False


def test_export_for_order_package_and_unit_lines() -> None:
    cart = _make_cart()
    cart.add("A", 3)
    cart.toggle_package_mode("A")
    cart.add("B", 5)

    rows = {r["productId"]: r for r in cart.export_for_order(_products())}
    assert rows["A"] == {
        "productId": "A",
        "quantityOrdered": 18,
        "orderType": "package",
        "packagesOrdered": 3,
        "packageQuantity": 6,
    }
    assert rows["B"] == {
        "productId": "B",
        "quantityOrdered": 5,
        "orderType": "unit",
        "packagesOrdered": None,
        "packageQuantity": None,
    }


def test_export_package_mode_defaults_to_one_unit_per_package() -> None:
    cart = _make_cart()
    cart.add("B", 4)
    cart.toggle_package_mode("B")
    cart.add("GONE", 1)
    cart.toggle_package_mode("GONE")

    rows = {r["productId"]: r for r in cart.export_for_order(_products())}
    assert rows["B"]["quantityOrdered"] == 4
    assert rows["B"]["packageQuantity"] == 1
    assert rows["GONE"]["quantityOrdered"] == 1


def test_load_from_order_items_then_export_reproduces_items() -> None:
    items = [
        OrderItem("d1", "A", 18, order_type="package", packages_ordered=3, package_quantity=6),
        OrderItem("d2", "B", 5),
    ]
    cart = _make_cart()
    cart.load_from_order_items(items)

    assert cart.quantity("A") == 3
    assert cart.is_package_mode("A") is True
    assert cart.quantity("B") == 5
    assert cart.export_for_order(_products()) == [i.to_doc() for i in items]


def test_snapshot_restored_by_a_new_cart_instance() -> None:
    storage = LocalStorage()
    clock = _Clock()
    cart = _make_cart(storage, clock)
    cart.add("A", 2)
    cart.toggle_package_mode("A")
    cart.set_brand_filter("Zeta")

    again = _make_cart(storage, clock)
    assert again.initialize() is True
    assert again.quantity("A") == 2
    assert again.is_package_mode("A") is True
    assert again.brand_filter == "Zeta"


def test_stale_snapshot_is_discarded() -> None:
    storage = LocalStorage()
    clock = _Clock()
    _make_cart(storage, clock).add("A", 2)

    clock.t += 25 * 60 * 60
    again = _make_cart(storage, clock)
    assert again.initialize() is False
    assert again.items() == []
    assert storage.get_item("warehouse_cart") is None


def test_snapshot_bound_to_other_order_is_ignored() -> None:
    storage = LocalStorage()
    clock = _Clock()
    cart = _make_cart(storage, clock, key="warehouse_edit_cart")
    cart.initialize("order-1")
    cart.add("A", 2)

    other = _make_cart(storage, clock, key="warehouse_edit_cart")
    assert other.initialize("order-2") is False
    assert other.items() == []

    same = _make_cart(storage, clock, key="warehouse_edit_cart")
    assert same.initialize("order-1") is True
    assert same.quantity("A") == 2


def test_malformed_snapshot_entries_are_dropped() -> None:
    storage = LocalStorage()
    clock = _Clock()
    storage.set_json(
        "warehouse_cart",
        {"cart": {"A": -1, "B": "x", "C": 2}, "packageMode": {"C": True}, "timestamp": clock.t * 1000},
    )
    cart = _make_cart(storage, clock)
    assert cart.initialize() is True
    assert dict(cart.items()) == {"C": 2}


def test_clear_empties_cart_and_storage() -> None:
    storage = LocalStorage()
    cart = _make_cart(storage)
    cart.add("A", 1)
    cart.clear()
    assert cart.items() == []
    assert cart.package_mode == {}
    assert storage.get_item("warehouse_cart") is None


def test_storage_failure_does_not_break_mutations(caplog) -> None:
    cart = _make_cart(_BrokenStorage())
    with caplog.at_level(logging.WARNING):
        cart.add("A", 2)
    assert cart.quantity("A") == 2
    assert any("failed to save cart" in r.getMessage() for r in caplog.records)


def test_listeners_notified_after_every_mutation() -> None:
    cart = _make_cart()
    seen = []
    unsubscribe = cart.subscribe(lambda c: seen.append(c.total_quantity()))
    cart.add("A", 2)
    cart.remove("A", 1)
    cart.toggle_package_mode("A")
    cart.clear()
    assert seen == [2, 1, 1, 0]

    unsubscribe()
    cart.add("A", 1)
    assert seen == [2, 1, 1, 0]


def test_check_stock_is_advisory() -> None:
    product = Product(id="A", name="Olive oil", package_quantity=6, stock_quantity=10)
    assert check_stock(product, 9, package_mode=False) is None

    warning = check_stock(product, 10, package_mode=False)
    assert warning is not None
    assert warning.available == 10
    assert warning.requested == 11

    # 10 units make one full package
    assert check_stock(product, 0, package_mode=True) is None
    warning = check_stock(product, 1, package_mode=True)
    assert warning is not None and warning.available == 1 and warning.package_mode

    assert check_stock(None, 100, package_mode=False) is None


def test_cart_storage_keys() -> None:
    assert cart_storage_key() == "warehouse_cart"
    assert cart_storage_key("42") == "warehouse_cart:42"
    assert cart_storage_key("42", "o1") == "warehouse_edit_cart:42:o1"
