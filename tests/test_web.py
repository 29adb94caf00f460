import asyncio

from fastapi.testclient import TestClient

from stockpick.core.cart import CartStore
from stockpick.core.orders import OrderSubmission
from stockpick.core.progress import PickingProgressStore
from stockpick.db.store import DocumentStore
from stockpick.models import Product
from stockpick.storage.local import LocalStorage
from stockpick.web.main import app, get_export_dir, get_progress, get_store


def _make_client(tmp_path):
    store = DocumentStore(str(tmp_path / "db.sqlite"))
    store.init_db()
    progress = PickingProgressStore(LocalStorage())

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_progress] = lambda: progress
    app.dependency_overrides[get_export_dir] = lambda: str(tmp_path / "exports")
    return TestClient(app), store, progress


def _seed_order(store: DocumentStore) -> str:
    async def scenario():
        await store.set("products", "A", {"name": "Olive oil", "brand": "Zeta", "stockQuantity": 5})
        await store.set("products", "B", {"name": "Rice", "brand": "Alpha", "packageQuantity": 6})
        products = [Product.from_doc(d) for d in await store.get_all("products")]
        cart = CartStore(LocalStorage(), "warehouse_cart")
        cart.add("A", 2)
        cart.add("B", 1)
        cart.toggle_package_mode("B")
        order = await OrderSubmission(store, cart, "u1").submit(products, "leave at dock")
        return order.id

    return asyncio.run(scenario())


def teardown_function() -> None:
    app.dependency_overrides.clear()


def test_index_redirects_to_orders(tmp_path) -> None:
    client, _, _ = _make_client(tmp_path)
    resp = client.get("/", follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/orders"


def test_products_add_and_filter(tmp_path) -> None:
    client, store, _ = _make_client(tmp_path)

    resp = client.post(
        "/products/add",
        data={"sku": "SKU-1", "name": "Olive oil", "brand": "Zeta", "package_quantity": "12"},
        follow_redirects=False,
    )
    assert resp.status_code == 303
    assert resp.headers["location"] == "/products?msg=OK"

    saved = asyncio.run(store.get("products", "SKU-1"))
    assert saved["stockQuantity"] == 0
    assert saved["packageQuantity"] == 12

    resp = client.get("/products", params={"brand": "Zeta"})
    assert resp.status_code == 200
    assert "SKU-1" in resp.text

    resp = client.get("/products", params={"brand": "Other"})
    assert "SKU-1" not in resp.text


def test_orders_list_marks_saved_progress(tmp_path) -> None:
    client, store, progress = _make_client(tmp_path)
    order_id = _seed_order(store)
    progress.save(order_id, {})

    resp = client.get("/orders")
    assert resp.status_code == 200
    assert "ORD-0001" in resp.text
    assert "progress saved" in resp.text

    resp = client.get("/orders", params={"status": "picked"})
    assert "ORD-0001" not in resp.text


def test_order_detail_shows_items(tmp_path) -> None:
    client, store, _ = _make_client(tmp_path)
    order_id = _seed_order(store)

    resp = client.get(f"/orders/{order_id}")
    assert resp.status_code == 200
    assert "ORD-0001" in resp.text
    assert "leave at dock" in resp.text
    assert "Picked 0/2" in resp.text
    assert "6 pcs (1 pkg × 6)" in resp.text


def test_unknown_order_is_404(tmp_path) -> None:
    client, _, _ = _make_client(tmp_path)
    assert client.get("/orders/nope").status_code == 404
    assert client.get("/orders/nope/pick-list").status_code == 404


def test_pick_list_pdf(tmp_path) -> None:
    client, store, _ = _make_client(tmp_path)
    order_id = _seed_order(store)

    resp = client.get(f"/orders/{order_id}/pick-list")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF")
    assert (tmp_path / "exports" / "pick_list_ORD-0001.pdf").exists()


def test_products_add_error_message_is_url_encoded(tmp_path) -> None:
    client, store, _ = _make_client(tmp_path)
    asyncio.run(store.set("products", "A&B", {"name": "Oil", "stockQuantity": 7}))

    resp = client.post("/products/add", data={"sku": "A&B", "name": "Oil"}, follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "/products?msg=SKU%20A%26B%20already%20exists"

    resp = client.get(resp.headers["location"])
    assert "SKU A&amp;B already exists" in resp.text
    assert asyncio.run(store.get("products", "A&B"))["stockQuantity"] == 7
