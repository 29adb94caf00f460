from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from stockpick.constants import PRODUCTS
from stockpick.db.store import DocumentStore, now_iso
from stockpick.models import Product

log = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name": "name",
    "brand": "brand",
    "image": "imageUrl",
    "cost": "cost",
    "pack": "packageQuantity",
    "stock": "stockQuantity",
}


async def add_product(
    store: DocumentStore,
    sku: str,
    name: str,
    brand: str = "",
    weight_value: Optional[float] = None,
    weight_unit: str = "kg",
    image_url: str = "",
    cost: float = 0.0,
    package_quantity: int = 0,
) -> Product:
    sku = (sku or "").strip()
    if not sku:
        raise ValueError("SKU is required")
    if await store.get(PRODUCTS, sku) is not None:
        raise ValueError(f"SKU {sku} already exists")
    doc = {
        "sku": sku,
        "name": name,
        "brand": brand,
        "weight": {"value": weight_value or None, "unit": weight_unit},
        "imageUrl": image_url,
        "cost": float(cost or 0),
        "packageQuantity": int(package_quantity or 0),
        "stockQuantity": 0,
        "createdAt": now_iso(),
    }
    await store.set(PRODUCTS, sku, doc)
    log.info("product added: %s", sku)
    return Product.from_doc({**doc, "id": sku})


async def update_product(store: DocumentStore, sku: str, changes: Dict[str, Any]) -> None:
    data = dict(changes)
    data["updatedAt"] = now_iso()
    await store.update(PRODUCTS, sku, data)


async def get_product(store: DocumentStore, sku: str) -> Optional[Product]:
    doc = await store.get(PRODUCTS, sku)
    return Product.from_doc(doc) if doc else None


async def list_products(store: DocumentStore, brand: str = "") -> List[Product]:
    where = [("brand", "==", brand)] if brand else None
    docs = await store.get_all(PRODUCTS, where=where)
    return sort_for_display(Product.from_doc(d) for d in docs)


def sort_for_display(products: Iterable[Product]) -> List[Product]:
    return sorted(products, key=lambda p: (p.brand.lower(), p.name.lower(), p.id))


def brands(products: Iterable[Product]) -> List[str]:
    return sorted({p.brand for p in products if p.brand})


def parse_field(field: str, raw: str) -> tuple[str, Any]:
    """Map a ``/product_edit`` field name and text value to a document change."""
    key = EDITABLE_FIELDS.get(field.lower())
    if key is None:
        raise ValueError(f"unknown field {field}; use one of: {', '.join(sorted(EDITABLE_FIELDS))}")
    if key in ("packageQuantity", "stockQuantity"):
        return key, int(raw)
    if key == "cost":
        return key, float(raw.replace(",", "."))
    return key, raw
