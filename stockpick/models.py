from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from stockpick.constants import (
    ITEM_PENDING,
    ITEM_PICKED,
    ORDER_TYPE_PACKAGE,
    ORDER_TYPE_UNIT,
    STATUS_PENDING,
    UNKNOWN,
)


def _int(v: Any, default: int = 0) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


@dataclass
class Weight:
    value: Optional[float]
    unit: str

    def __str__(self) -> str:
        if not self.value:
            return "-"
        return f"{self.value:g} {self.unit}"


@dataclass
class Product:
    id: str  # SKU
    name: str
    brand: str = ""
    weight: Optional[Weight] = None
    image_url: str = ""
    cost: float = 0.0
    package_quantity: int = 1
    stock_quantity: int = 0

    @property
    def units_per_package(self) -> int:
        # 0 and missing both mean "sold by the unit"
        return self.package_quantity or 1

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Product":
        w = doc.get("weight")
        weight = None
        if isinstance(w, dict) and (w.get("value") or w.get("unit")):
            weight = Weight(value=w.get("value"), unit=str(w.get("unit") or ""))
        return cls(
            id=str(doc.get("id") or doc.get("sku") or ""),
            name=str(doc.get("name") or ""),
            brand=str(doc.get("brand") or ""),
            weight=weight,
            image_url=str(doc.get("imageUrl") or doc.get("image") or ""),
            cost=float(doc.get("cost") or 0),
            package_quantity=_int(doc.get("packageQuantity"), 1),
            stock_quantity=_int(doc.get("stockQuantity"), 0),
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "sku": self.id,
            "name": self.name,
            "brand": self.brand,
            "weight": {"value": self.weight.value, "unit": self.weight.unit} if self.weight else None,
            "imageUrl": self.image_url,
            "cost": self.cost,
            "packageQuantity": self.package_quantity,
            "stockQuantity": self.stock_quantity,
        }


@dataclass
class OrderItem:
    doc_id: str
    product_id: str
    quantity_ordered: int
    order_type: str = ORDER_TYPE_UNIT
    packages_ordered: Optional[int] = None
    package_quantity: Optional[int] = None
    quantity_picked: Optional[int] = None
    status: str = ITEM_PENDING

    @property
    def is_package(self) -> bool:
        return self.order_type == ORDER_TYPE_PACKAGE

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "OrderItem":
        ordered = _int(doc.get("quantityOrdered"), 0)
        picked = doc.get("quantityPicked")
        return cls(
            doc_id=str(doc.get("id") or doc.get("docId") or ""),
            product_id=str(doc.get("productId") or ""),
            quantity_ordered=ordered,
            order_type=doc.get("orderType") or ORDER_TYPE_UNIT,
            packages_ordered=doc.get("packagesOrdered") or None,
            package_quantity=doc.get("packageQuantity") or None,
            quantity_picked=ordered if picked is None else _int(picked, ordered),
            status=ITEM_PICKED if doc.get("status") == ITEM_PICKED else ITEM_PENDING,
        )

    def to_doc(self) -> Dict[str, Any]:
        return {
            "productId": self.product_id,
            "quantityOrdered": self.quantity_ordered,
            "orderType": self.order_type,
            "packagesOrdered": self.packages_ordered,
            "packageQuantity": self.package_quantity,
        }


@dataclass
class Order:
    id: str
    display_id: str = ""
    sequential_number: Optional[int] = None
    status: str = STATUS_PENDING
    created_at: Optional[str] = None
    created_by: Optional[str] = None
    created_by_name: str = UNKNOWN
    store_name: str = UNKNOWN
    notes: str = ""
    picking_notes: str = ""
    picked_at: Optional[str] = None
    updated_at: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.display_id or self.id

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> "Order":
        known = {
            "id", "displayId", "sequentialNumber", "status", "createdAt", "createdBy",
            "createdByName", "storeName", "notes", "pickingNotes", "pickedAt", "updatedAt",
        }
        created_by = doc.get("createdBy")
        return cls(
            id=str(doc.get("id") or ""),
            display_id=str(doc.get("displayId") or ""),
            sequential_number=doc.get("sequentialNumber"),
            status=str(doc.get("status") or STATUS_PENDING),
            created_at=doc.get("createdAt"),
            created_by=None if created_by is None else str(created_by),
            created_by_name=str(doc.get("createdByName") or UNKNOWN),
            store_name=str(doc.get("storeName") or UNKNOWN),
            notes=str(doc.get("notes") or ""),
            picking_notes=str(doc.get("pickingNotes") or ""),
            picked_at=doc.get("pickedAt"),
            updated_at=doc.get("updatedAt"),
            extra={k: v for k, v in doc.items() if k not in known},
        )
