from __future__ import annotations

from datetime import datetime
from typing import Optional

from stockpick.constants import ORDER_STATUSES
from stockpick.models import Product


def status_text(status: str) -> str:
    return ORDER_STATUSES.get(status, status or "unknown")


def short_date(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value).strftime("%d.%m.%y %H:%M")
    except ValueError:
        return value


def ordered_text(item) -> str:
    """Ordered quantity of an OrderItem or PickItem, with the package breakdown."""
    if item.is_package and item.packages_ordered and item.package_quantity:
        return f"{item.quantity_ordered} pcs ({item.packages_ordered} pkg × {item.package_quantity})"
    return f"{item.quantity_ordered} pcs"


def product_line(p: Product) -> str:
    pack = f" | pack {p.package_quantity}" if p.package_quantity and p.package_quantity > 1 else ""
    weight = f" | {p.weight}" if p.weight and p.weight.value else ""
    return f"{p.id} — {p.brand} {p.name}{weight}{pack} | stock {p.stock_quantity}"
