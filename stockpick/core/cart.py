from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from stockpick.constants import CART_KEY, EDIT_CART_KEY, ORDER_TYPE_PACKAGE, ORDER_TYPE_UNIT
from stockpick.errors import PersistenceError, StockUnavailableWarning
from stockpick.models import OrderItem, Product
from stockpick.storage.local import LocalStorage

log = logging.getLogger(__name__)

Listener = Callable[["CartStore"], None]

DEFAULT_TTL_HOURS = 24


def cart_storage_key(scope: Optional[str] = None, order_id: Optional[str] = None) -> str:
    """Local storage key for a cart: one per user scope, one per edited order."""
    key = EDIT_CART_KEY if order_id else CART_KEY
    if scope:
        key = f"{key}:{scope}"
    if order_id:
        key = f"{key}:{order_id}"
    return key


def check_stock(
    product: Optional[Product],
    current_qty: int,
    package_mode: bool,
    delta: int = 1,
) -> Optional[StockUnavailableWarning]:
    """Advisory check before adding ``delta`` to a cart line.

    Returns a warning when the new quantity exceeds the stock the catalog
    reports (in packages when ``package_mode``), otherwise None.
    """
    if product is None:
        return None
    available = product.stock_quantity
    if package_mode:
        available = available // product.units_per_package
    requested = current_qty + delta
    if requested > available:
        return StockUnavailableWarning(product.id, requested, available, package_mode)
    return None


class CartStore:
    """Products and quantities picked for an order before it is submitted.

    Quantities are counted in the line's current mode (units, or packages
    when package mode is on); they are converted to base units only by
    :meth:`export_for_order`. Every mutation snapshots the cart to local
    storage and then notifies subscribers.
    """

    def __init__(
        self,
        storage: LocalStorage,
        storage_key: str = CART_KEY,
        ttl_hours: int = DEFAULT_TTL_HOURS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.storage_key = storage_key
        self.ttl_ms = ttl_hours * 60 * 60 * 1000
        self.clock = clock
        self.cart: Dict[str, int] = {}
        self.package_mode: Dict[str, bool] = {}
        self.order_id: Optional[str] = None
        self.brand_filter: str = ""
        self._listeners: List[Listener] = []

    # ---------------- observers ----------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        self.save_to_storage()
        for listener in list(self._listeners):
            listener(self)

    # ---------------- mutations ----------------

    def initialize(self, order_id: Optional[str] = None) -> bool:
        self.order_id = order_id
        return self.load_from_storage()

    def add(self, product_id: str, delta: int = 1) -> None:
        qty = self.cart.get(product_id, 0) + delta
        self.cart[product_id] = max(0, qty)
        self._changed()

    def remove(self, product_id: str, delta: int = 1) -> None:
        if not self.cart.get(product_id):
            return
        qty = self.cart[product_id] - delta
        if qty <= 0:
            self.cart[product_id] = 0
            self.package_mode.pop(product_id, None)
        else:
            self.cart[product_id] = qty
        self._changed()

    def set_quantity(self, product_id: str, qty: int) -> None:
        if qty <= 0:
            self.cart[product_id] = 0
            self.package_mode.pop(product_id, None)
        else:
            self.cart[product_id] = qty
        self._changed()

    def toggle_package_mode(self, product_id: str) -> bool:
        # the held quantity is not rescaled; it is read in the new mode
        self.package_mode[product_id] = not self.package_mode.get(product_id, False)
        self._changed()
        return self.package_mode[product_id]

    def set_brand_filter(self, brand: str) -> None:
        self.brand_filter = brand or ""
        self._changed()

    def clear(self) -> None:
        self.cart = {}
        self.package_mode = {}
        self.clear_storage()
        for listener in list(self._listeners):
            listener(self)

    def load_from_order_items(self, items: Iterable[OrderItem]) -> None:
        self.cart = {}
        self.package_mode = {}
        for item in items:
            if item.order_type == ORDER_TYPE_PACKAGE:
                self.package_mode[item.product_id] = True
                self.cart[item.product_id] = item.packages_ordered or 0
            else:
                self.package_mode[item.product_id] = False
                self.cart[item.product_id] = item.quantity_ordered or 0
        self._changed()

    # ---------------- reads ----------------

    def quantity(self, product_id: str) -> int:
        return self.cart.get(product_id, 0)

    def is_package_mode(self, product_id: str) -> bool:
        return self.package_mode.get(product_id, False)

    def items(self) -> List[Tuple[str, int]]:
        return [(pid, qty) for pid, qty in self.cart.items() if qty > 0]

    def item_count(self) -> int:
        return len(self.items())

    def total_quantity(self) -> int:
        return sum(self.cart.values())

    def is_empty(self) -> bool:
        return self.item_count() == 0

    def export_for_order(self, products: Iterable[Product]) -> List[Dict[str, Any]]:
        """OrderItem payloads for every cart line, quantities in base units."""
        by_id = {p.id: p for p in products}
        rows: List[Dict[str, Any]] = []
        for product_id, qty in self.items():
            product = by_id.get(product_id)
            package_qty = product.units_per_package if product else 1
            if self.is_package_mode(product_id):
                rows.append(
                    {
                        "productId": product_id,
                        "quantityOrdered": qty * package_qty,
                        "orderType": ORDER_TYPE_PACKAGE,
                        "packagesOrdered": qty,
                        "packageQuantity": package_qty,
                    }
                )
            else:
                rows.append(
                    {
                        "productId": product_id,
                        "quantityOrdered": qty,
                        "orderType": ORDER_TYPE_UNIT,
                        "packagesOrdered": None,
                        "packageQuantity": None,
                    }
                )
        return rows

    # ---------------- persistence ----------------

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def save_to_storage(self) -> None:
        snapshot = {
            "cart": self.cart,
            "packageMode": self.package_mode,
            "brandFilter": self.brand_filter,
            "timestamp": self._now_ms(),
            "orderId": self.order_id,
        }
        try:
            self.storage.set_json(self.storage_key, snapshot)
        except PersistenceError as e:
            log.warning("failed to save cart %s: %s", self.storage_key, e)

    def load_from_storage(self) -> bool:
        try:
            data = self.storage.get_json(self.storage_key)
        except PersistenceError as e:
            log.warning("failed to load cart %s: %s", self.storage_key, e)
            self.clear_storage()
            return False

        if data is None:
            return False
        if not isinstance(data, dict):
            self.clear_storage()
            return False

        ts = data.get("timestamp")
        if isinstance(ts, (int, float)) and self._now_ms() - ts > self.ttl_ms:
            log.info("discarding stale cart %s", self.storage_key)
            self.clear_storage()
            return False

        if self.order_id and data.get("orderId") != self.order_id:
            return False

        cart = data.get("cart") if isinstance(data.get("cart"), dict) else {}
        self.cart = {
            str(pid): int(qty)
            for pid, qty in cart.items()
            if isinstance(qty, (int, float)) and not isinstance(qty, bool) and qty >= 0
        }
        modes = data.get("packageMode") if isinstance(data.get("packageMode"), dict) else {}
        self.package_mode = {str(pid): bool(v) for pid, v in modes.items()}
        self.brand_filter = str(data.get("brandFilter") or "")
        return True

    def clear_storage(self) -> None:
        try:
            self.storage.remove_item(self.storage_key)
        except PersistenceError as e:
            log.warning("failed to clear cart %s: %s", self.storage_key, e)
