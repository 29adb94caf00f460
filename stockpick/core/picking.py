from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from stockpick.constants import (
    ITEM_PENDING,
    ITEM_PICKED,
    ORDER_TYPE_PACKAGE,
    ORDER_TYPE_UNIT,
    ORDERS,
    PRODUCTS,
    STATUS_PICKED,
)
from stockpick.core.orders import items_path, load_order, load_order_items
from stockpick.core.progress import PickingProgressStore
from stockpick.db.store import DocumentStore, now_iso
from stockpick.errors import InvalidQuantityError, InvalidStateError, StockpickError
from stockpick.models import Order, OrderItem

log = logging.getLogger(__name__)

Listener = Callable[["PickSession"], None]


@dataclass
class PickItem:
    doc_id: str
    product_id: str
    quantity_ordered: int
    quantity_picked: int
    status: str = ITEM_PENDING
    order_type: str = ORDER_TYPE_UNIT
    packages_ordered: Optional[int] = None
    package_quantity: Optional[int] = None

    @property
    def picked(self) -> bool:
        return self.status == ITEM_PICKED

    @property
    def is_package(self) -> bool:
        return self.order_type == ORDER_TYPE_PACKAGE

    @classmethod
    def from_order_item(cls, item: OrderItem) -> "PickItem":
        return cls(
            doc_id=item.doc_id,
            product_id=item.product_id,
            quantity_ordered=item.quantity_ordered,
            quantity_picked=item.quantity_ordered if item.quantity_picked is None else item.quantity_picked,
            status=item.status,
            order_type=item.order_type,
            packages_ordered=item.packages_ordered,
            package_quantity=item.package_quantity,
        )


class PickSession:
    """Picking of one order by one picker.

    Items move ``pending -> picked`` on :meth:`confirm` and back on
    :meth:`edit`; the picked quantity defaults to the ordered one and is
    kept across edits. Every transition is written to the progress
    store. :meth:`complete` is allowed only when every item is picked and
    commits item updates, stock decrements and the order status in one
    atomic batch.
    """

    def __init__(
        self,
        store: DocumentStore,
        order: Order,
        items: List[PickItem],
        progress: Optional[PickingProgressStore] = None,
        read_only: bool = False,
    ) -> None:
        self.store = store
        self.order = order
        self.items = items
        self.progress = progress
        self.read_only = read_only
        self.notes = ""
        self.completing = False
        self.completed = order.status == STATUS_PICKED
        self.restored = False
        self._listeners: List[Listener] = []

    @classmethod
    async def open(
        cls,
        store: DocumentStore,
        order_id: str,
        progress: Optional[PickingProgressStore] = None,
        read_only: bool = False,
    ) -> "PickSession":
        order = await load_order(store, order_id)
        items = [PickItem.from_order_item(i) for i in await load_order_items(store, order_id)]
        session = cls(store, order, items, progress=progress, read_only=read_only)
        if not read_only and not session.completed:
            session._restore()
        return session

    def _restore(self) -> None:
        if self.progress is None:
            return
        saved = self.progress.load(self.order.id)
        if not saved:
            return
        saved_items = saved.get("items") or {}
        for item in self.items:
            entry = saved_items.get(item.doc_id)
            if entry and entry.get("status") == ITEM_PICKED:
                item.quantity_picked = int(entry.get("quantityPicked") or 0)
                item.status = ITEM_PICKED
                self.restored = True
        if saved.get("notes"):
            self.notes = saved["notes"]

    # ---------------- observers ----------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ---------------- state ----------------

    @property
    def order_id(self) -> str:
        return self.order.id

    @property
    def picked_count(self) -> int:
        return sum(1 for i in self.items if i.picked)

    @property
    def can_complete(self) -> bool:
        if self.read_only or self.completed or self.completing:
            return False
        return bool(self.items) and all(i.picked for i in self.items)

    def item(self, doc_id: str) -> PickItem:
        for i in self.items:
            if i.doc_id == doc_id:
                return i
        raise InvalidStateError(f"no item {doc_id} in order {self.order.label}")

    def _guard(self) -> None:
        if self.read_only:
            raise InvalidStateError("order is open read-only")
        if self.completed:
            raise InvalidStateError("picking of this order is already completed")
        if self.completing:
            raise InvalidStateError("completion is in progress")

    def progress_items(self) -> Dict[str, Dict[str, Any]]:
        return {
            i.doc_id: {"productId": i.product_id, "quantityPicked": i.quantity_picked, "status": i.status}
            for i in self.items
        }

    def _save_progress(self) -> None:
        if self.progress is not None and not self.read_only:
            self.progress.save(self.order.id, self.progress_items(), self.notes)

    # ---------------- transitions ----------------

    def confirm(self, doc_id: str, qty: Optional[int] = None) -> PickItem:
        self._guard()
        item = self.item(doc_id)
        if item.picked:
            raise InvalidStateError("item is already picked; edit it first")
        if qty is None:
            qty = item.quantity_picked
        if qty < 0:
            raise InvalidQuantityError(qty)
        item.quantity_picked = qty
        item.status = ITEM_PICKED
        self._save_progress()
        self._notify()
        return item

    def edit(self, doc_id: str) -> PickItem:
        self._guard()
        item = self.item(doc_id)
        if not item.picked:
            raise InvalidStateError("item is not picked yet")
        item.status = ITEM_PENDING
        self._save_progress()
        self._notify()
        return item

    def set_notes(self, notes: str) -> None:
        self._guard()
        self.notes = notes or ""
        self._save_progress()
        self._notify()

    async def complete(self) -> Tuple[bool, str]:
        if self.read_only:
            return False, "order is open read-only"
        if self.completed:
            return False, "picking of this order is already completed"
        if self.completing:
            return False, "completion is already in progress"
        if not self.can_complete:
            return False, f"all items must be picked first ({self.picked_count}/{len(self.items)})"

        self.completing = True
        self._notify()

        batch = self.store.batch()
        for item in self.items:
            batch.update(
                items_path(self.order.id),
                item.doc_id,
                {"quantityPicked": item.quantity_picked, "status": ITEM_PICKED},
            )
            if item.product_id and item.quantity_picked:
                batch.increment(PRODUCTS, item.product_id, "stockQuantity", -item.quantity_picked)

        order_update: Dict[str, Any] = {"status": STATUS_PICKED, "pickedAt": now_iso()}
        picking_notes = self.notes.strip()
        if picking_notes:
            order_update["pickingNotes"] = picking_notes
        batch.update(ORDERS, self.order.id, order_update)

        try:
            await batch.commit()
        except StockpickError as e:
            log.error("completing order %s failed: %s", self.order.id, e)
            self.completing = False
            self._notify()
            return False, str(e)

        self.completing = False
        self.completed = True
        self.order.status = STATUS_PICKED
        self.order.picked_at = order_update["pickedAt"]
        if picking_notes:
            self.order.picking_notes = picking_notes
        if self.progress is not None:
            self.progress.clear(self.order.id)
        log.info("order %s picked: %d items", self.order.label, len(self.items))
        self._notify()
        return True, "picking completed and stock updated"
