from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from stockpick.constants import (
    COUNTERS,
    DISPLAY_ID_PREFIX,
    ORDER_COUNTER_ID,
    ORDER_ITEMS,
    ORDERS,
    STATUS_DRAFT,
    STATUS_PENDING,
    UNKNOWN,
    USERS,
)
from stockpick.core.cart import CartStore
from stockpick.db.store import DocumentStore, new_id, now_iso, subcollection
from stockpick.errors import (
    EmptyCartError,
    InvalidStateError,
    NotEditableError,
    OrderNotFoundError,
    StockpickError,
)
from stockpick.models import Order, OrderItem, Product

log = logging.getLogger(__name__)


def format_display_id(number: int) -> str:
    return f"{DISPLAY_ID_PREFIX}-{number:04d}"


def items_path(order_id: str) -> str:
    return subcollection(ORDERS, order_id, ORDER_ITEMS)


async def allocate_display_id(
    store: DocumentStore,
    clock: Callable[[], float] = time.time,
) -> Tuple[str, int]:
    """Next sequential display id, or a timestamp-based one if the counter fails.

    The fallback gives up strict sequence so that an order can always be
    created.
    """
    try:
        number = await store.next_sequence(COUNTERS, ORDER_COUNTER_ID)
        return format_display_id(number), number
    except Exception as e:
        stamp = str(int(clock() * 1000))[-6:]
        log.warning("order counter failed, using timestamp id %s: %s", stamp, e)
        return f"{DISPLAY_ID_PREFIX}-{stamp}", int(stamp)


@dataclass
class UserProfile:
    full_name: str = UNKNOWN
    store_name: str = UNKNOWN


async def resolve_user_profile(store: DocumentStore, user_id: Optional[str]) -> UserProfile:
    if user_id is None:
        return UserProfile()
    try:
        doc = await store.get(USERS, str(user_id))
    except StockpickError as e:
        log.warning("could not load profile of user %s: %s", user_id, e)
        return UserProfile()
    if not doc:
        return UserProfile()
    return UserProfile(
        full_name=doc.get("fullName") or UNKNOWN,
        store_name=doc.get("storeName") or UNKNOWN,
    )


async def save_user_profile(store: DocumentStore, user_id: str, full_name: str, store_name: str) -> None:
    await store.set(USERS, str(user_id), {"fullName": full_name, "storeName": store_name, "updatedAt": now_iso()})


async def load_order(store: DocumentStore, order_id: str) -> Order:
    doc = await store.get(ORDERS, order_id)
    if not doc:
        raise OrderNotFoundError(order_id)
    return Order.from_doc(doc)


async def load_order_items(store: DocumentStore, order_id: str) -> List[OrderItem]:
    docs = await store.get_all(items_path(order_id))
    return [OrderItem.from_doc(d) for d in docs]


async def find_order(store: DocumentStore, ref: str) -> Order:
    """Look an order up by document id or by display id (``ORD-0007`` or ``7``)."""
    doc = await store.get(ORDERS, ref)
    if doc:
        return Order.from_doc(doc)
    wanted = ref.strip().upper()
    if wanted.isdigit():
        wanted = format_display_id(int(wanted))
    matches = await store.get_all(ORDERS, where=[("displayId", "==", wanted)])
    if not matches:
        raise OrderNotFoundError(ref)
    return Order.from_doc(matches[0])


async def list_orders(
    store: DocumentStore,
    status: Optional[str] = None,
    created_by: Optional[str] = None,
    include_drafts: bool = False,
) -> List[Order]:
    where = []
    if status:
        where.append(("status", "==", status))
    if created_by is not None:
        where.append(("createdBy", "==", str(created_by)))
    docs = await store.get_all(ORDERS, where=where, order_by="createdAt", descending=True)
    orders = [Order.from_doc(d) for d in docs]
    if not include_drafts and status != STATUS_DRAFT:
        orders = [o for o in orders if o.status != STATUS_DRAFT]
    return orders


class DraftAutosaver:
    """Debounced draft copy of a cart that has not been submitted yet.

    Each ``schedule()`` restarts the timer; when it fires the cart is
    written as a ``draft`` order, reusing the same document after the
    first save. Failures are logged and dropped.
    """

    def __init__(
        self,
        store: DocumentStore,
        cart: CartStore,
        user_id: Optional[str],
        user_name: str = UNKNOWN,
        delay: float = 1.0,
    ) -> None:
        self.store = store
        self.cart = cart
        self.user_id = None if user_id is None else str(user_id)
        self.user_name = user_name
        self.delay = delay
        self.draft_order_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._saving = False
        self._lock = asyncio.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self.cart.subscribe(lambda _cart: self.schedule())

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def schedule(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._task is not None and not self._task.done() and not self._saving:
            self._task.cancel()
        self._task = loop.create_task(self._delayed())

    async def _delayed(self) -> None:
        await asyncio.sleep(self.delay)
        self._saving = True
        try:
            await self.save()
        finally:
            self._saving = False

    async def flush(self) -> None:
        """Wait for a scheduled save to finish."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def cancel_pending(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        if not self._saving:
            task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def save(self) -> Optional[str]:
        items = self.cart.items()
        if not items:
            return None
        data = {
            "items": [{"productId": pid, "quantity": qty} for pid, qty in items],
            "status": STATUS_DRAFT,
            "createdBy": self.user_id,
            "createdByName": self.user_name,
            "updatedAt": now_iso(),
        }
        async with self._lock:
            try:
                if self.draft_order_id:
                    await self.store.update(ORDERS, self.draft_order_id, data)
                else:
                    data["createdAt"] = data["updatedAt"]
                    self.draft_order_id = await self.store.create(ORDERS, data)
            except StockpickError as e:
                log.warning("could not save draft order: %s", e)
                return None
        return self.draft_order_id

    async def discard(self) -> None:
        await self.cancel_pending()
        draft_id, self.draft_order_id = self.draft_order_id, None
        if not draft_id:
            return
        try:
            await self.store.delete(ORDERS, draft_id)
        except StockpickError as e:
            log.warning("could not delete draft order %s: %s", draft_id, e)


class OrderSubmission:
    """Turns a cart into a pending order with its line items."""

    def __init__(
        self,
        store: DocumentStore,
        cart: CartStore,
        user_id: Optional[str],
        autosaver: Optional[DraftAutosaver] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.cart = cart
        self.user_id = None if user_id is None else str(user_id)
        self.autosaver = autosaver
        self.clock = clock

    async def submit(self, products: Iterable[Product], notes: str = "") -> Order:
        if self.cart.is_empty():
            raise EmptyCartError()
        if self.autosaver is not None:
            await self.autosaver.cancel_pending()

        display_id, number = await allocate_display_id(self.store, self.clock)
        profile = await resolve_user_profile(self.store, self.user_id)

        created_at = now_iso()
        order_doc = {
            "displayId": display_id,
            "sequentialNumber": number,
            "createdAt": created_at,
            "createdBy": self.user_id,
            "createdByName": profile.full_name,
            "storeName": profile.store_name,
            "status": STATUS_PENDING,
            "notes": (notes or "").strip(),
        }

        # header and items go in one commit so no reader sees a partial order
        order_id = new_id()
        batch = self.store.batch()
        batch.set(ORDERS, order_id, order_doc)
        for row in self.cart.export_for_order(products):
            batch.create(items_path(order_id), row)
        await batch.commit()

        if self.autosaver is not None:
            await self.autosaver.discard()
        self.cart.clear()

        log.info("order %s (%s) submitted by %s", display_id, order_id, self.user_id)
        return Order.from_doc({**order_doc, "id": order_id})


class OrderEditor:
    """Re-opens a pending order into a cart and writes the edited items back."""

    def __init__(self, store: DocumentStore, user_id: Optional[str]) -> None:
        self.store = store
        self.user_id = None if user_id is None else str(user_id)
        self.restored = False

    def _check_editable(self, order: Order) -> None:
        if order.created_by != self.user_id:
            raise NotEditableError("you can only edit your own orders")
        if order.status != STATUS_PENDING:
            raise InvalidStateError(f"only pending orders can be edited (order is {order.status})")

    async def open(self, order_id: str, cart: CartStore) -> Order:
        order = await load_order(self.store, order_id)
        self._check_editable(order)
        # an unsaved snapshot of the same order wins over the stored items
        self.restored = cart.initialize(order_id)
        if self.restored:
            log.info("restored unsaved edit of order %s for %s", order_id, self.user_id)
        else:
            cart.load_from_order_items(await load_order_items(self.store, order_id))
        return order

    async def save(
        self,
        order_id: str,
        cart: CartStore,
        products: Iterable[Product],
        notes: Optional[str] = None,
    ) -> None:
        """Replace the order's items with the cart; ``notes=None`` keeps the current notes."""
        if cart.is_empty():
            raise EmptyCartError("no items in cart")
        order = await load_order(self.store, order_id)
        self._check_editable(order)

        existing = await self.store.get_all(items_path(order_id))
        batch = self.store.batch()
        header: Dict[str, Any] = {"updatedAt": now_iso()}
        if notes is not None:
            header["notes"] = notes.strip()
        batch.update(ORDERS, order_id, header)
        for doc in existing:
            batch.delete(items_path(order_id), doc["id"])
        for row in cart.export_for_order(products):
            batch.create(items_path(order_id), row)
        await batch.commit()

        log.info("order %s updated by %s: %d items", order_id, self.user_id, cart.item_count())
        cart.clear()
