from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from stockpick.core.cart import CartStore, cart_storage_key
from stockpick.core.catalog import list_products
from stockpick.core.orders import DraftAutosaver
from stockpick.core.picking import PickSession
from stockpick.core.progress import PickingProgressStore
from stockpick.db.store import DocumentStore
from stockpick.models import Product
from stockpick.storage.local import LocalStorage

log = logging.getLogger(__name__)


class Workspace:
    """Per-user carts, edit carts and pick sessions of the running bot.

    Created once in ``main`` and handed to the handlers through the
    dispatcher, so tests and other front-ends can build their own.
    """

    def __init__(
        self,
        store: DocumentStore,
        storage: LocalStorage,
        progress: PickingProgressStore,
        export_dir: str,
        cart_ttl_hours: int = 24,
        draft_save_delay: float = 1.0,
        staff_ids: Tuple[int, ...] = (),
    ) -> None:
        self.staff_ids = staff_ids
        self.store = store
        self.storage = storage
        self.progress = progress
        self.export_dir = export_dir
        self.cart_ttl_hours = cart_ttl_hours
        self.draft_save_delay = draft_save_delay
        self._carts: Dict[int, CartStore] = {}
        self._autosavers: Dict[int, DraftAutosaver] = {}
        self._editing: Dict[int, Tuple[str, CartStore]] = {}
        self._sessions: Dict[int, PickSession] = {}

    def is_staff(self, user_id: int) -> bool:
        return user_id in self.staff_ids

    def cart(self, user_id: int) -> CartStore:
        cart = self._carts.get(user_id)
        if cart is None:
            cart = CartStore(self.storage, cart_storage_key(str(user_id)), ttl_hours=self.cart_ttl_hours)
            if cart.initialize() and cart.total_quantity():
                log.info("restored cart of user %s: %d pcs", user_id, cart.total_quantity())
            self._carts[user_id] = cart
        return cart

    def autosaver(self, user_id: int, user_name: str) -> DraftAutosaver:
        saver = self._autosavers.get(user_id)
        if saver is None:
            saver = DraftAutosaver(self.store, self.cart(user_id), user_id, user_name, delay=self.draft_save_delay)
            saver.attach()
            self._autosavers[user_id] = saver
        return saver

    # ---------------- edit mode ----------------

    def start_edit(self, user_id: int, order_id: str) -> CartStore:
        cart = CartStore(
            self.storage,
            cart_storage_key(str(user_id), order_id),
            ttl_hours=self.cart_ttl_hours,
        )
        cart.order_id = order_id
        self._editing[user_id] = (order_id, cart)
        return cart

    def editing(self, user_id: int) -> Optional[Tuple[str, CartStore]]:
        return self._editing.get(user_id)

    def stop_edit(self, user_id: int) -> None:
        entry = self._editing.pop(user_id, None)
        if entry:
            entry[1].clear()

    def active_cart(self, user_id: int) -> CartStore:
        entry = self._editing.get(user_id)
        return entry[1] if entry else self.cart(user_id)

    # ---------------- picking ----------------

    def session(self, user_id: int) -> Optional[PickSession]:
        return self._sessions.get(user_id)

    def set_session(self, user_id: int, session: Optional[PickSession]) -> None:
        if session is None:
            self._sessions.pop(user_id, None)
        else:
            self._sessions[user_id] = session

    # ---------------- catalog ----------------

    async def products(self, brand: str = "") -> List[Product]:
        return await list_products(self.store, brand)

    async def products_map(self) -> Dict[str, Product]:
        return {p.id: p for p in await self.products()}
