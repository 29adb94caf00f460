from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from stockpick.constants import PROGRESS_KEY
from stockpick.errors import PersistenceError
from stockpick.storage.local import LocalStorage

log = logging.getLogger(__name__)

DEFAULT_TTL_DAYS = 7


class PickingProgressStore:
    """Uncommitted picking work, kept locally so a picker can resume.

    All orders share one storage key; each record holds the per-item
    picked state (docId -> productId/quantityPicked/status) and the
    picker's notes. Records older than the TTL are dropped.
    """

    def __init__(
        self,
        storage: LocalStorage,
        ttl_days: int = DEFAULT_TTL_DAYS,
        clock: Callable[[], float] = time.time,
        storage_key: str = PROGRESS_KEY,
    ) -> None:
        self.storage = storage
        self.ttl_ms = ttl_days * 24 * 60 * 60 * 1000
        self.clock = clock
        self.storage_key = storage_key

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def _expired(self, record: Dict[str, Any]) -> bool:
        ts = record.get("timestamp")
        if not isinstance(ts, (int, float)):
            return True
        return self._now_ms() - ts >= self.ttl_ms

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        try:
            data = self.storage.get_json(self.storage_key)
        except PersistenceError as e:
            log.warning("failed to read picking progress: %s", e)
            return {}
        return data if isinstance(data, dict) else {}

    def _put_all(self, data: Dict[str, Dict[str, Any]]) -> bool:
        try:
            self.storage.set_json(self.storage_key, data)
            return True
        except PersistenceError as e:
            log.warning("failed to write picking progress: %s", e)
            return False

    def save(self, order_id: str, items: Dict[str, Dict[str, Any]], notes: str = "") -> bool:
        now = self._now_ms()
        record = {
            "orderId": order_id,
            "items": items,
            "notes": notes,
            "timestamp": now,
            "lastModified": datetime.fromtimestamp(now / 1000, tz=timezone.utc).isoformat(),
        }
        data = self.get_all()
        data[order_id] = record
        return self._put_all(data)

    def load(self, order_id: str) -> Optional[Dict[str, Any]]:
        record = self.get_all().get(order_id)
        if not record:
            return None
        if self._expired(record):
            self.clear(order_id)
            return None
        return record

    def clear(self, order_id: str) -> bool:
        data = self.get_all()
        if order_id not in data:
            return True
        del data[order_id]
        return self._put_all(data)

    def clear_all(self) -> bool:
        try:
            self.storage.remove_item(self.storage_key)
            return True
        except PersistenceError as e:
            log.warning("failed to clear picking progress: %s", e)
            return False

    def list_active(self) -> List[Dict[str, Any]]:
        rows = []
        for order_id, record in self.get_all().items():
            if not isinstance(record, dict) or self._expired(record):
                continue
            rows.append(
                {
                    "orderId": order_id,
                    "lastModified": record.get("lastModified"),
                    "timestamp": record.get("timestamp"),
                    "itemsCount": len(record.get("items") or {}),
                }
            )
        return rows

    def evict_expired(self) -> int:
        data = self.get_all()
        stale = [oid for oid, rec in data.items() if not isinstance(rec, dict) or self._expired(rec)]
        if not stale:
            return 0
        for oid in stale:
            del data[oid]
        if self._put_all(data):
            log.info("cleaned %d old picking progress entries", len(stale))
        return len(stale)
