from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, Optional

from stockpick.errors import PersistenceError

log = logging.getLogger(__name__)


class LocalStorage:
    """Synchronous key/value storage kept in one JSON file.

    Values are JSON strings, like a browser's localStorage. With
    ``path=None`` everything stays in memory. Failures raise
    :class:`PersistenceError`; callers decide whether to log and move on.
    """

    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._memory: Dict[str, str] = {}

    def _read_all(self) -> Dict[str, str]:
        if self.path is None:
            return dict(self._memory)
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"{self.path} does not hold an object")
        return data

    def _write_all(self, data: Dict[str, str]) -> None:
        if self.path is None:
            self._memory = dict(data)
            return
        tmp = self.path + ".tmp"
        try:
            folder = os.path.dirname(self.path)
            if folder:
                os.makedirs(folder, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            raise PersistenceError(f"cannot write {self.path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._read_all().get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._read_all().keys())

    def get_json(self, key: str) -> Any:
        raw = self.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise PersistenceError(f"{key}: stored value is not JSON: {e}") from e

    def set_json(self, key: str, value: Any) -> None:
        try:
            raw = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise PersistenceError(f"{key}: value is not JSON serializable: {e}") from e
        self.set_item(key, raw)
