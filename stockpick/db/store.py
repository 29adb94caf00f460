from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import uuid
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from stockpick.errors import RemoteOperationError

log = logging.getLogger(__name__)

Document = Dict[str, Any]
Filter = Tuple[str, str, Any]

_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "<": lambda a, b: a is not None and a < b,
    "<=": lambda a, b: a is not None and a <= b,
    ">": lambda a, b: a is not None and a > b,
    ">=": lambda a, b: a is not None and a >= b,
    "in": lambda a, b: a in b,
}


def subcollection(collection: str, doc_id: str, name: str) -> str:
    """Path of a nested collection, e.g. ``orders/<id>/orderItems``."""
    return f"{collection}/{doc_id}/{name}"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _json_default(v: Any) -> Any:
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    raise TypeError(f"not JSON serializable: {type(v).__name__}")


def _dumps(data: Document) -> str:
    clean = {k: v for k, v in data.items() if k != "id"}
    return json.dumps(clean, ensure_ascii=False, default=_json_default)


def _row_to_doc(row: sqlite3.Row) -> Document:
    doc = json.loads(row["data"])
    doc["id"] = row["id"]
    return doc


def _matches(doc: Document, where: Optional[Sequence[Filter]]) -> bool:
    if not where:
        return True
    for field, op, value in where:
        try:
            if not _OPS[op](doc.get(field), value):
                return False
        except TypeError:
            return False
    return True


class WriteBatch:
    """Collects writes and applies them in one transaction on ``commit``.

    Either every operation lands or none does. ``update`` and
    ``increment`` fail the whole batch when the target document is missing.
    """

    def __init__(self, store: "DocumentStore") -> None:
        self._store = store
        self._ops: List[Tuple[str, str, str, Any]] = []

    def __len__(self) -> int:
        return len(self._ops)

    def set(self, collection: str, doc_id: str, data: Document) -> "WriteBatch":
        self._ops.append(("set", collection, doc_id, dict(data)))
        return self

    def create(self, collection: str, data: Document, doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or new_id()
        self._ops.append(("set", collection, doc_id, dict(data)))
        return doc_id

    def update(self, collection: str, doc_id: str, data: Document) -> "WriteBatch":
        self._ops.append(("update", collection, doc_id, dict(data)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self._ops.append(("delete", collection, doc_id, None))
        return self

    def increment(self, collection: str, doc_id: str, field: str, delta: float) -> "WriteBatch":
        self._ops.append(("increment", collection, doc_id, (field, delta)))
        return self

    async def commit(self) -> None:
        ops = list(self._ops)
        await self._store._run(self._store._commit_sync, ops)
        self._ops.clear()


def new_id() -> str:
    return uuid.uuid4().hex[:20]


class DocumentStore:
    """Document database over SQLite.

    Documents are JSON objects addressed by (collection, id); nested
    collections use paths built with :func:`subcollection`. Every public
    call is a coroutine and runs its SQLite work in a worker thread with
    its own connection, so ``db_path`` must be a file.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        folder = os.path.dirname(self.db_path)
        if folder:
            os.makedirs(folder, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=10, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        conn = self._connect()
        try:
            with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
                conn.executescript(f.read())
        finally:
            conn.close()

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            log.error("document store failure in %s: %s", fn.__name__, e)
            raise RemoteOperationError(str(e)) from e

    # ---------------- reads ----------------

    def _get_sync(self, collection: str, doc_id: str) -> Optional[Document]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT id, data FROM documents WHERE collection=? AND id=?",
                (collection, doc_id),
            ).fetchone()
            return _row_to_doc(row) if row else None
        finally:
            conn.close()

    def _get_all_sync(self, collection: str) -> List[Document]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT id, data FROM documents WHERE collection=? ORDER BY created_at, id",
                (collection,),
            ).fetchall()
            return [_row_to_doc(r) for r in rows]
        finally:
            conn.close()

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        return await self._run(self._get_sync, collection, doc_id)

    async def get_all(
        self,
        collection: str,
        where: Optional[Iterable[Filter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> List[Document]:
        docs = await self._run(self._get_all_sync, collection)
        where = list(where) if where else None
        for _, op, _ in where or []:
            if op not in _OPS:
                raise ValueError(f"unsupported filter operator: {op}")
        docs = [d for d in docs if _matches(d, where)]
        if order_by:
            present = [d for d in docs if d.get(order_by) is not None]
            missing = [d for d in docs if d.get(order_by) is None]
            present.sort(key=lambda d: d[order_by], reverse=descending)
            docs = present + missing
        return docs

    # ---------------- writes ----------------

    async def create(self, collection: str, data: Document, doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or new_id()
        await self._run(self._commit_sync, [("set", collection, doc_id, dict(data))])
        return doc_id

    async def set(self, collection: str, doc_id: str, data: Document) -> None:
        await self._run(self._commit_sync, [("set", collection, doc_id, dict(data))])

    async def update(self, collection: str, doc_id: str, data: Document) -> None:
        await self._run(self._commit_sync, [("update", collection, doc_id, dict(data))])

    async def delete(self, collection: str, doc_id: str) -> None:
        await self._run(self._commit_sync, [("delete", collection, doc_id, None)])

    async def increment(self, collection: str, doc_id: str, field: str, delta: float) -> None:
        await self._run(self._commit_sync, [("increment", collection, doc_id, (field, delta))])

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def next_sequence(self, collection: str, doc_id: str, field: str = "value") -> int:
        """Bump a counter document and return the new value (first value is 1)."""
        return await self._run(self._next_sequence_sync, collection, doc_id, field)

    def _next_sequence_sync(self, collection: str, doc_id: str, field: str) -> int:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                current = self._read(conn, collection, doc_id) or {}
                value = int(current.get(field) or 0) + 1
                current[field] = value
                current["lastUpdated"] = now_iso()
                self._write(conn, collection, doc_id, current)
                conn.execute("COMMIT")
                return value
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    def _commit_sync(self, ops: List[Tuple[str, str, str, Any]]) -> None:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for op in ops:
                    self._apply(conn, *op)
                conn.execute("COMMIT")
            except BaseException:
                conn.execute("ROLLBACK")
                raise
        finally:
            conn.close()

    def _read(self, conn: sqlite3.Connection, collection: str, doc_id: str) -> Optional[Document]:
        row = conn.execute(
            "SELECT data FROM documents WHERE collection=? AND id=?",
            (collection, doc_id),
        ).fetchone()
        return json.loads(row["data"]) if row else None

    def _write(self, conn: sqlite3.Connection, collection: str, doc_id: str, data: Document) -> None:
        ts = now_iso()
        conn.execute(
            "INSERT INTO documents(collection, id, data, created_at, updated_at) VALUES(?,?,?,?,?) "
            "ON CONFLICT(collection, id) DO UPDATE SET data=excluded.data, updated_at=excluded.updated_at",
            (collection, doc_id, _dumps(data), ts, ts),
        )

    def _apply(self, conn: sqlite3.Connection, op: str, collection: str, doc_id: str, payload: Any) -> None:
        if op == "set":
            self._write(conn, collection, doc_id, payload)
        elif op == "delete":
            conn.execute("DELETE FROM documents WHERE collection=? AND id=?", (collection, doc_id))
        elif op in ("update", "increment"):
            current = self._read(conn, collection, doc_id)
            if current is None:
                raise RemoteOperationError(f"No document to update: {collection}/{doc_id}")
            if op == "update":
                current.update({k: v for k, v in payload.items() if k != "id"})
            else:
                field, delta = payload
                current[field] = (current.get(field) or 0) + delta
            self._write(conn, collection, doc_id, current)
        else:
            raise ValueError(f"unknown batch operation: {op}")
