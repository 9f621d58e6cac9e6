# src/tasklane/storage/table.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import Any

from ..errors import InternalError, TemporarilyUnavailableError

logger = logging.getLogger(__name__)

Item = dict[str, Any]


class ConditionFailedError(Exception):
    """A conditional write did not hold (item exists / item missing)."""


class ItemTable:
    """
    SQLite-backed single table with partition key + sort key addressing.

    Semantics follow a wide-column key-value store:
    - items are JSON documents carrying their own "PK"/"SK" fields,
    - queries stay inside one partition and return items ordered by sort key,
    - an item with "expiresAt" (epoch seconds) disappears from reads once it passes.

    Thread-safety:
    - each method opens its own SQLite connection
    - read-modify-write operations run inside BEGIN IMMEDIATE
    """

    def __init__(
        self,
        db_path: str | Path = "tasklane.sqlite3",
        *,
        time_fn: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._time = time_fn
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        try:
            total = self.count_items()
        except Exception:
            total = -1
        logger.info("ItemTable ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    @contextlib.contextmanager
    def _connection(self, op: str) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            yield conn
        except sqlite3.OperationalError as e:
            msg = str(e).lower()
            if "locked" in msg or "busy" in msg:
                logger.warning("ItemTable %s: storage busy (%s)", op, e)
                raise TemporarilyUnavailableError(details={"operation": op}) from e
            logger.exception("ItemTable %s failed", op)
            raise InternalError("Storage operation failed", details={"operation": op}) from e
        except sqlite3.DatabaseError as e:
            logger.exception("ItemTable %s failed", op)
            raise InternalError("Storage operation failed", details={"operation": op}) from e
        finally:
            conn.close()

    @staticmethod
    @contextlib.contextmanager
    def _transaction(conn: sqlite3.Connection) -> Iterator[None]:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")

    def _ensure_schema(self) -> None:
        with self._connection("ensure_schema") as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS items (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    data TEXT NOT NULL,
                    expires_at REAL,
                    PRIMARY KEY (pk, sk)
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_items_expiry ON items(expires_at)")

    @staticmethod
    def _encode(item: Item) -> tuple[str, str, str, float | None]:
        pk = item.get("PK")
        sk = item.get("SK")
        if not pk or not sk:
            raise ValueError("item must carry PK and SK")
        expires = item.get("expiresAt")
        return str(pk), str(sk), json.dumps(item, ensure_ascii=False), (
            float(expires) if expires is not None else None
        )

    @staticmethod
    def _decode(row: sqlite3.Row) -> Item:
        return json.loads(row["data"])

    # ---- public API ----

    def count_items(self) -> int:
        with self._connection("count") as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM items").fetchone()
            return int(n)

    def put_item(self, item: Item, *, if_not_exists: bool = False) -> None:
        pk, sk, data, expires_at = self._encode(item)
        now = self._time()
        with self._connection("put_item") as conn, self._transaction(conn):
            if if_not_exists:
                row = conn.execute(
                    "SELECT expires_at FROM items WHERE pk = ? AND sk = ?", (pk, sk)
                ).fetchone()
                if row is not None and (row["expires_at"] is None or row["expires_at"] > now):
                    raise ConditionFailedError(f"item exists: {pk} {sk}")
            conn.execute(
                "INSERT OR REPLACE INTO items(pk, sk, data, expires_at) VALUES (?, ?, ?, ?)",
                (pk, sk, data, expires_at),
            )
        logger.debug("put_item pk=%s sk=%s", pk, sk)

    def get_item(self, pk: str, sk: str) -> Item | None:
        with self._connection("get_item") as conn:
            row = conn.execute(
                """
                SELECT data FROM items
                WHERE pk = ? AND sk = ?
                  AND (expires_at IS NULL OR expires_at > ?)
                """,
                (pk, sk, self._time()),
            ).fetchone()
            return self._decode(row) if row else None

    def query(
        self,
        pk: str,
        *,
        begins_with: str | None = None,
        between: tuple[str, str] | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[Item]:
        """
        Items of one partition ordered by sort key.

        begins_with and between are mutually exclusive; between is inclusive on both ends.
        """
        if begins_with is not None and between is not None:
            raise ValueError("begins_with and between are mutually exclusive")

        clauses = ["pk = ?", "(expires_at IS NULL OR expires_at > ?)"]
        params: list[Any] = [pk, self._time()]

        if begins_with is not None:
            clauses.append("substr(sk, 1, ?) = ?")
            params.extend([len(begins_with), begins_with])
        elif between is not None:
            clauses.append("sk BETWEEN ? AND ?")
            params.extend([between[0], between[1]])

        sql = f"SELECT data FROM items WHERE {' AND '.join(clauses)} ORDER BY sk {'DESC' if reverse else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        with self._connection("query") as conn:
            return [self._decode(r) for r in conn.execute(sql, params).fetchall()]

    def scan(self, *, begins_with: str | None = None) -> Iterator[Item]:
        """
        Full-table scan across partitions.

        Only system jobs (recurrence expansion) use this; user-facing operations query.
        """
        sql = "SELECT data FROM items WHERE (expires_at IS NULL OR expires_at > ?)"
        params: list[Any] = [self._time()]
        if begins_with is not None:
            sql += " AND substr(sk, 1, ?) = ?"
            params.extend([len(begins_with), begins_with])
        sql += " ORDER BY pk, sk"

        with self._connection("scan") as conn:
            rows = conn.execute(sql, params).fetchall()
        for r in rows:
            yield self._decode(r)

    def update_item(self, pk: str, sk: str, changes: dict[str, Any]) -> Item:
        """Shallow-merge changes into an existing item; returns the new item."""
        now = self._time()
        with self._connection("update_item") as conn, self._transaction(conn):
            row = conn.execute(
                """
                SELECT data FROM items
                WHERE pk = ? AND sk = ?
                  AND (expires_at IS NULL OR expires_at > ?)
                """,
                (pk, sk, now),
            ).fetchone()
            if row is None:
                raise ConditionFailedError(f"item missing: {pk} {sk}")

            item = self._decode(row)
            item.update(changes)
            item["PK"], item["SK"] = pk, sk
            _, _, data, expires_at = self._encode(item)
            conn.execute(
                "UPDATE items SET data = ?, expires_at = ? WHERE pk = ? AND sk = ?",
                (data, expires_at, pk, sk),
            )
        logger.debug("update_item pk=%s sk=%s fields=%s", pk, sk, sorted(changes))
        return item

    def delete_item(self, pk: str, sk: str) -> bool:
        with self._connection("delete_item") as conn:
            cur = conn.execute("DELETE FROM items WHERE pk = ? AND sk = ?", (pk, sk))
            return cur.rowcount == 1

    def move_item(self, old_pk: str, old_sk: str, item: Item, *, extra: Iterable[Item] = ()) -> None:
        """
        Replace the item at (old_pk, old_sk) with an item under a new key.

        Extra items (e.g. lookup items pointing at the new key) are written in the same
        local transaction.
        """
        rows = [self._encode(item), *(self._encode(x) for x in extra)]
        with self._connection("move_item") as conn, self._transaction(conn):
            cur = conn.execute("DELETE FROM items WHERE pk = ? AND sk = ?", (old_pk, old_sk))
            if cur.rowcount != 1:
                raise ConditionFailedError(f"item missing: {old_pk} {old_sk}")
            conn.executemany(
                "INSERT OR REPLACE INTO items(pk, sk, data, expires_at) VALUES (?, ?, ?, ?)",
                rows,
            )

    def purge_expired(self, now_ts: float | None = None) -> int:
        if now_ts is None:
            now_ts = self._time()
        with self._connection("purge_expired") as conn:
            cur = conn.execute(
                "DELETE FROM items WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (float(now_ts),),
            )
            n = int(cur.rowcount or 0)
        if n:
            logger.info("Purged %d expired items", n)
        return n
