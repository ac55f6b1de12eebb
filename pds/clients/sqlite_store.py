"""SQLite-backed credential record storage keyed by (pk, sk)."""

from __future__ import annotations

import json
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS credential_records (
        seq INTEGER PRIMARY KEY AUTOINCREMENT,
        pk TEXT NOT NULL,
        sk TEXT NOT NULL,
        body TEXT NOT NULL,
        UNIQUE (pk, sk)
    )
    """,
    "CREATE INDEX IF NOT EXISTS credential_records_by_sk ON credential_records (sk, seq)",
)


class SQLiteStore:
    """Single-file record store for local runs and tests.

    ``pk`` identifies the user and ``sk`` the data source. ``seq`` is assigned
    on first insert and survives upserts, so per-provider enumeration follows
    the order users first connected.
    """

    def __init__(self, db_path: str) -> None:
        self._path = Path(db_path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._transaction() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self._path, check_same_thread=False)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    @staticmethod
    def _decode(rows: list[sqlite3.Row]) -> list[Dict[str, Any]]:
        return [json.loads(row["body"]) for row in rows]

    def put_item(self, item: Dict[str, Any]) -> None:
        pk, sk = item.get("pk"), item.get("sk")
        if not pk or not sk:
            raise ValueError("Item must include 'pk' and 'sk' keys")
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO credential_records (pk, sk, body) VALUES (?, ?, ?) "
                "ON CONFLICT (pk, sk) DO UPDATE SET body = excluded.body",
                (pk, sk, json.dumps(item)),
            )

    def get_item(self, *, partition_key: str, sort_key: str) -> Optional[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT body FROM credential_records WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            ).fetchall()
        decoded = self._decode(rows)
        return decoded[0] if decoded else None

    def delete_item(self, *, partition_key: str, sort_key: str) -> bool:
        with self._transaction() as conn:
            removed = conn.execute(
                "DELETE FROM credential_records WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            ).rowcount
        return removed > 0

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]:
        """Every record of one user whose sort key starts with ``sort_key_prefix``."""
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT body FROM credential_records "
                "WHERE pk = ? AND substr(sk, 1, ?) = ? ORDER BY sk",
                (partition_key, len(sort_key_prefix), sort_key_prefix),
            ).fetchall()
        return self._decode(rows)

    def list_items_by_sort_key(self, *, sort_key: str) -> list[Dict[str, Any]]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT body FROM credential_records WHERE sk = ? ORDER BY seq",
                (sort_key,),
            ).fetchall()
        return self._decode(rows)


__all__ = ["SQLiteStore"]
