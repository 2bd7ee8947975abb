"""
SQLite KV store — one database file per store identifier.

Layout::

    <data_dir>/<name>.db
        conversations(key TEXT PRIMARY KEY, value TEXT, updated_at REAL)

Values are JSON documents. A read-only store opens an existing file through
a ``mode=ro`` URI and never creates one, which is what the legacy migration
source needs.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from pathlib import Path
from typing import Any

import aiosqlite

from kubeagentix_client.storage.interface import KVStore, StoreUnavailableError

logger = logging.getLogger(__name__)

TABLE = "conversations"


class SqliteKVStore(KVStore):
    def __init__(self, data_dir: str | Path, name: str, read_only: bool = False) -> None:
        self.name = name
        self.db_path = Path(data_dir) / f"{name}.db"
        self._read_only = read_only
        self._db: aiosqlite.Connection | None = None

    async def start(self) -> None:
        """Open the database. Idempotent."""
        if self._db is not None:
            return
        try:
            if self._read_only:
                if not self.db_path.exists():
                    raise StoreUnavailableError(f"store {self.name!r} not found at {self.db_path}")
                self._db = await aiosqlite.connect(f"file:{self.db_path}?mode=ro", uri=True)
            else:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                self._db = await aiosqlite.connect(str(self.db_path))
                await self._db.execute(f"""
                    CREATE TABLE IF NOT EXISTS {TABLE} (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at REAL NOT NULL
                    )
                """)
                await self._db.commit()
        except (sqlite3.Error, OSError) as exc:
            await self.stop()
            raise StoreUnavailableError(f"cannot open store {self.name!r}: {exc}") from exc
        logger.info("SqliteKVStore started (db=%s, read_only=%s)", self.db_path, self._read_only)

    async def stop(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StoreUnavailableError(f"store {self.name!r} not started")
        return self._db

    async def get(self, key: str) -> dict[str, Any] | None:
        try:
            async with self._conn().execute(f"SELECT value FROM {TABLE} WHERE key = ?", (key,)) as cur:
                row = await cur.fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"cannot read {key!r} from store {self.name!r}: {exc}") from exc
        if row is None:
            return None
        return json.loads(row[0])

    async def get_all(self) -> list[tuple[str, dict[str, Any]]]:
        try:
            async with self._conn().execute(f"SELECT key, value FROM {TABLE}") as cur:
                rows = await cur.fetchall()
        except sqlite3.OperationalError as exc:
            raise StoreUnavailableError(f"store {self.name!r} has no {TABLE} table: {exc}") from exc

        entries: list[tuple[str, dict[str, Any]]] = []
        for key, raw in rows:
            try:
                value = json.loads(raw)
            except (json.JSONDecodeError, TypeError) as exc:
                logger.warning("Skipping undecodable row %s in %s: %s", key, self.name, exc)
                continue
            if isinstance(value, dict):
                entries.append((key, value))
        return entries

    async def put(self, key: str, value: dict[str, Any]) -> None:
        if self._read_only:
            raise StoreUnavailableError(f"store {self.name!r} is read-only")
        db = self._conn()
        await db.execute(
            f"""
            INSERT INTO {TABLE} (key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, json.dumps(value), time.time()),
        )
        await db.commit()
