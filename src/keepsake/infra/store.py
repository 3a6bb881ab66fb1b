# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""SQLite persistence for users, registration keys and images.

Every call opens its own connection, so the store is safe to share between
the threadpool workers that serve requests. Writes that must happen together
go through :meth:`SQLiteStore.transaction`.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional

from keepsake.errors import InfrastructureError, UserAlreadyExists

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    password TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS keys (
    id INTEGER PRIMARY KEY,
    key TEXT NOT NULL UNIQUE
);
CREATE TABLE IF NOT EXISTS images (
    id INTEGER PRIMARY KEY,
    uploaded_by INTEGER NOT NULL,
    name TEXT NOT NULL,
    created_at INTEGER NOT NULL,
    FOREIGN KEY(uploaded_by) REFERENCES users(id)
);
"""


@dataclass(frozen=True)
class User:
    id: int
    username: str
    password: str


@dataclass(frozen=True)
class Image:
    id: int
    uploaded_by: int
    name: str
    created_at: int

    def to_dict(self) -> dict:
        return {"id": self.id, "uploaded_by": self.uploaded_by, "name": self.name, "created_at": self.created_at}


def generate_keys(n: int) -> List[str]:
    """Return ``n`` fresh registration keys (uuid4, drawn from os.urandom)."""
    return [str(uuid.uuid4()) for _ in range(n)]


class SQLiteStore:
    def __init__(self, path: Path | str, *, timeout: float = 30.0):
        self.path = Path(path)
        self.timeout = timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)

    # ------------------ connections ------------------

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.path), timeout=self.timeout, isolation_level=None)
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            raise InfrastructureError(f"failed to open database: {e}") from e
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        except sqlite3.Error as e:
            raise InfrastructureError(f"database error: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block as one write transaction.

        ``BEGIN IMMEDIATE`` takes the write lock up front, so two concurrent
        transactions never both read a row the other is about to delete.
        Any exception rolls the whole block back.
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    @contextmanager
    def _use(self, tx: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if tx is not None:
            try:
                yield tx
            except sqlite3.Error as e:
                raise InfrastructureError(f"database error: {e}") from e
            return
        with self.connection() as conn:
            yield conn

    # ------------------ schema ------------------

    def migrate(self, seed_keys: int = 3) -> List[str]:
        """Create the schema and seed registration keys on a fresh database.

        Returns the seeded keys. On an already-migrated database nothing is
        inserted and an empty list is returned.
        """
        with self.transaction() as conn:
            version = conn.execute("PRAGMA user_version").fetchone()[0]
            if version >= SCHEMA_VERSION:
                return []
            for stmt in SCHEMA.split(";"):
                if stmt.strip():
                    conn.execute(stmt)
            keys = generate_keys(seed_keys)
            conn.executemany("INSERT INTO keys (key) VALUES (?)", [(k,) for k in keys])
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        logger.info("database initialised at %s with %d registration keys", self.path, len(keys))
        return keys

    # ------------------ users ------------------

    def create_user(self, username: str, password_hash: str, *, tx: Optional[sqlite3.Connection] = None) -> User:
        with self._use(tx) as conn:
            try:
                cur = conn.execute("INSERT INTO users (username, password) VALUES (?, ?)", (username, password_hash))
            except sqlite3.IntegrityError as e:
                raise UserAlreadyExists("username already exists") from e
            return User(id=int(cur.lastrowid), username=username, password=password_hash)

    def get_user(self, username: str) -> Optional[User]:
        with self.connection() as conn:
            row = conn.execute(
                "SELECT id, username, password FROM users WHERE username = ?", (username,)
            ).fetchone()
        if row is None:
            return None
        return User(id=row[0], username=row[1], password=row[2])

    # ------------------ keys ------------------

    def contains_key(self, key: str) -> bool:
        with self.connection() as conn:
            row = conn.execute("SELECT COUNT(*) FROM keys WHERE key = ?", (key,)).fetchone()
        return row[0] > 0

    def delete_key(self, key: str, *, tx: Optional[sqlite3.Connection] = None) -> bool:
        """Delete ``key``; True only for the caller whose DELETE removed it."""
        with self._use(tx) as conn:
            cur = conn.execute("DELETE FROM keys WHERE key = ?", (key,))
            return cur.rowcount == 1

    def add_key(self, key: str) -> None:
        with self.connection() as conn:
            conn.execute("INSERT OR IGNORE INTO keys (key) VALUES (?)", (key,))

    def iter_keys(self) -> Iterator[str]:
        with self.connection() as conn:
            rows = conn.execute("SELECT key FROM keys").fetchall()
        return (r[0] for r in rows)

    # ------------------ images ------------------

    def create_image(self, uploaded_by: int, name: str, created_at: int) -> None:
        with self.connection() as conn:
            conn.execute(
                "INSERT INTO images (uploaded_by, name, created_at) VALUES (?, ?, ?)",
                (uploaded_by, name, created_at),
            )

    def get_images(self, limit: int, offset: int) -> List[Image]:
        with self.connection() as conn:
            rows = conn.execute(
                "SELECT id, uploaded_by, name, created_at FROM images ORDER BY id LIMIT ? OFFSET ?",
                (limit, offset),
            ).fetchall()
        return [Image(id=r[0], uploaded_by=r[1], name=r[2], created_at=r[3]) for r in rows]

    def count_images(self) -> int:
        with self.connection() as conn:
            return int(conn.execute("SELECT COUNT(*) FROM images").fetchone()[0])
