# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import hmac
import sqlite3
from typing import Iterator, List, Optional

from keepsake.errors import InvalidRegistrationKey, Unauthorized
from keepsake.infra.store import SQLiteStore, generate_keys


class RegistrationKeyRegistry:
    """Single-use signup keys.

    ``consume`` is a compare-and-delete: the DELETE either removes the row for
    exactly one caller or for none, so a key can back at most one account.
    Pass the registration transaction as ``tx`` to make consumption and user
    creation commit (or roll back) together.
    """

    def __init__(self, store: SQLiteStore):
        self.store = store

    def contains(self, key: str) -> bool:
        if not key:
            return False
        return self.store.contains_key(key)

    def consume(self, key: str, *, tx: Optional[sqlite3.Connection] = None) -> None:
        if not key or not self.store.delete_key(key, tx=tx):
            raise InvalidRegistrationKey("invalid key")

    def add(self, key: str) -> None:
        if not key:
            raise ValueError("key must not be empty")
        self.store.add_key(key)

    def list(self) -> Iterator[str]:
        return self.store.iter_keys()

    @staticmethod
    def generate(n: int = 3) -> List[str]:
        return generate_keys(n)


class AdminKeyGate:
    def __init__(self, admin_key: str):
        if not admin_key:
            raise ValueError("admin key must not be empty")
        self._key = admin_key.encode("utf-8")

    def check(self, presented: Optional[str]) -> bool:
        if not presented:
            return False
        return hmac.compare_digest(presented.encode("utf-8"), self._key)

    def require(self, presented: Optional[str]) -> None:
        if not self.check(presented):
            raise Unauthorized("Unauthorized")
