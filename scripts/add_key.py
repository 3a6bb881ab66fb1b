#!/usr/bin/env python3
"""Add a registration key straight to the database (no running server needed)."""
from __future__ import annotations

import argparse
import os
from pathlib import Path

from keepsake.auth.keys import RegistrationKeyRegistry
from keepsake.infra.store import SQLiteStore


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("key", nargs="?", help="key to add (a random one is generated when omitted)")
    parser.add_argument("--db", default=os.getenv("KEEPSAKE_DB_PATH", "data/db.sqlite"))
    parser.add_argument("--list", action="store_true", help="print every unused key and exit")
    args = parser.parse_args()

    store = SQLiteStore(Path(args.db))
    store.migrate()
    registry = RegistrationKeyRegistry(store)

    if args.list:
        for k in registry.list():
            print(k)
        return

    key = args.key or registry.generate(1)[0]
    registry.add(key)
    print(f"OK -> {key}")


if __name__ == "__main__":
    main()
