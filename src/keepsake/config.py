# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "y"}


def _required(name: str) -> str:
    v = os.getenv(name, "")
    if not v:
        raise RuntimeError(f"{name} environment variable is not set")
    return v


def _optional_int(name: str) -> Optional[int]:
    v = os.getenv(name, "").strip()
    return int(v) if v else None


@dataclass(frozen=True)
class Settings:
    jwt_key: bytes
    api_key: str
    prometheus_key: str = ""

    db_path: Path = Path("data/db.sqlite")
    images_dir: Path = Path("data/images")

    anniversary_day: int = 1
    anniversary_month: Optional[int] = None

    argon2_time: int = 1
    argon2_memory: int = 64 * 1024
    argon2_threads: int = 4
    argon2_keylen: int = 32

    seed_keys: int = 3
    cors_origins: Tuple[str, ...] = field(default_factory=lambda: ("*",))

    host: str = "0.0.0.0"
    port: int = 8080
    reload: bool = False
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Read the process configuration from the environment.

    Secrets are mandatory; everything else has a default suitable for a
    single-host deployment with the database and pictures under ./data.
    """
    origins = tuple(o.strip() for o in os.getenv("KEEPSAKE_CORS_ORIGINS", "*").split(",") if o.strip())
    return Settings(
        jwt_key=_required("JWT_KEY").encode("utf-8"),
        api_key=_required("API_KEY"),
        prometheus_key=os.getenv("PROMETHEUS_KEY", ""),
        db_path=Path(os.getenv("KEEPSAKE_DB_PATH", "data/db.sqlite")),
        images_dir=Path(os.getenv("KEEPSAKE_IMAGES_DIR", "data/images")),
        anniversary_day=int(os.getenv("KEEPSAKE_ANNIVERSARY_DAY", "1")),
        anniversary_month=_optional_int("KEEPSAKE_ANNIVERSARY_MONTH"),
        argon2_time=int(os.getenv("KEEPSAKE_ARGON2_TIME", "1")),
        argon2_memory=int(os.getenv("KEEPSAKE_ARGON2_MEMORY", str(64 * 1024))),
        argon2_threads=int(os.getenv("KEEPSAKE_ARGON2_THREADS", "4")),
        argon2_keylen=int(os.getenv("KEEPSAKE_ARGON2_KEYLEN", "32")),
        seed_keys=int(os.getenv("KEEPSAKE_SEED_KEYS", "3")),
        cors_origins=origins or ("*",),
        host=os.getenv("KEEPSAKE_HOST", "0.0.0.0"),
        port=int(os.getenv("KEEPSAKE_PORT", "8080")),
        reload=_flag("KEEPSAKE_RELOAD"),
        log_level=os.getenv("KEEPSAKE_LOG_LEVEL", "INFO").upper(),
    )
