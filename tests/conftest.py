import sys
from pathlib import Path as _Path
sys.path.insert(0, str(_Path(__file__).resolve().parents[1] / "src"))

from datetime import datetime
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from keepsake.app import create_app
from keepsake.auth.passwords import Argon2Params, PasswordHasher
from keepsake.auth.tokens import TokenService
from keepsake.config import Settings
from keepsake.infra.store import SQLiteStore
from keepsake.metrics import Metrics

JWT_KEY = b"test-signing-secret-0123456789abcdef"
API_KEY = "admin-secret"
PROMETHEUS_KEY = "metrics-secret"

# Cheap enough to keep the suite fast; production defaults live in Settings.
FAST_ARGON2 = Argon2Params(time_cost=1, memory_cost=1024, parallelism=1, hash_len=32)


class FixedClock:
    def __init__(self, when: datetime):
        self.when = when

    def __call__(self) -> datetime:
        return self.when


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        jwt_key=JWT_KEY,
        api_key=API_KEY,
        prometheus_key=PROMETHEUS_KEY,
        db_path=tmp_path / "data" / "db.sqlite",
        images_dir=tmp_path / "data" / "images",
        anniversary_day=7,
        argon2_time=FAST_ARGON2.time_cost,
        argon2_memory=FAST_ARGON2.memory_cost,
        argon2_threads=FAST_ARGON2.parallelism,
        argon2_keylen=FAST_ARGON2.hash_len,
    )


@pytest.fixture()
def clock() -> FixedClock:
    # Valentine's Day: the picture endpoint is open unless a test moves the clock.
    return FixedClock(datetime(2024, 2, 14, 12, 0))


@pytest.fixture()
def metrics() -> Metrics:
    return Metrics()


@pytest.fixture()
def app(settings, clock, metrics):
    return create_app(settings, clock=clock, metrics=metrics)


@pytest.fixture()
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def store(tmp_path: Path) -> SQLiteStore:
    s = SQLiteStore(tmp_path / "store.sqlite")
    s.migrate()
    return s


@pytest.fixture()
def hasher() -> PasswordHasher:
    return PasswordHasher(FAST_ARGON2)


@pytest.fixture()
def tokens() -> TokenService:
    return TokenService(JWT_KEY)


@pytest.fixture()
def seed_keys(app) -> list:
    return list(app.state.store.iter_keys())


@pytest.fixture()
def admin_headers() -> dict:
    return {"api_key": API_KEY}


@pytest.fixture()
def registered(client, seed_keys) -> dict:
    """Register ``alice`` and return bearer headers for her."""
    r = client.post("/api/auth/register", json={"username": "alice", "password": "pw1", "key": seed_keys[0]})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['token']}"}
