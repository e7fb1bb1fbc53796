import os
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Use in-memory SQLite for tests by default, can be overridden via TEST_DATABASE_URL
TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

# Pin settings before the app (and its cached settings) is imported.
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", TEST_DB_URL)
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("BLOB_BACKEND", "local")

from linkvault.core.config import get_settings
from linkvault.db.base import Base
from linkvault.main import create_app
from linkvault.services.blobs import LocalBlobBackend
from linkvault.services.store import RecordStore
from linkvault.services.vault import VaultService

BASE_URL = "http://testserver"


class FakeClock:
    """Settable UTC clock shared by the vault, the sweeper and the blob signer."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def timestamp(self) -> float:
        return self.now.timestamp()

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture(scope="function")
def clock():
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture(scope="function")
def engine():
    # Important: in-memory SQLite needs StaticPool to keep the same DB across connections.
    kwargs = {"connect_args": {"check_same_thread": False}}
    if TEST_DB_URL.endswith(":memory:"):
        kwargs["poolclass"] = StaticPool
    eng = create_engine(TEST_DB_URL, **kwargs)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)
        eng.dispose()


@pytest.fixture(scope="function")
def store(engine):
    return RecordStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))


@pytest.fixture(scope="function")
def blob_dir(tmp_path):
    return tmp_path / "blobs"


@pytest.fixture(scope="function")
def blobs(blob_dir, clock):
    return LocalBlobBackend(str(blob_dir), BASE_URL, signing_key=b"test-signing-key", clock=clock.timestamp)


@pytest.fixture(scope="function")
def vault(store, blobs, clock):
    return VaultService(
        store,
        blobs,
        default_expiry_minutes=10,
        signed_url_ttl_seconds=120,
        clock=clock,
    )


@pytest.fixture(scope="function")
def client(vault):
    app = create_app(vault=vault)
    return TestClient(app)


def make_token(owner_id: int) -> str:
    settings = get_settings()
    return jwt.encode(
        {"sub": str(owner_id), "typ": "access"},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def auth_headers(owner_id: int) -> dict:
    return {"Authorization": f"Bearer {make_token(owner_id)}"}
