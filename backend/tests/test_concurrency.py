import threading

import pytest
from sqlalchemy.orm import sessionmaker

from linkvault.core.errors import VaultError
from linkvault.db.base import Base
from linkvault.db.session import build_engine
from linkvault.services.blobs import LocalBlobBackend
from linkvault.services.store import RecordStore
from linkvault.services.validation import UploadContent, UploadOptions
from linkvault.services.vault import VaultService

READERS = 8


@pytest.fixture
def file_vault(tmp_path):
    # A real file so every thread gets its own connection and SQLite's locking applies.
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    store = RecordStore(sessionmaker(autocommit=False, autoflush=False, bind=engine))
    blobs = LocalBlobBackend(str(tmp_path / "blobs"), "http://testserver", signing_key=b"k")
    try:
        yield VaultService(store, blobs)
    finally:
        engine.dispose()


def race(vault, slug, readers=READERS):
    barrier = threading.Barrier(readers)
    lock = threading.Lock()
    wins, losses = [], []

    def reader():
        barrier.wait()
        try:
            consumption = vault.consume(slug)
        except VaultError as exc:
            with lock:
                losses.append(exc)
            return
        with lock:
            wins.append(consumption)

    threads = [threading.Thread(target=reader) for _ in range(readers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(30)
    return wins, losses


def test_single_view_link_has_one_winner(file_vault):
    created = file_vault.create(UploadContent(text="only once"), UploadOptions(view_limit=1))
    wins, losses = race(file_vault, created.slug)

    assert len(wins) == 1
    assert len(losses) == READERS - 1
    assert {e.status_code for e in losses} <= {404, 410}
    assert wins[0].must_destroy
    assert file_vault.store.get(created.slug).view_count == 1


def test_burn_after_read_has_one_winner(file_vault):
    created = file_vault.create(UploadContent(text="burn me"), UploadOptions(burn_after_read=True))
    wins, losses = race(file_vault, created.slug)

    assert len(wins) == 1
    assert all(e.status_code == 404 for e in losses)
    wins[0].destruction.run()
    assert file_vault.store.get(created.slug) is None


def test_view_budget_never_overspent(file_vault):
    created = file_vault.create(UploadContent(text="three"), UploadOptions(view_limit=3))
    wins, losses = race(file_vault, created.slug, readers=10)

    assert len(wins) == 3
    assert sorted(c.payload.view_count for c in wins) == [1, 2, 3]
    assert sum(1 for c in wins if c.must_destroy) == 1
    assert all(e.status_code == 410 for e in losses)
