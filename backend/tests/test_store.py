from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from linkvault.core.errors import SlugConflict
from linkvault.models.upload import UploadKind, UploadRecord
from linkvault.services.validation import UploadContent


def text_record(clock, slug="abcdefghijkl", **overrides):
    values = dict(
        slug=slug,
        kind=UploadKind.text,
        text_content="hello",
        burn_after_read=False,
        view_limit=None,
        view_count=0,
        expires_at=clock() + timedelta(minutes=10),
        created_at=clock(),
    )
    values.update(overrides)
    return UploadRecord(**values)


def test_insert_and_get_detached_snapshot(store, clock):
    store.insert(text_record(clock, owner_id=7))
    record = store.get("abcdefghijkl")
    assert record is not None
    assert record.text_content == "hello"
    assert record.owner_id == 7
    assert record.expires_at_utc.tzinfo is not None
    assert store.get("missingslug0") is None


def test_duplicate_slug_is_a_conflict(store, clock):
    store.insert(text_record(clock))
    with pytest.raises(SlugConflict):
        store.insert(text_record(clock))


def test_record_with_two_payloads_is_rejected(store, clock):
    broken = text_record(clock, blob_path="abcdefghijkl/a.txt", kind=UploadKind.blob)
    with pytest.raises(IntegrityError):
        store.insert(broken)
    assert store.get("abcdefghijkl") is None


def test_increment_unlimited(store, clock):
    store.insert(text_record(clock))
    assert [store.increment_view("abcdefghijkl", clock()) for _ in range(3)] == [1, 2, 3]


def test_increment_stops_at_view_limit(store, clock):
    store.insert(text_record(clock, view_limit=2))
    assert store.increment_view("abcdefghijkl", clock()) == 1
    assert store.increment_view("abcdefghijkl", clock()) == 2
    assert store.increment_view("abcdefghijkl", clock()) is None
    assert store.get("abcdefghijkl").view_count == 2


def test_increment_allows_a_single_burn(store, clock):
    store.insert(text_record(clock, burn_after_read=True))
    assert store.increment_view("abcdefghijkl", clock()) == 1
    assert store.increment_view("abcdefghijkl", clock()) is None


def test_increment_refuses_expired(store, clock):
    store.insert(text_record(clock, expires_at=clock() + timedelta(seconds=30)))
    assert store.increment_view("abcdefghijkl", clock() + timedelta(seconds=31)) is None
    assert store.get("abcdefghijkl").view_count == 0


def test_increment_missing_slug(store, clock):
    assert store.increment_view("missingslug0", clock()) is None


def test_delete_is_idempotent(store, clock):
    store.insert(text_record(clock))
    assert store.delete("abcdefghijkl") is True
    assert store.delete("abcdefghijkl") is False
    assert store.get("abcdefghijkl") is None


def test_find_expired_oldest_first_and_limited(store, clock):
    now = clock()
    store.insert(text_record(clock, slug="live00000000", expires_at=now + timedelta(minutes=5)))
    store.insert(text_record(clock, slug="old000000001", expires_at=now - timedelta(minutes=2)))
    store.insert(text_record(clock, slug="old000000002", expires_at=now - timedelta(minutes=1)))
    assert [r.slug for r in store.find_expired(now)] == ["old000000001", "old000000002"]
    assert [r.slug for r in store.find_expired(now, limit=1)] == ["old000000001"]


def test_list_by_owner(store, clock):
    store.insert(text_record(clock, slug="mine00000001", owner_id=1))
    store.insert(text_record(clock, slug="mine00000002", owner_id=1))
    store.insert(text_record(clock, slug="theirs000001", owner_id=2))
    store.insert(text_record(clock, slug="anon00000001"))
    assert {r.slug for r in store.list_by_owner(1)} == {"mine00000001", "mine00000002"}


def test_create_retries_on_slug_collision(vault, store, clock, monkeypatch):
    store.insert(text_record(clock, slug="taken0000000"))
    slugs = iter(["taken0000000", "fresh0000000"])
    monkeypatch.setattr("linkvault.services.vault.generate_slug", lambda length: next(slugs))

    result = vault.create(UploadContent(text="second"))
    assert result.slug == "fresh0000000"
    assert store.get("taken0000000").text_content == "hello"


def test_create_collision_discards_orphan_blob(vault, store, clock, blob_dir, monkeypatch):
    store.insert(text_record(clock, slug="taken0000000"))
    slugs = iter(["taken0000000", "fresh0000000"])
    monkeypatch.setattr("linkvault.services.vault.generate_slug", lambda length: next(slugs))

    result = vault.create(UploadContent(data=b"%PDF", file_name="a.pdf", mime_type="application/pdf"))
    assert result.slug == "fresh0000000"
    assert not (blob_dir / "taken0000000").exists()
    assert (blob_dir / "fresh0000000" / "a.pdf").read_bytes() == b"%PDF"
