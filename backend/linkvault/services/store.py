"""
Durable slug -> UploadRecord mapping.

Every operation runs in its own short session so the request path, the
background cleanup and the sweeper thread never share one. Records handed
out are detached snapshots; the only mutation of a live row is the
conditional view-count increment.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import delete, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from linkvault.core.errors import BackendUnavailable, SlugConflict
from linkvault.models.upload import UploadRecord


class RecordStore:
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            try:
                db.rollback()
            except SQLAlchemyError:
                pass
            if isinstance(exc, IntegrityError):
                raise
            raise BackendUnavailable() from exc
        finally:
            db.close()

    def ping(self) -> None:
        with self._session() as db:
            db.execute(text("select 1"))

    def insert(self, record: UploadRecord) -> UploadRecord:
        try:
            with self._session() as db:
                db.add(record)
                db.commit()
                db.refresh(record)
                db.expunge(record)
                return record
        except IntegrityError as exc:
            # Distinguish a slug collision from a broken record (check constraints).
            if self.get(record.slug) is not None:
                raise SlugConflict(record.slug) from exc
            raise

    def get(self, slug: str) -> Optional[UploadRecord]:
        with self._session() as db:
            record = db.execute(select(UploadRecord).where(UploadRecord.slug == slug)).scalar_one_or_none()
            if record is not None:
                db.expunge(record)
            return record

    def increment_view(self, slug: str, now: datetime) -> Optional[int]:
        """
        Atomically consume one view slot.

        The WHERE clause re-checks expiry, the view budget and the burn flag at
        commit time, so two readers racing for the last slot cannot both win.
        Returns the new view count, or None when no slot was available.
        """
        stmt = (
            update(UploadRecord)
            .where(
                UploadRecord.slug == slug,
                UploadRecord.expires_at >= now,
                or_(UploadRecord.view_limit.is_(None), UploadRecord.view_count < UploadRecord.view_limit),
                or_(UploadRecord.burn_after_read.is_(False), UploadRecord.view_count == 0),
            )
            .values(view_count=UploadRecord.view_count + 1)
            .execution_options(synchronize_session=False)
        )
        with self._session() as db:
            result = db.execute(stmt)
            if result.rowcount != 1:
                db.rollback()
                return None
            # Same transaction: the row is still write-locked, so this is our own count.
            new_count = db.execute(
                select(UploadRecord.view_count).where(UploadRecord.slug == slug)
            ).scalar_one()
            db.commit()
            return int(new_count)

    def delete(self, slug: str) -> bool:
        """Idempotent: False when the record was already gone."""
        with self._session() as db:
            result = db.execute(
                delete(UploadRecord)
                .where(UploadRecord.slug == slug)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount > 0

    def find_expired(self, now: datetime, limit: int = 500) -> List[UploadRecord]:
        with self._session() as db:
            rows = (
                db.execute(
                    select(UploadRecord)
                    .where(UploadRecord.expires_at <= now)
                    .order_by(UploadRecord.expires_at.asc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            db.expunge_all()
            return list(rows)

    def list_by_owner(self, owner_id: int) -> List[UploadRecord]:
        with self._session() as db:
            rows = (
                db.execute(
                    select(UploadRecord)
                    .where(UploadRecord.owner_id == owner_id)
                    .order_by(UploadRecord.created_at.desc(), UploadRecord.id.desc())
                )
                .scalars()
                .all()
            )
            db.expunge_all()
            return list(rows)
