"""
View transactions.

A view runs in two phases:

1. `ConsumptionCoordinator.consume` evaluates access, takes one view slot with
   a single conditional UPDATE and builds the full response payload (the
   signed blob URL included). Any failure here is raised to the caller and
   nothing is destroyed.
2. If that view burned the link or used up its budget, the returned
   `Consumption.destruction` deletes blob then record. The caller dispatches
   it after the response is handed back; it logs its own failures and never
   raises.

No locks anywhere: the UPDATE's WHERE clause is the only arbiter between
concurrent readers, and every delete tolerates the row being gone already.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from linkvault.core.errors import BackendUnavailable, Exhausted, Expired, NotFound, VaultError
from linkvault.core.security import verify_secret
from linkvault.core.tracing import observe_consumption, observe_destruction
from linkvault.models.upload import UploadKind, UploadRecord, utcnow
from linkvault.schemas.upload import ViewPayload
from linkvault.services.access import Decision, denial_error, evaluate
from linkvault.services.blobs import BlobBackend
from linkvault.services.store import RecordStore

logger = logging.getLogger("lv.consume")

DEFAULT_SIGNED_URL_TTL_SECONDS = 120


def destroy_record(
    store: RecordStore,
    blobs: BlobBackend,
    slug: str,
    blob_path: Optional[str],
    *,
    trigger: str,
) -> bool:
    """
    Delete the blob (if any), then the record. Shared by every destruction path.

    A blob delete failure is logged and does not stop the record delete: an
    orphaned blob is acceptable, a record outliving its burn is not. Record
    store failures propagate. Returns False when the record was already gone.
    """
    if blob_path:
        try:
            blobs.delete(blob_path)
        except Exception:
            logger.exception("blob_delete_failed trigger=%s slug=%s path=%s", trigger, slug, blob_path)
            observe_destruction(trigger, "blob_error")
    deleted = store.delete(slug)
    observe_destruction(trigger, "deleted" if deleted else "already_gone")
    if deleted:
        logger.info("upload_destroyed trigger=%s slug=%s", trigger, slug)
    return deleted


@dataclass
class Destruction:
    """Deferred phase-2 cleanup for one record."""

    store: RecordStore
    blobs: BlobBackend
    slug: str
    blob_path: Optional[str]
    trigger: str

    def run(self) -> bool:
        try:
            return destroy_record(self.store, self.blobs, self.slug, self.blob_path, trigger=self.trigger)
        except Exception:
            # The reader already has the content; the sweeper retries once the record expires.
            logger.exception("destruction_failed trigger=%s slug=%s", self.trigger, self.slug)
            observe_destruction(self.trigger, "error")
            return False

    __call__ = run


@dataclass
class Consumption:
    payload: ViewPayload
    destruction: Optional[Destruction] = None

    @property
    def must_destroy(self) -> bool:
        return self.destruction is not None


class ConsumptionCoordinator:
    def __init__(
        self,
        store: RecordStore,
        blobs: BlobBackend,
        *,
        signed_url_ttl_seconds: int = DEFAULT_SIGNED_URL_TTL_SECONDS,
        clock: Callable[[], datetime] = utcnow,
        verify: Callable[[str, str], bool] = verify_secret,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.signed_url_ttl_seconds = signed_url_ttl_seconds
        self._clock = clock
        self._verify = verify

    def consume(self, slug: str, credential: Optional[str] = None) -> Consumption:
        try:
            consumption = self._consume(slug, credential)
        except VaultError as exc:
            observe_consumption(exc.code)
            raise
        observe_consumption("allow")
        return consumption

    def _consume(self, slug: str, credential: Optional[str]) -> Consumption:
        now = self._clock()
        record = self.store.get(slug)
        # A burned record whose delete is still in flight is already gone for readers.
        if record is None or record.is_burned:
            raise NotFound()

        decision = evaluate(record, credential, now, self._verify)
        if decision is not Decision.allow:
            raise denial_error(decision)

        # Sign before taking the slot: a signing failure must not consume a view.
        download_url = self._sign(record)

        new_count = self.store.increment_view(slug, now)
        if new_count is None:
            raise self._lost_race(record, now)

        must_destroy = bool(record.burn_after_read) or (
            record.view_limit is not None and new_count >= int(record.view_limit)
        )
        payload = self._build_payload(record, new_count, download_url)

        destruction = None
        if must_destroy:
            blob = record.blob_ref
            destruction = Destruction(
                store=self.store,
                blobs=self.blobs,
                slug=record.slug,
                blob_path=blob.path if blob else None,
                trigger="burn" if record.burn_after_read else "view_limit",
            )
        logger.info(
            "upload_viewed slug=%s views=%s/%s destroy=%s",
            record.slug,
            new_count,
            record.view_limit if record.view_limit is not None else "-",
            must_destroy,
        )
        return Consumption(payload=payload, destruction=destruction)

    def _sign(self, record: UploadRecord) -> Optional[str]:
        blob = record.blob_ref
        if blob is None:
            return None
        return self.blobs.sign_retrieval_url(blob.path, self.signed_url_ttl_seconds)

    def _lost_race(self, record: UploadRecord, now: datetime) -> VaultError:
        """Explain why the conditional increment matched no row."""
        if record.burn_after_read:
            return NotFound()
        if record.is_expired(now):
            return Expired()
        if record.view_limit is not None:
            return Exhausted()
        # Unlimited, unexpired, not burned: the row itself vanished under us.
        return NotFound()

    def _build_payload(self, record: UploadRecord, view_count: int, download_url: Optional[str]) -> ViewPayload:
        payload = ViewPayload(
            kind=record.kind,
            view_count=view_count,
            view_limit=record.view_limit,
            burn_after_read=bool(record.burn_after_read),
            expires_at=record.expires_at_utc,
        )
        if record.kind == UploadKind.text:
            payload.text_content = record.text_content
            return payload
        blob = record.blob_ref
        if blob is None or download_url is None:
            raise BackendUnavailable()
        payload.download_url = download_url
        payload.blob_name = blob.name
        payload.blob_mime_type = blob.mime_type
        payload.blob_size = blob.size
        return payload
