"""
Caller-facing vault operations: create, get_metadata, consume, delete,
list_owned. Transport-agnostic; the HTTP layer in `linkvault.api` is one
caller.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from linkvault.core.config import Settings
from linkvault.core.errors import BackendUnavailable, Forbidden, NotFound, SlugConflict
from linkvault.core.security import hash_secret, verify_secret
from linkvault.models.upload import UploadKind, UploadRecord, utcnow
from linkvault.schemas.upload import CreateResult, OwnedUpload, UploadMetadata
from linkvault.services.blobs import BlobBackend, blob_path_for
from linkvault.services.consumption import Consumption, ConsumptionCoordinator, destroy_record
from linkvault.services.slugs import DEFAULT_SLUG_LENGTH, generate_slug
from linkvault.services.store import RecordStore
from linkvault.services.validation import UploadContent, UploadOptions

logger = logging.getLogger("lv.vault")

MAX_SLUG_ATTEMPTS = 5


class VaultService:
    def __init__(
        self,
        store: RecordStore,
        blobs: BlobBackend,
        *,
        default_expiry_minutes: int = 10,
        signed_url_ttl_seconds: int = 120,
        slug_length: int = DEFAULT_SLUG_LENGTH,
        clock: Callable[[], datetime] = utcnow,
        hasher: Callable[[str], str] = hash_secret,
        verify: Callable[[str, str], bool] = verify_secret,
    ) -> None:
        self.store = store
        self.blobs = blobs
        self.default_expiry_minutes = default_expiry_minutes
        self.slug_length = slug_length
        self._clock = clock
        self._hasher = hasher
        self.coordinator = ConsumptionCoordinator(
            store,
            blobs,
            signed_url_ttl_seconds=signed_url_ttl_seconds,
            clock=clock,
            verify=verify,
        )

    @classmethod
    def from_settings(cls, settings: Settings, store: RecordStore, blobs: BlobBackend, **kwargs) -> "VaultService":
        return cls(
            store,
            blobs,
            default_expiry_minutes=settings.default_expiry_minutes,
            signed_url_ttl_seconds=settings.signed_url_ttl_seconds,
            slug_length=settings.slug_length,
            **kwargs,
        )

    # -- create -------------------------------------------------------------

    def create(
        self,
        content: UploadContent,
        options: Optional[UploadOptions] = None,
        owner_id: Optional[int] = None,
    ) -> CreateResult:
        options = options or UploadOptions()
        now = self._clock()
        minutes = options.expires_in_minutes or self.default_expiry_minutes
        expires_at = now + timedelta(minutes=minutes)
        digest = self._hasher(options.password) if options.password else None

        for attempt in range(1, MAX_SLUG_ATTEMPTS + 1):
            slug = generate_slug(self.slug_length)
            record = UploadRecord(
                slug=slug,
                owner_id=owner_id,
                credential_digest=digest,
                burn_after_read=bool(options.burn_after_read),
                view_limit=options.view_limit,
                view_count=0,
                expires_at=expires_at,
                created_at=now,
            )
            blob_path: Optional[str] = None
            if content.is_text:
                record.kind = UploadKind.text
                record.text_content = content.text
            else:
                # Blob first: a record never points at content that does not exist yet.
                blob_path = self.blobs.put(
                    content.data or b"",
                    blob_path_for(slug, content.file_name or "file"),
                    content.mime_type or "application/octet-stream",
                )
                record.kind = UploadKind.blob
                record.blob_path = blob_path
                record.blob_name = content.file_name
                record.blob_mime_type = content.mime_type
                record.blob_size = len(content.data or b"")

            try:
                saved = self.store.insert(record)
            except SlugConflict:
                logger.warning("slug_conflict attempt=%s", attempt)
                self._discard_blob(blob_path)
                continue
            except Exception:
                self._discard_blob(blob_path)
                raise

            logger.info(
                "upload_created slug=%s kind=%s owner=%s burn=%s view_limit=%s expires_in_min=%s",
                saved.slug,
                saved.kind.value,
                owner_id if owner_id is not None else "-",
                saved.burn_after_read,
                saved.view_limit if saved.view_limit is not None else "-",
                minutes,
            )
            return CreateResult(
                slug=saved.slug,
                kind=saved.kind,
                expires_at=saved.expires_at_utc,
                has_password=saved.has_password,
                burn_after_read=bool(saved.burn_after_read),
                view_limit=saved.view_limit,
            )

        logger.error("slug_generation_exhausted attempts=%s", MAX_SLUG_ATTEMPTS)
        raise BackendUnavailable()

    def _discard_blob(self, blob_path: Optional[str]) -> None:
        if not blob_path:
            return
        try:
            self.blobs.delete(blob_path)
        except Exception:
            logger.exception("blob_discard_failed path=%s", blob_path)

    # -- read ---------------------------------------------------------------

    def _live_record(self, slug: str) -> UploadRecord:
        """Absent, expired and burned records all read as NotFound."""
        record = self.store.get(slug)
        if record is None or record.is_burned or record.is_expired(self._clock()):
            raise NotFound()
        return record

    def get_metadata(self, slug: str, requester_id: Optional[int] = None) -> UploadMetadata:
        record = self._live_record(slug)
        blob = record.blob_ref
        return UploadMetadata(
            kind=record.kind,
            has_password=record.has_password,
            burn_after_read=bool(record.burn_after_read),
            view_limit=record.view_limit,
            view_count=int(record.view_count or 0),
            expires_at=record.expires_at_utc,
            created_at=record.created_at_utc,
            blob_name=blob.name if blob else None,
            blob_size=blob.size if blob else None,
            is_owner=requester_id is not None and record.owner_id == requester_id,
        )

    def consume(self, slug: str, credential: Optional[str] = None) -> Consumption:
        return self.coordinator.consume(slug, credential)

    def consume_now(self, slug: str, credential: Optional[str] = None) -> Consumption:
        """Consume and run any cleanup inline (scripts and tests)."""
        consumption = self.consume(slug, credential)
        if consumption.destruction is not None:
            consumption.destruction.run()
        return consumption

    def list_owned(self, owner_id: int) -> List[OwnedUpload]:
        now = self._clock()
        items: List[OwnedUpload] = []
        for r in self.store.list_by_owner(owner_id):
            blob = r.blob_ref
            items.append(
                OwnedUpload(
                    slug=r.slug,
                    kind=r.kind,
                    blob_name=blob.name if blob else None,
                    blob_size=blob.size if blob else None,
                    has_text=bool(r.text_content),
                    has_password=r.has_password,
                    burn_after_read=bool(r.burn_after_read),
                    view_limit=r.view_limit,
                    view_count=int(r.view_count or 0),
                    expires_at=r.expires_at_utc,
                    created_at=r.created_at_utc,
                    is_expired=r.is_expired(now),
                )
            )
        return items

    # -- delete -------------------------------------------------------------

    def delete(self, slug: str, owner_id: Optional[int]) -> None:
        """
        Owner-initiated deletion.

        Anonymous uploads are never deletable on request, whoever asks; they
        end by expiry or burn only. A missing slug answers exactly like
        someone else's upload.
        """
        record = self.store.get(slug)
        if record is None or record.owner_id is None:
            raise Forbidden()
        if owner_id is None or record.owner_id != owner_id:
            raise Forbidden()
        blob = record.blob_ref
        destroy_record(self.store, self.blobs, record.slug, blob.path if blob else None, trigger="owner")
