from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
import enum

from sqlalchemy import BigInteger, Boolean, CheckConstraint, Column, DateTime, Enum, Integer, String, Text
from sqlalchemy.sql import func

from linkvault.db.base import Base


class UploadKind(str, enum.Enum):
    text = "text"
    blob = "blob"


@dataclass(frozen=True)
class BlobRef:
    """Reference to a payload held by the blob backend."""

    path: str
    name: str
    mime_type: str
    size: int


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back; everything we store is UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UploadRecord(Base):
    __tablename__ = "upload_records"
    __table_args__ = (
        # Exactly one payload: inline text or blob path, never both, never neither.
        CheckConstraint("(text_content IS NULL) <> (blob_path IS NULL)", name="ck_upload_records_one_payload"),
        CheckConstraint("view_limit IS NULL OR view_limit >= 1", name="ck_upload_records_view_limit_positive"),
        CheckConstraint("view_limit IS NULL OR view_count <= view_limit", name="ck_upload_records_view_budget"),
    )

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String(32), unique=True, nullable=False, index=True)
    kind = Column(Enum(UploadKind, name="upload_kind"), nullable=False)

    # Text uploads
    text_content = Column(Text, nullable=True)

    # Blob uploads (payload lives in the blob backend)
    blob_path = Column(String(512), nullable=True)
    blob_name = Column(String(255), nullable=True)
    blob_mime_type = Column(String(255), nullable=True)
    blob_size = Column(BigInteger, nullable=True)

    # Weak reference to the account service; no FK on purpose (accounts live elsewhere).
    owner_id = Column(Integer, nullable=True, index=True)

    # Access control
    credential_digest = Column(String(255), nullable=True)
    burn_after_read = Column(Boolean, nullable=False, default=False, server_default="0")
    view_limit = Column(Integer, nullable=True)
    view_count = Column(Integer, nullable=False, default=0, server_default="0")

    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def blob_ref(self) -> Optional[BlobRef]:
        if self.kind != UploadKind.blob or not self.blob_path:
            return None
        return BlobRef(
            path=self.blob_path,
            name=self.blob_name or "file",
            mime_type=self.blob_mime_type or "application/octet-stream",
            size=int(self.blob_size or 0),
        )

    @property
    def has_password(self) -> bool:
        return bool(self.credential_digest)

    @property
    def expires_at_utc(self) -> datetime:
        return as_utc(self.expires_at)  # type: ignore[return-value]

    @property
    def created_at_utc(self) -> Optional[datetime]:
        return as_utc(self.created_at)

    @property
    def is_burned(self) -> bool:
        """Burn-after-read record whose only view is already committed."""
        return bool(self.burn_after_read) and int(self.view_count or 0) >= 1

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at_utc

    def __repr__(self) -> str:
        return f"<UploadRecord slug={self.slug!r} kind={self.kind} views={self.view_count}/{self.view_limit}>"
