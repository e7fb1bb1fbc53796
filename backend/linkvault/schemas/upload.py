from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from linkvault.models.upload import UploadKind


class CreateResult(BaseModel):
    slug: str
    kind: UploadKind
    expires_at: datetime
    has_password: bool
    burn_after_read: bool
    view_limit: Optional[int] = None


class UploadMetadata(BaseModel):
    kind: UploadKind
    has_password: bool
    burn_after_read: bool
    view_limit: Optional[int] = None
    view_count: int
    expires_at: datetime
    created_at: Optional[datetime] = None
    blob_name: Optional[str] = None
    blob_size: Optional[int] = None
    is_owner: bool = False


class ViewRequest(BaseModel):
    password: Optional[str] = Field(default=None, max_length=1024)


class ViewPayload(BaseModel):
    kind: UploadKind
    view_count: int
    view_limit: Optional[int] = None
    burn_after_read: bool
    expires_at: datetime

    # kind == text
    text_content: Optional[str] = None

    # kind == blob: short-lived signed retrieval handle
    download_url: Optional[str] = None
    blob_name: Optional[str] = None
    blob_mime_type: Optional[str] = None
    blob_size: Optional[int] = None


class OwnedUpload(BaseModel):
    slug: str
    kind: UploadKind
    blob_name: Optional[str] = None
    blob_size: Optional[int] = None
    has_text: bool
    has_password: bool
    burn_after_read: bool
    view_limit: Optional[int] = None
    view_count: int
    expires_at: datetime
    created_at: Optional[datetime] = None
    is_expired: bool
