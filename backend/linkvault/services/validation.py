"""
Boundary validation for create requests.

Everything here runs before any blob is written or record inserted, and
raises `ValidationError` (or `PayloadTooLarge`) with a user-facing message.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, FrozenSet, Optional

from linkvault.core.config import Settings
from linkvault.core.errors import PayloadTooLarge, ValidationError

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"", "0", "false", "no", "off"}


@dataclass(frozen=True)
class UploadContent:
    """Exactly one of `text` / `data` is set."""

    text: Optional[str] = None
    data: Optional[bytes] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.text is None) == (self.data is None):
            raise ValidationError("Provide either text content or a file, not both.")
        if self.data is not None and not self.file_name:
            raise ValidationError("File uploads need a file name.")

    @property
    def is_text(self) -> bool:
        return self.text is not None


@dataclass(frozen=True)
class UploadOptions:
    expires_in_minutes: Optional[int] = None
    password: Optional[str] = None
    burn_after_read: bool = False
    view_limit: Optional[int] = None


def has_blocked_extension(file_name: str, blocked: FrozenSet[str]) -> bool:
    _root, ext = os.path.splitext((file_name or "").strip())
    return bool(ext) and ext.lower() in blocked


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    s = str(value if value is not None else "").strip().lower()
    if s in _TRUTHY:
        return True
    if s in _FALSY:
        return False
    raise ValidationError(f"{field} must be a boolean.")


def parse_positive_int(value: Any, field: str) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a positive integer.")
    try:
        n = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a positive integer.")
    if n < 1:
        raise ValidationError(f"{field} must be a positive integer.")
    return n


def validate_content(
    settings: Settings,
    *,
    text: Optional[str] = None,
    data: Optional[bytes] = None,
    file_name: Optional[str] = None,
    mime_type: Optional[str] = None,
) -> UploadContent:
    has_text = bool(text)
    has_file = data is not None or bool(file_name)
    if not has_text and not has_file:
        raise ValidationError("Provide either text content or a file.")
    if has_text and has_file:
        raise ValidationError("Upload either text or a file, not both.")

    if has_text:
        if len(text or "") > settings.max_text_chars:
            raise PayloadTooLarge(f"Text content must be between 1 and {settings.max_text_chars} characters.")
        return UploadContent(text=text)

    name = (file_name or "").strip()
    if not name:
        raise ValidationError("File uploads need a file name.")
    if has_blocked_extension(name, settings.blocked_extension_set):
        raise ValidationError("This file type is not allowed for security reasons.")
    if not data:
        raise ValidationError("File is empty.")
    if len(data) > settings.max_blob_bytes:
        raise PayloadTooLarge(f"File too large. Maximum size is {settings.max_blob_bytes} bytes.")
    return UploadContent(
        data=data,
        file_name=name,
        mime_type=(mime_type or "").strip() or "application/octet-stream",
    )


def validate_options(
    settings: Settings,
    *,
    expires_in: Any = None,
    password: Optional[str] = None,
    burn_after_read: Any = False,
    view_limit: Any = None,
) -> UploadOptions:
    minutes = parse_positive_int(expires_in, "expiresIn")
    if minutes is not None and minutes > settings.max_expiry_minutes:
        raise ValidationError(f"expiresIn must be at most {settings.max_expiry_minutes} minutes.")

    secret = (password or "").strip() or None
    if secret is not None and len(secret) > settings.max_password_length:
        raise ValidationError(f"Password must be at most {settings.max_password_length} characters.")

    return UploadOptions(
        expires_in_minutes=minutes,
        password=secret,
        burn_after_read=parse_bool(burn_after_read, "oneTimeView"),
        view_limit=parse_positive_int(view_limit, "maxViews"),
    )
