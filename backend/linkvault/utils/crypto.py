from __future__ import annotations

import hashlib
import hmac

from linkvault.core.config import get_settings


def _hmac_key() -> bytes:
    settings = get_settings()
    raw = (getattr(settings, "blob_signing_key", None) or "").strip()
    if raw:
        return raw.encode("utf-8")
    # Dev fallback: derive a stable key from the JWT secret
    return hashlib.sha256(("blob-url:" + settings.jwt_secret_key).encode("utf-8")).digest()


def hmac_sha256_hex(message: str, key: bytes | None = None) -> str:
    msg = (message or "").encode("utf-8")
    return hmac.new(key if key is not None else _hmac_key(), msg, hashlib.sha256).hexdigest()


def verify_hmac_sha256_hex(message: str, signature: str, key: bytes | None = None) -> bool:
    expected = hmac_sha256_hex(message, key)
    return hmac.compare_digest(expected, (signature or "").strip().lower())
