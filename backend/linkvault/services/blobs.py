"""
Blob backends: where binary payloads live, outside the record itself.

Contract shared by every backend:
- put(data, path, mime_type) -> path, raises BackendUnavailable on failure
- sign_retrieval_url(path, ttl_seconds) -> url, raises BackendUnavailable
- delete(path) never raises for a missing object
"""

from __future__ import annotations

import logging
import os
import re
import time
from pathlib import Path
from typing import Callable, Optional, Protocol
from urllib.parse import quote, urlencode

import httpx

from linkvault.core.config import Settings
from linkvault.core.errors import BackendUnavailable, NotFound
from linkvault.utils.crypto import hmac_sha256_hex, verify_hmac_sha256_hex

logger = logging.getLogger("lv.blobs")

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


def blob_path_for(slug: str, original_name: str) -> str:
    """`{slug}/{sanitized name}`; the slug prefix keeps paths unique."""
    name = os.path.basename((original_name or "").replace("\\", "/")).strip()
    name = _UNSAFE_NAME_CHARS.sub("_", name).strip(". ") or "file"
    return f"{slug}/{name[:200]}"


class BlobBackend(Protocol):
    def put(self, data: bytes, path: str, mime_type: str) -> str:
        ...

    def sign_retrieval_url(self, path: str, ttl_seconds: int) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


class LocalBlobBackend:
    """
    Files under a directory, served back by `GET /blobs/{path}` with an
    HMAC-signed expiry. Suitable for development and single-node deploys.
    """

    def __init__(
        self,
        root_dir: str,
        base_url: str,
        *,
        signing_key: Optional[bytes] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = Path(root_dir).resolve()
        self.base_url = base_url.rstrip("/")
        self._key = signing_key
        self._clock = clock

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if target != self.root and self.root not in target.parents:
            raise NotFound()
        return target

    def put(self, data: bytes, path: str, mime_type: str) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # "x": never overwrite an existing object
            with open(target, "xb") as fh:
                fh.write(data)
        except OSError as exc:
            logger.error("blob_put_failed path=%s error=%s", path, exc)
            raise BackendUnavailable() from exc
        return path

    def _signature(self, path: str, expires: int) -> str:
        return hmac_sha256_hex(f"{path}\n{expires}", self._key)

    def sign_retrieval_url(self, path: str, ttl_seconds: int) -> str:
        if not self._resolve(path).is_file():
            logger.error("blob_sign_missing path=%s", path)
            raise BackendUnavailable()
        expires = int(self._clock()) + int(ttl_seconds)
        query = urlencode({"expires": expires, "sig": self._signature(path, expires)})
        return f"{self.base_url}/blobs/{quote(path)}?{query}"

    def open_signed(self, path: str, expires: int, sig: str) -> Path:
        """Resolve a signed download; anything invalid or stale is NotFound."""
        if int(expires) < int(self._clock()):
            raise NotFound()
        if not verify_hmac_sha256_hex(f"{path}\n{int(expires)}", sig, self._key):
            raise NotFound()
        target = self._resolve(path)
        if not target.is_file():
            raise NotFound()
        return target

    def delete(self, path: str) -> None:
        try:
            target = self._resolve(path)
        except NotFound:
            return
        try:
            target.unlink()
        except FileNotFoundError:
            return
        try:
            target.parent.rmdir()
        except OSError:
            # Directory not empty or already gone.
            pass


class SupabaseBlobBackend:
    """Supabase Storage over its REST API."""

    def __init__(
        self,
        url: str,
        service_key: str,
        bucket: str,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.bucket = bucket
        self._client = httpx.Client(
            base_url=f"{self.url}/storage/v1",
            headers={"Authorization": f"Bearer {service_key}", "apikey": service_key},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def put(self, data: bytes, path: str, mime_type: str) -> str:
        try:
            r = self._client.post(
                f"/object/{self.bucket}/{quote(path)}",
                content=data,
                headers={"Content-Type": mime_type or "application/octet-stream", "x-upsert": "false"},
            )
        except httpx.HTTPError as exc:
            logger.error("supabase_put_transport_error path=%s error=%s", path, exc.__class__.__name__)
            raise BackendUnavailable() from exc
        if r.status_code >= 400:
            logger.error("supabase_put_failed path=%s status=%s", path, r.status_code)
            raise BackendUnavailable()
        return path

    def sign_retrieval_url(self, path: str, ttl_seconds: int) -> str:
        try:
            r = self._client.post(
                f"/object/sign/{self.bucket}/{quote(path)}",
                json={"expiresIn": int(ttl_seconds)},
            )
        except httpx.HTTPError as exc:
            logger.error("supabase_sign_transport_error path=%s error=%s", path, exc.__class__.__name__)
            raise BackendUnavailable() from exc
        if r.status_code >= 400:
            logger.error("supabase_sign_failed path=%s status=%s", path, r.status_code)
            raise BackendUnavailable()
        try:
            signed = r.json().get("signedURL") or r.json().get("signedUrl")
        except ValueError as exc:
            raise BackendUnavailable() from exc
        if not signed:
            raise BackendUnavailable()
        if signed.startswith("http"):
            return signed
        return f"{self.url}/storage/v1{signed}"

    def delete(self, path: str) -> None:
        # Supabase answers 200 with an empty list for unknown objects.
        try:
            r = self._client.request(
                "DELETE",
                f"/object/{self.bucket}",
                json={"prefixes": [path]},
            )
            if r.status_code >= 400 and r.status_code != 404:
                logger.error("supabase_delete_failed path=%s status=%s", path, r.status_code)
        except httpx.HTTPError as exc:
            logger.error("supabase_delete_transport_error path=%s error=%s", path, exc.__class__.__name__)


def build_blob_backend(settings: Settings) -> BlobBackend:
    if settings.blob_backend == "supabase":
        return SupabaseBlobBackend(
            settings.supabase_url or "",
            settings.supabase_service_key or "",
            settings.supabase_bucket,
            timeout=settings.supabase_timeout_seconds,
        )
    return LocalBlobBackend(settings.blob_local_dir, settings.public_base_url)
