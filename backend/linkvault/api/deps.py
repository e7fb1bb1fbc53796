from typing import Optional

from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt

from linkvault.core.config import get_settings
from linkvault.services.blobs import LocalBlobBackend
from linkvault.services.vault import VaultService


def get_vault(request: Request) -> VaultService:
    vault = getattr(request.app.state, "vault", None)
    if vault is None:
        raise HTTPException(status_code=503, detail="Vault not initialized")
    return vault


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization") or ""
    if not header.lower().startswith("bearer "):
        return None
    token = header.split(" ", 1)[1].strip()
    return token or None


def _owner_id_from_token(token: str) -> int:
    """Decode an access token issued by the account service. Raises 401 if invalid."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        if payload.get("typ", "access") != "access":
            raise HTTPException(status_code=401, detail="Invalid token")
        return int(payload.get("sub"))
    except HTTPException:
        raise
    except (JWTError, TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid or expired token")


def get_optional_owner_id(request: Request) -> Optional[int]:
    """Owner id when a valid bearer token is present; anonymous otherwise."""
    token = _bearer_token(request)
    if not token:
        return None
    try:
        return _owner_id_from_token(token)
    except HTTPException:
        # Optional auth: a bad token just means anonymous.
        return None


def require_owner_id(request: Request) -> int:
    token = _bearer_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")
    return _owner_id_from_token(token)


def get_local_blob_backend(vault: VaultService = Depends(get_vault)) -> LocalBlobBackend:
    if not isinstance(vault.blobs, LocalBlobBackend):
        raise HTTPException(status_code=404, detail="Not found")
    return vault.blobs
