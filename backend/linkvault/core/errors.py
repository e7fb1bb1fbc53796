"""
Typed outcomes of the vault operations.

Routes let these propagate; `register_error_handlers` renders them as JSON.
`NotFound` and `Expired` share a message so callers cannot tell whether a
slug ever existed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


INVALID_LINK_MESSAGE = "Content not found or link has expired."


class VaultError(Exception):
    status_code = 500
    code = "internal_error"
    message = "Internal server error."

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.message
        self.extra = extra
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        body.update(self.extra)
        return body


class ValidationError(VaultError):
    status_code = 400
    code = "validation_error"
    message = "Invalid upload."


class PayloadTooLarge(ValidationError):
    status_code = 413


class NotFound(VaultError):
    status_code = 404
    code = "not_found"
    message = INVALID_LINK_MESSAGE


class Expired(NotFound):
    """Rendered exactly like NotFound."""


class Exhausted(VaultError):
    status_code = 410
    code = "exhausted"
    message = "This link has reached its maximum view count."


class NeedsCredential(VaultError):
    status_code = 401
    code = "needs_password"
    message = "Password required."

    def to_payload(self) -> Dict[str, Any]:
        body = super().to_payload()
        body["needs_password"] = True
        return body


class CredentialRejected(NeedsCredential):
    code = "credential_rejected"
    message = "Incorrect password."


class Forbidden(VaultError):
    status_code = 403
    code = "forbidden"
    message = "Only the uploader can delete this upload."


class BackendUnavailable(VaultError):
    status_code = 503
    code = "backend_unavailable"
    message = "Storage is temporarily unavailable. Please retry."


class SlugConflict(Exception):
    """Raised by the record store when a slug is already taken."""


def register_error_handlers(app: FastAPI) -> None:
    logger = logging.getLogger("lv.http")

    @app.exception_handler(VaultError)
    async def _vault_error(request: Request, exc: VaultError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("vault_error code=%s path=%s detail=%s", exc.code, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())
