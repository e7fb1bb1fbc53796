from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


# Routes whose responses carry the uploaded content (or a signed link to it).
_SENSITIVE_SUFFIXES = ("/view",)
_SENSITIVE_PREFIXES = ("/blobs/",)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Centralized browser hardening headers.

    Slugs live in URLs and must not leak through Referer. Consumed content is
    never cacheable.
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Permissions-Policy", "camera=(), microphone=(), geolocation=(), payment=()")

        csp = "; ".join(
            [
                "default-src 'none'",
                "base-uri 'none'",
                "object-src 'none'",
                "frame-ancestors 'none'",
                "form-action 'none'",
            ]
        )
        response.headers.setdefault("Content-Security-Policy", csp)

        path = request.url.path
        if path.endswith(_SENSITIVE_SUFFIXES) or path.startswith(_SENSITIVE_PREFIXES):
            response.headers["Cache-Control"] = "no-store"

        # HSTS only over HTTPS (TLS terminated upstream; rely on x-forwarded-proto)
        proto = (request.headers.get("x-forwarded-proto") or request.url.scheme or "").lower()
        if proto == "https":
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")

        return response
