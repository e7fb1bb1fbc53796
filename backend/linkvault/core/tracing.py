import json
import logging
import os
import time
import uuid
from typing import Optional

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from prometheus_client import Counter, Histogram

from linkvault.core.config import get_settings


_REQ_COUNT = Counter(
    "lv_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
_REQ_LATENCY = Histogram(
    "lv_http_request_duration_seconds",
    "HTTP request duration (seconds)",
    ["method", "route"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
_CONSUMPTIONS = Counter(
    "lv_consumptions_total",
    "View attempts by outcome",
    ["outcome"],
)
_DESTRUCTIONS = Counter(
    "lv_destructions_total",
    "Upload destructions by trigger and result",
    ["trigger", "result"],
)
_SWEEPS = Counter(
    "lv_sweeper_runs_total",
    "Expiry sweeper passes",
    ["result"],
)


def observe_consumption(outcome: str) -> None:
    _CONSUMPTIONS.labels(outcome).inc()


def observe_destruction(trigger: str, result: str) -> None:
    _DESTRUCTIONS.labels(trigger, result).inc()


def observe_sweep(result: str) -> None:
    _SWEEPS.labels(result).inc()


def _route_of(request: Request) -> str:
    route_obj = request.scope.get("route")
    return getattr(route_obj, "path", None) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Adds a request ID and logs one JSON line per request.

    Only the route template is logged, never the raw path: raw paths carry slugs.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = (
            request.headers.get("x-request-id")
            or request.headers.get("x-requestid")
            or str(uuid.uuid4())
        )
        start = time.time()
        try:
            response = await call_next(request)
            duration_ms = int((time.time() - start) * 1000)
            route = _route_of(request)

            payload = {
                "event": "http_request",
                "request_id": request_id,
                "method": request.method,
                "route": route,
                "status_code": response.status_code,
                "status_class": int(response.status_code // 100),
                "duration_ms": duration_ms,
                "client_ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent"),
                "release": os.getenv("RENDER_GIT_COMMIT") or os.getenv("GIT_SHA"),
            }

            logger = logging.getLogger("lv.http")
            if response.status_code >= 500:
                logger.error(json.dumps(payload, ensure_ascii=False))
            elif response.status_code >= 400:
                logger.warning(json.dumps(payload, ensure_ascii=False))
            else:
                logger.info(json.dumps(payload, ensure_ascii=False))

            # Prometheus metrics (skip self-scrape + health)
            if route not in ("/metrics", "/health", "/healthz", "/readyz"):
                _REQ_COUNT.labels(request.method, route, str(response.status_code)).inc()
                _REQ_LATENCY.labels(request.method, route).observe((time.time() - start))

            response.headers["X-Request-ID"] = request_id
            return response
        except Exception:
            duration_ms = int((time.time() - start) * 1000)
            payload = {
                "event": "http_exception",
                "request_id": request_id,
                "method": request.method,
                "route": _route_of(request),
                "status_code": 500,
                "status_class": 5,
                "duration_ms": duration_ms,
                "client_ip": request.client.host if request.client else None,
                "user_agent": request.headers.get("user-agent"),
                "release": os.getenv("RENDER_GIT_COMMIT") or os.getenv("GIT_SHA"),
            }
            logging.getLogger("lv.http").exception(json.dumps(payload, ensure_ascii=False))
            raise


def configure_logging() -> None:
    """Configure a sane default logging setup for the backend."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    # Ensure our loggers are visible even if uvicorn already configured logging
    for name in ("lv.http", "lv.tracing", "lv.vault", "lv.consume", "lv.sweeper", "lv.blobs"):
        logging.getLogger(name).setLevel(logging.INFO)


def init_tracing(app: FastAPI) -> None:
    """
    Attach basic request logging and, if configured, error tracing (Sentry).
    """
    settings = get_settings()
    configure_logging()

    app.add_middleware(RequestLoggingMiddleware)

    dsn: Optional[str] = getattr(settings, "sentry_dsn", None)
    if not dsn:
        return

    # Lazy: only needed when SENTRY_DSN is set.
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration

    sentry_sdk.init(
        dsn=dsn,
        environment=(getattr(settings, "sentry_env", None) or settings.environment),
        release=os.getenv("RENDER_GIT_COMMIT") or os.getenv("GIT_SHA") or None,
        integrations=[FastApiIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
        # Request URLs contain slugs.
        send_default_pii=False,
    )
    logging.getLogger("lv.tracing").info("Sentry tracing initialized")
