import os
from datetime import datetime, timezone

from fastapi import APIRouter, Request, Response

from linkvault.core.config import get_settings
from linkvault.core.errors import BackendUnavailable

router = APIRouter(tags=["health"])


def _release() -> str | None:
    return os.getenv("RENDER_GIT_COMMIT") or os.getenv("GIT_SHA") or None


@router.get("/")
@router.get("/health")
@router.get("/healthz")
def health() -> dict:
    settings = get_settings()
    return {
        "status": "ok",
        "service": "linkvault-backend",
        "environment": settings.environment,
        "release": _release(),
        "time": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/readyz")
def readyz(request: Request, response: Response) -> dict:
    """
    Readiness check: verifies DB connectivity and the expiry sweeper.
    Returns 503 when not ready.
    """
    settings = get_settings()
    checks: dict[str, object] = {}
    ok = True

    vault = getattr(request.app.state, "vault", None)
    try:
        if vault is None:
            raise BackendUnavailable("Vault not initialized")
        vault.store.ping()
        checks["db"] = "ok"
    except BackendUnavailable as e:
        ok = False
        checks["db"] = "error"
        checks["db_error"] = str(e.__cause__ or e)[:250]

    sweeper = getattr(request.app.state, "sweeper", None)
    if settings.sweeper_enabled:
        running = bool(sweeper is not None and sweeper.running)
        checks["sweeper"] = "running" if running else "stopped"
        if not running:
            # Without the sweeper expired blobs are never reclaimed.
            ok = False
    else:
        checks["sweeper"] = "disabled"

    if not ok:
        response.status_code = 503
    return {
        "status": "ok" if ok else "not_ready",
        "service": "linkvault-backend",
        "environment": settings.environment,
        "release": _release(),
        "checks": checks,
        "time": datetime.now(timezone.utc).isoformat(),
    }
