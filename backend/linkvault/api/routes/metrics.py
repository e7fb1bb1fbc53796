from fastapi import APIRouter, HTTPException, Request, Response

from linkvault.core.config import get_settings

from prometheus_client import CONTENT_TYPE_LATEST, generate_latest


router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def metrics(request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    - In production, it is disabled unless METRICS_TOKEN is set, and requires
      Authorization: Bearer <token>
    """
    settings = get_settings()
    token = settings.metrics_token

    if settings.environment == "production":
        if not token:
            raise HTTPException(status_code=404, detail="Not found")
        auth = request.headers.get("authorization") or ""
        if auth != f"Bearer {token}":
            raise HTTPException(status_code=403, detail="Forbidden")

    payload = generate_latest()
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)
