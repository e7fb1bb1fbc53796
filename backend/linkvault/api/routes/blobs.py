from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse

from linkvault.api.deps import get_local_blob_backend
from linkvault.services.blobs import LocalBlobBackend

router = APIRouter(prefix="/blobs", tags=["blobs"])


@router.get("/{path:path}")
def download_blob(
    path: str,
    expires: int = Query(...),
    sig: str = Query(..., min_length=64, max_length=64),
    blobs: LocalBlobBackend = Depends(get_local_blob_backend),
) -> FileResponse:
    """Serve a local blob behind a signed, short-lived URL."""
    target = blobs.open_signed(path, expires, sig)
    return FileResponse(target, filename=target.name)
