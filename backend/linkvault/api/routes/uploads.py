from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Path, Response, UploadFile

from linkvault.api.deps import get_optional_owner_id, get_vault, require_owner_id
from linkvault.core.config import get_settings
from linkvault.schemas.upload import CreateResult, OwnedUpload, UploadMetadata, ViewPayload, ViewRequest
from linkvault.services.validation import validate_content, validate_options
from linkvault.services.vault import VaultService

router = APIRouter(prefix="/api", tags=["uploads"])


@router.post("/upload", status_code=201, response_model=CreateResult)
def create_upload(
    text_content: Optional[str] = Form(default=None, alias="textContent"),
    file: Optional[UploadFile] = File(default=None),
    expires_in: Optional[str] = Form(default=None, alias="expiresIn"),
    password: Optional[str] = Form(default=None),
    one_time_view: Optional[str] = Form(default=None, alias="oneTimeView"),
    max_views: Optional[str] = Form(default=None, alias="maxViews"),
    owner_id: Optional[int] = Depends(get_optional_owner_id),
    vault: VaultService = Depends(get_vault),
):
    """
    Create a text or file upload and return its slug.

    Exactly one of `textContent` / `file`. Options: `expiresIn` (minutes),
    `password`, `oneTimeView` (burn after first view), `maxViews`.
    """
    settings = get_settings()

    data: Optional[bytes] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    if file is not None:
        # Read one byte past the limit so oversize is detectable without buffering it all.
        data = file.file.read(settings.max_blob_bytes + 1) or b""
        file_name = file.filename or ""
        mime_type = file.content_type

    content = validate_content(
        settings,
        text=text_content,
        data=data,
        file_name=file_name,
        mime_type=mime_type,
    )
    options = validate_options(
        settings,
        expires_in=expires_in,
        password=password,
        burn_after_read=one_time_view or False,
        view_limit=max_views,
    )
    return vault.create(content, options, owner_id=owner_id)


@router.get("/my-uploads", response_model=List[OwnedUpload])
def my_uploads(
    owner_id: int = Depends(require_owner_id),
    vault: VaultService = Depends(get_vault),
):
    return vault.list_owned(owner_id)


@router.get("/{slug}/meta", response_model=UploadMetadata)
def get_metadata(
    slug: str = Path(..., min_length=8, max_length=30),
    owner_id: Optional[int] = Depends(get_optional_owner_id),
    vault: VaultService = Depends(get_vault),
):
    """Everything a client needs before viewing (e.g. whether to ask for a password)."""
    return vault.get_metadata(slug, requester_id=owner_id)


@router.post("/{slug}/view", response_model=ViewPayload, response_model_exclude_none=True)
def view_upload(
    background_tasks: BackgroundTasks,
    response: Response,
    slug: str = Path(..., min_length=8, max_length=30),
    body: Optional[ViewRequest] = None,
    vault: VaultService = Depends(get_vault),
):
    consumption = vault.consume(slug, body.password if body else None)
    if consumption.destruction is not None:
        # Runs after the response is sent; failures are logged inside.
        background_tasks.add_task(consumption.destruction.run)
    response.headers["Cache-Control"] = "no-store"
    return consumption.payload


@router.delete("/{slug}")
def delete_upload(
    slug: str = Path(..., min_length=8, max_length=30),
    owner_id: int = Depends(require_owner_id),
    vault: VaultService = Depends(get_vault),
):
    vault.delete(slug, owner_id)
    return {"ok": True, "message": "Upload deleted successfully."}
