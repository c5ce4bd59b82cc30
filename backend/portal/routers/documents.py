"""
Document API endpoints.

All routes are scoped to the authenticated user: the user id is the owner
id under which documents are stored. Service errors are translated to HTTP
responses by the exception handlers registered in ``portal.main``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import StreamingResponse

from portal.auth import get_current_user
from portal.models.documents import (
    DeleteResult,
    ListResult,
    ObjectMetadata,
    Payload,
    RenameRequest,
    RenameResult,
    SignedUrlOperation,
    TransferOptions,
    UploadResult,
)
from portal.services.documents import DocumentService

router = APIRouter()

logger = logging.getLogger(__name__)


def get_document_service(request: Request) -> DocumentService:
    return request.app.state.documents


@router.post("", response_model=UploadResult, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """Upload a document for the current user. Re-uploading the same name overwrites it."""
    logger.info(
        f"Upload request received: filename={file.filename!r}, "
        f"content_type={file.content_type!r}"
    )
    payload = Payload.from_stream(
        file.file,
        content_type=file.content_type or "application/octet-stream",
        name=file.filename,
        size=file.size,
    )
    return await service.upload(payload, user_id)


@router.get("", response_model=ListResult)
async def list_documents(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    continuation_token: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return await service.list(user_id, page_size=limit, continuation_token=continuation_token)


@router.get("/{name}/metadata", response_model=ObjectMetadata)
async def get_document_metadata(
    name: str,
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return await service.head_metadata(user_id, name)


@router.get("/{name}/url")
async def get_document_url(
    name: str,
    operation: SignedUrlOperation = Query(SignedUrlOperation.READ),
    content_type: Optional[str] = Query(None),
    expires_seconds: Optional[int] = Query(None, ge=1, le=7 * 24 * 3600),
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """
    Issue a time-limited signed URL.

    ``operation=write`` lets the browser upload directly; it must send the
    same Content-Type that was declared here.
    """
    options = TransferOptions(expires_seconds=expires_seconds)
    url = await service.signed_url(operation, user_id, name, options, content_type=content_type)
    return {
        "url": url,
        "operation": operation.value,
        "expires_in": expires_seconds or service.settings.signed_url_expiry_seconds,
    }


@router.get("/{name}")
async def download_document(
    name: str,
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    stream = await service.download_stream(user_id, name)
    filename = stream.path.rsplit("/", 1)[-1]
    return StreamingResponse(
        stream.chunks,
        media_type=stream.content_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/{name}", response_model=DeleteResult)
async def delete_document(
    name: str,
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    return await service.delete(user_id, name)


@router.post("/{name}/rename", response_model=RenameResult)
async def rename_document(
    name: str,
    body: RenameRequest,
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    """
    Rename by copy-then-delete. Not atomic: a 502 with code
    RENAME_INCOMPLETE means both copies exist; see /rename/reconcile.
    """
    return await service.rename(user_id, name, body.new_name)


@router.get("/{name}/rename-status")
async def get_rename_status(
    name: str,
    new_name: str = Query(...),
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    state = await service.check_rename(user_id, name, new_name)
    return {"state": state.value}


@router.post("/{name}/rename/reconcile")
async def reconcile_rename(
    name: str,
    body: RenameRequest,
    user_id: str = Depends(get_current_user),
    service: DocumentService = Depends(get_document_service),
):
    state = await service.reconcile_rename(user_id, name, body.new_name)
    return {"state": state.value}
