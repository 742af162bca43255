"""Resumable upload (tus 1.0.0) and download routes."""

import asyncio
import logging
import uuid
from typing import Dict, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import StreamingResponse

from docvault.api.deps import (
    get_current_user_id,
    get_repository,
    get_settings,
    get_storage,
    get_tus_handler,
)
from docvault.core.config import Settings
from docvault.core.exceptions import DocVaultError
from docvault.db.repository import DocumentRepository
from docvault.models.upload import UploadInfoResponse
from docvault.storage.archive import ArchiveMember, stream_zip
from docvault.storage.base import StorageBackend
from docvault.tus.handler import TUS_EXTENSIONS, TUS_VERSION, TusHandler
from docvault.tus.metadata import encode_metadata, parse_metadata

router = APIRouter(prefix="/api/v1/upload", tags=["upload"])
logger = logging.getLogger(__name__)

OFFSET_CONTENT_TYPE = "application/offset+octet-stream"
TUS_HEADERS = {"Tus-Resumable": TUS_VERSION}


def _to_http(e: Exception, action: str, headers: Optional[Dict[str, str]] = None) -> HTTPException:
    """Translate a domain error into an HTTPException, logging server-side failures."""
    status_code = e.status_code if isinstance(e, DocVaultError) else 500
    if status_code >= 500:
        logger.error(f"Unexpected error during {action}: {e}", exc_info=True)
        return HTTPException(status_code=500, detail="Internal server error", headers=headers)
    return HTTPException(status_code=status_code, detail=str(e), headers=headers)


def _tus_error(status_code: int, detail: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail=detail, headers=dict(TUS_HEADERS))


def require_tus_resumable(request: Request) -> None:
    if request.headers.get("Tus-Resumable") != TUS_VERSION:
        raise HTTPException(
            status_code=412,
            detail=f"Unsupported Tus-Resumable version, expected {TUS_VERSION}",
            headers={**TUS_HEADERS, "Tus-Version": TUS_VERSION},
        )


def _int_header(request: Request, name: str) -> Optional[int]:
    raw = request.headers.get(name)
    if raw is None:
        return None
    raw = raw.strip()
    if not (raw.isascii() and raw.isdigit()):
        raise _tus_error(400, f"{name} must be a non-negative integer")
    return int(raw)


def _validate_uuid(value: str, what: str) -> None:
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {what}: {value}")


def _content_disposition(file_name: str) -> str:
    return f"attachment; filename*=UTF-8''{quote(file_name, safe='')}"


@router.options("/files", status_code=204)
async def upload_options(handler: TusHandler = Depends(get_tus_handler)) -> Response:
    """Advertise protocol version and supported extensions."""
    headers = {
        **TUS_HEADERS,
        "Tus-Version": TUS_VERSION,
        "Tus-Extension": ",".join(TUS_EXTENSIONS),
    }
    if handler.max_size is not None:
        headers["Tus-Max-Size"] = str(handler.max_size)
    return Response(status_code=204, headers=headers)


@router.post("/files", status_code=201, dependencies=[Depends(require_tus_resumable)])
async def create_upload(
    request: Request,
    handler: TusHandler = Depends(get_tus_handler),
    settings: Settings = Depends(get_settings),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> Response:
    """Create a new upload; the body is ignored."""
    try:
        metadata = parse_metadata(request.headers.get("Upload-Metadata"))

        # The authenticated user always owns the upload
        if user_id:
            metadata["owner_id"] = user_id
        elif not metadata.get("owner_id"):
            raise _tus_error(400, "owner_id metadata is required")

        defer_header = request.headers.get("Upload-Defer-Length")
        if defer_header is not None and defer_header.strip() != "1":
            raise _tus_error(400, "Upload-Defer-Length must be 1")
        defer_length = defer_header is not None

        upload_length = _int_header(request, "Upload-Length")
        if defer_length and upload_length is not None:
            raise _tus_error(400, "Upload-Length and Upload-Defer-Length are mutually exclusive")
        if not defer_length and upload_length is None:
            raise _tus_error(400, "Upload-Length or Upload-Defer-Length header is required")

        record = await handler.create(upload_length, metadata, defer_length=defer_length)

        return Response(
            status_code=201,
            headers={
                **TUS_HEADERS,
                "Location": f"{settings.UPLOAD_BASE_PATH.rstrip('/')}/{record.upload_id}",
                "Upload-Offset": str(record.offset),
            },
        )

    except HTTPException:
        raise
    except Exception as e:
        raise _to_http(e, "upload creation", headers=dict(TUS_HEADERS))


@router.head("/files/{upload_id}", dependencies=[Depends(require_tus_resumable)])
async def get_upload_offset(upload_id: str, handler: TusHandler = Depends(get_tus_handler)) -> Response:
    """Report how many bytes of an upload the server holds."""
    try:
        record = handler.get_status(upload_id)
    except Exception as e:
        raise _to_http(e, "upload status lookup", headers=dict(TUS_HEADERS))

    headers = {
        **TUS_HEADERS,
        "Upload-Offset": str(record.offset),
        "Cache-Control": "no-store",
    }
    if record.size_is_deferred:
        headers["Upload-Defer-Length"] = "1"
    else:
        headers["Upload-Length"] = str(record.size)
    if record.metadata:
        headers["Upload-Metadata"] = encode_metadata(record.metadata)
    return Response(status_code=200, headers=headers)


@router.patch("/files/{upload_id}", status_code=204, dependencies=[Depends(require_tus_resumable)])
async def append_upload_chunk(
    upload_id: str,
    request: Request,
    handler: TusHandler = Depends(get_tus_handler),
) -> Response:
    """Append the request body at Upload-Offset."""
    try:
        content_type = request.headers.get("Content-Type", "").split(";")[0].strip().lower()
        if content_type != OFFSET_CONTENT_TYPE:
            raise _tus_error(415, f"Content-Type must be {OFFSET_CONTENT_TYPE}")

        offset = _int_header(request, "Upload-Offset")
        if offset is None:
            raise _tus_error(400, "Upload-Offset header is required")
        upload_length = _int_header(request, "Upload-Length")

        data = await request.body()
        record = await handler.append_chunk(upload_id, data, offset, upload_length=upload_length)

        return Response(
            status_code=204,
            headers={**TUS_HEADERS, "Upload-Offset": str(record.offset)},
        )

    except HTTPException:
        raise
    except Exception as e:
        raise _to_http(e, "chunk upload", headers=dict(TUS_HEADERS))


@router.delete("/files/{upload_id}", status_code=204, dependencies=[Depends(require_tus_resumable)])
async def terminate_upload(upload_id: str, handler: TusHandler = Depends(get_tus_handler)) -> Response:
    """Abort an in-flight upload and discard its data."""
    try:
        await handler.terminate(upload_id)
    except Exception as e:
        raise _to_http(e, "upload termination", headers=dict(TUS_HEADERS))
    return Response(status_code=204, headers=dict(TUS_HEADERS))


@router.get("/info", response_model=UploadInfoResponse)
async def upload_info(
    handler: TusHandler = Depends(get_tus_handler),
    settings: Settings = Depends(get_settings),
) -> UploadInfoResponse:
    return UploadInfoResponse(
        tus_version=TUS_VERSION,
        max_size=handler.max_size,
        extensions=list(TUS_EXTENSIONS),
        upload_path=settings.UPLOAD_BASE_PATH,
    )


@router.get("/download/{attachment_id}")
async def download_attachment(
    attachment_id: str,
    repository: DocumentRepository = Depends(get_repository),
    storage: StorageBackend = Depends(get_storage),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> StreamingResponse:
    """Stream the stored file of an attachment."""
    _validate_uuid(attachment_id, "attachment id")
    try:
        attachment = await asyncio.to_thread(repository.get_attachment, attachment_id)
        if attachment is None or (user_id and attachment.uploaded_by != user_id):
            raise HTTPException(status_code=404, detail="Attachment not found")

        size = await storage.get_object_size(attachment.file_path)
        chunks = storage.iter_object(attachment.file_path)

    except HTTPException:
        raise
    except Exception as e:
        raise _to_http(e, "file download")

    logger.info(
        "Streaming attachment",
        extra={"attachment_id": attachment_id, "object_key": attachment.file_path, "size": size},
    )
    return StreamingResponse(
        chunks,
        media_type=attachment.file_type or "application/octet-stream",
        headers={
            "Content-Disposition": _content_disposition(attachment.file_name),
            "Content-Length": str(size),
        },
    )


@router.get("/download/folder/{folder_id}")
async def download_folder(
    folder_id: str,
    repository: DocumentRepository = Depends(get_repository),
    storage: StorageBackend = Depends(get_storage),
    user_id: Optional[str] = Depends(get_current_user_id),
) -> StreamingResponse:
    """Stream a ZIP of the current files in a folder and its subfolders."""
    _validate_uuid(folder_id, "folder id")
    try:
        folder = await asyncio.to_thread(repository.get_folder, folder_id)
        if folder is None or (user_id and folder.owner_id != user_id):
            raise HTTPException(status_code=404, detail="Folder not found")

        entries = await asyncio.to_thread(repository.get_folder_attachments, folder_id)
        if not entries:
            raise HTTPException(status_code=404, detail="Folder contains no files")

    except HTTPException:
        raise
    except Exception as e:
        raise _to_http(e, "folder download")

    members = [
        ArchiveMember(
            name=entry.relative_dir + entry.attachment.file_name,
            storage_key=entry.attachment.file_path,
            size=entry.attachment.file_size,
            modified_at=entry.attachment.created_at,
        )
        for entry in entries
    ]

    logger.info(
        "Streaming folder archive",
        extra={"folder_id": folder_id, "folder_name": folder.name, "entries": len(members)},
    )
    return StreamingResponse(
        stream_zip(members, storage),
        media_type="application/zip",
        headers={"Content-Disposition": _content_disposition(f"{folder.name}.zip")},
    )
