"""Presigned download URL routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from docvault.api.deps import get_current_user_id, get_settings, get_storage
from docvault.core.config import Settings
from docvault.core.exceptions import DocVaultError
from docvault.models.upload import PresignResponse
from docvault.storage.base import StorageBackend

router = APIRouter(prefix="/api/v1/files", tags=["files"])
logger = logging.getLogger(__name__)

MAX_PRESIGN_EXPIRY_SECONDS = 7 * 24 * 3600  # V4 signing limit


@router.get("/presign", response_model=PresignResponse, dependencies=[Depends(get_current_user_id)])
def presign_object(
    object_path: str = Query(..., min_length=1),
    expiry: int | None = Query(None, ge=1, le=MAX_PRESIGN_EXPIRY_SECONDS),
    storage: StorageBackend = Depends(get_storage),
    settings: Settings = Depends(get_settings),
) -> PresignResponse:
    """Issue a time-limited GET URL for a stored object."""
    expires_in = expiry or settings.PRESIGN_DEFAULT_EXPIRY_SECONDS
    try:
        url = storage.generate_signed_url(object_path, expires_in)
    except DocVaultError as e:
        if e.status_code >= 500:
            logger.error(f"Failed to generate signed URL: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail="Failed to generate signed URL")
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to generate signed URL: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to generate signed URL")

    logger.info(
        "Presigned URL issued",
        extra={"object_key": object_path, "expires_in": expires_in, "backend": storage.get_backend_name()},
    )
    return PresignResponse(url=url, expires_in=expires_in)
