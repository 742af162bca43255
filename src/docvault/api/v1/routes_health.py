"""Health check endpoint for DocVault."""

from fastapi import APIRouter, Depends

from docvault.api.deps import get_settings, get_storage
from docvault.core.config import Settings
from docvault.storage.base import StorageBackend

router = APIRouter()


@router.get("/health")
async def health_check(
    settings: Settings = Depends(get_settings),
    storage: StorageBackend = Depends(get_storage),
) -> dict:
    """Health check endpoint.

    Returns service status, name, version and the active storage backend.
    No database or storage round-trips are made.
    """
    return {
        "status": "ok",
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "storage_backend": storage.get_backend_name(),
    }
