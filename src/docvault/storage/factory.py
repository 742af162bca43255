"""Storage backend selection."""

from docvault.core.config import Settings
from docvault.storage.base import StorageBackend
from docvault.storage.gcs import GCSStorageBackend
from docvault.storage.local import LocalStorageBackend


def get_storage_backend(settings: Settings) -> StorageBackend:
    """Build the storage backend named by STORAGE_BACKEND.

    Raises:
        ValueError: If the backend is unknown or misconfigured
    """
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "local":
        return LocalStorageBackend(settings.LOCAL_STORAGE_PATH)
    if backend == "gcs":
        if not settings.GCS_BUCKET_NAME:
            raise ValueError("GCS_BUCKET_NAME not configured")
        return GCSStorageBackend(settings.GCS_BUCKET_NAME, settings.GCP_PROJECT_ID)
    raise ValueError(f"Unknown storage backend: {settings.STORAGE_BACKEND}")
