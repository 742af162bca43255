"""Abstract storage backend interface."""

import re
from abc import ABC, abstractmethod
from typing import Iterator

DEFAULT_READ_CHUNK_SIZE = 65536  # 64KB


class StorageBackend(ABC):
    """Abstract base class for object storage backends.

    Objects are addressed by key. Resumable uploads write their bytes through
    ``write_chunk`` and are assembled under their key by
    ``finalize_object``; readers stream them back with ``iter_object``.
    """

    def get_target_path(self, upload_id: str, file_name: str | None) -> str:
        """Generate the object key for an upload.

        Args:
            upload_id: Unique upload identifier
            file_name: Original file name, used only for its extension

        Returns:
            Object key, ``uploads/{upload_id}.{ext}``
        """
        extension = "bin"
        if file_name:
            safe_name = self._sanitize_filename(file_name)
            if "." in safe_name.strip("."):
                extension = safe_name.rsplit(".", 1)[-1] or "bin"
        return f"uploads/{upload_id}.{extension}"

    @abstractmethod
    async def write_chunk(self, key: str, offset: int, data: bytes) -> None:
        """Write ``data`` as the chunk starting at ``offset``.

        Writing the same offset again replaces that chunk and anything after
        it, so a client can always retry from its last acknowledged offset.

        Args:
            key: Object key
            offset: Byte offset the chunk starts at
            data: Chunk content

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def finalize_object(self, key: str, size: int) -> None:
        """Assemble the chunks written so far into the object at ``key``.

        Called once the upload reaches ``size`` bytes. Safe to call again
        after a failure; a zero ``size`` produces an empty object.

        Raises:
            StorageError: If the written chunks do not add up to ``size`` or
                the object cannot be assembled
        """
        pass

    async def discard_parts(self, key: str) -> None:
        """Drop intermediate chunk data once an upload is finished with."""
        return None

    @abstractmethod
    async def get_object_size(self, key: str) -> int:
        """Return the size of a stored object.

        Raises:
            NotFoundError: If the object does not exist
            StorageError: If the lookup fails
        """
        pass

    @abstractmethod
    def iter_object(self, key: str, chunk_size: int = DEFAULT_READ_CHUNK_SIZE) -> Iterator[bytes]:
        """Yield the object content in chunks.

        Raises:
            NotFoundError: If the object does not exist
            StorageError: If reading fails
        """
        pass

    @abstractmethod
    async def delete_object(self, key: str) -> None:
        """Delete an object. Deleting a missing object is not an error."""
        pass

    @abstractmethod
    def generate_signed_url(self, key: str, expiry_seconds: int) -> str:
        """Generate a time-limited download URL for an object."""
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass

    @staticmethod
    def _sanitize_filename(filename: str) -> str:
        """Remove path traversal and dangerous characters."""
        safe = filename.replace("../", "").replace("..\\", "")
        safe = safe.replace("/", "_").replace("\\", "_")
        safe = re.sub(r"[^a-zA-Z0-9._-]", "_", safe)
        return safe[:255]
