"""Local filesystem storage backend."""

import logging
from pathlib import Path
from typing import Iterator

from docvault.core.exceptions import InvalidArgumentError, NotFoundError, StorageError
from docvault.storage.base import DEFAULT_READ_CHUNK_SIZE, StorageBackend

logger = logging.getLogger(__name__)


class LocalStorageBackend(StorageBackend):
    """Local filesystem storage backend."""

    def __init__(self, base_path: str | Path = "data/objects"):
        self.base_path = Path(base_path)

    def _object_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if not path.is_relative_to(self.base_path.resolve()):
            raise InvalidArgumentError(f"Object key escapes storage root: {key}")
        return path

    async def write_chunk(self, key: str, offset: int, data: bytes) -> None:
        """Write a chunk into the object file at the given offset."""
        target_path = self._object_path(key)
        target_path.parent.mkdir(parents=True, exist_ok=True)

        mode = "r+b" if target_path.exists() else "w+b"
        try:
            with open(target_path, mode) as f:
                f.seek(0, 2)
                if f.tell() < offset:
                    raise StorageError(
                        f"Object {key} holds {f.tell()} bytes, cannot write at offset {offset}"
                    )
                f.seek(offset)
                try:
                    f.write(data)
                    f.truncate()
                    f.flush()
                except OSError:
                    # Drop the partial chunk so the object ends at the last good offset
                    f.truncate(offset)
                    raise
        except OSError as e:
            logger.error(
                "Failed to write chunk",
                extra={"object_key": key, "offset": offset, "error": str(e)},
            )
            raise StorageError(f"Failed to write chunk: {e}") from e

    async def finalize_object(self, key: str, size: int) -> None:
        """Chunks are written in place, so only check the file holds ``size`` bytes."""
        target_path = self._object_path(key)
        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            with open(target_path, "ab") as f:
                actual = f.tell()
                if actual > size:
                    f.truncate(size)
        except OSError as e:
            raise StorageError(f"Failed to finalize object: {e}") from e

        if actual < size:
            raise StorageError(f"Object {key} holds {actual} bytes, expected {size}")

    async def get_object_size(self, key: str) -> int:
        target_path = self._object_path(key)
        if not target_path.is_file():
            raise NotFoundError(f"Object not found: {key}")
        return target_path.stat().st_size

    def iter_object(self, key: str, chunk_size: int = DEFAULT_READ_CHUNK_SIZE) -> Iterator[bytes]:
        target_path = self._object_path(key)
        if not target_path.is_file():
            raise NotFoundError(f"Object not found: {key}")
        return self._read_chunks(target_path, chunk_size)

    @staticmethod
    def _read_chunks(path: Path, chunk_size: int) -> Iterator[bytes]:
        with open(path, "rb") as f:
            while chunk := f.read(chunk_size):
                yield chunk

    async def delete_object(self, key: str) -> None:
        try:
            self._object_path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete object: {e}") from e

    def generate_signed_url(self, key: str, expiry_seconds: int) -> str:
        raise InvalidArgumentError(
            "Presigned URLs require the GCS backend. Current backend: local"
        )

    def get_backend_name(self) -> str:
        return "local"
