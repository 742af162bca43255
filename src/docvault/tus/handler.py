"""Resumable upload protocol handler (tus 1.0.0 core operations)."""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional

from docvault.core.exceptions import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PayloadTooLargeError,
)
from docvault.core.logging import upload_id_context
from docvault.storage.base import StorageBackend
from docvault.storage.upload_store import UploadRecord, UploadStatus, UploadStore
from docvault.tus.locker import UploadLocker

logger = logging.getLogger(__name__)

TUS_VERSION = "1.0.0"
TUS_EXTENSIONS = ("creation", "creation-defer-length", "termination")


@dataclass(frozen=True)
class CompletedUpload:
    """Snapshot of an upload at the moment it completed."""

    upload_id: str
    size: int
    storage_key: str
    metadata: Dict[str, str] = field(default_factory=dict)


class TusHandler:
    """State machine over resumable uploads.

    Created -> Receiving -> Completed | Terminated. Upload state lives in an
    ``UploadStore``; bytes accumulate in a ``StorageBackend`` under the
    upload's storage key. Each upload that reaches its declared size puts
    exactly one ``CompletedUpload`` on ``completed_uploads``.
    """

    def __init__(
        self,
        store: UploadStore,
        storage: StorageBackend,
        max_size: Optional[int] = None,
        locker: Optional[UploadLocker] = None,
        completed_uploads: Optional[asyncio.Queue] = None,
    ):
        self.store = store
        self.storage = storage
        self.max_size = max_size
        self.locker = locker or UploadLocker()
        self.completed_uploads: asyncio.Queue = completed_uploads or asyncio.Queue()

    async def create(
        self,
        size: Optional[int],
        metadata: Dict[str, str],
        defer_length: bool = False,
    ) -> UploadRecord:
        """Allocate a new upload.

        Args:
            size: Total expected length in bytes, ignored when deferred
            metadata: Decoded Upload-Metadata
            defer_length: Length will be declared by a later PATCH

        Returns:
            The new upload record, offset 0

        Raises:
            InvalidArgumentError: If size is missing or negative without defer
            PayloadTooLargeError: If size exceeds the configured maximum
        """
        if defer_length:
            size = None
        elif size is None or size < 0:
            raise InvalidArgumentError("Upload-Length must be a non-negative integer")

        if size is not None and self.max_size is not None and size > self.max_size:
            raise PayloadTooLargeError(
                f"Upload-Length {size} exceeds maximum upload size of {self.max_size} bytes"
            )

        upload_id = uuid.uuid4().hex
        upload_id_context.set(upload_id)
        record = UploadRecord(
            upload_id=upload_id,
            size=size,
            offset=0,
            metadata=dict(metadata),
            storage_key=self.storage.get_target_path(
                upload_id, metadata.get("filename") or metadata.get("relative_path")
            ),
            status=UploadStatus.RECEIVING,
            created_at=datetime.now(timezone.utc),
        )
        if size == 0:
            # Nothing to transfer: the empty object must exist before the record does
            await self.storage.finalize_object(record.storage_key, 0)

        self.store.create(record)

        logger.info(
            "Upload created",
            extra={
                "upload_id": upload_id,
                "size": size,
                "storage_key": record.storage_key,
                "deferred_length": defer_length,
            },
        )

        if size == 0:
            self._complete(record)

        return record

    def get_status(self, upload_id: str) -> UploadRecord:
        """Return the stored state of an upload.

        Raises:
            NotFoundError: If the upload id is unknown
        """
        record = self.store.get(upload_id)
        if record is None:
            raise NotFoundError(f"Upload not found: {upload_id}")
        return record

    async def append_chunk(
        self,
        upload_id: str,
        data: bytes,
        expected_offset: int,
        upload_length: Optional[int] = None,
    ) -> UploadRecord:
        """Append a chunk at ``expected_offset``.

        The chunk is written to storage, and on the last chunk the object is
        assembled, before the new offset is persisted. A failure anywhere
        leaves the stored offset where it was and the client can re-send
        from it.

        Args:
            upload_id: Upload to append to
            data: Chunk bytes
            expected_offset: Offset the client believes the upload is at
            upload_length: Length declaration for deferred-length uploads

        Returns:
            The updated upload record

        Raises:
            NotFoundError: Unknown upload
            ConflictError: expected_offset differs from the stored offset
            InvalidArgumentError: Bad length declaration
            PayloadTooLargeError: Chunk would pass the declared size
            StorageError: Object store write failed
        """
        upload_id_context.set(upload_id)
        async with self.locker.lock(upload_id):
            record = self.get_status(upload_id)

            if expected_offset != record.offset:
                raise ConflictError(
                    f"Upload-Offset {expected_offset} does not match current offset {record.offset}"
                )

            size = record.size
            if upload_length is not None:
                size = self._declare_length(record, upload_length)

            new_offset = record.offset + len(data)
            if size is not None and new_offset > size:
                raise PayloadTooLargeError(
                    f"Chunk of {len(data)} bytes at offset {record.offset} exceeds Upload-Length {size}"
                )
            if size is None and self.max_size is not None and new_offset > self.max_size:
                raise PayloadTooLargeError(
                    f"Upload exceeds maximum upload size of {self.max_size} bytes"
                )

            if record.is_complete:
                return record

            if data:
                await self.storage.write_chunk(record.storage_key, record.offset, data)

            completes = size is not None and new_offset == size
            if completes:
                await self.storage.finalize_object(record.storage_key, size)

            record.size = size
            record.offset = new_offset
            if completes:
                self._complete(record)
                await self.storage.discard_parts(record.storage_key)
            else:
                self.store.save(record)

            logger.debug(
                "Chunk accepted",
                extra={"upload_id": upload_id, "chunk_bytes": len(data), "offset": record.offset},
            )
            return record

    def _declare_length(self, record: UploadRecord, upload_length: int) -> int:
        if upload_length < 0:
            raise InvalidArgumentError("Upload-Length must be a non-negative integer")
        if record.size is not None:
            if upload_length != record.size:
                raise InvalidArgumentError("Upload-Length cannot be changed once set")
            return record.size
        if upload_length < record.offset:
            raise InvalidArgumentError(
                f"Upload-Length {upload_length} is smaller than current offset {record.offset}"
            )
        if self.max_size is not None and upload_length > self.max_size:
            raise PayloadTooLargeError(
                f"Upload-Length {upload_length} exceeds maximum upload size of {self.max_size} bytes"
            )
        return upload_length

    async def terminate(self, upload_id: str) -> None:
        """Discard an in-flight upload and its partial data.

        Raises:
            NotFoundError: If the upload is unknown or already completed
        """
        upload_id_context.set(upload_id)
        async with self.locker.lock(upload_id):
            record = self.get_status(upload_id)
            if record.is_complete:
                raise NotFoundError(f"Upload already completed: {upload_id}")

            await self.storage.delete_object(record.storage_key)
            self.store.delete(upload_id)

        logger.info(
            "Upload terminated",
            extra={"upload_id": upload_id, "offset": record.offset, "size": record.size},
        )

    def _complete(self, record: UploadRecord) -> None:
        record.status = UploadStatus.COMPLETED
        record.completed_at = datetime.now(timezone.utc)
        self.store.save(record)

        event = CompletedUpload(
            upload_id=record.upload_id,
            size=record.offset,
            storage_key=record.storage_key,
            metadata=dict(record.metadata),
        )
        self.completed_uploads.put_nowait(event)

        logger.info(
            "Upload completed",
            extra={"upload_id": record.upload_id, "size": record.offset, "storage_key": record.storage_key},
        )
