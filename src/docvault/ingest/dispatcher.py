"""Background consumer for upload completion events."""

import asyncio
import logging
import uuid
from typing import Optional, Set

from docvault.core.logging import upload_id_context
from docvault.ingest.processor import ProcessUploadParams, UploadCompletionProcessor
from docvault.tus.handler import CompletedUpload

logger = logging.getLogger(__name__)

DEFAULT_FILE_TYPE = "application/octet-stream"


class CompletionDispatcher:
    """Drains completion events and hands each one to the processor.

    Every event runs in its own task so a slow upload does not hold up the
    others. The processor is synchronous and runs in a worker thread.
    Failures are logged and the event is dropped; there is no retry.
    """

    def __init__(self, queue: asyncio.Queue, processor: UploadCompletionProcessor):
        self.queue = queue
        self.processor = processor
        self._consumer: Optional[asyncio.Task] = None
        self._in_flight: Set[asyncio.Task] = set()

    def start(self) -> None:
        if self._consumer is not None and not self._consumer.done():
            return
        self._consumer = asyncio.create_task(self._consume(), name="completion-dispatcher")
        logger.info("Completion dispatcher started")

    async def stop(self) -> None:
        """Stop consuming and wait for events already being processed."""
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)
        logger.info("Completion dispatcher stopped")

    async def _consume(self) -> None:
        while True:
            event = await self.queue.get()
            task = asyncio.create_task(self._handle(event))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
            self.queue.task_done()

    async def join(self) -> None:
        """Wait until every queued event has been fully handled."""
        await self.queue.join()
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)

    @staticmethod
    def build_params(event: CompletedUpload) -> Optional[ProcessUploadParams]:
        """Map upload metadata to processor parameters.

        Returns None when the event lacks an owner or a path.
        """
        metadata = event.metadata
        relative_path = metadata.get("relative_path") or metadata.get("filename")
        owner_id = metadata.get("owner_id")

        if not relative_path or not owner_id:
            logger.error(
                "Completed upload is missing required metadata",
                extra={
                    "upload_id": event.upload_id,
                    "has_relative_path": bool(relative_path),
                    "has_owner_id": bool(owner_id),
                },
            )
            return None

        parent_folder_id = None
        raw_parent = metadata.get("parent_folder_id")
        if raw_parent:
            try:
                parent_folder_id = str(uuid.UUID(raw_parent))
            except ValueError:
                logger.warning(
                    "Ignoring invalid parent_folder_id",
                    extra={"upload_id": event.upload_id, "parent_folder_id": raw_parent},
                )

        file_type = metadata.get("file_type") or metadata.get("filetype") or DEFAULT_FILE_TYPE

        return ProcessUploadParams(
            relative_path=relative_path,
            owner_id=owner_id,
            storage_key=event.storage_key,
            file_size=event.size,
            file_type=file_type,
            parent_folder_id=parent_folder_id,
            upload_id=event.upload_id,
        )

    async def _handle(self, event: CompletedUpload) -> None:
        upload_id_context.set(event.upload_id)
        params = self.build_params(event)
        if params is None:
            return

        try:
            await asyncio.to_thread(self.processor.process_upload_complete, params)
        except Exception as e:
            logger.error(
                "Failed to process completed upload",
                extra={
                    "upload_id": event.upload_id,
                    "storage_key": event.storage_key,
                    "error": str(e),
                },
                exc_info=True,
            )
