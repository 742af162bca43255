"""Tests for the completion dispatcher."""

import asyncio
import threading
from unittest.mock import MagicMock

import pytest

from docvault.ingest.dispatcher import CompletionDispatcher
from docvault.ingest.processor import ProcessUploadParams
from docvault.tus.handler import CompletedUpload

PARENT_ID = "3f2b8c1e-5d4a-4e0b-9a51-1c2d3e4f5a6b"


def _event(upload_id="up-1", **metadata) -> CompletedUpload:
    return CompletedUpload(upload_id=upload_id, size=12, storage_key=f"uploads/{upload_id}.pdf", metadata=metadata)


class TestBuildParams:
    def test_full_metadata(self):
        params = CompletionDispatcher.build_params(
            _event(
                relative_path="Invoices/march.pdf",
                filename="march.pdf",
                owner_id="U1",
                parent_folder_id=PARENT_ID,
                file_type="application/pdf",
            )
        )

        assert params == ProcessUploadParams(
            relative_path="Invoices/march.pdf",
            owner_id="U1",
            storage_key="uploads/up-1.pdf",
            file_size=12,
            file_type="application/pdf",
            parent_folder_id=PARENT_ID,
            upload_id="up-1",
        )

    def test_relative_path_falls_back_to_filename(self):
        params = CompletionDispatcher.build_params(_event(filename="march.pdf", owner_id="U1"))

        assert params.relative_path == "march.pdf"
        assert params.parent_folder_id is None

    def test_file_type_fallbacks(self):
        assert CompletionDispatcher.build_params(
            _event(filename="a.txt", owner_id="U1", filetype="text/plain")
        ).file_type == "text/plain"
        assert CompletionDispatcher.build_params(
            _event(filename="a.bin", owner_id="U1")
        ).file_type == "application/octet-stream"

    def test_invalid_parent_folder_is_ignored(self):
        params = CompletionDispatcher.build_params(
            _event(filename="a.txt", owner_id="U1", parent_folder_id="not-a-uuid")
        )

        assert params is not None
        assert params.parent_folder_id is None

    @pytest.mark.parametrize(
        "metadata",
        [
            {"filename": "a.txt"},
            {"owner_id": "U1"},
            {"relative_path": "", "owner_id": "U1"},
        ],
    )
    def test_missing_required_metadata(self, metadata):
        assert CompletionDispatcher.build_params(_event(**metadata)) is None


@pytest.mark.asyncio
async def test_events_are_processed():
    queue: asyncio.Queue = asyncio.Queue()
    processor = MagicMock()
    dispatcher = CompletionDispatcher(queue, processor)
    dispatcher.start()

    queue.put_nowait(_event("up-1", relative_path="a/b.txt", owner_id="U1"))
    queue.put_nowait(_event("up-2", relative_path="c.txt", owner_id="U1"))
    await dispatcher.join()
    await dispatcher.stop()

    processed = sorted(call.args[0].upload_id for call in processor.process_upload_complete.call_args_list)
    assert processed == ["up-1", "up-2"]


@pytest.mark.asyncio
async def test_failure_is_logged_and_not_retried():
    queue: asyncio.Queue = asyncio.Queue()
    processor = MagicMock()
    processor.process_upload_complete.side_effect = [RuntimeError("db down"), None]
    dispatcher = CompletionDispatcher(queue, processor)
    dispatcher.start()

    queue.put_nowait(_event("up-1", relative_path="a.txt", owner_id="U1"))
    await dispatcher.join()
    queue.put_nowait(_event("up-2", relative_path="b.txt", owner_id="U1"))
    await dispatcher.join()
    await dispatcher.stop()

    # The failed event is dropped, the consumer keeps going
    assert processor.process_upload_complete.call_count == 2


@pytest.mark.asyncio
async def test_events_without_owner_are_dropped():
    queue: asyncio.Queue = asyncio.Queue()
    processor = MagicMock()
    dispatcher = CompletionDispatcher(queue, processor)
    dispatcher.start()

    queue.put_nowait(_event("up-1", relative_path="a.txt"))
    await dispatcher.join()
    await dispatcher.stop()

    processor.process_upload_complete.assert_not_called()


@pytest.mark.asyncio
async def test_slow_event_does_not_block_others():
    queue: asyncio.Queue = asyncio.Queue()
    release = threading.Event()
    done = []

    def process(params):
        if params.upload_id == "slow":
            release.wait(timeout=5)
        done.append(params.upload_id)

    processor = MagicMock()
    processor.process_upload_complete.side_effect = process
    dispatcher = CompletionDispatcher(queue, processor)
    dispatcher.start()

    queue.put_nowait(_event("slow", relative_path="a.txt", owner_id="U1"))
    queue.put_nowait(_event("fast", relative_path="b.txt", owner_id="U1"))

    for _ in range(100):
        if done:
            break
        await asyncio.sleep(0.01)
    assert done == ["fast"]

    release.set()
    await dispatcher.join()
    await dispatcher.stop()
    assert done == ["fast", "slow"]
