"""Streaming ZIP archives of stored objects."""

import io
import logging
import zipfile
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional

from docvault.core.exceptions import NotFoundError, StorageError
from docvault.storage.base import StorageBackend

logger = logging.getLogger(__name__)


@dataclass
class ArchiveMember:
    """One file to place in an archive."""

    name: str
    storage_key: str
    size: int
    modified_at: Optional[datetime] = None


class _StreamBuffer(io.RawIOBase):
    """Write-only, non-seekable sink that hands written bytes back on drain."""

    def __init__(self):
        self._chunks: list[bytes] = []

    def writable(self) -> bool:
        return True

    def write(self, b) -> int:
        self._chunks.append(bytes(b))
        return len(b)

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def stream_zip(members: Iterable[ArchiveMember], storage: StorageBackend) -> Iterator[bytes]:
    """Yield a ZIP archive of ``members`` as it is built.

    The archive is never held in memory or on disk as a whole. Members whose
    name was already used are skipped, and so are objects that cannot be
    opened.

    Args:
        members: Files to include, in order
        storage: Backend holding the objects

    Yields:
        Consecutive pieces of the ZIP file
    """
    buffer = _StreamBuffer()
    seen: set[str] = set()
    written = 0

    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for member in members:
            if member.name in seen:
                logger.warning(
                    "Skipping duplicate archive entry",
                    extra={"entry_name": member.name, "object_key": member.storage_key},
                )
                continue
            seen.add(member.name)

            try:
                chunks = storage.iter_object(member.storage_key)
                first = next(chunks, b"")
            except (NotFoundError, StorageError) as e:
                logger.warning(
                    "Skipping archive entry that could not be opened",
                    extra={"entry_name": member.name, "object_key": member.storage_key, "error": str(e)},
                )
                continue

            info = zipfile.ZipInfo(member.name)
            if member.modified_at is not None and member.modified_at.year >= 1980:
                info.date_time = member.modified_at.timetuple()[:6]
            info.compress_type = zipfile.ZIP_DEFLATED

            force_zip64 = member.size * 1.05 > zipfile.ZIP64_LIMIT
            with archive.open(info, mode="w", force_zip64=force_zip64) as entry:
                entry.write(first)
                for chunk in chunks:
                    if data := buffer.drain():
                        yield data
                    entry.write(chunk)
            written += 1
            if data := buffer.drain():
                yield data

    # Central directory
    if data := buffer.drain():
        yield data

    logger.info("Archive streamed", extra={"entries": written, "unreadable": len(seen) - written})
