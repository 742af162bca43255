"""Upload session tracking store."""

import json
import os
import re
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional

_UPLOAD_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


class UploadStatus(str, Enum):
    """Upload status enumeration."""

    RECEIVING = "receiving"  # Created, bytes may still arrive
    COMPLETED = "completed"  # offset reached size, completion event emitted


@dataclass
class UploadRecord:
    """State of one resumable upload session."""

    upload_id: str
    size: Optional[int]  # None while the length is deferred
    offset: int
    metadata: Dict[str, str]
    storage_key: str
    status: UploadStatus
    created_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def size_is_deferred(self) -> bool:
        return self.size is None

    @property
    def is_complete(self) -> bool:
        return self.status == UploadStatus.COMPLETED

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["created_at"] = self.created_at.isoformat()
        data["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "UploadRecord":
        completed_at = data.get("completed_at")
        return cls(
            upload_id=data["upload_id"],
            size=data.get("size"),
            offset=data["offset"],
            metadata=dict(data.get("metadata") or {}),
            storage_key=data["storage_key"],
            status=UploadStatus(data["status"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
        )


class UploadStore:
    """File-backed store for upload records.

    Each upload is one ``<upload_id>.info`` JSON file under ``state_dir``.
    Writes go to a temporary file first and are renamed into place, so a
    crash never leaves a half-written record behind.
    """

    def __init__(self, state_dir: str | Path):
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _info_path(self, upload_id: str) -> Path:
        if not _UPLOAD_ID_PATTERN.match(upload_id):
            raise KeyError(upload_id)
        return self.state_dir / f"{upload_id}.info"

    def create(self, record: UploadRecord) -> None:
        """Store a new upload record."""
        self.save(record)

    def save(self, record: UploadRecord) -> None:
        """Persist the current state of an upload record."""
        path = self._info_path(record.upload_id)
        tmp_path = self.state_dir / f"{record.upload_id}.info.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(record.to_dict(), f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)

    def get(self, upload_id: str) -> Optional[UploadRecord]:
        """Retrieve an upload record by upload_id."""
        try:
            path = self._info_path(upload_id)
        except KeyError:
            return None
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return UploadRecord.from_dict(json.load(f))

    def delete(self, upload_id: str) -> None:
        """Remove an upload record if it exists."""
        try:
            self._info_path(upload_id).unlink(missing_ok=True)
        except KeyError:
            pass
