"""
Upload ingestion

Consumes completion events from the resumable upload handler and records
each finished file as a document in the user's folder tree, creating the
folders named by the file's relative path on the way.
"""

from docvault.ingest.dispatcher import CompletionDispatcher
from docvault.ingest.paths import parse_relative_path, strip_extension
from docvault.ingest.processor import (
    ProcessUploadParams,
    ProcessUploadResult,
    UploadCompletionProcessor,
)

__all__ = [
    "CompletionDispatcher",
    "ProcessUploadParams",
    "ProcessUploadResult",
    "UploadCompletionProcessor",
    "parse_relative_path",
    "strip_extension",
]
