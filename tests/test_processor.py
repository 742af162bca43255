"""Tests for the upload completion processor."""

import threading

import pytest
from sqlalchemy import func, select

from docvault.core.exceptions import ConflictError, InvalidArgumentError
from docvault.db.models import (
    Document,
    DocumentAttachment,
    DocumentStatus,
    DocumentType,
    Folder,
)
from docvault.db.repository import DocumentRepository
from docvault.ingest.processor import ProcessUploadParams, UploadCompletionProcessor


@pytest.fixture
def processor(repository):
    return UploadCompletionProcessor(repository)


def _params(relative_path: str, owner_id: str = "U1", **overrides) -> ProcessUploadParams:
    values = {
        "relative_path": relative_path,
        "owner_id": owner_id,
        "storage_key": f"uploads/{abs(hash(relative_path))}.bin",
        "file_size": 1024,
        "file_type": "application/pdf",
    }
    values.update(overrides)
    return ProcessUploadParams(**values)


def _count(session_factory, model) -> int:
    with session_factory() as session:
        return session.scalar(select(func.count()).select_from(model))


def test_nested_path_creates_folder_chain(processor, session_factory):
    result = processor.process_upload_complete(_params("Invoices/2024/march.pdf"))

    invoices, year = result.folders
    assert (invoices.name, invoices.path, invoices.is_root_folder) == ("Invoices", "Invoices", True)
    assert invoices.parent_folder_id is None
    assert (year.name, year.path, year.is_root_folder) == ("2024", "Invoices/2024", False)
    assert year.parent_folder_id == invoices.id
    assert invoices.owner_id == year.owner_id == "U1"

    document = result.document
    assert document.title == "march"
    assert document.folder_id == year.id
    assert document.registrant_id == "U1"
    assert document.status == DocumentStatus.DRAFT
    assert document.type == DocumentType.GENERAL

    attachment = result.attachment
    assert attachment.document_id == document.id
    assert attachment.file_name == "march.pdf"
    assert attachment.file_path == _params("Invoices/2024/march.pdf").storage_key
    assert attachment.file_size == 1024
    assert attachment.file_type == "application/pdf"
    assert attachment.version == 1
    assert attachment.is_current is True
    assert attachment.uploaded_by == "U1"

    assert _count(session_factory, Folder) == 2
    assert _count(session_factory, Document) == 1
    assert _count(session_factory, DocumentAttachment) == 1


def test_flat_upload_creates_no_folders(processor, session_factory):
    result = processor.process_upload_complete(_params("report.pdf"))

    assert result.folders == []
    assert result.document.folder_id is None
    assert result.document.title == "report"
    assert _count(session_factory, Folder) == 0


def test_flat_upload_into_parent_folder(processor, repository):
    parent = processor.process_upload_complete(_params("Projects/seed.txt")).folders[0]

    result = processor.process_upload_complete(_params("report.pdf", parent_folder_id=parent.id))

    assert result.folders == []
    assert result.document.folder_id == parent.id


def test_parent_folder_makes_first_segment_non_root(processor):
    parent = processor.process_upload_complete(_params("Projects/seed.txt")).folders[0]

    result = processor.process_upload_complete(
        _params("Alpha/plan.docx", parent_folder_id=parent.id)
    )

    (alpha,) = result.folders
    assert alpha.is_root_folder is False
    assert alpha.parent_folder_id == parent.id
    assert alpha.path == "Alpha"


def test_repeated_path_reuses_folders(processor, session_factory):
    first = processor.process_upload_complete(_params("Invoices/2024/march.pdf"))
    second = processor.process_upload_complete(_params("Invoices/2024/march.pdf"))

    assert [f.id for f in first.folders] == [f.id for f in second.folders]
    assert first.document.id != second.document.id
    assert _count(session_factory, Folder) == 2
    assert _count(session_factory, Document) == 2


def test_sibling_files_share_folder(processor, session_factory):
    first = processor.process_upload_complete(_params("Shared/doc1.txt"))
    second = processor.process_upload_complete(_params("Shared/doc2.txt"))

    assert first.folders[0].id == second.folders[0].id
    assert _count(session_factory, Folder) == 1


def test_folders_are_per_owner(processor, session_factory):
    mine = processor.process_upload_complete(_params("Shared/doc1.txt", owner_id="U1"))
    theirs = processor.process_upload_complete(_params("Shared/doc1.txt", owner_id="U2"))

    assert mine.folders[0].id != theirs.folders[0].id
    assert _count(session_factory, Folder) == 2


def test_folder_names_are_case_sensitive(processor, session_factory):
    processor.process_upload_complete(_params("Shared/doc1.txt"))
    processor.process_upload_complete(_params("shared/doc1.txt"))

    assert _count(session_factory, Folder) == 2


def test_backslash_paths(processor):
    result = processor.process_upload_complete(_params("Invoices\\2024\\march.pdf"))

    assert [f.path for f in result.folders] == ["Invoices", "Invoices/2024"]


def test_invalid_path_writes_nothing(processor, session_factory):
    with pytest.raises(InvalidArgumentError):
        processor.process_upload_complete(_params("///"))

    assert _count(session_factory, Folder) == 0
    assert _count(session_factory, Document) == 0


def test_attachment_failure_rolls_back_folders(processor, repository, session_factory, monkeypatch):
    def fail(session, attachment):
        raise RuntimeError("insert failed")

    monkeypatch.setattr(repository, "create_attachment", fail)

    with pytest.raises(RuntimeError):
        processor.process_upload_complete(_params("Invoices/2024/march.pdf"))

    assert _count(session_factory, Folder) == 0
    assert _count(session_factory, Document) == 0
    assert _count(session_factory, DocumentAttachment) == 0


def test_lost_folder_race_reuses_winner(processor, repository, session_factory, monkeypatch):
    """A concurrent insert of the same folder is absorbed by the SAVEPOINT."""
    winner = processor.process_upload_complete(_params("Shared/doc1.txt")).folders[0]

    original_find = DocumentRepository.find_folder
    calls = {"count": 0}

    def stale_find(self, session, name, parent_folder_id, owner_id):
        calls["count"] += 1
        if calls["count"] == 1:
            # The lookup ran before the other transaction committed
            return None
        return original_find(self, session, name, parent_folder_id, owner_id)

    monkeypatch.setattr(DocumentRepository, "find_folder", stale_find)

    result = processor.process_upload_complete(_params("Shared/doc2.txt"))

    assert result.folders[0].id == winner.id
    assert _count(session_factory, Folder) == 1
    assert _count(session_factory, Document) == 2


def test_unresolvable_race_is_conflict(processor, repository, session_factory, monkeypatch):
    processor.process_upload_complete(_params("Shared/doc1.txt"))
    monkeypatch.setattr(
        DocumentRepository, "find_folder", lambda self, session, name, parent_folder_id, owner_id: None
    )

    with pytest.raises(ConflictError):
        processor.process_upload_complete(_params("Shared/doc2.txt"))

    assert _count(session_factory, Document) == 1


def test_concurrent_identical_paths_create_one_folder(processor, session_factory):
    errors = []
    barrier = threading.Barrier(4)

    def upload(name):
        barrier.wait()
        try:
            processor.process_upload_complete(_params(f"Shared/{name}"))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=upload, args=(f"doc{i}.txt",)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert _count(session_factory, Folder) == 1
    assert _count(session_factory, Document) == 4
