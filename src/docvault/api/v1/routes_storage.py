"""Folder and document browsing routes."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from docvault.api.deps import get_repository, get_settings, require_user_id
from docvault.core.config import Settings
from docvault.db.models import Folder
from docvault.db.repository import DocumentRepository
from docvault.models.upload import (
    DocumentResponse,
    FolderContentsResponse,
    FolderResponse,
    RecentFilesResponse,
)

router = APIRouter(prefix="/api/v1/storage", tags=["storage"])
logger = logging.getLogger(__name__)


def _validate_uuid(value: str, what: str) -> None:
    try:
        uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {what}: {value}")


def _owned_folder(repository: DocumentRepository, folder_id: str, user_id: str) -> Folder:
    _validate_uuid(folder_id, "folder id")
    folder = repository.get_folder(folder_id)
    if folder is None or folder.owner_id != user_id:
        raise HTTPException(status_code=404, detail="Folder not found")
    return folder


@router.get("/folders/root", response_model=list[FolderResponse])
def list_root_folders(
    repository: DocumentRepository = Depends(get_repository),
    user_id: str = Depends(require_user_id),
) -> list[FolderResponse]:
    """Top-level folders created by the user's uploads."""
    folders = repository.get_root_folders(user_id)
    return [FolderResponse.model_validate(folder) for folder in folders]


@router.get("/folders/{folder_id}", response_model=FolderResponse)
def get_folder(
    folder_id: str,
    repository: DocumentRepository = Depends(get_repository),
    user_id: str = Depends(require_user_id),
) -> FolderResponse:
    return FolderResponse.model_validate(_owned_folder(repository, folder_id, user_id))


@router.get("/folders/{folder_id}/subfolders", response_model=list[FolderResponse])
def list_subfolders(
    folder_id: str,
    repository: DocumentRepository = Depends(get_repository),
    user_id: str = Depends(require_user_id),
) -> list[FolderResponse]:
    _owned_folder(repository, folder_id, user_id)
    return [FolderResponse.model_validate(folder) for folder in repository.get_subfolders(folder_id)]


@router.get("/folders/{folder_id}/documents", response_model=list[DocumentResponse])
def list_folder_documents(
    folder_id: str,
    repository: DocumentRepository = Depends(get_repository),
    user_id: str = Depends(require_user_id),
) -> list[DocumentResponse]:
    _owned_folder(repository, folder_id, user_id)
    return [DocumentResponse.from_view(view) for view in repository.get_documents_by_folder(folder_id)]


@router.get("/folders/{folder_id}/contents", response_model=FolderContentsResponse)
def get_folder_contents(
    folder_id: str,
    repository: DocumentRepository = Depends(get_repository),
    user_id: str = Depends(require_user_id),
) -> FolderContentsResponse:
    """Subfolders and documents directly inside a folder."""
    _owned_folder(repository, folder_id, user_id)
    contents = repository.get_folder_contents(folder_id)
    if contents is None:
        raise HTTPException(status_code=404, detail="Folder not found")

    return FolderContentsResponse(
        folder=FolderResponse.model_validate(contents.folder),
        subfolders=[FolderResponse.model_validate(folder) for folder in contents.subfolders],
        documents=[DocumentResponse.from_view(view) for view in contents.documents],
    )


@router.get("/documents", response_model=list[DocumentResponse])
def list_documents(
    repository: DocumentRepository = Depends(get_repository),
    user_id: str = Depends(require_user_id),
) -> list[DocumentResponse]:
    """Every document the user registered, with its current attachment."""
    return [DocumentResponse.from_view(view) for view in repository.get_documents(user_id)]


@router.get("/documents/{document_id}", response_model=DocumentResponse)
def get_document(
    document_id: str,
    repository: DocumentRepository = Depends(get_repository),
    user_id: str = Depends(require_user_id),
) -> DocumentResponse:
    _validate_uuid(document_id, "document id")
    view = repository.get_document(document_id)
    if view is None or view.document.registrant_id != user_id:
        raise HTTPException(status_code=404, detail="Document not found")
    return DocumentResponse.from_view(view)


@router.get("/recent", response_model=RecentFilesResponse)
def list_recent_files(
    limit: int | None = Query(None, ge=1),
    repository: DocumentRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
    user_id: str = Depends(require_user_id),
) -> RecentFilesResponse:
    """The user's documents, most recently updated first."""
    effective_limit = min(limit or settings.RECENT_FILES_LIMIT, settings.RECENT_FILES_MAX_LIMIT)
    views = repository.get_documents(user_id, limit=effective_limit)
    return RecentFilesResponse(
        documents=[DocumentResponse.from_view(view) for view in views],
        limit=effective_limit,
    )
