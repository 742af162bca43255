"""Turns a completed upload into folder, document and attachment records."""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from docvault.core.exceptions import ConflictError
from docvault.db.models import (
    Document,
    DocumentAttachment,
    DocumentStatus,
    DocumentType,
    Folder,
)
from docvault.db.repository import DocumentRepository
from docvault.ingest.paths import parse_relative_path, strip_extension

logger = logging.getLogger(__name__)


@dataclass
class ProcessUploadParams:
    relative_path: str
    owner_id: str
    storage_key: str
    file_size: int
    file_type: str
    parent_folder_id: Optional[str] = None
    upload_id: Optional[str] = None


@dataclass
class ProcessUploadResult:
    folders: list[Folder] = field(default_factory=list)
    document: Optional[Document] = None
    attachment: Optional[DocumentAttachment] = None


class UploadCompletionProcessor:
    """Materializes the folder chain, document and attachment of an upload.

    Everything happens in one transaction: either all rows exist afterwards
    or none do. Folders are matched by exact name within the same parent
    and owner, so re-uploading into an existing tree reuses its folders.
    """

    def __init__(self, repository: DocumentRepository):
        self.repository = repository

    def process_upload_complete(self, params: ProcessUploadParams) -> ProcessUploadResult:
        """Record a completed upload.

        Args:
            params: Upload details taken from the completion event

        Returns:
            The folders walked (created or reused), the new document and
            its attachment

        Raises:
            InvalidArgumentError: If the relative path has no segments
            ConflictError: If a concurrent folder insert cannot be resolved
            SQLAlchemyError: Any other database failure (rolled back)
        """
        folder_parts, file_name = parse_relative_path(params.relative_path)

        logger.info(
            "Processing completed upload",
            extra={
                "upload_id": params.upload_id,
                "relative_path": params.relative_path,
                "owner_id": params.owner_id,
                "folder_depth": len(folder_parts),
            },
        )

        result = ProcessUploadResult()
        with self.repository.transaction() as session:
            current_parent_id = params.parent_folder_id
            current_path = ""

            for i, folder_name in enumerate(folder_parts):
                current_path = f"{current_path}/{folder_name}" if current_path else folder_name
                is_root = i == 0 and params.parent_folder_id is None

                folder = self._get_or_create_folder(
                    session,
                    name=folder_name,
                    path=current_path,
                    is_root=is_root,
                    parent_folder_id=current_parent_id,
                    owner_id=params.owner_id,
                )
                result.folders.append(folder)
                current_parent_id = folder.id

            result.document = self.repository.create_document(
                session,
                Document(
                    title=strip_extension(file_name),
                    type=DocumentType.GENERAL,
                    status=DocumentStatus.DRAFT,
                    folder_id=current_parent_id,
                    registrant_id=params.owner_id,
                ),
            )

            result.attachment = self.repository.create_attachment(
                session,
                DocumentAttachment(
                    document_id=result.document.id,
                    file_name=file_name,
                    file_path=params.storage_key,
                    file_size=params.file_size,
                    file_type=params.file_type,
                    version=1,
                    is_current=True,
                    uploaded_by=params.owner_id,
                ),
            )

        logger.info(
            "Upload recorded",
            extra={
                "upload_id": params.upload_id,
                "document_id": result.document.id,
                "attachment_id": result.attachment.id,
                "folder_id": current_parent_id,
            },
        )
        return result

    def _get_or_create_folder(
        self,
        session: Session,
        name: str,
        path: str,
        is_root: bool,
        parent_folder_id: Optional[str],
        owner_id: str,
    ) -> Folder:
        existing = self.repository.find_folder(session, name, parent_folder_id, owner_id)
        if existing is not None:
            return existing

        try:
            return self.repository.create_folder(
                session,
                Folder(
                    name=name,
                    path=path,
                    is_root_folder=is_root,
                    parent_folder_id=parent_folder_id,
                    owner_id=owner_id,
                ),
            )
        except IntegrityError:
            # Another upload created the same sibling first
            logger.info(
                "Folder created concurrently, reusing it",
                extra={"folder_name": name, "parent_folder_id": parent_folder_id, "owner_id": owner_id},
            )
            existing = self.repository.find_folder(session, name, parent_folder_id, owner_id)
            if existing is None:
                raise ConflictError(f"Could not create or find folder {path!r}")
            return existing
