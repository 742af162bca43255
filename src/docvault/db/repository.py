"""Repository for folders, documents and attachments."""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from sqlalchemy import Text, and_, cast, func, literal, select, update
from sqlalchemy.orm import Session, sessionmaker

from docvault.db.models import Document, DocumentAttachment, Folder

logger = logging.getLogger(__name__)


@dataclass
class DocumentWithAttachment:
    """A document together with its current attachment, if any."""

    document: Document
    attachment: Optional[DocumentAttachment]


@dataclass
class FolderContents:
    folder: Folder
    subfolders: list[Folder]
    documents: list[DocumentWithAttachment]


@dataclass
class ArchiveEntry:
    """A current attachment found under a folder tree.

    ``relative_dir`` is the attachment's folder relative to the tree root,
    ending in ``/`` unless it is the root itself.
    """

    relative_dir: str
    attachment: DocumentAttachment


class DocumentRepository:
    """Transactional CRUD for the folder/document/attachment graph.

    Write operations take the ``Session`` of a transaction opened with
    ``transaction()``; read operations open their own short-lived session.
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Open a transaction that commits on success and rolls back on error."""
        with self._session_factory.begin() as session:
            yield session

    # Folder operations (within transaction)

    def find_folder(
        self, session: Session, name: str, parent_folder_id: Optional[str], owner_id: str
    ) -> Optional[Folder]:
        """Find a folder by exact name under a parent (None = top level) for an owner."""
        if parent_folder_id is None:
            parent_clause = Folder.parent_folder_id.is_(None)
        else:
            parent_clause = Folder.parent_folder_id == parent_folder_id
        stmt = select(Folder).where(Folder.name == name, parent_clause, Folder.owner_id == owner_id)
        return session.scalars(stmt).first()

    def create_folder(self, session: Session, folder: Folder) -> Folder:
        """Insert a folder inside a SAVEPOINT.

        A unique-constraint violation rolls back only the SAVEPOINT, leaving
        the surrounding transaction usable.

        Raises:
            IntegrityError: If a sibling with the same name already exists
        """
        with session.begin_nested():
            session.add(folder)
            session.flush()
        return folder

    # Document operations (within transaction)

    def create_document(self, session: Session, document: Document) -> Document:
        session.add(document)
        session.flush()
        return document

    # Attachment operations (within transaction)

    def create_attachment(self, session: Session, attachment: DocumentAttachment) -> DocumentAttachment:
        session.add(attachment)
        session.flush()
        return attachment

    def get_latest_version(self, session: Session, document_id: str) -> int:
        stmt = select(func.coalesce(func.max(DocumentAttachment.version), 0)).where(
            DocumentAttachment.document_id == document_id
        )
        return session.scalar(stmt) or 0

    def set_previous_versions_not_current(self, session: Session, document_id: str) -> None:
        session.execute(
            update(DocumentAttachment)
            .where(
                DocumentAttachment.document_id == document_id,
                DocumentAttachment.is_current.is_(True),
            )
            .values(is_current=False)
        )

    def add_attachment_version(self, session: Session, attachment: DocumentAttachment) -> DocumentAttachment:
        """Insert ``attachment`` as the new current version of its document."""
        latest = self.get_latest_version(session, attachment.document_id)
        self.set_previous_versions_not_current(session, attachment.document_id)
        attachment.version = latest + 1
        attachment.is_current = True
        return self.create_attachment(session, attachment)

    # Read operations

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        with self._session_factory() as session:
            return session.get(Folder, folder_id)

    def get_attachment(self, attachment_id: str) -> Optional[DocumentAttachment]:
        with self._session_factory() as session:
            return session.get(DocumentAttachment, attachment_id)

    def get_root_folders(self, owner_id: str) -> list[Folder]:
        with self._session_factory() as session:
            stmt = (
                select(Folder)
                .where(Folder.owner_id == owner_id, Folder.is_root_folder.is_(True))
                .order_by(Folder.updated_at.desc())
            )
            return list(session.scalars(stmt))

    def get_subfolders(self, parent_folder_id: str) -> list[Folder]:
        with self._session_factory() as session:
            stmt = (
                select(Folder)
                .where(Folder.parent_folder_id == parent_folder_id)
                .order_by(Folder.name)
            )
            return list(session.scalars(stmt))

    def _documents_with_current_attachment(self, *criteria):
        return (
            select(Document, DocumentAttachment)
            .outerjoin(
                DocumentAttachment,
                and_(
                    DocumentAttachment.document_id == Document.id,
                    DocumentAttachment.is_current.is_(True),
                ),
            )
            .where(*criteria)
        )

    def get_document(self, document_id: str) -> Optional[DocumentWithAttachment]:
        with self._session_factory() as session:
            row = session.execute(
                self._documents_with_current_attachment(Document.id == document_id)
            ).first()
            if row is None:
                return None
            return DocumentWithAttachment(document=row[0], attachment=row[1])

    def get_documents_by_folder(self, folder_id: str) -> list[DocumentWithAttachment]:
        with self._session_factory() as session:
            stmt = self._documents_with_current_attachment(Document.folder_id == folder_id).order_by(
                Document.updated_at.desc()
            )
            return [DocumentWithAttachment(document=d, attachment=a) for d, a in session.execute(stmt)]

    def get_folder_contents(self, folder_id: str) -> Optional[FolderContents]:
        folder = self.get_folder(folder_id)
        if folder is None:
            return None
        return FolderContents(
            folder=folder,
            subfolders=self.get_subfolders(folder_id),
            documents=self.get_documents_by_folder(folder_id),
        )

    def get_documents(self, owner_id: str, limit: Optional[int] = None) -> list[DocumentWithAttachment]:
        """Documents registered by ``owner_id``, most recently updated first."""
        with self._session_factory() as session:
            stmt = self._documents_with_current_attachment(Document.registrant_id == owner_id).order_by(
                Document.updated_at.desc()
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return [DocumentWithAttachment(document=d, attachment=a) for d, a in session.execute(stmt)]

    def get_folder_attachments(self, folder_id: str) -> list[ArchiveEntry]:
        """Current attachments in a folder and all of its descendants."""
        tree = (
            select(Folder.id.label("id"), cast(literal(""), Text).label("relative_dir"))
            .where(Folder.id == folder_id)
            .cte("folder_tree", recursive=True)
        )
        child = select(
            Folder.id,
            cast(tree.c.relative_dir.concat(Folder.name).concat("/"), Text),
        ).join(tree, Folder.parent_folder_id == tree.c.id)
        tree = tree.union_all(child)

        stmt = (
            select(tree.c.relative_dir, DocumentAttachment)
            .join(Document, Document.id == DocumentAttachment.document_id)
            .join(tree, Document.folder_id == tree.c.id)
            .where(DocumentAttachment.is_current.is_(True))
            .order_by(tree.c.relative_dir, DocumentAttachment.file_name)
        )
        with self._session_factory() as session:
            return [
                ArchiveEntry(relative_dir=relative_dir, attachment=attachment)
                for relative_dir, attachment in session.execute(stmt)
            ]
