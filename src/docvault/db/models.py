"""Relational schema for folders, documents and attachments."""

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class DocumentType(str, enum.Enum):
    GENERAL = "General"
    BARCODE = "Barcode"


class DocumentStatus(str, enum.Enum):
    DRAFT = "Draft"
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class Folder(Base):
    """A node of a user's folder tree.

    ``path`` is the slash-joined chain of ancestor names down to this folder
    within the uploaded hierarchy.
    """

    __tablename__ = "folders"
    __table_args__ = (
        Index("idx_folders_parent", "parent_folder_id"),
        Index("idx_folders_owner", "owner_id"),
        Index("idx_folders_path", "path"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    is_root_folder: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_folder_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("folders.id", ondelete="CASCADE")
    )
    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<Folder(id={self.id}, path={self.path})>"


# Sibling names are unique per owner; root folders share the '' parent
Index(
    "idx_folders_unique_name",
    Folder.name,
    func.coalesce(Folder.parent_folder_id, ""),
    Folder.owner_id,
    unique=True,
)


class Document(Base):
    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_folder", "folder_id"),
        Index("idx_documents_registrant", "registrant_id"),
        Index("idx_documents_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[DocumentType] = mapped_column(
        Enum(DocumentType, name="document_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=DocumentType.GENERAL,
    )
    folder_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("folders.id", ondelete="SET NULL")
    )
    barcode: Mapped[Optional[str]] = mapped_column(String(100), unique=True)
    registrant_id: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[DocumentStatus] = mapped_column(
        Enum(DocumentStatus, name="document_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=DocumentStatus.DRAFT,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    attachments: Mapped[list["DocumentAttachment"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Document(id={self.id}, title={self.title}, status={self.status})>"


class DocumentAttachment(Base):
    """One stored version of a document's file."""

    __tablename__ = "document_attachments"
    __table_args__ = (
        Index("idx_attachments_document", "document_id"),
        Index("idx_attachments_current", "document_id", "is_current"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("documents.id", ondelete="CASCADE"), nullable=False
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    file_type: Mapped[Optional[str]] = mapped_column(String(255))
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    uploaded_by: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    document: Mapped[Document] = relationship(back_populates="attachments")

    def __repr__(self):
        return f"<DocumentAttachment(id={self.id}, file_name={self.file_name}, version={self.version})>"
