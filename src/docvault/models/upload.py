"""API response models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from docvault.db.repository import DocumentWithAttachment


class UploadInfoResponse(BaseModel):
    """Server capabilities for resumable uploads."""

    tus_version: str
    max_size: Optional[int] = Field(None, description="Maximum upload size in bytes, null when unlimited")
    extensions: List[str]
    upload_path: str


class PresignResponse(BaseModel):
    url: str
    expires_in: int = Field(..., description="URL lifetime in seconds")


class FolderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    path: str
    is_root_folder: bool
    parent_folder_id: Optional[str] = None
    owner_id: str
    created_at: datetime
    updated_at: datetime


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_id: str
    file_name: str
    file_path: str
    file_size: int
    file_type: Optional[str] = None
    version: int
    is_current: bool
    uploaded_by: Optional[str] = None
    created_at: datetime


class DocumentResponse(BaseModel):
    """A document with its current attachment."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    description: Optional[str] = None
    type: str
    status: str
    folder_id: Optional[str] = None
    barcode: Optional[str] = None
    registrant_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    current_attachment: Optional[AttachmentResponse] = None

    @classmethod
    def from_view(cls, view: DocumentWithAttachment) -> "DocumentResponse":
        document = view.document
        return cls(
            id=document.id,
            title=document.title,
            description=document.description,
            type=document.type.value,
            status=document.status.value,
            folder_id=document.folder_id,
            barcode=document.barcode,
            registrant_id=document.registrant_id,
            created_at=document.created_at,
            updated_at=document.updated_at,
            current_attachment=(
                AttachmentResponse.model_validate(view.attachment) if view.attachment else None
            ),
        )


class FolderContentsResponse(BaseModel):
    folder: FolderResponse
    subfolders: List[FolderResponse]
    documents: List[DocumentResponse]


class RecentFilesResponse(BaseModel):
    documents: List[DocumentResponse]
    limit: int
