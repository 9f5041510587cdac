from sqlmodel import SQLModel, Field
from typing import Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum
import uuid
from sqlalchemy import Column, DateTime, JSON


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileStatus(str, Enum):
    UPLOADING = "UPLOADING"
    UPLOADED = "UPLOADED"
    FAILED = "FAILED"
    DELETION_PENDING = "DELETION_PENDING"

    @property
    def label(self) -> str:
        # wire form used by listFiles
        return {
            FileStatus.UPLOADING: "Uploading",
            FileStatus.UPLOADED: "Uploaded",
            FileStatus.FAILED: "Failed",
            FileStatus.DELETION_PENDING: "Deletion Pending",
        }[self]


class FileAcl(str, Enum):
    PRIVATE = "PRIVATE"
    PUBLIC_READ = "PUBLIC_READ"

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "FileAcl":
        return cls.PUBLIC_READ if value == "public-read" else cls.PRIVATE

    @property
    def wire(self) -> str:
        return "public-read" if self is FileAcl.PUBLIC_READ else "private"


class ContentDisposition(str, Enum):
    INLINE = "INLINE"
    ATTACHMENT = "ATTACHMENT"

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "ContentDisposition":
        return cls.ATTACHMENT if value == "attachment" else cls.INLINE

    @property
    def wire(self) -> str:
        return self.value.lower()


class FileRecord(SQLModel, table=True):
    __tablename__ = "files"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    # storage object name; assigned before any bytes arrive
    key: str = Field(index=True, unique=True)
    custom_id: Optional[str] = Field(default=None, index=True, unique=True)
    name: str
    size: int = Field(default=0)
    type: str = Field(default="application/octet-stream")
    status: FileStatus = Field(default=FileStatus.UPLOADING, index=True)
    acl: FileAcl = Field(default=FileAcl.PRIVATE)
    content_disposition: ContentDisposition = Field(default=ContentDisposition.INLINE)
    # sha256 hex; present only while status is UPLOADED
    file_hash: Optional[str] = None
    # use route_metadata to avoid SQLAlchemy reserved 'metadata'
    route_metadata: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    callback_url: Optional[str] = None
    callback_slug: Optional[str] = None
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    uploaded_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
