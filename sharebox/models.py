# Filename: sharebox/models.py
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import UniqueConstraint
from typing import Optional, List
from datetime import datetime, timezone
from enum import Enum
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Visibility(str, Enum):
    public = "public"
    private = "private"
    password = "password"


class MediaCategory(str, Enum):
    image = "image"
    video = "video"
    audio = "audio"
    document = "document"
    archive = "archive"
    other = "other"


class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, unique=True)
    email: Optional[str] = Field(default=None, index=True)
    hashed_password: str
    created_at: datetime = Field(default_factory=utcnow)

    files: List["File"] = Relationship(back_populates="owner")
    folders: List["Folder"] = Relationship(back_populates="owner")


class Folder(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    owner_id: int = Field(foreign_key="user.id")
    parent_id: Optional[int] = Field(default=None, foreign_key="folder.id")
    created_at: datetime = Field(default_factory=utcnow)

    owner: Optional[User] = Relationship(back_populates="folders")
    files: List["File"] = Relationship(back_populates="folder")
    children: List["Folder"] = Relationship(back_populates="parent", sa_relationship_kwargs={"remote_side": "Folder.id"})
    parent: Optional["Folder"] = Relationship(back_populates="children")


class File(SQLModel, table=True):
    """
    A logical file. The blob/size/type columns mirror the version named by
    ``current_version``. ``dedup_key`` claims that content for dedup; it is
    cleared when the current content moves to bytes another file already claims.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    title: str = Field(max_length=100)
    description: str = Field(default="", max_length=500)
    owner_id: int = Field(foreign_key="user.id", index=True)
    group_id: Optional[str] = Field(default=None, index=True)
    folder_id: Optional[int] = Field(default=None, foreign_key="folder.id")
    visibility: Visibility = Field(default=Visibility.private, index=True)
    password_hash: Optional[str] = None

    content_hash: str = Field(index=True)
    size: int
    mime_type: str
    media_category: MediaCategory = MediaCategory.other
    blob_id: str
    blob_url: str

    download_count: int = Field(default=0, nullable=False)
    current_version: int = Field(default=1, nullable=False)
    latest_version: int = Field(default=1, nullable=False)
    dedup_key: Optional[str] = Field(default=None, unique=True, index=True)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    owner: Optional[User] = Relationship(back_populates="files")
    folder: Optional[Folder] = Relationship(back_populates="files")
    versions: List["FileVersion"] = Relationship(
        back_populates="file",
        sa_relationship_kwargs={
            "order_by": "FileVersion.version_number",
            "cascade": "all, delete-orphan",
        },
    )

    def version(self, version_number: int) -> Optional["FileVersion"]:
        for v in self.versions:
            if v.version_number == version_number:
                return v
        return None


class FileVersion(SQLModel, table=True):
    """One upload of a file's content. Rows are append-only."""
    __table_args__ = (
        UniqueConstraint("file_id", "version_number", name="uq_file_version_number"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    file_id: str = Field(foreign_key="file.id", index=True)
    version_number: int
    uploaded_at: datetime = Field(default_factory=utcnow)
    uploaded_by: int = Field(foreign_key="user.id")
    content_hash: str
    blob_id: str
    blob_url: str
    size: int
    mime_type: str
    media_category: MediaCategory = MediaCategory.other

    file: Optional[File] = Relationship(back_populates="versions")
