# Filename: sharebox/schemas.py
from pydantic import BaseModel, ConfigDict, EmailStr, Field, constr
from typing import Optional, List
from datetime import datetime

from .models import MediaCategory, Visibility


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    username: constr(min_length=3, max_length=32)
    email: Optional[EmailStr] = None
    password: constr(min_length=6)


class UserOut(BaseModel):
    id: int
    username: str
    email: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VersionOut(BaseModel):
    version_number: int
    uploaded_at: datetime
    uploaded_by: int
    content_hash: str
    blob_id: str
    blob_url: str
    size: int
    mime_type: str
    media_category: MediaCategory

    model_config = ConfigDict(from_attributes=True)


class FileOut(BaseModel):
    id: str
    title: str
    description: str
    owner_id: int
    group_id: Optional[str]
    folder_id: Optional[int]
    visibility: Visibility
    content_hash: str
    size: int
    mime_type: str
    media_category: MediaCategory
    blob_id: str
    blob_url: str
    download_count: int
    current_version: int
    versions: List[VersionOut] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DuplicateRef(BaseModel):
    id: str
    owner_id: int


class UploadOut(BaseModel):
    data: Optional[FileOut]
    is_duplicate: bool = False
    duplicate_of: Optional[DuplicateRef] = None
    message: str
    link: Optional[str] = None


class VersionUploadOut(BaseModel):
    is_new_version: bool = Field(True, alias="isNewVersion")
    version_number: int
    data: FileOut

    model_config = ConfigDict(populate_by_name=True)


class PasswordBody(BaseModel):
    password: Optional[str] = None


class DownloadOut(BaseModel):
    download_url: str = Field(..., alias="downloadUrl")
    file_name: str = Field(..., alias="fileName")

    model_config = ConfigDict(populate_by_name=True)


class FileUpdate(BaseModel):
    title: Optional[constr(strip_whitespace=True, min_length=1, max_length=100)] = None
    description: Optional[constr(strip_whitespace=True, max_length=500)] = None
    group_id: Optional[str] = None
    folder_id: Optional[int] = None
    visibility: Optional[Visibility] = None
    password: Optional[str] = None


class RestoreRequest(BaseModel):
    version_number: int = Field(..., alias="versionNumber", ge=1)

    model_config = ConfigDict(populate_by_name=True)


class FileListing(BaseModel):
    files: List[FileOut]
    total: int
    limit: int
    offset: int


class TopFile(BaseModel):
    id: str
    title: str
    download_count: int
    mime_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AnalyticsOut(BaseModel):
    total_files: int
    total_downloads: int
    storage_used: int
    top_files: List[TopFile]


class FolderCreate(BaseModel):
    name: str
    parent_id: Optional[int] = None


class FolderOut(BaseModel):
    id: int
    name: str
    parent_id: Optional[int]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
