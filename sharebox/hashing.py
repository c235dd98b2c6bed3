# Filename: sharebox/hashing.py
from typing import Optional
import hashlib

from .models import MediaCategory

_DOCUMENT_TYPES = {
    "application/pdf",
    "application/msword",
    "application/rtf",
    "application/json",
    "application/xml",
    "application/vnd.ms-excel",
    "application/vnd.ms-powerpoint",
    "application/vnd.oasis.opendocument.text",
    "application/vnd.oasis.opendocument.spreadsheet",
    "application/vnd.oasis.opendocument.presentation",
}

_ARCHIVE_TYPES = {
    "application/zip",
    "application/gzip",
    "application/x-tar",
    "application/x-7z-compressed",
    "application/x-rar-compressed",
    "application/vnd.rar",
    "application/x-bzip2",
}


def content_digest(data: bytes) -> str:
    """SHA256 hex digest of raw file bytes."""
    return hashlib.sha256(data).hexdigest()


def dedup_key(digest: str, size: int, mime_type: str, owner_id: Optional[int] = None) -> str:
    key = f"{digest}:{size}:{mime_type}"
    if owner_id is not None:
        key = f"{owner_id}/{key}"
    return key


def resolve_media_category(mime_type: Optional[str]) -> MediaCategory:
    if not mime_type:
        return MediaCategory.other
    mime_type = mime_type.split(";", 1)[0].strip().lower()
    major = mime_type.split("/", 1)[0]
    if major in ("image", "video", "audio"):
        return MediaCategory(major)
    if major == "text" or mime_type in _DOCUMENT_TYPES or mime_type.startswith("application/vnd.openxmlformats-officedocument."):
        return MediaCategory.document
    if mime_type in _ARCHIVE_TYPES:
        return MediaCategory.archive
    return MediaCategory.other
