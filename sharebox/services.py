# Filename: sharebox/services.py
"""
Dedup & version engine.

``ingest`` decides the fate of an uploaded byte string:

* no target file, content already known  -> ``DUPLICATE`` (nothing uploaded)
* no target file, content unseen         -> ``CREATED`` (blob + record + version 1)
* target file given                      -> ``VERSION_ADDED`` (blob + appended version)

Records are only written after the blob upload succeeded. A blob whose record
could not be written is released in the background.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple
import logging

from sqlalchemy import func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .access import Allow, require_access
from .auth import get_password_hash
from .cleanup import release_blobs, schedule_release
from .config import settings
from .errors import (
    ConcurrentUpdate,
    NotFound,
    UploadTooLarge,
    UpstreamFailure,
    ValidationError,
    VersionNotFound,
)
from .hashing import content_digest, dedup_key, resolve_media_category
from .models import File, FileVersion, Folder, Visibility, utcnow
from .storage import BlobRef, BlobStore
from .utils import ensure_owner

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 500
DEFAULT_MIME_TYPE = "application/octet-stream"


class Outcome(str, Enum):
    created = "created"
    duplicate = "duplicate"
    version_added = "version_added"


@dataclass
class FileMetadata:
    title: Optional[str] = None
    description: str = ""
    group_id: Optional[str] = None
    folder_id: Optional[int] = None
    visibility: Visibility = Visibility.private
    password: Optional[str] = None


@dataclass
class IngestOutcome:
    kind: Outcome
    record: File
    version_number: int


class _StaleVersion(Exception):
    pass


def get_file(session: Session, file_id: str) -> File:
    record = session.get(File, file_id)
    if record is None:
        raise NotFound("File not found")
    return record


def check_folder(session: Session, folder_id: Optional[int], owner_id: int) -> None:
    if folder_id is None:
        return
    folder = session.get(Folder, folder_id)
    if not folder:
        raise NotFound("Folder not found")
    ensure_owner(folder.owner_id, owner_id)


def _resolve_title(title: Optional[str], filename: str) -> str:
    final_title = (title or "").strip() or (filename or "").strip()
    if not final_title:
        raise ValidationError("File title is required")
    if len(final_title) > TITLE_MAX_LENGTH:
        raise ValidationError(f"Title must be {TITLE_MAX_LENGTH} characters or less")
    return final_title


def _validate_new_file(session: Session, metadata: FileMetadata, filename: str, owner_id: int) -> str:
    title = _resolve_title(metadata.title, filename)
    if len(metadata.description or "") > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(f"Description must be {DESCRIPTION_MAX_LENGTH} characters or less")
    if metadata.visibility == Visibility.password and not metadata.password:
        raise ValidationError("A password is required for password-protected files")
    check_folder(session, metadata.folder_id, owner_id)
    return title


def find_duplicate(session: Session, digest: str, size: int, mime_type: str, owner_id: Optional[int] = None) -> Optional[File]:
    """Existing file whose *current* content matches."""
    stmt = select(File).where(File.content_hash == digest, File.size == size, File.mime_type == mime_type)
    if owner_id is not None:
        stmt = stmt.where(File.owner_id == owner_id)
    return session.exec(stmt.order_by(File.created_at)).first()


def _scoped_key(digest: str, size: int, mime_type: str, owner_id: int) -> str:
    return dedup_key(digest, size, mime_type, owner_id if settings.dedup_scope == "owner" else None)


def _claimable_key(session: Session, file_id: str, key: str) -> Optional[str]:
    """``key`` if no other file holds it, else None."""
    holder = session.exec(select(File.id).where(File.dedup_key == key, File.id != file_id)).first()
    return None if holder else key


async def ingest(
    session: Session,
    blob_store: BlobStore,
    data: bytes,
    filename: str,
    mime_type: Optional[str],
    owner_id: int,
    metadata: Optional[FileMetadata] = None,
    target_file_id: Optional[str] = None,
) -> IngestOutcome:
    mime_type = mime_type or DEFAULT_MIME_TYPE
    size = len(data)
    if size > settings.max_upload_bytes:
        raise UploadTooLarge()
    if size == 0:
        raise ValidationError("No file uploaded")

    if target_file_id is not None:
        return await _add_version(session, blob_store, data, filename, mime_type, owner_id, target_file_id)

    metadata = metadata or FileMetadata()
    title = _validate_new_file(session, metadata, filename, owner_id)

    digest = content_digest(data)
    scope_owner = owner_id if settings.dedup_scope == "owner" else None
    key = _scoped_key(digest, size, mime_type, owner_id)

    existing = find_duplicate(session, digest, size, mime_type, scope_owner)
    if existing:
        logger.info("[DUPLICATE] %s matches file %s owned by %s", digest, existing.id, existing.owner_id)
        return IngestOutcome(Outcome.duplicate, existing, existing.current_version)

    category = resolve_media_category(mime_type)
    blob = await blob_store.upload(data, filename, category)

    record = File(
        title=title,
        description=(metadata.description or "").strip(),
        owner_id=owner_id,
        group_id=metadata.group_id,
        folder_id=metadata.folder_id,
        visibility=metadata.visibility,
        password_hash=get_password_hash(metadata.password) if metadata.visibility == Visibility.password else None,
        content_hash=digest,
        size=size,
        mime_type=mime_type,
        media_category=category,
        blob_id=blob.blob_id,
        blob_url=blob.url,
        current_version=1,
        latest_version=1,
        dedup_key=key,
    )
    record.versions.append(
        FileVersion(
            version_number=1,
            uploaded_by=owner_id,
            content_hash=digest,
            blob_id=blob.blob_id,
            blob_url=blob.url,
            size=size,
            mime_type=mime_type,
            media_category=category,
        )
    )
    session.add(record)
    try:
        session.commit()
    except IntegrityError:
        # lost the create race: someone else committed the same content first
        session.rollback()
        schedule_release(blob_store, [blob.blob_id])
        winner = session.exec(select(File).where(File.dedup_key == key)).first()
        if winner is None:
            logger.error("Integrity error creating file for %s without a conflicting record", key)
            raise UpstreamFailure("Failed to save file metadata")
        logger.info("[DUPLICATE] create race on %s resolved to file %s", digest, winner.id)
        return IngestOutcome(Outcome.duplicate, winner, winner.current_version)
    except SQLAlchemyError as e:
        session.rollback()
        schedule_release(blob_store, [blob.blob_id])
        logger.error("Failed to save new file metadata: %s", e)
        raise UpstreamFailure("Failed to save file metadata") from e

    session.refresh(record)
    logger.info("Created file %s (%s, %s bytes) for user %s", record.id, mime_type, size, owner_id)
    return IngestOutcome(Outcome.created, record, 1)


async def _add_version(
    session: Session,
    blob_store: BlobStore,
    data: bytes,
    filename: str,
    mime_type: str,
    owner_id: int,
    file_id: str,
) -> IngestOutcome:
    record = get_file(session, file_id)
    ensure_owner(record.owner_id, owner_id)

    digest = content_digest(data)
    size = len(data)
    category = resolve_media_category(mime_type)
    # no dedup here: a new version is an explicit action on an existing file
    blob = await blob_store.upload(data, filename, category)

    attempts = settings.version_retry_attempts
    for attempt in range(1, attempts + 1):
        expected = record.latest_version
        new_number = expected + 1
        try:
            _append_version(session, record.id, expected, new_number, owner_id, digest, size, mime_type, category, blob)
        except (_StaleVersion, IntegrityError):
            session.rollback()
            logger.info("Version race on file %s (attempt %s/%s), retrying", file_id, attempt, attempts)
            record = session.get(File, file_id)
            if record is None:
                schedule_release(blob_store, [blob.blob_id])
                raise NotFound("File not found")
            continue
        except SQLAlchemyError as e:
            session.rollback()
            schedule_release(blob_store, [blob.blob_id])
            logger.error("Failed to save version for file %s: %s", file_id, e)
            raise UpstreamFailure("Failed to save file version") from e

        session.refresh(record)
        logger.info("Added version %s to file %s", new_number, file_id)
        return IngestOutcome(Outcome.version_added, record, new_number)

    schedule_release(blob_store, [blob.blob_id])
    raise ConcurrentUpdate()


def _append_version(session, file_id, expected, new_number, uploaded_by, digest, size, mime_type, category, blob: BlobRef) -> None:
    # uploads are owner-only, so the uploader scopes the key
    claim = _claimable_key(session, file_id, _scoped_key(digest, size, mime_type, uploaded_by))
    result = session.execute(
        update(File)
        .where(File.id == file_id, File.latest_version == expected)
        .values(
            latest_version=new_number,
            current_version=new_number,
            content_hash=digest,
            size=size,
            mime_type=mime_type,
            media_category=category,
            blob_id=blob.blob_id,
            blob_url=blob.url,
            dedup_key=claim,
            updated_at=utcnow(),
        )
    )
    if result.rowcount != 1:
        raise _StaleVersion()
    session.add(
        FileVersion(
            file_id=file_id,
            version_number=new_number,
            uploaded_by=uploaded_by,
            content_hash=digest,
            blob_id=blob.blob_id,
            blob_url=blob.url,
            size=size,
            mime_type=mime_type,
            media_category=category,
        )
    )
    session.commit()


def restore_version(session: Session, file_id: str, version_number: int, requester_id: int) -> File:
    """Make an existing version current again. The history is left untouched."""
    record = get_file(session, file_id)
    ensure_owner(record.owner_id, requester_id)
    version = record.version(version_number)
    if version is None:
        raise VersionNotFound(f"Version {version_number} not found")

    mirrored = dict(
        current_version=version.version_number,
        content_hash=version.content_hash,
        size=version.size,
        mime_type=version.mime_type,
        media_category=version.media_category,
        blob_id=version.blob_id,
        blob_url=version.blob_url,
    )
    key = _scoped_key(version.content_hash, version.size, version.mime_type, record.owner_id)
    claim = _claimable_key(session, file_id, key)
    try:
        _mirror(session, file_id, mirrored, claim)
    except IntegrityError:
        # another file claimed the content in the meantime
        _mirror(session, file_id, mirrored, None)
    session.refresh(record)
    logger.info("Restored file %s to version %s", file_id, version_number)
    return record


def _mirror(session: Session, file_id: str, mirrored: dict, claim: Optional[str]) -> None:
    # single statement: the mirrored columns always move together
    try:
        session.execute(update(File).where(File.id == file_id).values(**mirrored, dedup_key=claim, updated_at=utcnow()))
        session.commit()
    except IntegrityError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        raise UpstreamFailure("Failed to restore version") from e


def revert_to_previous(session: Session, file_id: str, requester_id: int) -> File:
    record = get_file(session, file_id)
    ensure_owner(record.owner_id, requester_id)
    older = [v.version_number for v in record.versions if v.version_number < record.current_version]
    if not older:
        raise VersionNotFound("No previous version to revert to")
    return restore_version(session, file_id, max(older), requester_id)


def read_file(session: Session, file_id: str, requester_id: Optional[int] = None, password: Optional[str] = None) -> Tuple[File, Allow]:
    record = get_file(session, file_id)
    decision = require_access(record, requester_id, password)
    return record, decision


def record_download(session: Session, file_id: str) -> bool:
    """Atomically bump the download counter. Failures are logged, not raised."""
    try:
        session.execute(
            update(File).where(File.id == file_id).values(download_count=File.download_count + 1)
        )
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.warning("Failed to count download for file %s: %s", file_id, e)
        return False
    return True


def download(session: Session, file_id: str, requester_id: Optional[int] = None, password: Optional[str] = None) -> Tuple[str, str]:
    """Returns (download_url, file_name) after the access check passes."""
    record = get_file(session, file_id)
    require_access(record, requester_id, password)
    download_url, file_name = record.blob_url, record.title
    record_download(session, file_id)
    return download_url, file_name


def update_metadata(session: Session, file_id: str, requester_id: int, changes: dict) -> File:
    record = get_file(session, file_id)
    ensure_owner(record.owner_id, requester_id)

    if changes.get("title") is not None:
        record.title = _resolve_title(changes["title"], "")
    if changes.get("description") is not None:
        record.description = changes["description"].strip()
    if "group_id" in changes:
        record.group_id = changes["group_id"]
    if "folder_id" in changes:
        check_folder(session, changes["folder_id"], requester_id)
        record.folder_id = changes["folder_id"]

    visibility = changes.get("visibility") or record.visibility
    password = changes.get("password")
    if visibility == Visibility.password:
        if password:
            record.password_hash = get_password_hash(password)
        elif not record.password_hash:
            raise ValidationError("A password is required for password-protected files")
    else:
        record.password_hash = None
    record.visibility = visibility

    record.updated_at = utcnow()
    session.add(record)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise UpstreamFailure("Failed to update file") from e
    session.refresh(record)
    return record


async def delete_file(session: Session, blob_store: BlobStore, file_id: str, requester_id: int) -> None:
    """Delete the record with its history, then every blob it referenced."""
    record = get_file(session, file_id)
    ensure_owner(record.owner_id, requester_id)

    blob_ids = [v.blob_id for v in record.versions] + [record.blob_id]
    session.delete(record)
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        raise UpstreamFailure("Failed to delete file") from e

    failed = await release_blobs(blob_store, blob_ids)
    if failed:
        logger.error("File %s deleted, %s blob(s) could not be released", file_id, failed)
    else:
        logger.info("File %s deleted with %s blob(s)", file_id, len(set(blob_ids)))


def list_owned_files(
    session: Session,
    owner_id: int,
    limit: int = 50,
    offset: int = 0,
    folder_id: Optional[int] = None,
    search: Optional[str] = None,
    include_public: bool = False,
) -> Tuple[List[File], int]:
    """The caller's files; with ``include_public`` also everyone's public files."""
    if include_public:
        conditions = [or_(File.owner_id == owner_id, File.visibility == Visibility.public)]
    else:
        conditions = [File.owner_id == owner_id]
    if folder_id is not None:
        conditions.append(File.folder_id == folder_id)
    if search:
        conditions.append(File.title.ilike(f"%{search.strip()}%"))
    return _page(session, conditions, limit, offset)


def list_public_files(session: Session, limit: int = 50, offset: int = 0, search: Optional[str] = None) -> Tuple[List[File], int]:
    conditions = [File.visibility == Visibility.public]
    if search:
        conditions.append(File.title.ilike(f"%{search.strip()}%"))
    return _page(session, conditions, limit, offset)


def _page(session: Session, conditions: list, limit: int, offset: int) -> Tuple[List[File], int]:
    total = session.exec(select(func.count()).select_from(File).where(*conditions)).one()
    stmt = select(File).where(*conditions).order_by(File.created_at.desc()).limit(limit).offset(offset)
    return list(session.exec(stmt).all()), total


def file_analytics(session: Session, owner_id: int, top: int = 10) -> dict:
    files = session.exec(select(File).where(File.owner_id == owner_id)).all()
    top_files = sorted(files, key=lambda f: f.download_count, reverse=True)[:top]
    return {
        "total_files": len(files),
        "total_downloads": sum(f.download_count for f in files),
        "storage_used": sum(f.size for f in files),
        "top_files": top_files,
    }
