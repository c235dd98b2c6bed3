"""
Tests for the dedup & version engine: new files, duplicates, version appends
and their failure / race handling.
"""

import asyncio

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from sharebox import services
from sharebox.cleanup import wait_for_pending
from sharebox.config import settings
from sharebox.errors import ConcurrentUpdate, Forbidden, NotFound, UploadTooLarge, UpstreamFailure, ValidationError
from sharebox.models import File, FileVersion, MediaCategory, Visibility
from sharebox.services import FileMetadata, Outcome
from sharebox.storage import BlobStore

from conftest import stored_blobs


class FailingBlobStore(BlobStore):
    async def upload(self, data, filename, category):
        raise UpstreamFailure("blob store down")


def count_files(session: Session) -> int:
    session.expire_all()
    return len(session.exec(select(File)).all())


@pytest.mark.asyncio
async def test_new_upload_creates_record_with_first_version(session, blob_store, blob_root, alice):
    outcome = await services.ingest(
        session, blob_store, b"%PDF-1.4 report", "report.pdf", "application/pdf", alice.id,
        FileMetadata(description="Q3 numbers"),
    )

    assert outcome.kind == Outcome.created
    record = outcome.record
    assert record.title == "report.pdf"
    assert record.owner_id == alice.id
    assert record.current_version == 1
    assert record.media_category == MediaCategory.document
    assert [v.version_number for v in record.versions] == [1]
    assert record.versions[0].blob_id == record.blob_id
    assert record.blob_url == f"http://testserver/blobs/{record.blob_id}"
    assert (blob_root / record.blob_id).read_bytes() == b"%PDF-1.4 report"


@pytest.mark.asyncio
async def test_identical_content_is_deduplicated(session, blob_store, blob_root, alice, bob):
    first = await services.ingest(session, blob_store, b"same bytes", "a.txt", "text/plain", alice.id)
    second = await services.ingest(session, blob_store, b"same bytes", "b.txt", "text/plain", bob.id)

    assert second.kind == Outcome.duplicate
    assert second.record.id == first.record.id
    assert second.record.owner_id == alice.id
    assert count_files(session) == 1
    assert len(stored_blobs(blob_root)) == 1


@pytest.mark.asyncio
async def test_different_content_creates_two_records(session, blob_store, alice):
    first = await services.ingest(session, blob_store, b"one", "a.txt", "text/plain", alice.id)
    second = await services.ingest(session, blob_store, b"two", "a.txt", "text/plain", alice.id)

    assert first.kind == second.kind == Outcome.created
    assert first.record.id != second.record.id
    assert count_files(session) == 2


@pytest.mark.asyncio
async def test_same_bytes_with_other_type_is_not_a_duplicate(session, blob_store, alice):
    await services.ingest(session, blob_store, b"bytes", "a.txt", "text/plain", alice.id)
    other = await services.ingest(session, blob_store, b"bytes", "a.bin", "application/octet-stream", alice.id)

    assert other.kind == Outcome.created
    assert count_files(session) == 2


@pytest.mark.asyncio
async def test_owner_scoped_dedup(session, blob_store, alice, bob, monkeypatch):
    monkeypatch.setattr(settings, "dedup_scope", "owner")

    first = await services.ingest(session, blob_store, b"shared", "a.txt", "text/plain", alice.id)
    theirs = await services.ingest(session, blob_store, b"shared", "a.txt", "text/plain", bob.id)
    again = await services.ingest(session, blob_store, b"shared", "a.txt", "text/plain", alice.id)

    assert theirs.kind == Outcome.created
    assert theirs.record.owner_id == bob.id
    assert again.kind == Outcome.duplicate
    assert again.record.id == first.record.id


@pytest.mark.asyncio
async def test_new_version_becomes_current(session, blob_store, blob_root, alice):
    created = await services.ingest(session, blob_store, b"version one", "notes.txt", "text/plain", alice.id)
    file_id = created.record.id
    first_blob = created.record.blob_id

    outcome = await services.ingest(
        session, blob_store, b"version two!", "notes.txt", "text/plain", alice.id, target_file_id=file_id
    )

    assert outcome.kind == Outcome.version_added
    assert outcome.version_number == 2
    record = outcome.record
    assert record.current_version == 2
    assert len(record.versions) == 2
    assert record.blob_id != first_blob
    assert record.size == len(b"version two!")
    assert (blob_root / record.blob_id).read_bytes() == b"version two!"
    # the first upload is kept untouched
    assert record.version(1).blob_id == first_blob


@pytest.mark.asyncio
async def test_version_upload_skips_dedup(session, blob_store, blob_root, alice):
    other = await services.ingest(session, blob_store, b"already known", "x.txt", "text/plain", alice.id)
    target = await services.ingest(session, blob_store, b"original", "y.txt", "text/plain", alice.id)

    outcome = await services.ingest(
        session, blob_store, b"already known", "y.txt", "text/plain", alice.id, target_file_id=target.record.id
    )

    assert outcome.kind == Outcome.version_added
    assert outcome.record.id == target.record.id
    assert outcome.record.blob_id != other.record.blob_id
    assert len(stored_blobs(blob_root)) == 3


@pytest.mark.asyncio
async def test_only_owner_can_add_a_version(session, blob_store, blob_root, alice, bob):
    created = await services.ingest(session, blob_store, b"mine", "a.txt", "text/plain", alice.id)

    with pytest.raises(Forbidden):
        await services.ingest(session, blob_store, b"theirs", "a.txt", "text/plain", bob.id, target_file_id=created.record.id)

    assert len(stored_blobs(blob_root)) == 1


@pytest.mark.asyncio
async def test_version_of_missing_file(session, blob_store, alice):
    with pytest.raises(NotFound):
        await services.ingest(session, blob_store, b"data", "a.txt", "text/plain", alice.id, target_file_id="missing")


@pytest.mark.asyncio
async def test_validation_happens_before_storage(session, blob_store, blob_root, alice):
    with pytest.raises(ValidationError):
        await services.ingest(
            session, blob_store, b"data", "a.txt", "text/plain", alice.id,
            FileMetadata(visibility=Visibility.password),
        )
    with pytest.raises(ValidationError):
        await services.ingest(session, blob_store, b"data", "a.txt", "text/plain", alice.id, FileMetadata(title="t" * 101))
    with pytest.raises(ValidationError):
        await services.ingest(session, blob_store, b"", "a.txt", "text/plain", alice.id)

    assert stored_blobs(blob_root) == []
    assert count_files(session) == 0


@pytest.mark.asyncio
async def test_upload_too_large(session, blob_store, alice, monkeypatch):
    monkeypatch.setattr(settings, "max_upload_size_mb", 0)
    with pytest.raises(UploadTooLarge):
        await services.ingest(session, blob_store, b"x", "a.txt", "text/plain", alice.id)


@pytest.mark.asyncio
async def test_blob_failure_leaves_no_record(session, blob_root, alice):
    store = FailingBlobStore(blob_root, "http://testserver/blobs")

    with pytest.raises(UpstreamFailure):
        await services.ingest(session, store, b"data", "a.txt", "text/plain", alice.id)

    assert count_files(session) == 0


@pytest.mark.asyncio
async def test_blob_failure_leaves_version_history_untouched(session, blob_store, blob_root, alice):
    created = await services.ingest(session, blob_store, b"v1", "a.txt", "text/plain", alice.id)
    store = FailingBlobStore(blob_root, "http://testserver/blobs")

    with pytest.raises(UpstreamFailure):
        await services.ingest(session, store, b"v2", "a.txt", "text/plain", alice.id, target_file_id=created.record.id)

    session.expire_all()
    record = session.get(File, created.record.id)
    assert record.current_version == 1
    assert len(record.versions) == 1


@pytest.mark.asyncio
async def test_metadata_failure_releases_orphan_blob(session, blob_store, blob_root, alice, monkeypatch):
    def broken_commit():
        raise OperationalError("INSERT INTO file", {}, Exception("database is gone"))

    monkeypatch.setattr(session, "commit", broken_commit)

    with pytest.raises(UpstreamFailure):
        await services.ingest(session, blob_store, b"data", "a.txt", "text/plain", alice.id)

    await wait_for_pending()
    assert stored_blobs(blob_root) == []
    monkeypatch.undo()
    assert count_files(session) == 0


@pytest.mark.asyncio
async def test_concurrent_ingest_of_same_content_yields_one_record(engine, blob_store, blob_root, alice, bob):
    with Session(engine) as s1, Session(engine) as s2:
        first, second = await asyncio.gather(
            services.ingest(s1, blob_store, b"race content", "a.txt", "text/plain", alice.id),
            services.ingest(s2, blob_store, b"race content", "b.txt", "text/plain", bob.id),
        )
        assert sorted([first.kind, second.kind]) == [Outcome.created, Outcome.duplicate]
        assert first.record.id == second.record.id

    await wait_for_pending()
    with Session(engine) as session:
        assert count_files(session) == 1
    assert len(stored_blobs(blob_root)) == 1


@pytest.mark.asyncio
async def test_concurrent_version_appends_get_distinct_numbers(engine, session, blob_store, alice):
    created = await services.ingest(session, blob_store, b"base", "a.txt", "text/plain", alice.id)
    file_id = created.record.id

    with Session(engine) as s1, Session(engine) as s2:
        a, b = await asyncio.gather(
            services.ingest(s1, blob_store, b"edit from tab one", "a.txt", "text/plain", alice.id, target_file_id=file_id),
            services.ingest(s2, blob_store, b"edit from tab two", "a.txt", "text/plain", alice.id, target_file_id=file_id),
        )
        assert sorted([a.version_number, b.version_number]) == [2, 3]

    session.expire_all()
    record = session.get(File, file_id)
    assert record.current_version == 3
    assert record.latest_version == 3
    assert [v.version_number for v in record.versions] == [1, 2, 3]
    assert record.blob_id == record.version(3).blob_id
    assert len(session.exec(select(FileVersion).where(FileVersion.file_id == file_id)).all()) == 3


@pytest.mark.asyncio
async def test_replaced_content_is_stored_again_on_reupload(session, blob_store, blob_root, alice, bob):
    original = await services.ingest(session, blob_store, b"content X", "a.txt", "text/plain", alice.id)
    await services.ingest(
        session, blob_store, b"content Y!", "a.txt", "text/plain", alice.id, target_file_id=original.record.id
    )

    again = await services.ingest(session, blob_store, b"content X", "x.txt", "text/plain", bob.id)

    assert again.kind == Outcome.created
    assert again.record.id != original.record.id
    assert (blob_root / again.record.blob_id).read_bytes() == b"content X"

    # the first file now claims its current content instead
    latest = await services.ingest(session, blob_store, b"content Y!", "y.txt", "text/plain", bob.id)
    assert latest.kind == Outcome.duplicate
    assert latest.record.id == original.record.id


@pytest.mark.asyncio
async def test_version_of_content_claimed_elsewhere_leaves_claim_with_first_file(session, blob_store, alice):
    claimed = await services.ingest(session, blob_store, b"popular", "p.txt", "text/plain", alice.id)
    other = await services.ingest(session, blob_store, b"unrelated", "u.txt", "text/plain", alice.id)

    outcome = await services.ingest(
        session, blob_store, b"popular", "u.txt", "text/plain", alice.id, target_file_id=other.record.id
    )

    assert outcome.record.dedup_key is None
    session.expire_all()
    assert session.get(File, claimed.record.id).dedup_key is not None


@pytest.mark.asyncio
async def test_version_retries_exhausted(session, blob_store, blob_root, alice, monkeypatch):
    created = await services.ingest(session, blob_store, b"v1", "a.txt", "text/plain", alice.id)

    def always_stale(*args, **kwargs):
        raise services._StaleVersion()

    monkeypatch.setattr(settings, "version_retry_attempts", 2)
    monkeypatch.setattr(services, "_append_version", always_stale)

    with pytest.raises(ConcurrentUpdate):
        await services.ingest(session, blob_store, b"v2", "a.txt", "text/plain", alice.id, target_file_id=created.record.id)

    await wait_for_pending()
    assert stored_blobs(blob_root) == [blob_root / created.record.blob_id]
    session.expire_all()
    record = session.get(File, created.record.id)
    assert record.current_version == 1
    assert len(record.versions) == 1


@pytest.mark.asyncio
async def test_version_metadata_failure_releases_orphan_blob(session, blob_store, blob_root, alice, monkeypatch):
    created = await services.ingest(session, blob_store, b"v1", "a.txt", "text/plain", alice.id)

    def broken_commit():
        raise OperationalError("UPDATE file", {}, Exception("database is gone"))

    monkeypatch.setattr(session, "commit", broken_commit)

    with pytest.raises(UpstreamFailure):
        await services.ingest(session, blob_store, b"v2", "a.txt", "text/plain", alice.id, target_file_id=created.record.id)

    await wait_for_pending()
    monkeypatch.undo()
    assert stored_blobs(blob_root) == [blob_root / created.record.blob_id]
    session.expire_all()
    record = session.get(File, created.record.id)
    assert record.current_version == 1
    assert [v.version_number for v in record.versions] == [1]
