# Filename: sharebox/cleanup.py
import asyncio
import logging
from typing import Iterable, Set

from .config import settings
from .errors import UpstreamFailure
from .storage import BlobStore

logger = logging.getLogger(__name__)

_pending: Set[asyncio.Task] = set()


async def _retry_blob_delete(blob_store: BlobStore, blob_id: str) -> bool:
    """Retry wrapper for blob deletion."""
    attempts = settings.cleanup_retry_attempts
    for attempt in range(1, attempts + 1):
        try:
            await blob_store.delete(blob_id)
            return True
        except UpstreamFailure as e:
            logger.warning("Blob delete failed (attempt %s/%s) blob=%s err=%s", attempt, attempts, blob_id, e)
            if attempt < attempts:
                await asyncio.sleep(settings.cleanup_retry_backoff * attempt)
    return False


async def release_blobs(blob_store: BlobStore, blob_ids: Iterable[str]) -> int:
    """Delete blobs best-effort. Returns how many could not be deleted."""
    failed = 0
    for blob_id in dict.fromkeys(blob_ids):
        if not await _retry_blob_delete(blob_store, blob_id):
            failed += 1
            logger.error("Failed to release blob after retries: %s", blob_id)
    return failed


def schedule_release(blob_store: BlobStore, blob_ids: Iterable[str]) -> asyncio.Task:
    """Release orphaned blobs in the background without blocking the caller."""
    task = asyncio.create_task(release_blobs(blob_store, list(blob_ids)))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task


async def wait_for_pending() -> None:
    if _pending:
        await asyncio.gather(*list(_pending), return_exceptions=True)
