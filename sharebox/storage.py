# Filename: sharebox/storage.py
from dataclasses import dataclass
from pathlib import Path
from uuid import uuid4
from .config import settings
from .errors import NotFound, UpstreamFailure
from .models import MediaCategory
import aiofiles
import aiofiles.os
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlobRef:
    blob_id: str
    url: str


def make_blob_name(original_filename: str) -> str:
    uid = uuid4().hex
    suffix = Path(original_filename or "").suffix
    sanitized = "".join(c for c in suffix if c.isalnum() or c == ".")
    return f"{uid}{sanitized}"


class BlobStore:
    """
    Local filesystem blob store. Blobs live under ``root/<category>/`` and are
    retrievable at ``base_url/<blob_id>``.
    """

    def __init__(self, root: Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def url_for(self, blob_id: str) -> str:
        return f"{self.base_url}/{blob_id}"

    def path_for(self, blob_id: str) -> Path:
        path = (self.root / blob_id).resolve()
        if self.root.resolve() not in path.parents:
            raise NotFound("Blob not found")
        return path

    async def upload(self, data: bytes, filename: str, category: MediaCategory) -> BlobRef:
        blob_id = f"{category.value}/{make_blob_name(filename)}"
        dest_path = self.root / blob_id
        try:
            await aiofiles.os.makedirs(dest_path.parent, exist_ok=True)
            async with aiofiles.open(dest_path, "wb") as out_file:
                await out_file.write(data)
        except OSError as e:
            logger.error("Blob upload failed for %s: %s", blob_id, e)
            raise UpstreamFailure("Failed to upload file to blob store") from e
        return BlobRef(blob_id=blob_id, url=self.url_for(blob_id))

    async def delete(self, blob_id: str) -> None:
        path = self.path_for(blob_id)
        try:
            if await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            raise UpstreamFailure(f"Failed to delete blob {blob_id}") from e


blob_store = BlobStore(settings.blob_root, settings.blob_base_url)


def get_blob_store() -> BlobStore:
    """Blob store dependency."""
    return blob_store
