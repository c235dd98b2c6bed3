# Filename: sharebox/routers/root.py
from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse

from ..config import settings
from ..errors import NotFound
from ..storage import BlobStore, get_blob_store

router = APIRouter()


@router.get("/", tags=["root"])
def root():
    """
    Root endpoint with app version and health.
    """
    return {
        "app_name": settings.app_name,
        "app_version": settings.app_version,
        "status": "ok",
    }


@router.get("/blobs/{blob_id:path}", tags=["blobs"])
def get_blob(blob_id: str, blob_store: BlobStore = Depends(get_blob_store)):
    """
    Retrieval URL of the local blob store. Blob ids are unguessable; access
    control happens on the file record, not here.
    """
    path = blob_store.path_for(blob_id)
    if not path.is_file():
        raise NotFound("Blob not found")
    return FileResponse(path)
