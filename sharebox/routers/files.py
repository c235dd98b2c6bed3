# Filename: sharebox/routers/files.py
from fastapi import APIRouter, Depends, UploadFile, File, Form, Response, status, Query
from sqlmodel import Session, select
from typing import List, Optional, Union

from ..access import Allow, authorize
from ..auth import get_current_user, get_optional_user
from ..db import get_session
from ..models import Folder, User, Visibility
from ..schemas import (
    AnalyticsOut,
    DownloadOut,
    DuplicateRef,
    FileListing,
    FileOut,
    FileUpdate,
    FolderCreate,
    FolderOut,
    PasswordBody,
    RestoreRequest,
    UploadOut,
    VersionUploadOut,
)
from ..services import FileMetadata, Outcome
from ..storage import BlobStore, get_blob_store
from .. import services

router = APIRouter(prefix="/api", tags=["files"])


def render(record, decision: Allow) -> FileOut:
    out = FileOut.model_validate(record)
    return FileOut.model_validate(out.model_dump(include=set(decision.fields)))


def _user_id(user: Optional[User]) -> Optional[int]:
    return user.id if user is not None else None


# --- Upload: new file, duplicate, or new version of file_id ---
@router.post(
    "/files",
    response_model=Union[UploadOut, VersionUploadOut],
    status_code=status.HTTP_201_CREATED,
    responses={200: {"model": VersionUploadOut}},
)
async def upload_file(
    response: Response,
    upload: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: str = Form(""),
    group_id: Optional[str] = Form(None),
    folder_id: Optional[int] = Form(None),
    visibility: Visibility = Form(Visibility.private),
    password: Optional[str] = Form(None),
    file_id: Optional[str] = Form(None),
    session: Session = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    try:
        data = await upload.read()
    finally:
        await upload.close()

    outcome = await services.ingest(
        session,
        blob_store,
        data,
        filename=upload.filename or "",
        mime_type=upload.content_type,
        owner_id=current_user.id,
        metadata=FileMetadata(
            title=title,
            description=description,
            group_id=group_id,
            folder_id=folder_id,
            visibility=visibility,
            password=password,
        ),
        target_file_id=file_id or None,
    )
    record = outcome.record

    if outcome.kind == Outcome.version_added:
        response.status_code = status.HTTP_200_OK
        return VersionUploadOut(version_number=outcome.version_number, data=FileOut.model_validate(record))

    if outcome.kind == Outcome.duplicate:
        decision = authorize(record, current_user.id)
        return UploadOut(
            data=render(record, decision) if isinstance(decision, Allow) else None,
            is_duplicate=True,
            duplicate_of=DuplicateRef(id=record.id, owner_id=record.owner_id),
            message="File content already exists in the system. Using existing file.",
            link=f"/api/files/{record.id}",
        )

    return UploadOut(
        data=FileOut.model_validate(record),
        message="File uploaded and saved successfully!",
        link=f"/api/files/{record.id}",
    )


@router.get("/files", response_model=FileListing)
def list_files(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    folder_id: Optional[int] = None,
    search: Optional[str] = None,
    include_public: bool = False,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    files, total = services.list_owned_files(session, current_user.id, limit, offset, folder_id, search, include_public)
    return FileListing(files=[FileOut.model_validate(f) for f in files], total=total, limit=limit, offset=offset)


@router.get("/files/public", response_model=FileListing)
def list_public_files(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
    session: Session = Depends(get_session),
):
    files, total = services.list_public_files(session, limit, offset, search)
    return FileListing(files=[FileOut.model_validate(f) for f in files], total=total, limit=limit, offset=offset)


@router.get("/files/analytics", response_model=AnalyticsOut)
def get_analytics(response: Response, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    response.headers["Cache-Control"] = "no-store"
    return services.file_analytics(session, current_user.id)


@router.get("/files/{file_id}", response_model=FileOut)
def get_file(file_id: str, session: Session = Depends(get_session), current_user: Optional[User] = Depends(get_optional_user)):
    record, decision = services.read_file(session, file_id, _user_id(current_user))
    return render(record, decision)


@router.post("/files/{file_id}/access", response_model=FileOut)
def access_file(
    file_id: str,
    body: PasswordBody,
    session: Session = Depends(get_session),
    current_user: Optional[User] = Depends(get_optional_user),
):
    record, decision = services.read_file(session, file_id, _user_id(current_user), body.password)
    return render(record, decision)


@router.post("/files/{file_id}/download", response_model=DownloadOut)
def download_file(
    file_id: str,
    body: Optional[PasswordBody] = None,
    session: Session = Depends(get_session),
    current_user: Optional[User] = Depends(get_optional_user),
):
    password = body.password if body else None
    download_url, file_name = services.download(session, file_id, _user_id(current_user), password)
    return DownloadOut(download_url=download_url, file_name=file_name)


@router.put("/files/{file_id}", response_model=FileOut)
def update_file(
    file_id: str,
    data: FileUpdate,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    record = services.update_metadata(session, file_id, current_user.id, data.model_dump(exclude_unset=True))
    return FileOut.model_validate(record)


@router.post("/files/{file_id}/restore", response_model=FileOut)
def restore_file_version(
    file_id: str,
    data: RestoreRequest,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    record = services.restore_version(session, file_id, data.version_number, current_user.id)
    return FileOut.model_validate(record)


@router.post("/files/{file_id}/revert-previous", response_model=FileOut)
def revert_previous_version(file_id: str, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    record = services.revert_to_previous(session, file_id, current_user.id)
    return FileOut.model_validate(record)


@router.delete("/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: str,
    session: Session = Depends(get_session),
    blob_store: BlobStore = Depends(get_blob_store),
    current_user: User = Depends(get_current_user),
):
    await services.delete_file(session, blob_store, file_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/folders", response_model=FolderOut, status_code=status.HTTP_201_CREATED)
def create_folder(data: FolderCreate, session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    if data.parent_id:
        services.check_folder(session, data.parent_id, current_user.id)
    folder = Folder(owner_id=current_user.id, name=data.name, parent_id=data.parent_id)
    session.add(folder)
    session.commit()
    session.refresh(folder)
    return FolderOut.model_validate(folder)


@router.get("/folders", response_model=List[FolderOut])
def list_folders(session: Session = Depends(get_session), current_user: User = Depends(get_current_user)):
    stmt = select(Folder).where(Folder.owner_id == current_user.id).order_by(Folder.created_at.desc())
    results = session.exec(stmt).all()
    return [FolderOut.model_validate(f) for f in results]
