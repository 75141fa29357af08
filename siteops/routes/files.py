import hashlib
import os
import uuid
from datetime import datetime
from mimetypes import guess_type
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse as FileDownload, Response
from slugify import slugify
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import FileObject, Project
from ..schemas.files import FileResponse
from ..storage.blob_provider import BlobStorageProvider
from ..storage.local_provider import LocalStorageProvider
from ..storage.provider import StorageProvider


router = APIRouter(prefix="/files", tags=["files"])
logger = structlog.get_logger(__name__)


def get_storage() -> StorageProvider:
    """
    Storage provider for new uploads.
    Azure Blob when configured, local filesystem otherwise.
    """
    if settings.azure_blob_connection and settings.azure_blob_container:
        return BlobStorageProvider()
    return LocalStorageProvider()


def storage_for_file(fo: FileObject, default: StorageProvider) -> StorageProvider:
    """Provider holding an existing file; files keep the provider they were written with."""
    if fo.provider == default.name:
        return default
    if fo.provider == "blob" and settings.azure_blob_connection and settings.azure_blob_container:
        return BlobStorageProvider()
    if fo.provider == "local":
        return LocalStorageProvider()
    raise HTTPException(status_code=404, detail="File storage not available")


def canonical_key(
    project_code: Optional[str], slug: Optional[str], category: Optional[str], original_name: str
) -> str:
    now = datetime.utcnow()
    safe_name = slugify(os.path.splitext(original_name)[0]) or "file"
    ext = os.path.splitext(original_name)[1].lower()
    proj = slugify(project_code or "misc")
    folder = slugify(category or "files")
    slug_part = f"-{slugify(slug)}" if slug else ""
    return f"/org/{now.strftime('%Y')}/{proj}{slug_part}/{folder}/{now.strftime('%Y-%m-%d')}_{safe_name}{ext}"


def _parse_uuid(value: Optional[str], field: str) -> Optional[uuid.UUID]:
    if not value:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {field} format")


def _get_file(db: Session, file_id: uuid.UUID) -> FileObject:
    fo = db.query(FileObject).filter(FileObject.id == file_id).first()
    if not fo:
        raise HTTPException(status_code=404, detail="File not found")
    return fo


@router.post("/upload", response_model=FileResponse, status_code=201)
async def upload(
    file: UploadFile = File(...),
    project_id: Optional[str] = Form(None),
    task_id: Optional[str] = Form(None),
    issue_id: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    content = await file.read()
    content_type = (file.content_type or guess_type(file.filename or "")[0] or "application/octet-stream").lower()

    if not content:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(content) > settings.upload_max_bytes:
        raise HTTPException(status_code=413, detail="File too large")
    if content_type not in settings.upload_allowed_types:
        raise HTTPException(status_code=415, detail=f"Unsupported content type: {content_type}")

    project_uuid = _parse_uuid(project_id, "project_id")
    project_code = None
    if project_uuid:
        project = db.query(Project).filter(Project.id == project_uuid).first()
        if project:
            project_code = project.code or str(project.id)

    original_name = file.filename or "upload"
    key = canonical_key(
        project_code=project_code,
        slug=uuid.uuid4().hex[:8],
        category=category or "files",
        original_name=original_name,
    )

    try:
        storage.save(key, content, content_type)
    except Exception as e:
        logger.error("file_upload_failed", key=key, error=str(e))
        raise HTTPException(status_code=502, detail=f"Failed to store file: {e}")

    fo = FileObject(
        provider=storage.name,
        container=storage.container,
        key=key,
        original_name=original_name,
        size_bytes=len(content),
        content_type=content_type,
        checksum_sha256=hashlib.sha256(content).hexdigest(),
        project_id=project_uuid,
        task_id=_parse_uuid(task_id, "task_id"),
        issue_id=_parse_uuid(issue_id, "issue_id"),
        category=category,
    )
    db.add(fo)
    db.commit()
    db.refresh(fo)
    logger.info("file_uploaded", file_id=str(fo.id), key=key, size_bytes=fo.size_bytes)
    return fo


@router.get("/{file_id}", response_model=FileResponse)
def get_file(file_id: uuid.UUID, db: Session = Depends(get_db)):
    return _get_file(db, file_id)


@router.get("/{file_id}/download")
def download(
    file_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    fo = _get_file(db, file_id)
    provider = storage_for_file(fo, storage)
    media_type = fo.content_type or guess_type(fo.key)[0] or "application/octet-stream"

    if isinstance(provider, LocalStorageProvider):
        path = provider._get_path(fo.key)
        if not path.exists():
            raise HTTPException(status_code=404, detail="File not found")
        return FileDownload(path=str(path), media_type=media_type, filename=fo.original_name or path.name)

    try:
        content = provider.read(fo.key)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")
    return Response(content=content, media_type=media_type)


@router.get("/local/{file_path:path}")
def serve_local_file(file_path: str, storage: StorageProvider = Depends(get_storage)):
    """Serve files from local storage for development."""
    local_storage = storage if isinstance(storage, LocalStorageProvider) else LocalStorageProvider()
    path = local_storage._get_path(file_path)

    if not str(path.resolve()).startswith(str(local_storage.base_dir.resolve())):
        raise HTTPException(status_code=403, detail="Access denied")
    if not path.exists():
        raise HTTPException(status_code=404, detail="File not found")

    media_type = guess_type(str(path))[0] or "application/octet-stream"
    return FileDownload(path=str(path), media_type=media_type, filename=path.name)


@router.delete("/{file_id}", status_code=204)
def delete_file(
    file_id: uuid.UUID,
    db: Session = Depends(get_db),
    storage: StorageProvider = Depends(get_storage),
):
    fo = _get_file(db, file_id)
    storage_for_file(fo, storage).delete(fo.key)
    db.delete(fo)
    db.commit()
    return Response(status_code=204)
