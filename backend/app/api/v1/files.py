import logging
import uuid
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.responses import FileResponse as FileDownload
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.core import get_db
from app.models import File, User
from app.schemas import FileResponse
from app.api.v1.auth import get_current_user
from app.api.v1.projects import verify_project_access
from app.services.access import get_owned_file
from app.services.storage import StorageService, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()


async def verify_file_access(file_id: uuid.UUID, current_user: User, db: AsyncSession) -> File:
    record = await get_owned_file(db, file_id, current_user.id)
    if not record:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return record


@router.get("/projects/{project_id}/files", response_model=list[FileResponse])
async def list_files(
    project_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(default=50, le=100),
    offset: int = Query(default=0, ge=0)
):
    project = await verify_project_access(project_id, current_user, db)
    result = await db.execute(
        select(File)
        .where(File.project_id == project.id)
        .order_by(File.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/files/{file_id}/download")
async def download_file(
    file_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[StorageService, Depends(get_storage)],
):
    record = await verify_file_access(file_id, current_user, db)

    try:
        object_path = await storage.get_object_path(record.storage_path)
    except (FileNotFoundError, ValueError) as e:
        # Metadata row without a backing object.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return FileDownload(path=object_path, media_type=record.type, filename=record.name)


@router.delete("/files/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_file(
    file_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[StorageService, Depends(get_storage)],
):
    """Remove the bucket object first, then the metadata row."""
    record = await verify_file_access(file_id, current_user, db)

    if not storage.is_owned_by(record.storage_path, current_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="No access to this object")

    try:
        await storage.remove([record.storage_path])
    except (OSError, ValueError):
        logger.exception("Failed to delete object %s", record.storage_path)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete file")

    await db.delete(record)
    await db.commit()
