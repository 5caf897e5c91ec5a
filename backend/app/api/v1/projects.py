import logging
import uuid
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from app.core import get_db, get_settings
from app.models import Project, Chat, File, User
from app.schemas import ProjectCreate, ProjectUpdate, ProjectResponse
from app.api.v1.auth import get_current_user
from app.services.access import get_owned_project, owned_projects
from app.services.storage import StorageService, get_storage

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


def _to_response(project: Project, chat_count: int) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        user_id=project.user_id,
        name=project.name,
        description=project.description,
        system_prompt=project.system_prompt,
        created_at=project.created_at,
        updated_at=project.updated_at,
        chat_count=chat_count,
    )


async def _count_chats(db: AsyncSession, project_id: uuid.UUID) -> int:
    count = await db.scalar(select(func.count(Chat.id)).where(Chat.project_id == project_id))
    return count or 0


async def verify_project_access(
    project_id: uuid.UUID,
    current_user: User,
    db: AsyncSession,
) -> Project:
    """Return the project if the current user owns it, else 404."""
    project = await get_owned_project(db, project_id, current_user.id)
    if not project:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    project = Project(
        user_id=current_user.id,
        name=project_data.name,
        description=project_data.description,
        system_prompt=project_data.system_prompt or settings.default_system_prompt,
    )
    db.add(project)
    await db.commit()
    await db.refresh(project)

    return _to_response(project, 0)


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(default=50, le=100),
    offset: int = Query(default=0, ge=0)
):
    subq_chats = (
        select(Chat.project_id, func.count(Chat.id).label("chat_count"))
        .group_by(Chat.project_id)
        .subquery()
    )

    query = (
        owned_projects(current_user.id)
        .add_columns(func.coalesce(subq_chats.c.chat_count, 0).label("chat_count"))
        .outerjoin(subq_chats, subq_chats.c.project_id == Project.id)
        .order_by(Project.updated_at.desc())
        .offset(offset)
        .limit(limit)
    )

    result = await db.execute(query)
    return [_to_response(row.Project, row.chat_count) for row in result.all()]


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    project = await verify_project_access(project_id, current_user, db)
    return _to_response(project, await _count_chats(db, project.id))


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    project_id: uuid.UUID,
    project_data: ProjectUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    project = await verify_project_access(project_id, current_user, db)

    update_data = project_data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(project, field, value)

    await db.commit()
    await db.refresh(project)

    return _to_response(project, await _count_chats(db, project.id))


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[StorageService, Depends(get_storage)],
):
    project = await verify_project_access(project_id, current_user, db)

    result = await db.execute(select(File.storage_path).where(File.project_id == project.id))
    storage_paths = list(result.scalars().all())

    await db.delete(project)
    await db.commit()

    # Rows cascade in the database; bucket objects have to be removed here.
    try:
        await storage.remove(storage_paths)
    except (OSError, ValueError):
        logger.exception("Failed to remove objects of deleted project %s", project_id)
