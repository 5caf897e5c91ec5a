"""Owner-scoped lookups.

Every lookup joins up to ``projects.user_id``; a row that belongs to another
identity is indistinguishable from a missing one.
"""
import uuid
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from app.models import Project, Chat, Message, File


def owned_projects(user_id: uuid.UUID) -> Select:
    return select(Project).where(Project.user_id == user_id)


def owned_chats(user_id: uuid.UUID) -> Select:
    return (
        select(Chat)
        .join(Project, Project.id == Chat.project_id)
        .where(Project.user_id == user_id)
    )


def owned_messages(user_id: uuid.UUID) -> Select:
    return (
        select(Message)
        .join(Chat, Chat.id == Message.chat_id)
        .join(Project, Project.id == Chat.project_id)
        .where(Project.user_id == user_id)
    )


def owned_files(user_id: uuid.UUID) -> Select:
    return (
        select(File)
        .join(Project, Project.id == File.project_id)
        .where(Project.user_id == user_id)
    )


async def get_owned_project(db: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID) -> Project | None:
    result = await db.execute(owned_projects(user_id).where(Project.id == project_id))
    return result.scalar_one_or_none()


async def get_owned_chat(
    db: AsyncSession,
    chat_id: uuid.UUID,
    user_id: uuid.UUID,
    project_id: uuid.UUID | None = None,
) -> Chat | None:
    query = owned_chats(user_id).where(Chat.id == chat_id)
    if project_id is not None:
        query = query.where(Chat.project_id == project_id)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_owned_file(db: AsyncSession, file_id: uuid.UUID, user_id: uuid.UUID) -> File | None:
    result = await db.execute(owned_files(user_id).where(File.id == file_id))
    return result.scalar_one_or_none()
