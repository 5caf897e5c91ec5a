import uuid
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from app.core import get_db
from app.models import Chat, Message, MessageRole, User, DEFAULT_CHAT_TITLE
from app.schemas import ChatCreate, ChatUpdate, ChatResponse, MessageCreate, MessageResponse
from app.api.v1.auth import get_current_user
from app.api.v1.projects import verify_project_access
from app.services.access import get_owned_chat, owned_messages

router = APIRouter()


async def verify_chat_access(chat_id: uuid.UUID, current_user: User, db: AsyncSession) -> Chat:
    chat = await get_owned_chat(db, chat_id, current_user.id)
    if not chat:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return chat


@router.post("/projects/{project_id}/chats", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
async def create_chat(
    project_id: uuid.UUID,
    chat_data: ChatCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    project = await verify_project_access(project_id, current_user, db)

    chat = Chat(project_id=project.id, title=chat_data.title or DEFAULT_CHAT_TITLE)
    db.add(chat)
    await db.commit()
    await db.refresh(chat)
    return chat


@router.get("/projects/{project_id}/chats", response_model=list[ChatResponse])
async def list_chats(
    project_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(default=50, le=100),
    offset: int = Query(default=0, ge=0)
):
    project = await verify_project_access(project_id, current_user, db)
    result = await db.execute(
        select(Chat)
        .where(Chat.project_id == project.id)
        .order_by(Chat.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/chats/{chat_id}", response_model=ChatResponse)
async def get_chat(
    chat_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    return await verify_chat_access(chat_id, current_user, db)


@router.patch("/chats/{chat_id}", response_model=ChatResponse)
async def rename_chat(
    chat_id: uuid.UUID,
    chat_data: ChatUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    chat = await verify_chat_access(chat_id, current_user, db)
    chat.title = chat_data.title
    await db.commit()
    await db.refresh(chat)
    return chat


@router.delete("/chats/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(
    chat_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    chat = await verify_chat_access(chat_id, current_user, db)
    await db.delete(chat)
    await db.commit()


@router.get("/chats/{chat_id}/messages", response_model=list[MessageResponse])
async def list_messages(
    chat_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(default=200, le=500),
    offset: int = Query(default=0, ge=0)
):
    chat = await verify_chat_access(chat_id, current_user, db)
    result = await db.execute(
        owned_messages(current_user.id)
        .where(Message.chat_id == chat.id)
        .order_by(Message.created_at.asc())
        .offset(offset)
        .limit(limit)
    )
    return result.scalars().all()


@router.post("/chats/{chat_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def append_message(
    chat_id: uuid.UUID,
    message_data: MessageCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Append a user turn. Assistant turns are written only by the completion relay."""
    chat = await verify_chat_access(chat_id, current_user, db)

    message = Message(chat_id=chat.id, role=MessageRole.USER.value, content=message_data.content)
    db.add(message)
    await db.commit()
    await db.refresh(message)
    return message
