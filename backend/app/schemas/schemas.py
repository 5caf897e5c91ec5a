import uuid
from datetime import datetime
from typing import Any, Literal
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserBase(BaseModel):
    email: EmailStr
    name: str | None = None


class UserCreate(UserBase):
    password: str = Field(min_length=6)


class UserResponse(UserBase):
    id: uuid.UUID
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ProfileUpdate(BaseModel):
    full_name: str | None = Field(default=None, max_length=255)
    avatar_url: str | None = None


class ProfileResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    email: str
    full_name: str | None
    avatar_url: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProjectBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class ProjectCreate(ProjectBase):
    system_prompt: str | None = None


class ProjectUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    system_prompt: str | None = None


class ProjectResponse(ProjectBase):
    id: uuid.UUID
    user_id: uuid.UUID
    system_prompt: str | None
    created_at: datetime
    updated_at: datetime
    chat_count: int = 0

    class Config:
        from_attributes = True


class ChatCreate(BaseModel):
    title: str | None = Field(default=None, max_length=500)


class ChatUpdate(BaseModel):
    title: str = Field(min_length=1, max_length=500)


class ChatResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    title: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MessageCreate(BaseModel):
    content: str = Field(min_length=1)


class MessageResponse(BaseModel):
    id: uuid.UUID
    chat_id: uuid.UUID
    role: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class FileResponse(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    name: str
    size: int
    type: str
    storage_path: str
    created_at: datetime

    class Config:
        from_attributes = True


# Relay payloads keep the camelCase wire names of the browser client.

class ConversationTurn(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    messages: list[ConversationTurn]
    chat_id: uuid.UUID = Field(alias="chatId")
    project_id: uuid.UUID = Field(alias="projectId")


class CompletionResponse(BaseModel):
    message: str
    usage: dict[str, Any] | None = None


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file: FileResponse
    openai_file_id: str | None = Field(default=None, serialization_alias="openaiFileId")
    message: str = "File uploaded successfully"
