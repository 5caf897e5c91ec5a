from app.schemas.schemas import (
    UserBase, UserCreate, UserResponse,
    ProfileUpdate, ProfileResponse,
    ProjectBase, ProjectCreate, ProjectUpdate, ProjectResponse,
    ChatCreate, ChatUpdate, ChatResponse,
    MessageCreate, MessageResponse,
    FileResponse,
    ConversationTurn, CompletionRequest, CompletionResponse, UploadResponse
)

__all__ = [
    "UserBase", "UserCreate", "UserResponse",
    "ProfileUpdate", "ProfileResponse",
    "ProjectBase", "ProjectCreate", "ProjectUpdate", "ProjectResponse",
    "ChatCreate", "ChatUpdate", "ChatResponse",
    "MessageCreate", "MessageResponse",
    "FileResponse",
    "ConversationTurn", "CompletionRequest", "CompletionResponse", "UploadResponse"
]
