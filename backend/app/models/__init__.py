from app.models.models import (
    User, Profile, Project, Chat, Message, File,
    MessageRole, DEFAULT_CHAT_TITLE
)

__all__ = [
    "User", "Profile", "Project", "Chat", "Message", "File",
    "MessageRole", "DEFAULT_CHAT_TITLE"
]
