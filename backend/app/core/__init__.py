from app.core.config import Settings, get_settings
from app.core.database import Base, get_db, async_session_maker, engine
from app.core.rls import set_request_identity, set_service_role
from app.core.security import (
    verify_password,
    get_password_hash,
    create_access_token,
    create_refresh_token,
    decode_token,
)

__all__ = [
    "Settings",
    "get_settings",
    "Base",
    "get_db",
    "async_session_maker",
    "engine",
    "set_request_identity",
    "set_service_role",
    "verify_password",
    "get_password_hash",
    "create_access_token",
    "create_refresh_token",
    "decode_token",
]
