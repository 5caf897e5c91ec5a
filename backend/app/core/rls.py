"""PostgreSQL row-level security for the owner-scoped tables.

Policies read two transaction-local settings:

* ``app.current_user_id``: the authenticated identity of the request.
* ``app.service_role``: ``on`` for relay sessions, which bypass the policies
  and therefore re-check ownership themselves.

On other dialects (SQLite in tests) nothing is installed and isolation relies
solely on the owner-scoped queries in the API layer.
"""
import logging
import uuid
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

RLS_TABLES = ("profiles", "projects", "chats", "messages", "files")

_CURRENT_USER = "NULLIF(current_setting('app.current_user_id', true), '')::uuid"
_SERVICE_ROLE = "current_setting('app.service_role', true) = 'on'"

_OWNS_PROJECT = "EXISTS (SELECT 1 FROM projects p WHERE p.id = {table}.project_id AND p.user_id = " + _CURRENT_USER + ")"
_OWNS_CHAT = (
    "EXISTS (SELECT 1 FROM chats c JOIN projects p ON p.id = c.project_id "
    "WHERE c.id = messages.chat_id AND p.user_id = " + _CURRENT_USER + ")"
)

# (table, policy name, command, predicate)
POLICIES: list[tuple[str, str, str, str]] = [
    ("profiles", "profiles_select_own", "SELECT", f"user_id = {_CURRENT_USER}"),
    ("profiles", "profiles_insert_own", "INSERT", f"user_id = {_CURRENT_USER}"),
    ("profiles", "profiles_update_own", "UPDATE", f"user_id = {_CURRENT_USER}"),
    ("projects", "projects_select_own", "SELECT", f"user_id = {_CURRENT_USER}"),
    ("projects", "projects_insert_own", "INSERT", f"user_id = {_CURRENT_USER}"),
    ("projects", "projects_update_own", "UPDATE", f"user_id = {_CURRENT_USER}"),
    ("projects", "projects_delete_own", "DELETE", f"user_id = {_CURRENT_USER}"),
    ("chats", "chats_select_own", "SELECT", _OWNS_PROJECT.format(table="chats")),
    ("chats", "chats_insert_own", "INSERT", _OWNS_PROJECT.format(table="chats")),
    ("chats", "chats_update_own", "UPDATE", _OWNS_PROJECT.format(table="chats")),
    ("chats", "chats_delete_own", "DELETE", _OWNS_PROJECT.format(table="chats")),
    # Messages are append-only: no update or delete policy.
    ("messages", "messages_select_own", "SELECT", _OWNS_CHAT),
    ("messages", "messages_insert_own", "INSERT", _OWNS_CHAT),
    ("files", "files_select_own", "SELECT", _OWNS_PROJECT.format(table="files")),
    ("files", "files_insert_own", "INSERT", _OWNS_PROJECT.format(table="files")),
    ("files", "files_delete_own", "DELETE", _OWNS_PROJECT.format(table="files")),
]


def policy_statements() -> list[str]:
    """DDL that (re)creates every policy; safe to run on each startup."""
    statements: list[str] = []
    for table in RLS_TABLES:
        statements.append(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        statements.append(f"ALTER TABLE {table} FORCE ROW LEVEL SECURITY")
        statements.append(f"DROP POLICY IF EXISTS {table}_service_role ON {table}")
        statements.append(
            f"CREATE POLICY {table}_service_role ON {table} FOR ALL "
            f"USING ({_SERVICE_ROLE}) WITH CHECK ({_SERVICE_ROLE})"
        )
    for table, name, command, predicate in POLICIES:
        statements.append(f"DROP POLICY IF EXISTS {name} ON {table}")
        if command == "INSERT":
            clause = f"WITH CHECK ({predicate})"
        else:
            clause = f"USING ({predicate})"
        statements.append(f"CREATE POLICY {name} ON {table} FOR {command} {clause}")
    return statements


async def apply_row_level_security(conn: AsyncConnection) -> None:
    if conn.dialect.name != "postgresql":
        logger.info("Skipping row-level security on dialect %s", conn.dialect.name)
        return
    for statement in policy_statements():
        await conn.execute(text(statement))
    logger.info("Row-level security applied to %d tables", len(RLS_TABLES))


def _identity_statements(info: dict) -> list[tuple[str, dict]]:
    statements: list[tuple[str, dict]] = []
    if info.get("rls_service_role"):
        statements.append(("SELECT set_config('app.service_role', 'on', true)", {}))
    user_id = info.get("rls_user_id")
    if user_id:
        statements.append(("SELECT set_config('app.current_user_id', :uid, true)", {"uid": str(user_id)}))
    return statements


@event.listens_for(Session, "after_begin")
def _bind_identity_to_transaction(session, transaction, connection) -> None:
    # Settings are transaction-local, so they are replayed at the start of every transaction.
    if connection.dialect.name != "postgresql":
        return
    for statement, params in _identity_statements(session.info):
        connection.execute(text(statement), params)


async def _apply_now(db: AsyncSession) -> None:
    if db.bind.dialect.name != "postgresql" or not db.in_transaction():
        return
    for statement, params in _identity_statements(db.info):
        await db.execute(text(statement), params)


async def set_request_identity(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Bind the policies of this session's transactions to ``user_id``."""
    db.info["rls_user_id"] = user_id
    await _apply_now(db)


async def set_service_role(db: AsyncSession) -> None:
    """Let this session bypass the owner policies."""
    db.info["rls_service_role"] = True
    await _apply_now(db)
