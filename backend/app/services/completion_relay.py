import logging
import uuid
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import get_settings
from app.core.errors import DatabaseWriteError, NotFoundError
from app.core.rls import set_service_role
from app.models import Message, MessageRole
from app.schemas import CompletionRequest, CompletionResponse
from app.services.access import get_owned_chat, get_owned_project
from app.services.completion_client import CompletionClient

logger = logging.getLogger(__name__)

settings = get_settings()


def build_conversation(system_prompt: str | None, history: list[dict[str, str]]) -> list[dict[str, str]]:
    """Prepend the project's system prompt to the client-supplied history."""
    prompt = system_prompt or settings.default_system_prompt
    return [{"role": "system", "content": prompt}, *history]


class CompletionRelay:
    """validate -> fetch context -> call upstream -> persist -> respond."""

    def __init__(self, db: AsyncSession, client: CompletionClient):
        self.db = db
        self.client = client

    async def run(
        self,
        request: CompletionRequest,
        *,
        user_id: uuid.UUID,
        idempotency_key: str | None = None,
    ) -> CompletionResponse:
        logger.info("Processing chat completion for chat: %s project: %s", request.chat_id, request.project_id)
        await set_service_role(self.db)

        project = await get_owned_project(self.db, request.project_id, user_id)
        if not project:
            raise NotFoundError("Failed to fetch project details")

        chat = await get_owned_chat(self.db, request.chat_id, user_id, project_id=project.id)
        if not chat:
            raise NotFoundError("Chat not found")

        if idempotency_key:
            existing = await self._find_reply(chat.id, idempotency_key)
            if existing:
                logger.info("Returning stored reply %s for idempotency key", existing.id)
                return CompletionResponse(message=existing.content, usage=existing.usage)

        conversation = build_conversation(
            project.system_prompt,
            [turn.model_dump() for turn in request.messages],
        )
        completion = await self.client.create(
            conversation,
            temperature=settings.completion_temperature,
            max_tokens=settings.completion_max_tokens,
        )

        logger.info("Generated response, saving to database...")
        # Rollback expires loaded rows; keep the key for lookups afterwards.
        chat_id = chat.id
        reply = Message(
            chat_id=chat_id,
            role=MessageRole.ASSISTANT.value,
            content=completion.content,
            usage=completion.usage,
            idempotency_key=idempotency_key,
        )
        try:
            self.db.add(reply)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            # A concurrent request with the same key won the insert.
            existing = await self._find_reply(chat_id, idempotency_key) if idempotency_key else None
            if existing is None:
                logger.exception("Message save error for chat %s", chat_id)
                raise DatabaseWriteError("Failed to save assistant message")
            return CompletionResponse(message=existing.content, usage=existing.usage)
        except SQLAlchemyError:
            logger.exception("Message save error for chat %s", chat_id)
            await self.db.rollback()
            raise DatabaseWriteError("Failed to save assistant message")

        logger.info("Chat completion successful for chat %s", chat_id)
        return CompletionResponse(message=completion.content, usage=completion.usage)

    async def _find_reply(self, chat_id: uuid.UUID, idempotency_key: str) -> Message | None:
        result = await self.db.execute(
            select(Message).where(
                Message.chat_id == chat_id,
                Message.role == MessageRole.ASSISTANT.value,
                Message.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()
