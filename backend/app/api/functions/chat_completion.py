import logging
from typing import Annotated
from fastapi import APIRouter, Depends, Header, Request, Response
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core import get_db
from app.core.errors import RelayError, MissingParameterError, InvalidParameterError
from app.models import User
from app.schemas import CompletionRequest
from app.api.functions.deps import get_relay_user
from app.services.completion_client import CompletionClient, get_completion_client
from app.services.completion_relay import CompletionRelay

logger = logging.getLogger(__name__)

router = APIRouter()

REQUIRED_FIELDS = ("messages", "chatId", "projectId")


def parse_completion_request(body: object) -> CompletionRequest:
    if not isinstance(body, dict) or any(body.get(field) in (None, "") for field in REQUIRED_FIELDS):
        raise MissingParameterError("Missing required parameters: messages, chatId, and projectId")
    try:
        return CompletionRequest.model_validate(body)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise InvalidParameterError(f"Invalid request: {problems}") from e


@router.options("/chat-completion")
async def chat_completion_preflight():
    return Response(status_code=200)


@router.post("/chat-completion")
async def chat_completion(
    request: Request,
    current_user: Annotated[User, Depends(get_relay_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    client: Annotated[CompletionClient, Depends(get_completion_client)],
    idempotency_key: Annotated[str | None, Header(alias="Idempotency-Key")] = None,
):
    """JSON body: ``{messages: [{role, content}], chatId, projectId}``."""
    try:
        try:
            body = await request.json()
        except ValueError as e:
            raise InvalidParameterError("Invalid JSON body") from e

        completion_request = parse_completion_request(body)
        relay = CompletionRelay(db, client)
        result = await relay.run(
            completion_request,
            user_id=current_user.id,
            idempotency_key=idempotency_key or None,
        )
    except RelayError:
        raise
    except Exception as e:
        logger.exception("Error in chat-completion relay")
        raise RelayError("Unknown error occurred") from e

    return result.model_dump(mode="json")
