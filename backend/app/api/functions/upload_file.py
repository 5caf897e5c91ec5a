import logging
import uuid
from typing import Annotated
from fastapi import APIRouter, Depends, Request, Response
from starlette.datastructures import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from app.core import get_db, get_settings
from app.core.errors import (
    RelayError, MissingParameterError, InvalidParameterError, ForbiddenError, PayloadTooLargeError,
)
from app.models import User
from app.schemas import FileResponse, UploadResponse
from app.api.functions.deps import get_relay_user
from app.services.file_mirror import FileMirror, get_file_mirror
from app.services.storage import StorageService, get_storage
from app.services.upload_relay import UploadRelay

logger = logging.getLogger(__name__)

router = APIRouter()
settings = get_settings()


def _parse_uuid(value: str, field: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise InvalidParameterError(f"Invalid parameter: {field} must be a UUID")


@router.options("/upload-file")
async def upload_file_preflight():
    return Response(status_code=200)


@router.post("/upload-file")
async def upload_file(
    request: Request,
    current_user: Annotated[User, Depends(get_relay_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    storage: Annotated[StorageService, Depends(get_storage)],
    mirror: Annotated[FileMirror | None, Depends(get_file_mirror)],
):
    """Multipart fields: ``file``, ``projectId``, ``userId``."""
    try:
        try:
            form = await request.form()
        except Exception as e:
            raise InvalidParameterError(f"Invalid form data: {e}") from e

        file = form.get("file")
        project_id = form.get("projectId")
        user_id = form.get("userId")

        if not isinstance(file, UploadFile) or not project_id or not user_id:
            raise MissingParameterError("Missing required parameters: file, projectId, and userId")
        if not isinstance(project_id, str) or not isinstance(user_id, str):
            raise InvalidParameterError("Invalid parameter: projectId and userId must be text fields")

        project_uuid = _parse_uuid(project_id, "projectId")
        user_uuid = _parse_uuid(user_id, "userId")
        if user_uuid != current_user.id:
            raise ForbiddenError("userId does not match the authenticated user")

        content = await file.read(settings.upload_max_bytes + 1)
        if len(content) > settings.upload_max_bytes:
            raise PayloadTooLargeError(
                f"File exceeds the {settings.upload_max_bytes // (1024 * 1024)}MB upload limit"
            )

        relay = UploadRelay(db, storage, mirror)
        result = await relay.run(
            user_id=user_uuid,
            project_id=project_uuid,
            filename=file.filename or "upload",
            content=content,
            content_type=file.content_type,
        )
    except RelayError:
        raise
    except Exception as e:
        logger.exception("Error in upload-file relay")
        raise RelayError("Unknown error occurred") from e

    response = UploadResponse(
        file=FileResponse.model_validate(result.file),
        openai_file_id=result.openai_file_id,
    )
    return response.model_dump(mode="json", by_alias=True)
