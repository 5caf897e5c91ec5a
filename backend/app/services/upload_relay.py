import logging
import uuid
from dataclasses import dataclass
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.config import get_settings
from app.core.errors import DatabaseWriteError, NotFoundError, StorageWriteError
from app.core.rls import set_service_role
from app.models import File
from app.services.access import get_owned_project
from app.services.file_mirror import FileMirror
from app.services.storage import StorageService

logger = logging.getLogger(__name__)

settings = get_settings()

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class UploadResult:
    file: File
    openai_file_id: str | None


class UploadRelay:
    """Bucket write, metadata insert, then an optional mirror to OpenAI.

    A failed metadata insert deletes the object that was just written.
    """

    def __init__(
        self,
        db: AsyncSession,
        storage: StorageService,
        mirror: FileMirror | None = None,
        mirror_max_bytes: int | None = None,
    ):
        self.db = db
        self.storage = storage
        self.mirror = mirror
        self.mirror_max_bytes = settings.mirror_max_bytes if mirror_max_bytes is None else mirror_max_bytes

    async def run(
        self,
        *,
        user_id: uuid.UUID,
        project_id: uuid.UUID,
        filename: str,
        content: bytes,
        content_type: str | None,
    ) -> UploadResult:
        logger.info("Processing file upload: %s for project: %s", filename, project_id)
        await set_service_role(self.db)

        project = await get_owned_project(self.db, project_id, user_id)
        if not project:
            raise NotFoundError("Project not found")

        key = self.storage.new_object_key(user_id, filename)
        logger.info("Uploading file to storage at path: %s", key)
        try:
            await self.storage.upload(key, content)
        except (OSError, ValueError):
            logger.exception("File upload error for %s", key)
            raise StorageWriteError("Failed to upload file to storage")

        record = File(
            project_id=project.id,
            name=filename,
            size=len(content),
            type=content_type or DEFAULT_CONTENT_TYPE,
            storage_path=key,
        )
        try:
            self.db.add(record)
            await self.db.commit()
            await self.db.refresh(record)
        except SQLAlchemyError:
            logger.exception("File metadata save error for %s", key)
            await self.db.rollback()
            await self._discard_object(key)
            raise DatabaseWriteError("Failed to save file metadata")

        openai_file_id = None
        if self.mirror is not None and record.size <= self.mirror_max_bytes:
            logger.info("Uploading file to OpenAI...")
            openai_file_id = await self.mirror.mirror(record.name, content, record.type)

        logger.info("File upload process completed for %s", record.id)
        return UploadResult(file=record, openai_file_id=openai_file_id)

    async def _discard_object(self, key: str) -> None:
        try:
            await self.storage.remove([key])
        except (OSError, ValueError):
            logger.exception("Could not remove orphaned object %s", key)
