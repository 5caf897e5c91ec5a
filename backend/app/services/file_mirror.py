import logging
from openai import AsyncOpenAI
from app.services.openai_settings import OpenAISettings, get_openai_settings

logger = logging.getLogger(__name__)


class FileMirror:
    """Best-effort copy of uploaded files to the OpenAI Files API."""

    PURPOSE = "assistants"

    def __init__(self, openai: OpenAISettings, client: AsyncOpenAI | None = None):
        self.client = client or AsyncOpenAI(
            api_key=openai.api_key,
            base_url=openai.base_url,
            timeout=openai.timeout,
            max_retries=0,
        )

    async def mirror(self, filename: str, content: bytes, content_type: str) -> str | None:
        """Return the OpenAI file id, or None when the upload failed."""
        try:
            uploaded = await self.client.files.create(
                file=(filename, content, content_type),
                purpose=self.PURPOSE,
            )
        except Exception as e:
            # Mirror failures never surface to the caller.
            logger.warning("Failed to mirror %s to OpenAI: %s", filename, e, exc_info=True)
            return None

        logger.info("File %s mirrored to OpenAI with id %s", filename, uploaded.id)
        return uploaded.id


def get_file_mirror() -> FileMirror | None:
    """Mirroring is enabled only when an OpenAI API key is configured."""
    openai = get_openai_settings()
    if not openai.configured:
        return None
    return FileMirror(openai)
