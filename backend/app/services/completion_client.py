import logging
from dataclasses import dataclass
from typing import Any
import httpx
from app.core.errors import UpstreamError
from app.services.openai_settings import OpenAISettings, get_openai_settings

logger = logging.getLogger(__name__)


@dataclass
class Completion:
    content: str
    usage: dict[str, Any] | None


class CompletionClient:
    """Single-shot, non-streaming calls to ``/chat/completions``. No retries."""

    def __init__(
        self,
        openai: OpenAISettings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.openai = openai or get_openai_settings()
        self.transport = transport

    async def create(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        if not self.openai.configured:
            raise UpstreamError("OpenAI API key not configured")

        url = f"{self.openai.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.openai.api_key}",
            "Content-Type": "application/json",
        }
        payload: dict[str, Any] = {
            "model": self.openai.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        logger.info("Calling OpenAI API with %d messages", len(messages))
        try:
            async with httpx.AsyncClient(timeout=self.openai.timeout, transport=self.transport) as client:
                resp = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("OpenAI API request failed: %s", e)
            raise UpstreamError(f"OpenAI API request failed: {e}") from e

        if not resp.is_success:
            logger.error("OpenAI API error: %s %s", resp.status_code, resp.text)
            raise UpstreamError(f"OpenAI API error: {resp.status_code} {resp.text}")

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error("Unexpected OpenAI API response: %s", resp.text[:500])
            raise UpstreamError("OpenAI API returned an unexpected response") from e

        return Completion(content=content or "", usage=data.get("usage"))


def get_completion_client() -> CompletionClient:
    return CompletionClient()
