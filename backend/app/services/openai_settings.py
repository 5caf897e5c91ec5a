from dataclasses import dataclass
from app.core.config import Settings, get_settings


@dataclass(frozen=True)
class OpenAISettings:
    base_url: str
    api_key: str
    model: str
    timeout: float

    @property
    def configured(self) -> bool:
        return bool(self.api_key)


def get_openai_settings(settings: Settings | None = None) -> OpenAISettings:
    """Resolve the OpenAI endpoint, normalising the base URL to end in /v1."""
    settings = settings or get_settings()

    base_url = (settings.openai_base_url or "https://api.openai.com/v1").rstrip("/")
    if not base_url.endswith("/v1") and "/v1/" not in base_url:
        base_url = f"{base_url}/v1"

    return OpenAISettings(
        base_url=base_url,
        api_key=settings.openai_api_key or "",
        model=settings.openai_model,
        timeout=settings.openai_timeout_seconds,
    )
