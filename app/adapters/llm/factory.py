"""Factory pattern for creating LLM client instances."""

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.openai_client import OpenAIClient
from app.core.config import LLMSettings, settings
from app.core.errors import ValidationAppError

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"

_DEFAULT_BASE_URLS: dict[str, str | None] = {
    "openrouter": OPENROUTER_BASE_URL,
    "openai": None,
}


def create_llm_client(llm_settings: LLMSettings | None = None) -> AbstractLLMClient:
    """Instantiate the LLM client for the configured provider.

    Args:
        llm_settings: Settings to use; defaults to global settings.

    Returns:
        AbstractLLMClient: Configured LLM client instance.

    Raises:
        ValidationAppError: If the provider is unknown or has no API key.
    """
    cfg = llm_settings or settings.llm
    provider = cfg.provider.lower()

    if provider not in _DEFAULT_BASE_URLS:
        raise ValidationAppError(
            code="llm_unknown_provider",
            message=(
                f"Unknown LLM provider: '{provider}'. "
                f"Supported providers: {', '.join(sorted(_DEFAULT_BASE_URLS))}"
            ),
        )

    if not cfg.api_key:
        raise ValidationAppError(
            code="llm_missing_api_key",
            message=f"{provider} provider requires LLM_API_KEY environment variable",
        )

    return OpenAIClient(
        api_key=cfg.api_key,
        model=cfg.model,
        base_url=cfg.base_url or _DEFAULT_BASE_URLS[provider],
        timeout_seconds=cfg.timeout_seconds,
    )
