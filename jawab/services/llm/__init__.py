from jawab.config import Settings
from jawab.services.llm.base import LLMError, LLMProvider, LLMRateLimitError
from jawab.services.llm.gemini_provider import GeminiProvider
from jawab.services.llm.openai_provider import OpenAIProvider


def build_llm_provider(settings: Settings) -> LLMProvider:
    """Build the configured completion provider."""
    if settings.llm_provider == "openai":
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            default_model=settings.openai_model,
            timeout_seconds=settings.llm_timeout_seconds,
            max_tokens=settings.llm_max_tokens,
        )
    return GeminiProvider(
        api_key=settings.gemini_api_key,
        default_model=settings.gemini_model,
        timeout_seconds=settings.llm_timeout_seconds,
        max_tokens=settings.llm_max_tokens,
    )


__all__ = [
    "LLMError",
    "LLMProvider",
    "LLMRateLimitError",
    "GeminiProvider",
    "OpenAIProvider",
    "build_llm_provider",
]
