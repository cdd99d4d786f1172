"""Factory pattern for creating LLM client instances."""

from coach_gateway.adapters.llm.base import AbstractLLMClient
from coach_gateway.adapters.llm.openai_client import OpenAIClient
from coach_gateway.core.config import settings
from coach_gateway.core.errors import LLMAppError


def create_llm_client() -> AbstractLLMClient:
    """Instantiate the LLM client configured in settings.

    Returns:
        AbstractLLMClient: Configured LLM client instance.

    Raises:
        LLMAppError: If the provider is unknown or lacks its API key.
    """
    provider = settings.llm.provider.lower()

    if provider == "openai":
        if not settings.llm.api_key:
            raise LLMAppError(
                code="llm_not_configured",
                message="AI service not configured",
                details={"missing": "LLM_API_KEY"},
            )
        return OpenAIClient(
            api_key=settings.llm.api_key,
            model=settings.llm.model,
            base_url=settings.llm.base_url,
            timeout_seconds=settings.llm.timeout_seconds,
        )

    raise LLMAppError(
        code="llm_unknown_provider",
        message=f"Unknown LLM provider: '{provider}'. Supported providers: openai",
    )
