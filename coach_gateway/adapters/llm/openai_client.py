"""OpenAI LLM client adapter."""

import json
import logging
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from coach_gateway.adapters.llm.base import AbstractLLMClient, LLMCompletion
from coach_gateway.core.errors import LLMAppError

logger = logging.getLogger(__name__)

JSON_ONLY_SYSTEM = "Output JSON only. No extra text or markdown formatting."

# Options forwarded verbatim to chat.completions.create
_PASSTHROUGH_PARAMS = (
    "max_tokens",
    "top_p",
    "frequency_penalty",
    "presence_penalty",
    "seed",
)


class OpenAIClient(AbstractLLMClient):
    """Client for OpenAI chat completions (text and JSON modes).

    Uses the official OpenAI Python SDK with async support.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Default model name; callers may override per request.
            base_url: Optional custom base URL for OpenAI API.
            timeout_seconds: Timeout for requests in seconds.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model

    def _build_request(
        self,
        prompt: str,
        system: str | None,
        kwargs: dict[str, Any],
    ) -> dict[str, Any]:
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})

        request_params: dict[str, Any] = {
            "model": kwargs.pop("model", None) or self.model,
            "messages": messages,
            "temperature": kwargs.pop("temperature", 0.2),
        }
        for param in _PASSTHROUGH_PARAMS:
            if param in kwargs:
                request_params[param] = kwargs[param]
        return request_params

    async def _complete(self, request_params: dict[str, Any]) -> LLMCompletion:
        try:
            response = await self.client.chat.completions.create(**request_params)
        except OpenAIError as exc:
            logger.error(
                "llm.request_failed",
                extra={"model": request_params["model"], "error_type": type(exc).__name__},
            )
            raise LLMAppError(
                code="llm_unavailable",
                message="AI service temporarily unavailable",
                details={"model": request_params["model"]},
            ) from exc

        content = response.choices[0].message.content
        if not content:
            raise LLMAppError(
                code="llm_empty_response",
                message="AI service returned an empty response",
                details={"model": request_params["model"]},
            )

        # Top-level token counts only; nested *_details objects are dropped
        raw_usage = response.usage.model_dump() if response.usage is not None else {}
        usage = {k: v for k, v in raw_usage.items() if isinstance(v, int)}
        return LLMCompletion(text=content.strip(), model=response.model or request_params["model"], usage=usage)

    async def generate_text(
        self,
        prompt: str,
        *,
        system: str | None = None,
        **kwargs: Any,
    ) -> LLMCompletion:
        request_params = self._build_request(prompt, system, kwargs)
        return await self._complete(request_params)

    async def generate_json(
        self,
        prompt: str,
        *,
        system: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate structured JSON using OpenAI's json_object response format.

        Raises:
            LLMAppError: If the API call fails or the response is not a JSON object.
        """
        system_prompt = f"{system}\n{JSON_ONLY_SYSTEM}" if system else JSON_ONLY_SYSTEM
        request_params = self._build_request(prompt, system_prompt, kwargs)
        request_params["response_format"] = {"type": "json_object"}

        completion = await self._complete(request_params)

        try:
            parsed = json.loads(completion.text)
        except json.JSONDecodeError as exc:
            raise LLMAppError(
                code="llm_invalid_json",
                message="AI service returned invalid JSON",
                details={"model": completion.model},
            ) from exc

        if not isinstance(parsed, dict):
            raise LLMAppError(
                code="llm_invalid_json",
                message="AI service returned a JSON value that is not an object",
                details={"model": completion.model},
            )
        return parsed
