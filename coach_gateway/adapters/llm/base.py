from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class LLMCompletion:
	"""Plain-text completion plus the accounting the coaching logs need."""

	text: str
	model: str
	usage: dict[str, int] = field(default_factory=dict)


class AbstractLLMClient(ABC):
	"""Interface for LLM clients used by the coaching functions."""

	@abstractmethod
	async def generate_json(
		self,
		prompt: str,
		*,
		system: str | None = None,
		**kwargs: Any,
	) -> dict[str, Any]:
		"""Generate a structured JSON response from the model.

		Args:
			prompt: User prompt to send to the model.
			system: Optional system instruction.
			**kwargs: Provider-specific options (e.g., temperature, max_tokens).

		Returns:
			dict[str, Any]: Parsed JSON object returned by the model.

		Raises:
			LLMAppError: If the provider call fails or the response is not a JSON object.
		"""
		...

	@abstractmethod
	async def generate_text(
		self,
		prompt: str,
		*,
		system: str | None = None,
		**kwargs: Any,
	) -> LLMCompletion:
		"""Generate a free-text answer.

		Raises:
			LLMAppError: If the provider call fails or returns no content.
		"""
		...
