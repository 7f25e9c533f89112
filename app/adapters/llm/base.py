from abc import ABC, abstractmethod
from typing import Any


class AbstractLLMClient(ABC):
	"""Interface for AI completion providers that return JSON objects."""

	@abstractmethod
	async def generate_json(
		self,
		prompt: str,
		*,
		images: list[str] | None = None,
		model: str | None = None,
		**kwargs: Any,
	) -> dict[str, Any]:
		"""Generate a structured JSON response from the model.

		Args:
			prompt: Instruction text sent as the user message.
			images: Optional image URLs or data URLs sent alongside the prompt.
			model: Optional model override (e.g., a vision model).
			**kwargs: Provider-specific options (e.g., temperature, max_tokens).

		Returns:
			dict[str, Any]: Parsed JSON object returned by the model.

		Raises:
			RuntimeError: If the provider call fails or the response cannot be parsed.
		"""
		...
