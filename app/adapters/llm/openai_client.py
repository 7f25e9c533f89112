"""OpenAI-compatible chat completions adapter (OpenAI or OpenRouter)."""

import json
import re
from typing import Any

from openai import AsyncOpenAI

from app.adapters.llm.base import AbstractLLMClient

# Models sometimes wrap JSON in a markdown fence despite instructions
_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


def parse_json_content(content: str) -> dict[str, Any]:
    """Parse a model reply as a JSON object, unwrapping a ```json fence.

    Raises:
        RuntimeError: If no JSON object can be recovered.
    """
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        match = _FENCED_JSON.search(content)
        if not match:
            raise RuntimeError("LLM returned invalid JSON") from None
        try:
            parsed = json.loads(match.group(1))
        except json.JSONDecodeError as exc:
            raise RuntimeError(f"LLM returned invalid JSON: {exc}") from exc

    if not isinstance(parsed, dict):
        raise RuntimeError("LLM returned JSON that is not an object")
    return parsed


class OpenAIClient(AbstractLLMClient):
    """Client for OpenAI-compatible chat completions returning JSON.

    Uses the official OpenAI Python SDK. Pointing ``base_url`` at OpenRouter
    gives access to its model catalogue with the same request shape.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
        )
        self.model = model

    async def generate_json(
        self,
        prompt: str,
        *,
        images: list[str] | None = None,
        model: str | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate structured JSON using chat completions.

        Text-only prompts request ``json_object`` mode; prompts with images
        send multi-part content and rely on the prompt for JSON output since
        not every vision model supports the response format flag.

        Raises:
            RuntimeError: If the API call fails or the response is not valid JSON.
        """
        content: str | list[dict[str, Any]]
        if images:
            content = [{"type": "text", "text": prompt}]
            content.extend({"type": "image_url", "image_url": {"url": url}} for url in images)
        else:
            content = prompt

        request_params: dict[str, Any] = {
            "model": model or self.model,
            "messages": [{"role": "user", "content": content}],
            "temperature": kwargs.pop("temperature", 0.1),
        }
        if not images:
            request_params["response_format"] = {"type": "json_object"}
        if "max_tokens" in kwargs:
            request_params["max_tokens"] = kwargs["max_tokens"]

        try:
            response = await self.client.chat.completions.create(**request_params)
            reply = response.choices[0].message.content
        except Exception as exc:
            raise RuntimeError(f"LLM provider error: {exc}") from exc

        if not reply:
            raise RuntimeError("LLM returned empty response")

        return parse_json_content(reply.strip())
