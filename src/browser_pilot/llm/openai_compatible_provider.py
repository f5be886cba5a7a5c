"""
OpenAI-Compatible LLM Provider

Provider for any API that follows the OpenAI chat completion format:
OpenAI itself, OpenRouter, or local models (Ollama, LM Studio).
"""

import logging
from typing import Any, List, Optional

import httpx

from ..errors import PlannerError
from .provider import LLMConfig, LLMProvider, LLMResponse, Message

logger = logging.getLogger(__name__)

DEFAULT_OPENAI_BASE = "https://api.openai.com/v1"


class OpenAICompatibleProvider(LLMProvider):
    """OpenAI-compatible chat completion provider over httpx."""

    def __init__(self, config: LLMConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        super().__init__(config)
        self._client: Optional[httpx.AsyncClient] = None
        self._transport = transport

    async def initialize(self) -> None:
        """Initialize the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url or DEFAULT_OPENAI_BASE,
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.config.timeout,
                transport=self._transport,
            )

    async def complete(
        self,
        messages: List[Message],
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate a completion using the /chat/completions endpoint."""
        await self.initialize()

        payload = {
            "model": self.config.model,
            "messages": [{"role": msg.role, "content": msg.content} for msg in messages],
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
        }

        try:
            response = await self._client.post("/chat/completions", json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise PlannerError(f"LLM request timed out after {self.config.timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise PlannerError(
                f"LLM API error: {e.response.status_code} - {e.response.text}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise PlannerError(f"LLM request failed: {e}") from e

        try:
            choice = data["choices"][0]
            content = choice["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise PlannerError(f"No content in LLM response: {data}") from e

        usage = data.get("usage") or {}
        return LLMResponse(
            content=content,
            model=data.get("model", self.config.model),
            usage={
                "prompt_tokens": usage.get("prompt_tokens", 0),
                "completion_tokens": usage.get("completion_tokens", 0),
                "total_tokens": usage.get("total_tokens", 0),
            },
            stop_reason=choice.get("finish_reason"),
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
