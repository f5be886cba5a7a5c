"""
Anthropic Claude LLM Provider

Native implementation for Anthropic's Claude API using the official
Anthropic Python SDK.
"""

import logging
from typing import Any, List, Optional

from anthropic import APIError, AsyncAnthropic
from anthropic.types import Message as AnthropicMessage

from ..errors import PlannerError
from .provider import LLMConfig, LLMProvider, LLMResponse, Message

logger = logging.getLogger(__name__)


class AnthropicProvider(LLMProvider):
    """Anthropic Claude API provider."""

    def __init__(self, config: LLMConfig):
        super().__init__(config)
        self._client: Optional[AsyncAnthropic] = None

    async def initialize(self) -> None:
        """Initialize the Anthropic async client."""
        if self._client is None:
            self._client = AsyncAnthropic(
                api_key=self.config.api_key,
                base_url=self.config.base_url,  # Can override for proxy
                timeout=self.config.timeout,
            )

    async def complete(
        self,
        messages: List[Message],
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a completion using Anthropic's API.

        System messages are passed separately; the rest keep their order.
        """
        await self.initialize()

        system_parts = [msg.content for msg in messages if msg.role == "system"]
        anthropic_messages = [
            {"role": msg.role, "content": msg.content}
            for msg in messages
            if msg.role != "system"
        ]

        params = {
            "model": self.config.model,
            "messages": anthropic_messages,
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
        }
        if system_parts:
            params["system"] = "\n\n".join(system_parts)

        try:
            response: AnthropicMessage = await self._client.messages.create(**params)
        except APIError as e:
            raise PlannerError(f"Anthropic API error: {e}") from e

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        logger.debug("Anthropic reply (%s): %s", response.stop_reason, content)

        return LLMResponse(
            content=content,
            model=response.model,
            usage={
                "input_tokens": response.usage.input_tokens,
                "output_tokens": response.usage.output_tokens,
                "total_tokens": response.usage.input_tokens + response.usage.output_tokens,
            },
            stop_reason=response.stop_reason,
        )

    async def close(self) -> None:
        """Close the Anthropic client."""
        if self._client:
            await self._client.close()
            self._client = None
