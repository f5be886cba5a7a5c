"""
Base LLM Provider Interface and Configuration

The planner only needs "prompt in, text out". Providers hide the transport
(Anthropic SDK, OpenAI-compatible HTTP) behind ``LLMProvider.complete``.
Transport failures surface as ``PlannerError``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

DEFAULT_MODEL = "claude-sonnet-4-20250514"


@dataclass
class LLMConfig:
    """
    Configuration for LLM provider connection.

    Supports both Anthropic native and OpenAI-compatible APIs.
    """

    # API configuration
    api_key: str
    base_url: Optional[str] = None  # None for Anthropic native, URL for OpenAI-compatible
    model: str = DEFAULT_MODEL

    # Request parameters; a low temperature keeps replies close to the grammar
    max_tokens: int = 1024
    temperature: float = 0.2
    timeout: int = 60

    # "anthropic" or "openai-compatible"
    provider_type: str = "anthropic"


class Message(BaseModel):
    """Chat message representation."""

    role: str  # "user", "assistant", "system"
    content: str


class LLMResponse(BaseModel):
    """Response from LLM provider."""

    content: str
    model: str
    usage: Dict[str, int] = {}
    stop_reason: Optional[str] = None


class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All providers must implement this interface.
    """

    def __init__(self, config: LLMConfig):
        self.config = config
        self._client = None

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the provider client."""

    @abstractmethod
    async def complete(
        self,
        messages: List[Message],
        **kwargs: Any,
    ) -> LLMResponse:
        """
        Generate a completion for the given messages.

        Args:
            messages: List of chat messages
            **kwargs: Per-call overrides (max_tokens, temperature)

        Returns:
            LLMResponse with generated content and metadata

        Raises:
            PlannerError: The request failed at the transport or API level
        """

    async def close(self) -> None:
        """Close the provider connection."""
        if self._client:
            await self._client.close()
            self._client = None
