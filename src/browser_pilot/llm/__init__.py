"""
LLM Provider Abstraction

The planner's inference boundary, with two transports behind one interface:
- Anthropic Claude (native SDK)
- OpenAI-compatible APIs (OpenAI, OpenRouter, local models)
"""

from .provider import LLMProvider, LLMConfig, Message, LLMResponse
from .anthropic_provider import AnthropicProvider
from .openai_compatible_provider import OpenAICompatibleProvider
from .factory import create_provider_from_env, create_provider

__all__ = [
    "LLMProvider",
    "LLMConfig",
    "Message",
    "LLMResponse",
    "AnthropicProvider",
    "OpenAICompatibleProvider",
    "create_provider_from_env",
    "create_provider",
]
