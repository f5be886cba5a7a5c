"""
LLM Provider Factory

Creates the planner's LLM provider from environment variables or explicit
arguments.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from ..config import env_float, env_int
from .anthropic_provider import AnthropicProvider
from .openai_compatible_provider import OpenAICompatibleProvider
from .provider import DEFAULT_MODEL, LLMConfig, LLMProvider

# Load environment variables (override shell env with .env values)
load_dotenv(override=True)


def create_provider_from_env() -> LLMProvider:
    """
    Create an LLM provider instance from environment variables.

    Reads:
    - OPENAI_API_BASE + OPENAI_API_KEY: OpenAI-compatible endpoint
    - ANTHROPIC_API_KEY (+ optional ANTHROPIC_BASE_URL): Anthropic Claude
    - PLANNER_MODEL, PLANNER_TEMPERATURE, PLANNER_MAX_TOKENS, LLM_TIMEOUT

    Raises:
        ValueError: No provider credentials are configured
    """
    base_url = os.getenv("OPENAI_API_BASE")
    api_key = os.getenv("OPENAI_API_KEY")

    if base_url and api_key:
        return create_provider(
            provider_type="openai-compatible",
            api_key=api_key,
            base_url=base_url,
            model=os.getenv("PLANNER_MODEL", "gpt-4o"),
            temperature=env_float("PLANNER_TEMPERATURE", 0.2),
            max_tokens=env_int("PLANNER_MAX_TOKENS", 1024),
            timeout=env_int("LLM_TIMEOUT", 60),
        )

    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        raise ValueError(
            "No LLM provider configured. Set either:\n"
            "  - ANTHROPIC_API_KEY for Anthropic Claude\n"
            "  - OPENAI_API_BASE + OPENAI_API_KEY for OpenAI-compatible provider"
        )

    return create_provider(
        provider_type="anthropic",
        api_key=api_key,
        base_url=os.getenv("ANTHROPIC_BASE_URL"),  # Optional, for proxy
        model=os.getenv("PLANNER_MODEL", DEFAULT_MODEL),
        temperature=env_float("PLANNER_TEMPERATURE", 0.2),
        max_tokens=env_int("PLANNER_MAX_TOKENS", 1024),
        timeout=env_int("LLM_TIMEOUT", 60),
    )


def create_provider(
    provider_type: str = "anthropic",
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
    model: str = DEFAULT_MODEL,
    **kwargs,
) -> LLMProvider:
    """
    Create an LLM provider with explicit configuration.

    Args:
        provider_type: "anthropic" or "openai-compatible"
        api_key: API key for the provider
        base_url: Base URL (optional, for proxy or OpenAI-compatible endpoint)
        model: Model name
        **kwargs: Additional LLMConfig parameters

    Example:
        >>> provider = create_provider(
        ...     provider_type="openai-compatible",
        ...     api_key="sk-...",
        ...     base_url="https://openrouter.ai/api/v1",
        ...     model="anthropic/claude-sonnet-4",
        ... )
    """
    config = LLMConfig(
        api_key=api_key or "",
        base_url=base_url,
        model=model,
        provider_type=provider_type,
        **kwargs,
    )

    if provider_type == "openai-compatible":
        return OpenAICompatibleProvider(config)
    return AnthropicProvider(config)
