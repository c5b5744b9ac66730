"""LLM provider implementations."""

from activity_digest.llm.anthropic import AnthropicLLM
from activity_digest.llm.base import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TIMEOUT,
    BaseHTTPLLM,
    BaseLLM,
    LLMResponse,
)
from activity_digest.llm.openai import OpenAILLM

__all__ = [
    "BaseLLM",
    "BaseHTTPLLM",
    "LLMResponse",
    "AnthropicLLM",
    "OpenAILLM",
    "DEFAULT_TIMEOUT",
    "DEFAULT_MAX_TOKENS",
    "get_llm",
]


def get_llm(provider: str, config: dict) -> BaseHTTPLLM:
    """Factory function to get the appropriate LLM provider.

    Args:
        provider: Provider name (anthropic, openai).
        config: Provider-specific configuration dictionary.

    Returns:
        Configured LLM instance.

    Raises:
        ValueError: If provider is not supported or has no API key.
    """
    providers = {
        "anthropic": AnthropicLLM,
        "openai": OpenAILLM,
    }

    if provider not in providers:
        raise ValueError(
            f"Unsupported AI provider '{provider}'. Supported: {', '.join(providers)}"
        )

    if not config.get("api_key"):
        raise ValueError(
            f"AI API key is required. Set {provider.upper()}_API_KEY or AI_API_KEY "
            f"environment variable or add it to config.json"
        )

    return providers[provider](**config)
