"""Base LLM interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from activity_digest.errors import TransientError, classify_http_error

# Constants for HTTP LLM clients
DEFAULT_TIMEOUT = 300.0  # 5 minute timeout for generation
DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 1.0


@dataclass
class LLMResponse:
    """Response from an LLM provider."""

    content: str
    model: str
    tokens_used: Optional[int] = None
    finish_reason: Optional[str] = None

    @property
    def success(self) -> bool:
        """Check if the response was successful."""
        return bool(self.content)


class BaseLLM(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Generate a response from the LLM.

        Args:
            prompt: The user prompt to send to the model.
            system_prompt: Optional system prompt for context.

        Returns:
            LLMResponse containing the generated content.
        """
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the LLM provider is available and configured.

        Returns:
            True if the provider is ready to use.
        """
        pass

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the name of this provider.

        Returns:
            Human-readable provider name.
        """
        pass


class BaseHTTPLLM(BaseLLM):
    """Base class for HTTP-based LLM providers with shared functionality."""

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        """Initialize HTTP LLM base.

        Args:
            api_key: Provider API key.
            model: Model name to use.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            timeout: Request timeout in seconds.
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = httpx.Client(timeout=timeout)

    def _post(self, url: str, payload: dict, headers: dict) -> dict:
        """POST a JSON payload and return the decoded body.

        Raises:
            SourceError: Classified failure (network, HTTP status or bad JSON).
        """
        try:
            response = self._client.post(url, json=payload, headers=headers)
        except httpx.RequestError as e:
            raise TransientError(f"{self.provider_name} request failed: {e}") from e

        if response.status_code >= 400:
            raise classify_http_error(
                response.status_code,
                response.headers,
                f"{self.provider_name}: {response.text[:200]}",
            )

        try:
            return response.json()
        except ValueError as e:
            raise TransientError(f"{self.provider_name} returned invalid JSON") from e

    def close(self) -> None:
        """Close the HTTP client."""
        if hasattr(self, "_client") and self._client is not None:
            self._client.close()

    def __enter__(self) -> "BaseHTTPLLM":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
