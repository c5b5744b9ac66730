"""Anthropic Messages API client implementation."""

import logging
from typing import Optional

import httpx

from activity_digest.errors import SourceError
from activity_digest.llm.base import BaseHTTPLLM, LLMResponse
from activity_digest.retry import retry

logger = logging.getLogger("activity_digest.llm.anthropic")


class AnthropicLLM(BaseHTTPLLM):
    """Anthropic (Claude) client."""

    BASE_URL = "https://api.anthropic.com/v1"
    API_VERSION = "2023-06-01"

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
        }

    def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Generate a response using Anthropic.

        Args:
            prompt: The user prompt.
            system_prompt: Optional system prompt.

        Returns:
            LLMResponse with generated content.
        """
        try:
            return self._generate_with_retry(prompt, system_prompt)
        except SourceError as e:
            logger.error(f"Anthropic request failed after retries: {e}")
            return LLMResponse(content="", model=self.model)

    @retry(max_retries=2, initial_delay=2.0, max_rate_limit_waits=3)
    def _generate_with_retry(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Internal generate method with retry logic."""
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            payload["system"] = system_prompt

        logger.debug(f"Sending request to Anthropic: model={self.model}")

        data = self._post(f"{self.BASE_URL}/messages", payload, self._headers())

        text_blocks = [
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        ]
        content = text_blocks[0] if text_blocks else ""
        if not content:
            logger.warning("No text content in Anthropic response")

        usage = data.get("usage", {})
        tokens = None
        if usage:
            tokens = usage.get("input_tokens", 0) + usage.get("output_tokens", 0)

        logger.debug(f"Received response: {len(content)} characters")

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            tokens_used=tokens,
            finish_reason=data.get("stop_reason"),
        )

    def is_available(self) -> bool:
        """Check if the Anthropic API accepts our key.

        Returns:
            True if the models endpoint answers with 200.
        """
        if not self.api_key:
            logger.warning("Anthropic API key not configured")
            return False

        try:
            response = self._client.get(
                f"{self.BASE_URL}/models", headers=self._headers(), timeout=10.0
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"Anthropic availability check failed: {e}")
            return False

    @property
    def provider_name(self) -> str:
        """Get provider name."""
        return "Anthropic"
