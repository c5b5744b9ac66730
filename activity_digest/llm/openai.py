"""OpenAI Chat Completions client implementation."""

import logging
from typing import Optional

import httpx

from activity_digest.errors import SourceError
from activity_digest.llm.base import BaseHTTPLLM, LLMResponse
from activity_digest.retry import retry

logger = logging.getLogger("activity_digest.llm.openai")


class OpenAILLM(BaseHTTPLLM):
    """OpenAI API client."""

    BASE_URL = "https://api.openai.com/v1"

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    def generate(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Generate a response using OpenAI.

        Args:
            prompt: The user prompt.
            system_prompt: Optional system prompt.

        Returns:
            LLMResponse with generated content.
        """
        try:
            return self._generate_with_retry(prompt, system_prompt)
        except SourceError as e:
            logger.error(f"OpenAI request failed after retries: {e}")
            return LLMResponse(content="", model=self.model)

    @retry(max_retries=2, initial_delay=2.0, max_rate_limit_waits=3)
    def _generate_with_retry(self, prompt: str, system_prompt: Optional[str] = None) -> LLMResponse:
        """Internal generate method with retry logic."""
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        logger.debug(f"Sending request to OpenAI: model={self.model}")

        data = self._post(f"{self.BASE_URL}/chat/completions", payload, self._headers())
        choices = data.get("choices", [])

        if not choices:
            logger.warning("No choices in OpenAI response")
            return LLMResponse(content="", model=self.model)

        content = choices[0].get("message", {}).get("content") or ""
        usage = data.get("usage", {})

        logger.debug(f"Received response: {len(content)} characters")

        return LLMResponse(
            content=content,
            model=data.get("model", self.model),
            tokens_used=usage.get("total_tokens"),
            finish_reason=choices[0].get("finish_reason"),
        )

    def is_available(self) -> bool:
        """Check if OpenAI is available.

        Returns:
            True if API key is configured and service is reachable.
        """
        if not self.api_key:
            logger.warning("OpenAI API key not configured")
            return False

        try:
            response = self._client.get(
                f"{self.BASE_URL}/models", headers=self._headers(), timeout=10.0
            )
            return response.status_code == 200
        except httpx.HTTPError as e:
            logger.error(f"OpenAI availability check failed: {e}")
            return False

    @property
    def provider_name(self) -> str:
        """Get provider name."""
        return "OpenAI"
