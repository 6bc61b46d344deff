"""Simple synchronous LLM client for the optional summary enhancement."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any

import anthropic

DEFAULT_MODEL = "claude-haiku-4-5-20251001"


class LLMError(Exception):
    """LLM call failed."""
    pass


@dataclass
class LLMClient:
    """
    Thin wrapper over the Anthropic messages API.

    Every request is bounded: the SDK client is built with ``timeout``
    and no retries, so a slow or failing endpoint costs at most one
    timeout before the caller falls back.
    """

    api_key: str | None = None
    default_model: str = DEFAULT_MODEL
    base_url: str | None = None
    timeout: float = 10.0
    # Summaries should be reproducible, not creative
    temperature: float = 0.0
    _client: anthropic.Anthropic | None = field(default=None, repr=False)

    def __post_init__(self):
        """Initialize API key and endpoint from environment if not provided."""
        if self.api_key is None:
            self.api_key = os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_AUTH_TOKEN")
        if self.base_url is None:
            self.base_url = os.environ.get("ANTHROPIC_BASE_URL")
        haiku_model = os.environ.get("ANTHROPIC_DEFAULT_HAIKU_MODEL")
        if haiku_model and self.default_model == DEFAULT_MODEL:
            self.default_model = haiku_model

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> anthropic.Anthropic:
        """Get or create Anthropic client."""
        if self._client is None:
            if not self.api_key:
                raise LLMError("ANTHROPIC_API_KEY not set")
            client_kwargs: dict[str, Any] = {
                "api_key": self.api_key,
                "timeout": self.timeout,
                "max_retries": 0,
            }
            if self.base_url:
                client_kwargs["base_url"] = self.base_url
            object.__setattr__(self, "_client", anthropic.Anthropic(**client_kwargs))
        return self._client

    def call(
        self,
        query: str,
        model: str | None = None,
        max_tokens: int = 1024,
        system: str | None = None,
    ) -> str:
        """
        Make a synchronous LLM call.

        Args:
            query: The prompt string
            model: Optional model override
            max_tokens: Maximum tokens in response
            system: Optional system prompt

        Returns:
            Concatenated text blocks of the response

        Raises:
            ValueError: If query is empty
            LLMError: If the LLM call fails or times out
        """
        if not query or not query.strip():
            raise ValueError("Query cannot be empty")

        try:
            client = self._get_client()

            request_params: dict[str, Any] = {
                "model": model or self.default_model,
                "max_tokens": max_tokens,
                "messages": [{"role": "user", "content": query}],
                "temperature": self.temperature,
            }
            if system:
                request_params["system"] = system

            response = client.messages.create(**request_params)

            content = ""
            for block in response.content:
                if block.type == "text":
                    content += block.text
            return content

        except LLMError:
            raise
        except anthropic.APITimeoutError as e:
            raise LLMError(f"Anthropic API timed out after {self.timeout}s") from e
        except anthropic.APIError as e:
            raise LLMError(f"Anthropic API error: {e}") from e
        except Exception as e:
            raise LLMError(f"LLM call failed: {e}") from e


__all__ = ["LLMClient", "LLMError", "DEFAULT_MODEL"]
