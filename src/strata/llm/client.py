"""Unified LLM client wrapper using LiteLLM.

Provides a consistent interface for chat completions, structured (JSON)
output and embeddings across providers. Temperature is fixed at 0 so the
same prompt yields the same justification.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import litellm

from strata.llm.rate_limiter import RateLimiter, TokenReservation
from strata.models.llm_config import LLMConfig

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)

# Rough prompt size estimate used for token budgeting before the call
_CHARS_PER_TOKEN = 3.5


class LLMError(Exception):
    """Exception raised for LLM-related errors."""


@dataclass
class LLMResponse:
    """Response from LLM completion.

    Attributes:
        content: Generated text content
        model: Model that generated the response
        usage: Token usage statistics
        finish_reason: Reason for completion (stop, length, etc.)
    """

    content: str
    model: str
    usage: dict[str, int]
    finish_reason: str | None = None


def extract_json(text: str) -> Any:
    """Parse the JSON object or array in a model response.

    Accepts a fenced code block or bare JSON surrounded by prose.

    Raises:
        LLMError: If no valid JSON can be found
    """
    match = _JSON_BLOCK.search(text)
    if match:
        candidate = match.group(1)
    else:
        starts = [i for i in (text.find("{"), text.find("[")) if i >= 0]
        if not starts:
            raise LLMError("No JSON found in LLM response")
        start = min(starts)
        end = text.rfind("}" if text[start] == "{" else "]")
        if end < start:
            raise LLMError("Unterminated JSON in LLM response")
        candidate = text[start : end + 1]

    try:
        return json.loads(candidate)
    except json.JSONDecodeError as e:
        raise LLMError(f"Malformed JSON in LLM response: {e}") from e


class LLMClient:
    """Unified LLM client using LiteLLM.

    Supports multiple providers through a single interface:
    - Claude (Anthropic)
    - OpenAI
    - Gemini (Google)
    - Ollama (local)
    - Bedrock (AWS)
    """

    def __init__(self, config: LLMConfig, rate_limiter: RateLimiter | None = None) -> None:
        """Initialize LLM client with configuration.

        Args:
            config: LLM configuration with provider, model, and credentials
            rate_limiter: Optional limiter consulted before every call
        """
        self.config = config
        self.rate_limiter = rate_limiter

    def _provider_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.config.api_key:
            kwargs["api_key"] = self.config.api_key
        if self.config.api_base:
            kwargs["api_base"] = self.config.api_base
        return kwargs

    def _reserve(self, prompt_chars: int) -> TokenReservation | None:
        """Wait for a request slot and reserve the estimated prompt tokens."""
        if self.rate_limiter is None:
            return None
        self.rate_limiter.wait_for_slot()
        return self.rate_limiter.wait_for_token_budget(int(prompt_chars / _CHARS_PER_TOKEN))

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        model: str | None = None,
    ) -> LLMResponse:
        """Generate a completion from the LLM.

        Args:
            prompt: User prompt for the LLM
            system_prompt: Optional system prompt
            max_tokens: Override max_tokens from config
            model: Bare model identifier (defaults to the standard model)

        Returns:
            LLMResponse with generated content

        Raises:
            LLMError: If the completion fails
        """
        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        reservation = self._reserve(len(prompt) + len(system_prompt or ""))

        try:
            response = litellm.completion(
                model=self.config.get_litellm_model_name(model),
                messages=messages,
                temperature=0,
                max_tokens=max_tokens or self.config.max_tokens,
                **self._provider_kwargs(),
            )

            choice = response.choices[0]
            content = choice.message.content or ""

            usage = {}
            if response.usage:
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens or 0,
                    "completion_tokens": response.usage.completion_tokens or 0,
                    "total_tokens": response.usage.total_tokens or 0,
                }

        except litellm.exceptions.AuthenticationError as e:
            raise LLMError(f"Authentication failed for {self.config.provider}: {e}") from e
        except litellm.exceptions.RateLimitError as e:
            raise LLMError(f"Rate limit exceeded for {self.config.provider}: {e}") from e
        except litellm.exceptions.APIConnectionError as e:
            raise LLMError(f"Connection failed to {self.config.provider}: {e}") from e
        except Exception as e:
            raise LLMError(f"LLM completion failed: {e}") from e

        if self.rate_limiter is not None:
            self.rate_limiter.record_usage(usage.get("total_tokens", 0), reservation)

        return LLMResponse(
            content=content,
            model=response.model or self.config.get_litellm_model_name(model),
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    def generate_object(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model: str | None = None,
    ) -> Any:
        """Generate structured output and parse it as JSON.

        Returns:
            Parsed JSON (object or array)

        Raises:
            LLMError: If the call fails or the output is not valid JSON
        """
        response = self.complete(prompt, system_prompt=system_prompt, model=model)
        logger.debug(
            "Structured response from %s: %d tokens, %d chars",
            response.model,
            response.usage.get("total_tokens", 0),
            len(response.content),
        )
        if response.finish_reason == "length":
            raise LLMError("LLM response truncated at max_tokens")
        return extract_json(response.content)

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts with the configured embedding model.

        Raises:
            LLMError: If no embedding model is configured or the call fails
        """
        if not texts:
            return []
        if not self.config.embedding_model:
            raise LLMError("No embedding_model configured")

        reservation = self._reserve(sum(len(text) for text in texts))

        try:
            response = litellm.embedding(
                model=self.config.get_litellm_model_name(self.config.embedding_model),
                input=texts,
                **self._provider_kwargs(),
            )
        except Exception as e:
            raise LLMError(f"Embedding failed: {e}") from e

        if self.rate_limiter is not None:
            usage = getattr(response, "usage", None)
            if isinstance(usage, dict):
                total = usage.get("total_tokens")
            else:
                total = getattr(usage, "total_tokens", None)
            if isinstance(total, int):
                self.rate_limiter.record_usage(total, reservation)

        items = sorted(response.data, key=lambda item: _field(item, "index"))
        vectors = [list(_field(item, "embedding")) for item in items]
        if len(vectors) != len(texts):
            raise LLMError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        return vectors

    def check_available(self) -> bool:
        """Check if the LLM provider is available.

        Performs a minimal API call to verify connectivity.
        """
        try:
            self.complete("Say 'ok'", max_tokens=10)
            return True
        except LLMError:
            return False


def _field(item: Any, name: str) -> Any:
    return item[name] if isinstance(item, dict) else getattr(item, name)


def create_client(config: LLMConfig, rate_limiter: RateLimiter | None = None) -> LLMClient:
    """Create an LLM client from configuration.

    Raises:
        ValueError: If LLM is disabled in config
    """
    if not config.enabled:
        raise ValueError("LLM is disabled in configuration")

    return LLMClient(config, rate_limiter=rate_limiter)
