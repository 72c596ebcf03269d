"""LLM integration for Strata.

Provides a LiteLLM-backed client for justification (structured output) and
drift detection (embeddings), plus a sliding-window rate limiter.
"""

from strata.llm.client import LLMClient, LLMError, LLMResponse, create_client, extract_json
from strata.llm.rate_limiter import RateLimitConfig, RateLimiter, TokenReservation
from strata.models.llm_config import VALID_PROVIDERS, LLMConfig

__all__ = [
    "LLMClient",
    "LLMConfig",
    "LLMError",
    "LLMResponse",
    "RateLimitConfig",
    "RateLimiter",
    "TokenReservation",
    "VALID_PROVIDERS",
    "create_client",
    "extract_json",
]
