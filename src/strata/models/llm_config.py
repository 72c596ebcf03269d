"""LLM configuration entity.

Defines the provider settings used for justification (chat) and drift
detection (embedding) calls. Supports Claude, OpenAI, Gemini, Ollama and
Bedrock through LiteLLM.
"""

from dataclasses import dataclass, field

VALID_PROVIDERS = frozenset({"claude", "openai", "gemini", "ollama", "bedrock"})

# LiteLLM routing prefix per provider
_PROVIDER_PREFIXES = {
    "claude": "anthropic",
    "openai": "openai",
    "gemini": "gemini",
    "ollama": "ollama",
    "bedrock": "bedrock",
}


@dataclass
class LLMConfig:
    """Configuration for the LLM provider.

    Attributes:
        provider: LLM provider (claude, openai, gemini, ollama, bedrock)
        model: Standard-tier model identifier
        fast_model: Model for simple entities (defaults to ``model``)
        premium_model: Model for high-centrality entities (defaults to ``model``)
        embedding_model: Embedding model for drift detection
        api_key: API key (not required for Ollama or Bedrock)
        api_base: API base URL (required for Ollama)
        temperature: Temperature setting (must be 0 for reproducible annotations)
        max_tokens: Maximum response tokens per batch call
        enabled: Whether LLM justification is enabled
    """

    provider: str
    model: str
    fast_model: str | None = None
    premium_model: str | None = None
    embedding_model: str | None = None
    api_key: str | None = None
    api_base: str | None = None
    temperature: float = field(default=0.0)
    max_tokens: int = field(default=4096)
    enabled: bool = field(default=True)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self.provider = self.provider.lower().strip()

        if self.provider not in VALID_PROVIDERS:
            raise ValueError(
                f"Invalid provider '{self.provider}'. "
                f"Must be one of: {sorted(VALID_PROVIDERS)}"
            )

        if not self.model or not self.model.strip():
            raise ValueError("Model identifier cannot be empty")
        self.model = self.model.strip()

        if self.temperature != 0.0:
            raise ValueError(
                f"Temperature must be 0 for reproducible justifications. Got: {self.temperature}"
            )

        if self.max_tokens <= 0:
            raise ValueError(f"max_tokens must be positive. Got: {self.max_tokens}")

        if self.provider == "ollama":
            if not self.api_base:
                raise ValueError("api_base is required for Ollama provider")
        elif self.provider in {"claude", "openai", "gemini"}:
            if not self.api_key:
                raise ValueError(f"api_key is required for {self.provider} provider")

    def validate(self) -> list[str]:
        """Validate configuration and return warnings.

        Returns:
            List of warning messages (empty if no warnings)
        """
        warnings: list[str] = []

        if self.max_tokens < 1000:
            warnings.append(
                f"max_tokens is set to {self.max_tokens}, which may truncate batch responses"
            )

        if self.embedding_model is None:
            warnings.append("embedding_model is not set; drift detection falls back to AST hashes")

        if (
            self.provider == "ollama"
            and self.api_base
            and not self.api_base.startswith(("http://", "https://"))
        ):
            warnings.append(
                f"api_base '{self.api_base}' does not start with http:// or https://"
            )

        return warnings

    def to_dict(self) -> dict[str, str | int | float | bool | None]:
        return {
            "provider": self.provider,
            "model": self.model,
            "fast_model": self.fast_model,
            "premium_model": self.premium_model,
            "embedding_model": self.embedding_model,
            "api_key": self.api_key,
            "api_base": self.api_base,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "enabled": self.enabled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, str | int | float | bool | None]) -> "LLMConfig":
        return cls(
            provider=str(data.get("provider", "")),
            model=str(data.get("model", "")),
            fast_model=data.get("fast_model") or None,  # type: ignore[arg-type]
            premium_model=data.get("premium_model") or None,  # type: ignore[arg-type]
            embedding_model=data.get("embedding_model") or None,  # type: ignore[arg-type]
            api_key=data.get("api_key") or None,  # type: ignore[arg-type]
            api_base=data.get("api_base") or None,  # type: ignore[arg-type]
            temperature=float(data.get("temperature", 0.0)),  # type: ignore[arg-type]
            max_tokens=int(data.get("max_tokens", 4096)),  # type: ignore[arg-type]
            enabled=bool(data.get("enabled", True)),
        )

    def model_for_tier(self, tier: str) -> str:
        """Return the bare model identifier for a routing tier."""
        if tier == "fast" and self.fast_model:
            return self.fast_model
        if tier == "premium" and self.premium_model:
            return self.premium_model
        return self.model

    def get_litellm_model_name(self, model: str | None = None) -> str:
        """Get a model name in LiteLLM ``provider/model`` format.

        Args:
            model: Bare model identifier (defaults to the standard model)
        """
        name = model or self.model
        prefix = _PROVIDER_PREFIXES[self.provider]
        if name.startswith(f"{prefix}/"):
            return name
        return f"{prefix}/{name}"
