"""Unit tests for LLMConfig validation and model naming."""

import pytest

from strata.models.llm_config import VALID_PROVIDERS, LLMConfig


class TestLLMConfig:
    """Tests for LLMConfig entity."""

    def test_create_claude_config(self) -> None:
        """Test creating a Claude provider configuration."""
        config = LLMConfig(provider="claude", model="claude-sonnet-4", api_key="test-key")

        assert config.provider == "claude"
        assert config.temperature == 0.0
        assert config.max_tokens == 4096
        assert config.enabled is True

    def test_create_ollama_config(self) -> None:
        """Test creating an Ollama provider configuration."""
        config = LLMConfig(provider="ollama", model="llama3.2", api_base="http://localhost:11434")

        assert config.api_base == "http://localhost:11434"
        assert config.api_key is None

    def test_provider_normalized_to_lowercase(self) -> None:
        config = LLMConfig(provider=" CLAUDE ", model="claude-sonnet-4", api_key="k")
        assert config.provider == "claude"

    def test_invalid_provider_raises_error(self) -> None:
        with pytest.raises(ValueError, match="Invalid provider"):
            LLMConfig(provider="invalid_provider", model="m", api_key="k")

    def test_empty_model_raises_error(self) -> None:
        with pytest.raises(ValueError, match="Model identifier cannot be empty"):
            LLMConfig(provider="bedrock", model="  ")

    def test_non_zero_temperature_raises_error(self) -> None:
        with pytest.raises(ValueError, match="Temperature must be 0"):
            LLMConfig(provider="bedrock", model="m", temperature=0.7)

    def test_ollama_requires_api_base(self) -> None:
        with pytest.raises(ValueError, match="api_base is required"):
            LLMConfig(provider="ollama", model="llama3.2")

    @pytest.mark.parametrize("provider", ["claude", "openai", "gemini"])
    def test_hosted_providers_require_api_key(self, provider: str) -> None:
        with pytest.raises(ValueError, match="api_key is required"):
            LLMConfig(provider=provider, model="m")

    def test_bedrock_needs_no_key(self) -> None:
        assert LLMConfig(provider="bedrock", model="anthropic.claude-v2").api_key is None

    def test_valid_providers(self) -> None:
        assert VALID_PROVIDERS == {"claude", "openai", "gemini", "ollama", "bedrock"}


class TestModelNaming:
    """Tests for tier model selection and LiteLLM names."""

    def test_model_for_tier(self) -> None:
        config = LLMConfig(
            provider="bedrock", model="std", fast_model="small", premium_model="large"
        )
        assert config.model_for_tier("fast") == "small"
        assert config.model_for_tier("premium") == "large"
        assert config.model_for_tier("standard") == "std"

    def test_tiers_fall_back_to_standard_model(self) -> None:
        config = LLMConfig(provider="bedrock", model="std")
        assert config.model_for_tier("fast") == "std"
        assert config.model_for_tier("premium") == "std"

    @pytest.mark.parametrize(
        ("provider", "expected"),
        [
            ("claude", "anthropic/m"),
            ("openai", "openai/m"),
            ("gemini", "gemini/m"),
            ("bedrock", "bedrock/m"),
        ],
    )
    def test_litellm_prefix(self, provider: str, expected: str) -> None:
        config = LLMConfig(provider=provider, model="m", api_key="k")
        assert config.get_litellm_model_name() == expected

    def test_prefix_not_doubled(self) -> None:
        config = LLMConfig(provider="ollama", model="ollama/llama3.2", api_base="http://x")
        assert config.get_litellm_model_name() == "ollama/llama3.2"

    def test_explicit_model_argument(self) -> None:
        config = LLMConfig(provider="claude", model="std", api_key="k")
        assert config.get_litellm_model_name("haiku") == "anthropic/haiku"


class TestLLMConfigSerialization:
    """Tests for to_dict / from_dict / validate."""

    def test_round_trip(self) -> None:
        config = LLMConfig(provider="claude", model="m", api_key="k", embedding_model="embed")
        assert LLMConfig.from_dict(config.to_dict()) == config

    def test_validate_warnings(self) -> None:
        config = LLMConfig(provider="ollama", model="m", api_base="localhost:11434", max_tokens=500)
        warnings = config.validate()
        assert any("max_tokens" in w for w in warnings)
        assert any("embedding_model" in w for w in warnings)
        assert any("http://" in w for w in warnings)
