"""Integration tests for the LiteLLM-backed client.

LiteLLM calls are mocked; no network access is needed.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest

from strata.llm.client import LLMClient, LLMError, create_client, extract_json
from strata.llm.rate_limiter import RateLimitConfig, RateLimiter
from strata.models.llm_config import LLMConfig


class LimiterWouldWait(Exception):
    pass


def _response(content: str, finish_reason: str = "stop", total_tokens: int = 30) -> MagicMock:
    mock = MagicMock()
    mock.choices = [MagicMock(message=MagicMock(content=content), finish_reason=finish_reason)]
    mock.model = "anthropic/claude-sonnet-4"
    mock.usage = MagicMock(prompt_tokens=20, completion_tokens=10, total_tokens=total_tokens)
    return mock


@pytest.fixture
def claude_config() -> LLMConfig:
    return LLMConfig(
        provider="claude",
        model="claude-sonnet-4",
        fast_model="claude-haiku",
        embedding_model="voyage-3",
        api_key="test-key",
    )


class TestExtractJson:
    """Tests for extract_json."""

    def test_fenced_block(self) -> None:
        assert extract_json('Here you go:\n```json\n[{"a": 1}]\n```') == [{"a": 1}]

    def test_bare_json_with_prose(self) -> None:
        assert extract_json('Sure! {"a": [1, 2]} Hope that helps.') == {"a": [1, 2]}

    def test_array_before_object(self) -> None:
        assert extract_json('[{"a": 1}, {"b": 2}]') == [{"a": 1}, {"b": 2}]

    def test_no_json(self) -> None:
        with pytest.raises(LLMError, match="No JSON"):
            extract_json("I cannot help with that")

    def test_malformed_json(self) -> None:
        with pytest.raises(LLMError, match="Malformed JSON"):
            extract_json('{"a": }')


class TestCreateClient:
    """Tests for create_client."""

    def test_create_client(self, claude_config: LLMConfig) -> None:
        client = create_client(claude_config)
        assert client.config is claude_config
        assert client.rate_limiter is None

    def test_disabled_config_raises(self) -> None:
        config = LLMConfig(provider="bedrock", model="m", enabled=False)
        with pytest.raises(ValueError, match="disabled"):
            create_client(config)


class TestComplete:
    """Tests for LLMClient.complete."""

    def test_passes_deterministic_parameters(self, claude_config: LLMConfig) -> None:
        client = LLMClient(claude_config)

        with patch("litellm.completion") as mock_call:
            mock_call.return_value = _response("hello")
            response = client.complete("Hi", system_prompt="Be brief", model="claude-haiku")

        kwargs = mock_call.call_args.kwargs
        assert kwargs["model"] == "anthropic/claude-haiku"
        assert kwargs["temperature"] == 0
        assert kwargs["api_key"] == "test-key"
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief"}
        assert response.content == "hello"
        assert response.usage["total_tokens"] == 30

    def test_authentication_error(self, claude_config: LLMConfig) -> None:
        import litellm

        client = LLMClient(claude_config)
        with patch("litellm.completion") as mock_call:
            mock_call.side_effect = litellm.exceptions.AuthenticationError(
                message="Invalid API key",
                llm_provider="anthropic",
                model="claude-sonnet-4",
            )
            with pytest.raises(LLMError, match="Authentication failed"):
                client.complete("Hello!")

    def test_rate_limit_error(self, claude_config: LLMConfig) -> None:
        import litellm

        client = LLMClient(claude_config)
        with patch("litellm.completion") as mock_call:
            mock_call.side_effect = litellm.exceptions.RateLimitError(
                message="Rate limit exceeded",
                llm_provider="anthropic",
                model="claude-sonnet-4",
            )
            with pytest.raises(LLMError, match="Rate limit exceeded"):
                client.complete("Hello!")

    def test_generic_error(self, claude_config: LLMConfig) -> None:
        client = LLMClient(claude_config)
        with patch("litellm.completion") as mock_call:
            mock_call.side_effect = Exception("Unknown error")
            with pytest.raises(LLMError, match="LLM completion failed"):
                client.complete("Hello!")

    def test_rate_limiter_records_usage(self, claude_config: LLMConfig) -> None:
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=10, tokens_per_minute=1000))
        client = LLMClient(claude_config, rate_limiter=limiter)

        with patch("litellm.completion") as mock_call:
            mock_call.return_value = _response("ok", total_tokens=42)
            client.complete("Hi")

        assert limiter.tokens_in_window() == 42

    def test_concurrent_calls_share_token_budget(self, claude_config: LLMConfig) -> None:
        def refuse_to_sleep(seconds: float) -> None:
            raise LimiterWouldWait

        limiter = RateLimiter(
            RateLimitConfig(requests_per_minute=0, tokens_per_minute=200_000),
            sleep=refuse_to_sleep,
        )
        client = LLMClient(claude_config, rate_limiter=limiter)
        prompt = "x" * 350_000
        barrier = threading.Barrier(4)

        def call() -> bool:
            barrier.wait()
            try:
                client.complete(prompt)
            except LimiterWouldWait:
                return False
            return True

        with patch("litellm.completion", return_value=_response("ok", total_tokens=100_000)):
            with ThreadPoolExecutor(max_workers=4) as pool:
                admitted = list(pool.map(lambda _: call(), range(4)))

        assert admitted.count(True) == 2
        assert limiter.tokens_in_window() == 200_000


class TestGenerateObject:
    """Tests for LLMClient.generate_object."""

    def test_parses_json(self, claude_config: LLMConfig) -> None:
        client = LLMClient(claude_config)
        with patch("litellm.completion") as mock_call:
            mock_call.return_value = _response('```json\n[{"entityId": "abc"}]\n```')
            assert client.generate_object("prompt") == [{"entityId": "abc"}]

    def test_truncated_output_raises(self, claude_config: LLMConfig) -> None:
        client = LLMClient(claude_config)
        with patch("litellm.completion") as mock_call:
            mock_call.return_value = _response('[{"entityId": "abc"', finish_reason="length")
            with pytest.raises(LLMError, match="truncated"):
                client.generate_object("prompt")


class TestEmbed:
    """Tests for LLMClient.embed."""

    def test_sorted_by_index(self, claude_config: LLMConfig) -> None:
        client = LLMClient(claude_config)
        response = MagicMock()
        response.data = [
            {"index": 1, "embedding": [0.0, 1.0]},
            {"index": 0, "embedding": [1.0, 0.0]},
        ]
        with patch("litellm.embedding", return_value=response) as mock_call:
            vectors = client.embed(["old", "new"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        assert mock_call.call_args.kwargs["model"] == "anthropic/voyage-3"

    def test_empty_input(self, claude_config: LLMConfig) -> None:
        assert LLMClient(claude_config).embed([]) == []

    def test_requires_embedding_model(self) -> None:
        client = LLMClient(LLMConfig(provider="bedrock", model="m"))
        with pytest.raises(LLMError, match="embedding_model"):
            client.embed(["text"])

    def test_failure_is_wrapped(self, claude_config: LLMConfig) -> None:
        client = LLMClient(claude_config)
        with patch("litellm.embedding", side_effect=Exception("503")):
            with pytest.raises(LLMError, match="Embedding failed"):
                client.embed(["text"])

    def test_rate_limiter_consulted(self, claude_config: LLMConfig) -> None:
        limiter = RateLimiter(RateLimitConfig(requests_per_minute=10, tokens_per_minute=1000))
        client = LLMClient(claude_config, rate_limiter=limiter)
        response = MagicMock()
        response.data = [{"index": 0, "embedding": [1.0]}]
        response.usage = {"total_tokens": 12}

        with patch("litellm.embedding", return_value=response):
            client.embed(["some text to embed"])

        assert limiter.tokens_in_window() == 12


class TestCheckAvailable:
    """Tests for LLMClient.check_available."""

    def test_available(self, claude_config: LLMConfig) -> None:
        with patch("litellm.completion", return_value=_response("ok")):
            assert LLMClient(claude_config).check_available() is True

    def test_unavailable(self, claude_config: LLMConfig) -> None:
        with patch("litellm.completion", side_effect=Exception("API error")):
            assert LLMClient(claude_config).check_available() is False
