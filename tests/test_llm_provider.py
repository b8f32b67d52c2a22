"""
Tests for LLM Provider Abstraction Layer

Tests provider interfaces, request formatting, error mapping and factories.
Note: These tests use mocks to avoid actual API calls.
"""

import pytest
from unittest.mock import Mock, patch
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.llm_provider import (
    LLMRequest, LLMResponse, ProviderType,
    AnthropicProvider, OpenAIProvider, OllamaProvider,
    LLMProviderError, RateLimitError, AuthenticationError, ModelNotFoundError,
    create_provider, get_provider
)


class TestLLMRequest:
    """Tests for LLMRequest model."""

    def test_classifier_defaults(self):
        """Defaults match the session classifier contract."""
        request = LLMRequest(messages=[{"role": "user", "content": "Hello"}])

        assert request.temperature == 0.1
        assert request.max_tokens == 1000
        assert request.timeout_seconds == 30.0

    def test_anthropic_format(self):
        """System prompt goes in its own field for Anthropic."""
        request = LLMRequest(
            messages=[{"role": "user", "content": "Hello"}],
            system_prompt="Be precise"
        )

        fmt = request.to_anthropic_format()

        assert fmt["system"] == "Be precise"
        assert fmt["messages"] == [{"role": "user", "content": "Hello"}]
        assert fmt["temperature"] == 0.1

    def test_openai_format(self):
        """System prompt is prepended as a system message for OpenAI."""
        request = LLMRequest(
            messages=[{"role": "user", "content": "Hello"}],
            system_prompt="Be precise"
        )

        fmt = request.to_openai_format()

        assert len(fmt["messages"]) == 2
        assert fmt["messages"][0] == {"role": "system", "content": "Be precise"}
        assert fmt["max_tokens"] == 1000


class TestLLMResponse:
    """Tests for LLMResponse model."""

    def test_total_tokens(self):
        response = LLMResponse(
            content='{"sessionIds": []}',
            model="gpt-4o-mini",
            provider="openai",
            input_tokens=100,
            output_tokens=50,
            latency_ms=500.0
        )

        assert response.total_tokens == 150


class TestOpenAIProvider:
    """Tests for OpenAI provider."""

    @pytest.fixture
    def provider(self):
        """Create provider with mock API key."""
        return OpenAIProvider({"api_key": "test-key"})

    def test_name_and_type(self, provider):
        assert provider.name == "openai"
        assert provider.provider_type == ProviderType.OPENAI

    def test_default_model(self, provider):
        assert provider.model == "gpt-4o-mini"

    def test_not_configured_without_key(self):
        provider = OpenAIProvider({})
        assert not provider.is_available

    def test_complete_without_key_raises(self):
        provider = OpenAIProvider({})
        with pytest.raises(AuthenticationError):
            provider.complete(LLMRequest(messages=[{"role": "user", "content": "Hi"}]))

    def test_complete_success(self, provider):
        """Single call with the configured model and timeout."""
        usage = Mock(prompt_tokens=12, completion_tokens=5)
        message = Mock(content='{"sessionIds": ["abc"]}')
        choice = Mock(message=message, finish_reason="stop")
        client = Mock()
        client.chat.completions.create.return_value = Mock(id="resp-1", choices=[choice], usage=usage)
        provider._client = client

        response = provider.complete(LLMRequest(
            messages=[{"role": "user", "content": "Hi"}],
            timeout_seconds=7.5
        ))

        assert response.content == '{"sessionIds": ["abc"]}'
        assert response.input_tokens == 12
        assert client.chat.completions.create.call_count == 1
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["timeout"] == 7.5
        assert provider.get_stats()["calls"] == 1

    def test_sdk_error_is_classified(self, provider):
        client = Mock()
        client.chat.completions.create.side_effect = Exception("Error code: 429 rate limit")
        provider._client = client

        with pytest.raises(RateLimitError):
            provider.complete(LLMRequest(messages=[{"role": "user", "content": "Hi"}]))

        assert provider.get_stats()["errors"] == 1

    def test_client_built_without_sdk_retries(self, provider):
        with patch("openai.OpenAI") as mock_openai:
            provider._get_client()

        kwargs = mock_openai.call_args.kwargs
        assert kwargs["max_retries"] == 0
        assert kwargs["timeout"] == 30.0


class TestAnthropicProvider:
    """Tests for Anthropic provider."""

    @pytest.fixture
    def provider(self):
        return AnthropicProvider({"api_key": "test-key", "model": "claude-3-5-haiku-20241022"})

    def test_name_and_type(self, provider):
        assert provider.name == "anthropic"
        assert provider.provider_type == ProviderType.ANTHROPIC

    def test_complete_joins_text_blocks(self, provider):
        text_block = Mock(type="text", text='{"sessionIds": []}')
        response = Mock(
            id="msg-1",
            content=[text_block],
            usage=Mock(input_tokens=20, output_tokens=4),
            stop_reason="end_turn"
        )
        client = Mock()
        client.messages.create.return_value = response
        provider._client = client

        result = provider.complete(LLMRequest(
            messages=[{"role": "user", "content": "Hi"}],
            system_prompt="Be precise"
        ))

        assert result.content == '{"sessionIds": []}'
        assert client.messages.create.call_args.kwargs["system"] == "Be precise"


class TestOllamaProvider:
    """Tests for Ollama provider."""

    @pytest.fixture
    def provider(self):
        return OllamaProvider({"base_url": "http://localhost:11434"})

    def test_name_and_type(self, provider):
        assert provider.name == "ollama"
        assert provider.provider_type == ProviderType.OLLAMA

    def test_complete_posts_chat_request(self, provider):
        http_response = Mock()
        http_response.json.return_value = {
            "message": {"content": '{"sessionIds": ["s1"]}'},
            "prompt_eval_count": 30,
            "eval_count": 8,
        }
        http_response.raise_for_status.return_value = None

        with patch("requests.post", return_value=http_response) as mock_post:
            result = provider.complete(LLMRequest(
                messages=[{"role": "user", "content": "Hi"}],
                system_prompt="Be precise",
                timeout_seconds=12
            ))

        assert result.content == '{"sessionIds": ["s1"]}'
        payload = mock_post.call_args.kwargs["json"]
        assert payload["messages"][0]["role"] == "system"
        assert payload["stream"] is False
        assert mock_post.call_args.kwargs["timeout"] == 12

    def test_connection_error_wrapped(self, provider):
        import requests

        with patch("requests.post", side_effect=requests.ConnectionError("Connection refused")):
            with pytest.raises(LLMProviderError) as exc_info:
                provider.complete(LLMRequest(messages=[{"role": "user", "content": "Hi"}]))

        assert exc_info.value.provider == "ollama"


class TestFactoryFunctions:
    """Tests for factory functions."""

    def test_create_each_provider(self):
        assert isinstance(create_provider(ProviderType.OPENAI, {"api_key": "t"}), OpenAIProvider)
        assert isinstance(create_provider(ProviderType.ANTHROPIC, {"api_key": "t"}), AnthropicProvider)
        assert isinstance(create_provider(ProviderType.OLLAMA, {}), OllamaProvider)

    def test_get_provider_defaults_to_openai(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = get_provider({})

        assert provider.name == "openai"
        assert provider.model == "gpt-4o-mini"

    def test_get_provider_reads_env_key(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        provider = get_provider({"provider": "anthropic"})

        assert provider._api_key == "env-key"

    def test_get_provider_top_level_model_and_timeout(self):
        provider = get_provider({
            "provider": "openai",
            "model": "gpt-4o",
            "timeout": 5,
            "openai": {"api_key": "cfg-key"},
        })

        assert provider.model == "gpt-4o"
        assert provider.timeout_seconds == 5.0
        assert provider._api_key == "cfg-key"

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValueError):
            get_provider({"provider": "bogus"})


class TestExceptions:
    """Tests for exception hierarchy."""

    def test_rate_limit_error(self):
        error = RateLimitError("Rate limited", "openai", retry_after=60)

        assert error.retryable
        assert error.retry_after == 60

    def test_auth_error_not_retryable(self):
        error = AuthenticationError("Invalid key", "openai")

        assert not error.retryable

    def test_model_not_found(self):
        error = ModelNotFoundError("Model not found", "anthropic", "gpt-5")

        assert error.model == "gpt-5"
        assert not error.retryable
