"""
Provider-Agnostic LLM Abstraction Layer

Gives the session classifier one interface over several reasoning services:
- Standardized request/response models
- Per-request timeout handed to the underlying client
- Exactly one attempt per request (SDK-level retries are disabled)
- Call/latency bookkeeping for observability

Supported providers:
- OpenAI (GPT models, default gpt-4o-mini)
- Anthropic (Claude models)
- Ollama (local models)

Usage:
    from core.llm_provider import get_provider, LLMRequest

    provider = get_provider({"provider": "openai", "openai": {"api_key": "..."}})
    response = provider.complete(LLMRequest(
        messages=[{"role": "user", "content": "Hello"}],
        system_prompt="Answer in JSON.",
    ))
"""

import os
import time
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


# =============================================================================
# Enums and Constants
# =============================================================================

class ProviderType(Enum):
    """Supported LLM providers."""
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OLLAMA = "ollama"


DEFAULT_TIMEOUT_SECONDS = 30.0


# =============================================================================
# Data Models
# =============================================================================

@dataclass
class LLMRequest:
    """
    Standardized request to any LLM provider.

    Attributes:
        messages: Conversation messages
        max_tokens: Maximum tokens in response
        temperature: Sampling temperature (0-1)
        system_prompt: Optional system prompt
        timeout_seconds: Client-side timeout for the call
        metadata: Additional provider-specific options
    """
    messages: List[Dict[str, str]]
    max_tokens: int = 1000
    temperature: float = 0.1
    system_prompt: Optional[str] = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_anthropic_format(self) -> Dict[str, Any]:
        """Convert to Anthropic API format."""
        payload = {
            "messages": self.messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if self.system_prompt:
            payload["system"] = self.system_prompt
        return payload

    def to_openai_format(self) -> Dict[str, Any]:
        """Convert to OpenAI API format."""
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.extend(self.messages)
        return {
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }


@dataclass
class LLMResponse:
    """
    Standardized response from any LLM provider.

    Attributes:
        content: The generated text content
        model: Model identifier used
        provider: Provider name (openai, anthropic, ollama)
        input_tokens: Number of input tokens
        output_tokens: Number of output tokens
        latency_ms: Request latency in milliseconds
        raw_response: Provider response identifiers (for debugging)
    """
    content: str
    model: str
    provider: str
    input_tokens: int
    output_tokens: int
    latency_ms: float
    raw_response: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def total_tokens(self) -> int:
        """Total tokens used."""
        return self.input_tokens + self.output_tokens


# =============================================================================
# Provider Exceptions
# =============================================================================

class LLMProviderError(Exception):
    """Base exception for LLM provider errors."""

    def __init__(
        self,
        message: str,
        provider: str,
        retryable: bool = True,
        original_error: Optional[Exception] = None
    ):
        super().__init__(message)
        self.provider = provider
        self.retryable = retryable
        self.original_error = original_error


class RateLimitError(LLMProviderError):
    """Rate limit exceeded."""

    def __init__(
        self,
        message: str,
        provider: str,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, provider, retryable=True)
        self.retry_after = retry_after


class AuthenticationError(LLMProviderError):
    """Authentication failed."""

    def __init__(self, message: str, provider: str):
        super().__init__(message, provider, retryable=False)


class ModelNotFoundError(LLMProviderError):
    """Requested model not available."""

    def __init__(self, message: str, provider: str, model: str):
        super().__init__(message, provider, retryable=False)
        self.model = model


def _classify_error(error: Exception, provider: str, model: str) -> LLMProviderError:
    """Map an SDK/HTTP exception onto the provider error hierarchy."""
    error_str = str(error).lower()

    if "rate" in error_str or "429" in error_str:
        return RateLimitError(str(error), provider)
    if "auth" in error_str or "401" in error_str or "api_key" in error_str:
        return AuthenticationError(str(error), provider)
    if "model" in error_str and "not found" in error_str:
        return ModelNotFoundError(str(error), provider, model)
    return LLMProviderError(str(error), provider, original_error=error)


# =============================================================================
# Abstract Provider Base Class
# =============================================================================

class LLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    All provider implementations must inherit from this class
    and implement the required abstract methods.
    """

    DEFAULT_MODEL = ""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize provider with configuration.

        Args:
            config: Provider-specific configuration dictionary
        """
        self.config = config
        self.model = config.get("model") or self.DEFAULT_MODEL
        self.timeout_seconds = float(config.get("timeout", DEFAULT_TIMEOUT_SECONDS))
        self._call_count = 0
        self._error_count = 0
        self._total_latency = 0.0

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging/metrics."""
        pass

    @property
    @abstractmethod
    def provider_type(self) -> ProviderType:
        """Provider type enum."""
        pass

    @property
    def is_available(self) -> bool:
        """Check if provider is configured."""
        return self._check_availability()

    @abstractmethod
    def _check_availability(self) -> bool:
        """
        Check if provider is available.

        Returns:
            True if provider is configured
        """
        pass

    @abstractmethod
    def complete(self, request: LLMRequest) -> LLMResponse:
        """
        Execute a completion request. One attempt, no retries.

        Args:
            request: Standardized LLM request

        Returns:
            Standardized LLM response

        Raises:
            LLMProviderError: If request fails
        """
        pass

    def _record_call(self, latency_ms: float, success: bool):
        """Record call metrics."""
        self._call_count += 1
        self._total_latency += latency_ms
        if not success:
            self._error_count += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get call statistics."""
        return {
            "provider": self.name,
            "model": self.model,
            "calls": self._call_count,
            "errors": self._error_count,
            "avg_latency_ms": (
                self._total_latency / self._call_count
                if self._call_count > 0 else 0.0
            ),
        }


# =============================================================================
# OpenAI Provider
# =============================================================================

class OpenAIProvider(LLMProvider):
    """
    OpenAI GPT provider implementation.

    Defaults to gpt-4o-mini; base_url allows Azure or compatible APIs.
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self._client = None
        self._api_key = config.get("api_key")
        self._base_url = config.get("base_url")

    @property
    def name(self) -> str:
        return "openai"

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OPENAI

    def _get_client(self):
        """Lazy initialization of OpenAI client."""
        if self._client is None:
            try:
                from openai import OpenAI
            except ImportError:
                raise LLMProviderError(
                    "openai package not installed. Run: pip install openai",
                    self.name,
                    retryable=False
                )
            kwargs = {
                "api_key": self._api_key,
                "timeout": self.timeout_seconds,
                "max_retries": 0,
            }
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = OpenAI(**kwargs)
        return self._client

    def _check_availability(self) -> bool:
        return bool(self._api_key)

    def complete(self, request: LLMRequest) -> LLMResponse:
        """Execute completion request against OpenAI API."""
        if not self._api_key:
            raise AuthenticationError("OPENAI_API_KEY not configured", self.name)

        client = self._get_client()
        start_time = time.time()

        try:
            response = client.chat.completions.create(
                model=self.model,
                timeout=request.timeout_seconds,
                **request.to_openai_format()
            )

            latency_ms = (time.time() - start_time) * 1000
            self._record_call(latency_ms, success=True)

            choice = response.choices[0]
            content = choice.message.content or ""
            usage = response.usage

            return LLMResponse(
                content=content,
                model=self.model,
                provider=self.name,
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
                latency_ms=latency_ms,
                raw_response={"id": response.id, "finish_reason": choice.finish_reason}
            )

        except Exception as e:
            latency_ms = (time.time() - start_time) * 1000
            self._record_call(latency_ms, success=False)
            raise _classify_error(e, self.name, self.model)


# =============================================================================
# Anthropic Provider
# =============================================================================

class AnthropicProvider(LLMProvider):
    """
    Anthropic Claude provider implementation.
    """

    DEFAULT_MODEL = "claude-3-5-haiku-20241022"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self._client = None
        self._api_key = config.get("api_key")
        self._base_url = config.get("base_url")

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.ANTHROPIC

    def _get_client(self):
        """Lazy initialization of Anthropic client."""
        if self._client is None:
            try:
                from anthropic import Anthropic
            except ImportError:
                raise LLMProviderError(
                    "anthropic package not installed. Run: pip install anthropic",
                    self.name,
                    retryable=False
                )
            kwargs = {
                "api_key": self._api_key,
                "timeout": self.timeout_seconds,
                "max_retries": 0,
            }
            if self._base_url:
                kwargs["base_url"] = self._base_url
            self._client = Anthropic(**kwargs)
        return self._client

    def _check_availability(self) -> bool:
        return bool(self._api_key)

    def complete(self, request: LLMRequest) -> LLMResponse:
        """Execute completion request against Anthropic API."""
        if not self._api_key:
            raise AuthenticationError("ANTHROPIC_API_KEY not configured", self.name)

        client = self._get_client()
        start_time = time.time()

        try:
            response = client.messages.create(
                model=self.model,
                timeout=request.timeout_seconds,
                **request.to_anthropic_format()
            )

            latency_ms = (time.time() - start_time) * 1000
            self._record_call(latency_ms, success=True)

            content = "".join(
                block.text for block in response.content
                if getattr(block, "type", None) == "text"
            )

            return LLMResponse(
                content=content,
                model=self.model,
                provider=self.name,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                latency_ms=latency_ms,
                raw_response={"id": response.id, "stop_reason": response.stop_reason}
            )

        except Exception as e:
            latency_ms = (time.time() - start_time) * 1000
            self._record_call(latency_ms, success=False)
            raise _classify_error(e, self.name, self.model)


# =============================================================================
# Ollama Provider (Local Models)
# =============================================================================

class OllamaProvider(LLMProvider):
    """
    Ollama local model provider implementation.

    Runs locally with no API key; uses the /api/chat endpoint.
    """

    DEFAULT_MODEL = "llama3.1"

    def __init__(self, config: Dict[str, Any]):
        super().__init__(config)
        self._base_url = config.get("base_url", "http://localhost:11434")

    @property
    def name(self) -> str:
        return "ollama"

    @property
    def provider_type(self) -> ProviderType:
        return ProviderType.OLLAMA

    def _check_availability(self) -> bool:
        """Check if Ollama server is reachable."""
        import requests

        try:
            response = requests.get(f"{self._base_url}/api/tags", timeout=5)
            return response.status_code == 200
        except requests.RequestException:
            return False

    def complete(self, request: LLMRequest) -> LLMResponse:
        """Execute completion request against local Ollama server."""
        import requests

        start_time = time.time()

        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.extend(request.messages)

        try:
            response = requests.post(
                f"{self._base_url}/api/chat",
                json={
                    "model": self.model,
                    "messages": messages,
                    "stream": False,
                    "options": {
                        "temperature": request.temperature,
                        "num_predict": request.max_tokens,
                    }
                },
                timeout=request.timeout_seconds
            )
            response.raise_for_status()

            latency_ms = (time.time() - start_time) * 1000
            self._record_call(latency_ms, success=True)

            data = response.json()
            content = data.get("message", {}).get("content", "")

            return LLMResponse(
                content=content,
                model=self.model,
                provider=self.name,
                input_tokens=data.get("prompt_eval_count", 0),
                output_tokens=data.get("eval_count", len(content) // 4),
                latency_ms=latency_ms,
                raw_response={"done_reason": data.get("done_reason")}
            )

        except requests.RequestException as e:
            latency_ms = (time.time() - start_time) * 1000
            self._record_call(latency_ms, success=False)

            error_str = str(e).lower()
            if "connection" in error_str or "timeout" in error_str or "timed out" in error_str:
                raise LLMProviderError(
                    f"Ollama server not reachable at {self._base_url}: {e}",
                    self.name,
                    retryable=True,
                    original_error=e
                )
            raise _classify_error(e, self.name, self.model)


# =============================================================================
# Factory Functions
# =============================================================================

API_KEY_ENV_VARS = {
    ProviderType.OPENAI: "OPENAI_API_KEY",
    ProviderType.ANTHROPIC: "ANTHROPIC_API_KEY",
}


def create_provider(
    provider_type: ProviderType,
    config: Dict[str, Any]
) -> LLMProvider:
    """
    Create a provider instance.

    Args:
        provider_type: Type of provider to create
        config: Provider-specific configuration

    Returns:
        Configured provider instance
    """
    providers = {
        ProviderType.OPENAI: OpenAIProvider,
        ProviderType.ANTHROPIC: AnthropicProvider,
        ProviderType.OLLAMA: OllamaProvider,
    }

    provider_class = providers.get(provider_type)
    if not provider_class:
        raise ValueError(f"Unknown provider type: {provider_type}")

    return provider_class(config)


def get_provider(config: Dict[str, Any]) -> LLMProvider:
    """
    Create the configured provider.

    Expected config structure:
    {
        "provider": "openai",
        "model": "gpt-4o-mini",          # optional, overrides provider default
        "timeout": 30,                   # optional
        "openai": {"api_key": "..."},
        "anthropic": {"api_key": "..."},
        "ollama": {"base_url": "http://localhost:11434"}
    }

    API keys missing from the config are read from OPENAI_API_KEY /
    ANTHROPIC_API_KEY once, here.

    Args:
        config: LLM configuration dictionary

    Returns:
        Configured provider
    """
    name = config.get("provider", ProviderType.OPENAI.value)
    provider_type = ProviderType(name)

    provider_config = dict(config.get(name, {}))
    for key in ("model", "timeout"):
        if config.get(key) is not None and key not in provider_config:
            provider_config[key] = config[key]

    env_var = API_KEY_ENV_VARS.get(provider_type)
    if env_var and not provider_config.get("api_key"):
        provider_config["api_key"] = os.environ.get(env_var)

    provider = create_provider(provider_type, provider_config)
    logger.debug(f"Created {provider.name} provider (model={provider.model})")
    return provider
