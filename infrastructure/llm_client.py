"""
LLM Client: Text-Generation Capability

Thin abstraction over the text-generation providers used by the pipeline:
- OpenAI-compatible chat completions (configurable base URL, serves the
  catalog models through the Hugging Face router by default)
- Anthropic messages API for ``claude-*`` models
- Every call routed through the "llm" ResilienceWrapper (retry + health)
- Provider errors mapped onto the application exception hierarchy
- Structured output decoded with ``parse_json_response`` (attempt parse,
  on failure return the caller's default)

The pipeline treats the capability as opaque: a message list goes in,
a single completion comes out.
"""

import json
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import anthropic
import httpx
import openai
from anthropic import AsyncAnthropic
from loguru import logger
from openai import AsyncOpenAI

from config.settings import LLMSettings
from core.exceptions import (
    LLMNotConfiguredError,
    LLMProviderError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from core.models import utc_now

Message = Dict[str, str]

# ============================================================================
# TYPE SYSTEM
# ============================================================================


class ModelProvider(str, Enum):
    """Enumeration of supported LLM providers."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class TokenUsage:
    """Immutable token usage record."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class LLMResponse:
    """Immutable LLM response with call metadata."""

    content: str
    model: str
    provider: ModelProvider
    usage: TokenUsage = field(default_factory=TokenUsage)
    latency_ms: float = 0.0
    finish_reason: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)


# ============================================================================
# STRUCTURED OUTPUT DECODING
# ============================================================================

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def parse_json_response(text: Optional[str], default: Any) -> Any:
    """
    Decode a JSON payload from model output.

    Strips markdown code fences and surrounding prose. Malformed output is
    logged and replaced by ``default``; this never raises.

    Args:
        text: Raw completion text
        default: Value returned when decoding fails

    Returns:
        Decoded JSON value, or ``default``
    """
    if not text:
        return default

    candidate = text.strip()
    fenced = _FENCE_PATTERN.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    # Fall back to the outermost object or array embedded in prose
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = candidate.find(opener), candidate.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(candidate[start : end + 1])
            except json.JSONDecodeError:
                continue

    preview = candidate[:200].replace("\n", " ")
    logger.warning(f"Could not decode model output as JSON, using default | preview={preview!r}")
    return default


# ============================================================================
# CLIENT CONTRACT
# ============================================================================


class AbstractLLMClient(ABC):
    """Contract consumed by the analyzers, selector and generator."""

    @abstractmethod
    async def complete(
        self,
        messages: List[Message],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Return a single completion for the message list."""

    @property
    def is_enabled(self) -> bool:
        return True

    async def complete_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        **kwargs: Any,
    ) -> str:
        """Convenience wrapper: one user prompt, optional system prompt, text out."""
        messages: List[Message] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        response = await self.complete(messages, **kwargs)
        return response.content


# ============================================================================
# PROVIDER CLIENT
# ============================================================================


class LLMClient(AbstractLLMClient):
    """
    Provider-routing LLM client.

    Usage:
        client = LLMClient(settings.llm, resilience=ResilienceWrapper("llm"))
        response = await client.complete(
            [{"role": "user", "content": "Explain spaced repetition"}],
            model="deepseek-ai/DeepSeek-V3.2-Exp",
        )
    """

    def __init__(self, settings: LLMSettings, resilience: Optional[Any] = None):
        """
        Initialize provider SDK clients.

        Args:
            settings: LLM settings group
            resilience: ResilienceWrapper for the "llm" service
        """
        self.settings = settings
        self.resilience = resilience
        timeout = httpx.Timeout(settings.request_timeout)

        # Retries are handled by the resilience wrapper
        self.openai_client = (
            AsyncOpenAI(
                api_key=settings.api_key.get_secret_value(),
                base_url=settings.base_url,
                timeout=timeout,
                max_retries=0,
            )
            if settings.api_key
            else None
        )
        self.anthropic_client = (
            AsyncAnthropic(
                api_key=settings.anthropic_api_key.get_secret_value(),
                timeout=timeout,
                max_retries=0,
            )
            if settings.anthropic_api_key
            else None
        )

        self.total_requests = 0
        self.total_tokens = 0
        self.failed_requests = 0

        logger.info(
            f"LLMClient initialized | provider={settings.provider} | "
            f"openai_compatible={self.openai_client is not None} | "
            f"anthropic={self.anthropic_client is not None}"
        )

    @property
    def is_enabled(self) -> bool:
        return self.openai_client is not None or self.anthropic_client is not None

    async def complete(
        self,
        messages: List[Message],
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """
        Generate a completion with provider routing and retries.

        Args:
            messages: Chat messages ({"role", "content"})
            model: Model identifier (settings default when None)
            temperature: Sampling temperature
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse with content and usage

        Raises:
            LLMNotConfiguredError: No key for the routed provider
            LLMRateLimitError / LLMTimeoutError: After retries are exhausted
            LLMProviderError: On other provider errors
        """
        provider = self._get_provider(model)
        model = model or (
            self.settings.anthropic_model
            if provider == ModelProvider.ANTHROPIC
            else self.settings.default_model
        )
        temperature = self.settings.default_temperature if temperature is None else temperature
        max_tokens = min(max_tokens or self.settings.max_tokens_per_request, self.settings.max_tokens_per_request)

        async def _call() -> LLMResponse:
            return await self._dispatch(provider, messages, model, temperature, max_tokens)

        try:
            if self.resilience is not None:
                response = await self.resilience.execute(_call, "complete")
            else:
                response = await _call()
        except Exception as e:
            self.failed_requests += 1
            logger.error(f"LLM completion failed | model={model} | error={e}")
            raise

        self.total_requests += 1
        self.total_tokens += response.usage.total_tokens
        logger.debug(
            f"LLM completion | model={model} | tokens={response.usage.total_tokens} | "
            f"latency={response.latency_ms:.0f}ms"
        )
        return response

    async def _dispatch(
        self,
        provider: ModelProvider,
        messages: List[Message],
        model: str,
        temperature: float,
        max_tokens: int,
    ) -> LLMResponse:
        start_time = time.perf_counter()
        try:
            if provider == ModelProvider.ANTHROPIC:
                content, usage, finish_reason = await self._call_anthropic(
                    messages, model, temperature, max_tokens
                )
            else:
                content, usage, finish_reason = await self._call_openai(
                    messages, model, temperature, max_tokens
                )
        except (openai.RateLimitError, anthropic.RateLimitError) as e:
            raise LLMRateLimitError(f"Rate limit exceeded: {e}") from e
        except (openai.APITimeoutError, anthropic.APITimeoutError, httpx.TimeoutException) as e:
            raise LLMTimeoutError(
                f"Request timeout: {e}", timeout_seconds=self.settings.request_timeout
            ) from e
        except (openai.APIConnectionError, anthropic.APIConnectionError) as e:
            raise LLMProviderError(f"Connection error: {e}", retryable=True) from e
        except (openai.APIStatusError, anthropic.APIStatusError) as e:
            # 5xx is transient, 4xx is a caller/credential problem
            raise LLMProviderError(
                f"Provider error ({e.status_code}): {e}",
                retryable=e.status_code >= 500,
                context={"status_code": e.status_code, "model": model},
            ) from e
        except (openai.OpenAIError, anthropic.AnthropicError) as e:
            raise LLMProviderError(f"Provider error: {e}") from e

        if not content:
            raise LLMProviderError(f"Empty completion from {model}", retryable=True)

        return LLMResponse(
            content=content,
            model=model,
            provider=provider,
            usage=usage,
            latency_ms=(time.perf_counter() - start_time) * 1000,
            finish_reason=finish_reason,
        )

    async def _call_openai(
        self, messages: List[Message], model: str, temperature: float, max_tokens: int
    ) -> tuple:
        """Call an OpenAI-compatible chat completions endpoint."""
        if not self.openai_client:
            raise LLMNotConfiguredError(ModelProvider.OPENAI.value)

        response = await self.openai_client.chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )

        choice = response.choices[0]
        usage = TokenUsage(
            prompt_tokens=response.usage.prompt_tokens if response.usage else 0,
            completion_tokens=response.usage.completion_tokens if response.usage else 0,
        )
        return choice.message.content or "", usage, choice.finish_reason

    async def _call_anthropic(
        self, messages: List[Message], model: str, temperature: float, max_tokens: int
    ) -> tuple:
        """Call Anthropic messages API; system messages move to the system field."""
        if not self.anthropic_client:
            raise LLMNotConfiguredError(ModelProvider.ANTHROPIC.value)

        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        chat = [m for m in messages if m["role"] != "system"]

        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": chat,
            "temperature": min(temperature, 1.0),
            "max_tokens": max_tokens,
        }
        if system:
            kwargs["system"] = system

        response = await self.anthropic_client.messages.create(**kwargs)

        content = "".join(block.text for block in response.content if block.type == "text")
        usage = TokenUsage(
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
        )
        return content, usage, response.stop_reason

    def _get_provider(self, model: Optional[str]) -> ModelProvider:
        """Determine provider from model identifier, settings default otherwise."""
        if model and model.startswith("claude-"):
            return ModelProvider.ANTHROPIC
        if model:
            return ModelProvider.OPENAI
        return ModelProvider(self.settings.provider)

    def get_metrics(self) -> Dict[str, Any]:
        """
        Retrieve aggregated metrics.

        Returns:
            Dictionary with request counts and token usage
        """
        return {
            "total_requests": self.total_requests,
            "failed_requests": self.failed_requests,
            "total_tokens": self.total_tokens,
            "avg_tokens_per_request": self.total_tokens / max(self.total_requests, 1),
            "health": self.resilience.get_health().status.value if self.resilience else None,
        }

    async def health_check(self) -> Dict[str, str]:
        """
        Verify connectivity to configured providers.

        Returns:
            Health status for each provider
        """
        health = {}

        if self.openai_client:
            try:
                await self.openai_client.models.list()
                health["openai"] = "healthy"
            except openai.OpenAIError as e:
                health["openai"] = f"unhealthy: {e}"
        else:
            health["openai"] = "not_configured"

        if self.anthropic_client:
            try:
                await self.anthropic_client.models.list()
                health["anthropic"] = "healthy"
            except anthropic.AnthropicError as e:
                health["anthropic"] = f"unhealthy: {e}"
        else:
            health["anthropic"] = "not_configured"

        return health

    async def close(self) -> None:
        if self.openai_client:
            await self.openai_client.close()
        if self.anthropic_client:
            await self.anthropic_client.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
