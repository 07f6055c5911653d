"""
Unit tests for the text-generation client.

Tests structured-output decoding, provider routing and error mapping
with the provider SDK clients replaced by mocks.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import openai
import pytest

from config.settings import LLMSettings
from core.exceptions import LLMNotConfiguredError, LLMProviderError
from infrastructure.llm_client import LLMClient, ModelProvider, parse_json_response
from infrastructure.resilience import ResilienceWrapper


def openai_completion(content="hi", prompt_tokens=3, completion_tokens=2):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")],
        usage=SimpleNamespace(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens),
    )


def anthropic_message(text="hello"):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=4, output_tokens=6),
        stop_reason="end_turn",
    )


async def no_sleep(seconds):
    return None


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("AI_API_KEY", "LLM_ANTHROPIC_API_KEY", "LLM_PROVIDER", "AI_MODEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def client():
    client = LLMClient(LLMSettings(AI_API_KEY="sk-test"))
    client.openai_client = Mock()
    client.openai_client.chat.completions.create = AsyncMock(return_value=openai_completion())
    return client


@pytest.mark.unit
class TestParseJsonResponse:
    def test_plain_json(self):
        assert parse_json_response('{"a": 1}', {}) == {"a": 1}

    def test_fenced_json(self):
        assert parse_json_response('```json\n[1, 2]\n```', []) == [1, 2]

    def test_json_embedded_in_prose(self):
        assert parse_json_response('Here you go: {"topic": "sleep"} Enjoy!', None) == {"topic": "sleep"}

    def test_malformed_returns_default(self):
        assert parse_json_response("{not json", {"fallback": True}) == {"fallback": True}

    def test_empty_returns_default(self):
        assert parse_json_response("", []) == []
        assert parse_json_response(None, []) == []


@pytest.mark.unit
class TestLLMClient:
    def test_disabled_without_keys(self):
        assert LLMClient(LLMSettings()).is_enabled is False

    @pytest.mark.asyncio
    async def test_openai_compatible_completion(self, client):
        response = await client.complete(
            [{"role": "user", "content": "Explain spaced repetition"}], max_tokens=1_000_000
        )

        assert response.content == "hi"
        assert response.provider == ModelProvider.OPENAI
        assert response.usage.total_tokens == 5
        kwargs = client.openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "deepseek-ai/DeepSeek-V3.2-Exp"
        assert kwargs["max_tokens"] == 4096
        assert client.get_metrics()["total_tokens"] == 5

    @pytest.mark.asyncio
    async def test_complete_text_builds_messages(self, client):
        text = await client.complete_text("Question?", system="Be brief.")

        assert text == "hi"
        messages = client.openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": "Question?"},
        ]

    @pytest.mark.asyncio
    async def test_claude_models_route_to_anthropic(self, client):
        client.anthropic_client = Mock()
        client.anthropic_client.messages.create = AsyncMock(return_value=anthropic_message())

        response = await client.complete(
            [{"role": "system", "content": "Be brief."}, {"role": "user", "content": "Hi"}],
            model="claude-haiku-4-5-20251001",
            temperature=1.5,
        )

        assert response.content == "hello"
        assert response.provider == ModelProvider.ANTHROPIC
        kwargs = client.anthropic_client.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be brief."
        assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]
        assert kwargs["temperature"] == 1.0

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, client):
        with pytest.raises(LLMNotConfiguredError):
            await client.complete([{"role": "user", "content": "Hi"}], model="claude-haiku-4-5-20251001")

        assert client.get_metrics()["failed_requests"] == 1

    @pytest.mark.asyncio
    async def test_empty_completion_is_an_error(self, client):
        client.openai_client.chat.completions.create.return_value = openai_completion(content="")

        with pytest.raises(LLMProviderError):
            await client.complete([{"role": "user", "content": "Hi"}])

    @pytest.mark.asyncio
    async def test_connection_errors_retried_through_wrapper(self, client):
        client.resilience = ResilienceWrapper("llm", sleep=no_sleep)
        client.openai_client.chat.completions.create.side_effect = [
            openai.APIConnectionError(request=httpx.Request("POST", "https://router.example/v1")),
            openai_completion(content="recovered"),
        ]

        response = await client.complete([{"role": "user", "content": "Hi"}])

        assert response.content == "recovered"
        assert client.openai_client.chat.completions.create.await_count == 2
