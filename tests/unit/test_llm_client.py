"""Tests for LLM provider clients and transient-error retry."""

import json
from unittest.mock import patch

import httpx
import pytest

from src.core.config import Settings
from src.core.exceptions import (
    ConfigurationError,
    LLMError,
    LLMRateLimitError,
    LLMTimeoutError,
)
from src.llm.client import (
    AnthropicClient,
    DeepSeekClient,
    MockLLMClient,
    OpenAIClient,
    compute_backoff,
    get_llm_client,
    is_transient_error,
)

REAL_ASYNC_CLIENT = httpx.AsyncClient


class FakeServer:
    """Replies from a queue of (status, body) pairs or exceptions."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        status, body = reply
        return httpx.Response(status, json=body)

    def patch(self):
        transport = httpx.MockTransport(self.handler)
        return patch(
            "src.llm.client.httpx.AsyncClient",
            lambda **kwargs: REAL_ASYNC_CLIENT(transport=transport, **kwargs),
        )


ANTHROPIC_OK = {
    "model": "claude-test",
    "content": [{"type": "text", "text": '{"ok": true}'}],
    "usage": {"input_tokens": 12, "output_tokens": 3},
}
OPENAI_OK = {
    "model": "gpt-test",
    "choices": [{"message": {"content": '{"ok": true}'}}],
    "usage": {"prompt_tokens": 10, "completion_tokens": 2},
}


def anthropic_client(max_attempts=3):
    return AnthropicClient(
        model="claude-test",
        temperature=0.3,
        max_tokens=256,
        timeout=5,
        api_key="test-key",
        max_attempts=max_attempts,
    )


@pytest.fixture(autouse=True)
def no_backoff():
    with patch("src.llm.client.compute_backoff", return_value=0):
        yield


class TestAnthropicClient:
    @pytest.mark.asyncio
    async def test_complete_parses_response(self):
        server = FakeServer((200, ANTHROPIC_OK))
        with server.patch():
            response = await anthropic_client().complete("Hello", system="Be brief")

        assert response.content == '{"ok": true}'
        assert response.model == "claude-test"
        assert response.usage == {"input_tokens": 12, "output_tokens": 3}

        request = server.requests[0]
        body = json.loads(request.content)
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        assert body["system"] == "Be brief"
        assert body["messages"] == [{"role": "user", "content": "Hello"}]
        assert body["max_tokens"] == 256

    @pytest.mark.asyncio
    async def test_schema_hint_appended_to_system(self):
        server = FakeServer((200, ANTHROPIC_OK))
        schema = {"type": "object", "properties": {"ok": {"type": "boolean"}}}
        with server.patch():
            await anthropic_client().complete("Hello", system="Be brief", response_schema=schema)

        body = json.loads(server.requests[0].content)
        assert body["system"].startswith("Be brief")
        assert json.dumps(schema) in body["system"]

    @pytest.mark.asyncio
    async def test_retries_transient_then_succeeds(self):
        server = FakeServer((503, {"error": "overloaded"}), (200, ANTHROPIC_OK))
        with server.patch():
            response = await anthropic_client().complete("Hello")

        assert response.content == '{"ok": true}'
        assert len(server.requests) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted_is_recoverable(self):
        server = FakeServer(*[(429, {"error": "slow down"})] * 3)
        with server.patch():
            with pytest.raises(LLMRateLimitError) as exc_info:
                await anthropic_client(max_attempts=3).complete("Hello")

        assert exc_info.value.recoverable is True
        assert len(server.requests) == 3

    @pytest.mark.asyncio
    async def test_timeout_exhausted(self):
        server = FakeServer(httpx.ReadTimeout("read timed out"), httpx.ReadTimeout("read timed out"))
        with server.patch():
            with pytest.raises(LLMTimeoutError) as exc_info:
                await anthropic_client(max_attempts=2).complete("Hello")

        assert exc_info.value.recoverable is True

    @pytest.mark.asyncio
    async def test_server_error_exhausted_keeps_status(self):
        server = FakeServer((500, {}), (502, {}))
        with server.patch():
            with pytest.raises(LLMError) as exc_info:
                await anthropic_client(max_attempts=2).complete("Hello")

        assert exc_info.value.recoverable is True
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        server = FakeServer((400, {"error": "bad request"}), (200, ANTHROPIC_OK))
        with server.patch():
            with pytest.raises(LLMError) as exc_info:
                await anthropic_client().complete("Hello")

        assert exc_info.value.recoverable is False
        assert exc_info.value.status_code == 400
        assert len(server.requests) == 1

    def test_missing_api_key(self):
        with patch("src.llm.client.settings.anthropic_api_key", None):
            with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
                AnthropicClient(model="m", temperature=0.3, max_tokens=10, timeout=5)


class TestOpenAICompatibleClients:
    @pytest.mark.asyncio
    async def test_openai_json_mode_with_schema(self):
        server = FakeServer((200, OPENAI_OK))
        client = OpenAIClient(
            model="gpt-test", temperature=0.1, max_tokens=100, timeout=5, api_key="sk-test"
        )
        with server.patch():
            response = await client.complete("Hi", system="sys", response_schema={"type": "object"})

        assert response.content == '{"ok": true}'
        assert response.usage == {"input_tokens": 10, "output_tokens": 2}

        request = server.requests[0]
        body = json.loads(request.content)
        assert request.url.path == "/v1/chat/completions"
        assert request.headers["authorization"] == "Bearer sk-test"
        assert body["response_format"] == {"type": "json_object"}
        assert body["messages"][0]["role"] == "system"
        assert body["messages"][1] == {"role": "user", "content": "Hi"}

    @pytest.mark.asyncio
    async def test_deepseek_without_schema_has_no_json_mode(self):
        server = FakeServer((200, OPENAI_OK))
        client = DeepSeekClient(
            model="deepseek-chat", temperature=0.1, max_tokens=100, timeout=5, api_key="ds"
        )
        with server.patch():
            await client.complete("Hi")

        request = server.requests[0]
        body = json.loads(request.content)
        assert request.url.host == "api.deepseek.com"
        assert "response_format" not in body
        assert body["messages"] == [{"role": "user", "content": "Hi"}]


class TestTransientClassification:
    @pytest.mark.parametrize("status,expected", [(429, True), (500, True), (503, True), (400, False), (404, False)])
    def test_http_status(self, status, expected):
        request = httpx.Request("POST", "https://example.test")
        response = httpx.Response(status, request=request)
        error = httpx.HTTPStatusError("boom", request=request, response=response)
        assert is_transient_error(error) is expected

    def test_network_errors(self):
        assert is_transient_error(httpx.ConnectError("connection refused"))
        assert is_transient_error(httpx.ReadTimeout("timed out"))

    @pytest.mark.parametrize(
        "message", ["ECONNRESET while reading", "Rate limit reached", "socket hang up"]
    )
    def test_message_substrings(self, message):
        assert is_transient_error(RuntimeError(message))

    def test_other_errors_not_transient(self):
        assert not is_transient_error(ValueError("Expecting value: line 1 column 1"))

    def test_backoff_grows_with_jitter(self):
        for attempt in range(4):
            delay = compute_backoff(attempt, base_delay=1.0)
            assert 2**attempt <= delay <= 2**attempt + 1.0


class TestClientFactory:
    def test_mock_provider(self):
        client = get_llm_client(Settings(llm_provider="mock"))
        assert isinstance(client, MockLLMClient)

    def test_anthropic_provider_uses_settings(self):
        config = Settings(
            llm_provider="anthropic",
            anthropic_api_key="key",
            llm_model="claude-x",
            llm_transient_retries=5,
        )
        client = get_llm_client(config)
        assert isinstance(client, AnthropicClient)
        assert client.model == "claude-x"
        assert client.max_attempts == 5

    def test_missing_key_raises_configuration_error(self):
        with patch("src.llm.client.settings.openai_api_key", None):
            with pytest.raises(ConfigurationError):
                get_llm_client(Settings(llm_provider="openai", openai_api_key=None))


class TestMockLLMClient:
    @pytest.mark.asyncio
    async def test_classifier_reply(self):
        response = await MockLLMClient().complete("hello", system="You are a classifier agent.")
        assert json.loads(response.content)["intent"] == "greeting"

    @pytest.mark.asyncio
    async def test_structuring_progresses_with_turn_number(self):
        client = MockLLMClient()
        first = await client.complete("x", system="You are a structuring agent.")
        third = await client.complete(
            "x", system="You are a structuring agent.\nThis is follow-up turn 3."
        )

        assert json.loads(first.content)["structured_data"] == {}
        assert json.loads(third.content)["is_complete"] is True
        assert client.calls == 2
