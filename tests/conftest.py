import pytest
import yaml
from pathlib import Path
from types import SimpleNamespace

import httpx
from fastapi.testclient import TestClient
from openai.types.chat import ChatCompletionChunk

PRIVATE_BASE_URL = "http://llm.private-corp.internal:8443/v1"
ALTERNATE_BASE_API = "http://qwen.private-corp.internal/api/chat"

MOCK_CONFIG = {
    "openai": {"base_url": PRIVATE_BASE_URL, "api_key": ""},
    "chat_base_api": ALTERNATE_BASE_API,
}

MOCK_CONFIG_NO_ALTERNATE = {
    "openai": {"base_url": PRIVATE_BASE_URL, "api_key": "sk-config"},
    "chat_base_api": "",
}

CHAT_PAYLOAD = {
    "model": "gpt-4o-mini",
    "messages": [{"role": "user", "content": "Hello!"}],
    "temperature": 0.2,
    "stream": False,
}


def make_chunk(content, finish_reason=None):
    """Build a real SDK chunk carrying one content delta"""
    return ChatCompletionChunk.model_validate(
        {
            "id": "chatcmpl-123",
            "object": "chat.completion.chunk",
            "created": 1694268190,
            "model": "gpt-4o-mini",
            "choices": [
                {
                    "index": 0,
                    "delta": {"content": content},
                    "finish_reason": finish_reason,
                }
            ],
        }
    )


HELLO_WORLD_CHUNKS = [
    make_chunk(""),
    make_chunk("Hello"),
    make_chunk(" world"),
    make_chunk(None, finish_reason="stop"),
]


class FakeSDKStream:
    """Stands in for openai.AsyncStream, tracking pulls and close()"""

    def __init__(self, chunks, error=None):
        self._chunks = chunks
        self._error = error
        self.pulled = 0
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            self.pulled += 1
            yield chunk
        if self._error is not None:
            raise self._error

    async def close(self):
        self.closed = True


class FakeCompletions:
    def __init__(self, stream=None, error=None):
        self.stream = stream
        self.error = error
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.stream


class FakeOpenAIClient:
    """Minimal AsyncOpenAI lookalike: a base_url and chat.completions.create"""

    def __init__(self, stream=None, error=None, base_url=PRIVATE_BASE_URL):
        self.base_url = httpx.URL(base_url)
        self.completions = FakeCompletions(stream=stream, error=error)
        self.chat = SimpleNamespace(completions=self.completions)
        self.options = []
        self.closed = False

    def with_options(self, **options):
        self.options.append(options)
        return self

    async def close(self):
        self.closed = True


def count_requests(status_code, json_body, hits):
    """MockTransport-backed client that records every request it answers"""

    async def handler(request):
        hits.append(request)
        return httpx.Response(status_code, json=json_body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_status_error(cls, status_code, body, message="rate limited"):
    request = httpx.Request("POST", f"{PRIVATE_BASE_URL}/chat/completions")
    response = httpx.Response(
        status_code, request=request, headers={"x-request-id": "req-1"}
    )
    return cls(message, response=response, body=body)


async def drain(response):
    """Collect the full body of a StreamingResponse"""
    return b"".join([chunk async for chunk in response.body_iterator])


@pytest.fixture
def clean_env(monkeypatch):
    """Keep developer environment variables out of config resolution"""
    for var in ("OPENAI_API_KEY", "OPENAI_PROXY_URL", "CHAT_BASE_API"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def mock_config(monkeypatch, clean_env):
    """Mock config file with a private base URL and an alternate endpoint"""

    def mock_read_text(*args, **kwargs):
        return yaml.dump(MOCK_CONFIG)

    monkeypatch.setattr(Path, "read_text", mock_read_text)
    return MOCK_CONFIG


@pytest.fixture
def mock_config_no_alternate(monkeypatch, clean_env):
    """Mock config file with an API key but no alternate endpoint"""

    def mock_read_text(*args, **kwargs):
        return yaml.dump(MOCK_CONFIG_NO_ALTERNATE)

    monkeypatch.setattr(Path, "read_text", mock_read_text)
    return MOCK_CONFIG_NO_ALTERNATE


@pytest.fixture
def fake_client():
    return FakeOpenAIClient(stream=FakeSDKStream(HELLO_WORLD_CHUNKS))


@pytest.fixture
def test_client(mock_config, monkeypatch, fake_client):
    """Create a test client whose upstream SDK client is the fake"""
    import chatgate.api

    monkeypatch.setattr(
        chatgate.api, "build_openai_client", lambda server_config, api_key: fake_client
    )
    return TestClient(chatgate.api.app)
