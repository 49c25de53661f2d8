"""Unit tests for the Anthropic code generator."""
import json

import httpx
import pytest

from workflow_converter.config import Settings
from workflow_converter.llm import AnthropicCodeGenerator
from workflow_converter.llm import anthropic_generator

URL = "https://api.anthropic.com/v1/messages"


def make_settings(**overrides):
    values = {"anthropic_api_key": "test-key", "enhancement_max_retries": 2}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_response(status_code, payload=None):
    return httpx.Response(
        status_code=status_code,
        json=payload if payload is not None else {"error": {"type": "error"}},
        request=httpx.Request("POST", URL),
    )


@pytest.fixture
def sleeps(monkeypatch):
    """Record retry back-off instead of sleeping."""
    recorded = []
    monkeypatch.setattr(anthropic_generator.time, "sleep", recorded.append)
    return recorded


@pytest.fixture
def mock_client(monkeypatch):
    """Replace httpx.Client with a client replaying scripted outcomes."""
    calls = []
    script = []

    class MockClient:
        def __init__(self, *args, **kwargs):
            self.kwargs = kwargs

        def __enter__(self):
            return self

        def __exit__(self, *args):
            pass

        def post(self, url, json, headers):
            calls.append({"url": url, "json": json, "headers": headers, "timeout": self.kwargs.get("timeout")})
            outcome = script.pop(0) if len(script) > 1 else script[0]
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

    monkeypatch.setattr(httpx, "Client", MockClient)
    return script, calls


def test_generator_returns_code_from_reply(mock_client, sample_anthropic_response):
    """A text reply becomes the candidate code without its fence."""
    script, calls = mock_client
    script.append(make_response(200, sample_anthropic_response))

    response = AnthropicCodeGenerator(settings=make_settings())("Improve it", {"node_id": "b"})

    assert response.success
    assert response.code == "class FetchNode(BaseNode):\n    pass"
    assert response.error is None

    assert len(calls) == 1
    assert calls[0]["url"] == URL
    assert calls[0]["headers"]["x-api-key"] == "test-key"
    assert calls[0]["headers"]["anthropic-version"] == "2023-06-01"
    assert calls[0]["json"]["messages"] == [{"role": "user", "content": "Improve it"}]
    assert calls[0]["json"]["system"] == anthropic_generator.SYSTEM_PROMPT
    assert calls[0]["json"]["temperature"] == 0.0


def test_generator_retries_rate_limit(mock_client, sleeps, sample_anthropic_response):
    """429 is retried with exponential back-off."""
    script, calls = mock_client
    script.extend([make_response(429), make_response(200, sample_anthropic_response)])

    response = AnthropicCodeGenerator(settings=make_settings())("p", {})

    assert response.success
    assert len(calls) == 2
    assert sleeps == [0.5]


def test_generator_does_not_retry_client_errors(mock_client, sleeps):
    """A 400 fails immediately."""
    script, calls = mock_client
    script.append(make_response(400))

    response = AnthropicCodeGenerator(settings=make_settings())("p", {})

    assert not response.success
    assert response.error.startswith("HTTP error:")
    assert len(calls) == 1
    assert sleeps == []


def test_generator_gives_up_after_retries(mock_client, sleeps):
    """Persistent server errors stop after max_retries + 1 attempts."""
    script, calls = mock_client
    script.append(make_response(503))

    response = AnthropicCodeGenerator(settings=make_settings())("p", {})

    assert not response.success
    assert "503" in response.error
    assert len(calls) == 3
    assert sleeps == [0.5, 1.0]


def test_generator_retries_stay_within_timeout(mock_client, sleeps):
    """Back-off that would pass the overall timeout is not attempted."""
    script, calls = mock_client
    script.append(make_response(503))

    response = AnthropicCodeGenerator(
        settings=make_settings(enhancement_timeout_s=1, enhancement_max_retries=5)
    )("p", {})

    assert not response.success
    assert len(calls) == 2
    assert sleeps == [0.5]
    assert all(call["timeout"].read <= 1 for call in calls)


def test_generator_reports_timeout(mock_client, sleeps):
    """Timeouts are retried, then reported."""
    script, calls = mock_client
    script.append(httpx.ReadTimeout("timed out"))

    response = AnthropicCodeGenerator(settings=make_settings(enhancement_max_retries=1))("p", {})

    assert not response.success
    assert response.error == "Request timeout: timed out"
    assert len(calls) == 2


def test_generator_rejects_empty_reply(mock_client):
    """A reply without text is a failure."""
    script, _ = mock_client
    script.append(make_response(200, {"content": [{"type": "tool_use", "id": "x"}]}))

    response = AnthropicCodeGenerator(settings=make_settings())("p", {})

    assert not response.success
    assert response.error == "Empty response from model"


def test_generator_requires_api_key(mock_client):
    """No request is made without a key."""
    _, calls = mock_client

    response = AnthropicCodeGenerator(settings=make_settings(anthropic_api_key=None))("p", {})

    assert response.error == "CONVERTER_ANTHROPIC_API_KEY is not configured"
    assert calls == []


def test_generator_uses_injected_client(sample_anthropic_response):
    """An injected client is used as is, with the configured model."""
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=sample_anthropic_response)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    generator = AnthropicCodeGenerator(settings=make_settings(), model="test-model", client=client)

    response = generator("p", {"node_id": "b"})

    assert response.success
    assert seen[0]["model"] == "test-model"
    assert seen[0]["max_tokens"] == make_settings().enhancement_max_tokens
