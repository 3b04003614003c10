"""Tests for the provider client against a mocked HTTP transport."""
import asyncio
import json

import httpx
import pytest

from studymate.errors import ProviderUnavailable
from studymate.llm_client import ProviderClient

BASE_URL = "https://example.test/api/v1"


def _client(handler) -> ProviderClient:
    return ProviderClient(
        base_url=BASE_URL,
        api_key="sk-test",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


def _run(client: ProviderClient, coro_factory):
    async def _go():
        try:
            return await coro_factory(client)
        finally:
            await client.aclose()

    return asyncio.run(_go())


def test_chat_returns_first_choice_and_sends_payload():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"choices": [{"message": {"role": "assistant", "content": "Hello"}}]}
        )

    reply = _run(
        _client(handler),
        lambda c: c.chat("sys", "user", model="m1", temperature=0.2, max_tokens=50),
    )

    assert reply == "Hello"
    assert seen["url"] == f"{BASE_URL}/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "m1"
    assert seen["body"]["temperature"] == 0.2
    assert seen["body"]["max_tokens"] == 50
    assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]


def test_chat_places_history_between_system_and_user():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Sure"}}]})

    history = [
        {"role": "user", "content": "What is momentum?"},
        {"role": "assistant", "content": "Mass times velocity."},
    ]
    _run(_client(handler), lambda c: c.chat("sys", "And impulse?", history=history))

    messages = seen["body"]["messages"]
    assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
    assert messages[1:3] == history
    assert messages[-1]["content"] == "And impulse?"


def test_chat_http_error_becomes_provider_unavailable():
    def handler(request):
        return httpx.Response(500, json={"error": "boom"})

    with pytest.raises(ProviderUnavailable) as exc_info:
        _run(_client(handler), lambda c: c.chat("sys", "user", model="m1"))

    assert exc_info.value.attempts == ["m1"]


def test_chat_timeout_becomes_provider_unavailable():
    def handler(request):
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(ProviderUnavailable):
        _run(_client(handler), lambda c: c.chat("sys", "user", model="m1"))


def test_chat_malformed_body_becomes_provider_unavailable():
    def handler(request):
        return httpx.Response(200, json={"unexpected": True})

    with pytest.raises(ProviderUnavailable):
        _run(_client(handler), lambda c: c.chat("sys", "user", model="m1"))


def test_chat_empty_content_becomes_provider_unavailable():
    def handler(request):
        return httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]})

    with pytest.raises(ProviderUnavailable):
        _run(_client(handler), lambda c: c.chat("sys", "user", model="m1"))


def test_embeddings_returns_vector():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

    vector = _run(_client(handler), lambda c: c.embeddings("some text", model="embed-1"))

    assert vector == [0.1, 0.2, 0.3]
    assert seen["url"] == f"{BASE_URL}/embeddings"
    assert seen["body"] == {"model": "embed-1", "input": "some text"}


def test_embeddings_without_data_raises_value_error():
    def handler(request):
        return httpx.Response(200, json={"data": []})

    with pytest.raises(ValueError):
        _run(_client(handler), lambda c: c.embeddings("text", model="embed-1"))


def test_embeddings_http_error_propagates():
    def handler(request):
        return httpx.Response(404, json={"error": "no such model"})

    with pytest.raises(httpx.HTTPStatusError):
        _run(_client(handler), lambda c: c.embeddings("text", model="missing"))


def test_list_models():
    def handler(request):
        return httpx.Response(200, json={"data": [{"id": "a"}, {"id": "b"}]})

    assert _run(_client(handler), lambda c: c.list_models()) == ["a", "b"]
