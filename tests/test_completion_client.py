# tests/test_completion_client.py
"""Tests for OpenAICompletionClient (httpx MockTransport)."""
from __future__ import annotations

import json

import httpx
import pytest

from pagebot.infra.completion_client import CompletionError, OpenAICompletionClient


def _client(handler) -> OpenAICompletionClient:
    return OpenAICompletionClient(
        base_url="https://llm.test", timeout=5, transport=httpx.MockTransport(handler),
    )


class TestOpenAICompletionClient:
    @pytest.mark.asyncio
    async def test_request_shape_and_content(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "أهلاً"}}]})

        text = await _client(handler).complete("system", "user text", "gpt-3.5-turbo", 0.7, api_key="sk-1")

        assert text == "أهلاً"
        assert seen["url"] == "https://llm.test/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-1"
        assert seen["body"] == {
            "model": "gpt-3.5-turbo",
            "messages": [
                {"role": "system", "content": "system"},
                {"role": "user", "content": "user text"},
            ],
            "temperature": 0.7,
        }

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        client = _client(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))
        with pytest.raises(CompletionError) as exc_info:
            await client.complete("s", "u", "m", 0.7, api_key="bad")
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CompletionError):
            await _client(handler).complete("s", "u", "m", 0.7, api_key="k")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {},
        {"choices": []},
        {"choices": [{"message": {}}]},
        {"choices": [{"message": {"content": ""}}]},
    ])
    async def test_unusable_body_raises(self, body):
        client = _client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(CompletionError):
            await client.complete("s", "u", "m", 0.7, api_key="k")

    @pytest.mark.asyncio
    async def test_non_json_body_raises(self):
        client = _client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(CompletionError):
            await client.complete("s", "u", "m", 0.7, api_key="k")
