# tests/test_webhooks.py
"""Tests for the Messenger webhook GET/POST handlers."""
from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pagebot.core.domain import MessageEvent
from pagebot.core.repository import BotRepository
from pagebot.infra.kv_store import InMemoryKVStore


def _verify_request(params: dict) -> MagicMock:
    request = MagicMock()
    request.query_params = params
    return request


def _post_request(body=None, raw_error: Exception | None = None) -> MagicMock:
    request = MagicMock()
    request.state.request_id = "req-1"
    if raw_error is not None:
        request.json = AsyncMock(side_effect=raw_error)
    else:
        request.json = AsyncMock(return_value=body)
    return request


def _dispatcher(handled: int = 1) -> MagicMock:
    dispatcher = MagicMock()
    dispatcher.dispatch = AsyncMock(return_value=handled)
    return dispatcher


PAGE_BODY = {
    "object": "page",
    "entry": [{"messaging": [
        {"sender": {"id": "u1"}, "recipient": {"id": "PAGE"}, "message": {"mid": "m1", "text": "hello"}},
    ]}],
}


class TestMessengerWebhookVerify:
    @pytest.mark.asyncio
    async def test_stored_verify_token(self):
        from pagebot.transport.messenger_webhook import messenger_webhook_verify

        repo = BotRepository(InMemoryKVStore({"api:settings": {"facebookVerifyToken": "stored-token"}}))
        request = _verify_request({
            "hub.mode": "subscribe",
            "hub.verify_token": "stored-token",
            "hub.challenge": "challenge-value-123",
        })

        response = await messenger_webhook_verify(request, repository_override=repo)
        assert response.status_code == 200
        assert response.body == b"challenge-value-123"

    @pytest.mark.asyncio
    @patch("pagebot.transport.messenger_webhook.settings")
    async def test_default_token_when_none_stored(self, mock_settings):
        mock_settings.default_verify_token = "my_verify_token"
        from pagebot.transport.messenger_webhook import messenger_webhook_verify

        request = _verify_request({
            "hub.mode": "subscribe",
            "hub.verify_token": "my_verify_token",
            "hub.challenge": "abc",
        })

        response = await messenger_webhook_verify(request, repository_override=BotRepository(InMemoryKVStore()))
        assert response.status_code == 200
        assert response.body == b"abc"

    @pytest.mark.asyncio
    async def test_wrong_token_is_403(self):
        from pagebot.transport.messenger_webhook import messenger_webhook_verify

        repo = BotRepository(InMemoryKVStore({"api:settings": {"facebookVerifyToken": "stored-token"}}))
        request = _verify_request({
            "hub.mode": "subscribe",
            "hub.verify_token": "wrong",
            "hub.challenge": "abc",
        })

        response = await messenger_webhook_verify(request, repository_override=repo)
        assert response.status_code == 403
        assert json.loads(response.body) == {"error": "Verification failed"}

    @pytest.mark.asyncio
    async def test_wrong_mode_is_403(self):
        from pagebot.transport.messenger_webhook import messenger_webhook_verify

        repo = BotRepository(InMemoryKVStore({"api:settings": {"facebookVerifyToken": "t"}}))
        request = _verify_request({"hub.mode": "unsubscribe", "hub.verify_token": "t", "hub.challenge": "abc"})

        response = await messenger_webhook_verify(request, repository_override=repo)
        assert response.status_code == 403


class TestMessengerWebhookHandler:
    @pytest.mark.asyncio
    async def test_dispatches_parsed_events(self):
        from pagebot.transport.messenger_webhook import messenger_webhook_handler

        dispatcher = _dispatcher()
        response = await messenger_webhook_handler(_post_request(PAGE_BODY), dispatcher_override=dispatcher)

        assert response.status_code == 200
        assert json.loads(response.body) == {"success": True}
        events = dispatcher.dispatch.call_args.args[0]
        assert events == [MessageEvent(sender_id="u1", message_id="m1", text="hello")]

    @pytest.mark.asyncio
    async def test_event_failures_still_acknowledged(self):
        from pagebot.transport.messenger_webhook import messenger_webhook_handler

        dispatcher = _dispatcher(handled=0)
        response = await messenger_webhook_handler(_post_request(PAGE_BODY), dispatcher_override=dispatcher)

        assert response.status_code == 200
        assert json.loads(response.body) == {"success": True}

    @pytest.mark.asyncio
    async def test_non_page_object_acknowledged_without_dispatch(self):
        from pagebot.transport.messenger_webhook import messenger_webhook_handler

        dispatcher = _dispatcher()
        body = dict(PAGE_BODY, object="instagram")
        response = await messenger_webhook_handler(_post_request(body), dispatcher_override=dispatcher)

        assert response.status_code == 200
        dispatcher.dispatch.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_json_is_500(self):
        from pagebot.transport.messenger_webhook import messenger_webhook_handler

        request = _post_request(raw_error=json.JSONDecodeError("Expecting value", "", 0))
        response = await messenger_webhook_handler(request, dispatcher_override=_dispatcher())

        assert response.status_code == 500
        assert json.loads(response.body) == {"error": "Webhook processing failed"}

    @pytest.mark.asyncio
    async def test_malformed_body_is_500(self):
        from pagebot.transport.messenger_webhook import messenger_webhook_handler

        dispatcher = _dispatcher()
        response = await messenger_webhook_handler(
            _post_request({"object": "page", "entry": None}), dispatcher_override=dispatcher,
        )

        assert response.status_code == 500
        dispatcher.dispatch.assert_not_called()
