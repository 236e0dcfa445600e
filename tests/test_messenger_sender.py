# tests/test_messenger_sender.py
"""Tests for MessengerSender (Graph API Send calls, aiohttp mocked)."""
from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import aiohttp
import pytest

from pagebot.core.domain import CampaignButton
from pagebot.core.repository import BotRepository
from pagebot.infra.kv_store import InMemoryKVStore
from pagebot.infra.metrics import get_metrics_collector
from pagebot.transport.messenger_sender import MessengerSender


def _make_response(status: int = 200, body: dict | None = None):
    resp = MagicMock()
    resp.status = status
    resp.json = AsyncMock(return_value=body if body is not None else {"recipient_id": "u1", "message_id": "mid.1"})
    return resp


def _make_mock_session(response=None, error: Exception | None = None):
    """Create a mock session whose .post() returns the given response."""
    ctx = AsyncMock()
    if error is not None:
        ctx.__aenter__ = AsyncMock(side_effect=error)
    else:
        ctx.__aenter__ = AsyncMock(return_value=response)
    ctx.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.post = MagicMock(return_value=ctx)
    return session


def _sender(token: str | None = "PAGE_TOKEN") -> MessengerSender:
    initial = {"api:settings": {"facebookPageAccessToken": token}} if token is not None else {}
    return MessengerSender(
        BotRepository(InMemoryKVStore(initial)),
        base_url="https://graph.test",
        graph_api_version="v18.0",
    )


class TestSendText:
    @pytest.mark.asyncio
    async def test_posts_text_with_page_token(self):
        session = _make_mock_session(_make_response())

        with patch("pagebot.transport.messenger_sender.get_sender_session", return_value=session):
            ok = await _sender().send_text("u1", "مرحبا")

        assert ok is True
        args, kwargs = session.post.call_args
        assert args[0] == "https://graph.test/v18.0/me/messages"
        assert kwargs["params"] == {"access_token": "PAGE_TOKEN"}
        assert kwargs["json"] == {"recipient": {"id": "u1"}, "message": {"text": "مرحبا"}}

    @pytest.mark.asyncio
    async def test_image_attachment_next_to_text(self):
        session = _make_mock_session(_make_response())

        with patch("pagebot.transport.messenger_sender.get_sender_session", return_value=session):
            await _sender().send_text("u1", "shipping", image_url="https://cdn.example.com/a.png")

        message = session.post.call_args.kwargs["json"]["message"]
        assert message == {
            "text": "shipping",
            "attachment": {"type": "image", "payload": {"url": "https://cdn.example.com/a.png"}},
        }

    @pytest.mark.asyncio
    async def test_missing_token_skips_call(self):
        session = _make_mock_session(_make_response())

        with patch("pagebot.transport.messenger_sender.get_sender_session", return_value=session):
            ok = await _sender(token=None).send_text("u1", "hello")

        assert ok is False
        session.post.assert_not_called()
        assert get_metrics_collector().get_counter("outbound_send_failed_total", reason="no_token") == 1

    @pytest.mark.asyncio
    async def test_platform_error_returns_false(self):
        body = {"error": {"message": "Invalid OAuth access token.", "code": 190}}
        session = _make_mock_session(_make_response(400, body))

        with patch("pagebot.transport.messenger_sender.get_sender_session", return_value=session):
            ok = await _sender().send_text("u1", "hello")

        assert ok is False
        assert session.post.call_count == 1

    @pytest.mark.asyncio
    async def test_network_error_returns_false(self):
        session = _make_mock_session(error=aiohttp.ClientError("Connection refused"))

        with patch("pagebot.transport.messenger_sender.get_sender_session", return_value=session):
            ok = await _sender().send_text("u1", "hello")

        assert ok is False
        assert get_metrics_collector().get_counter(
            "outbound_send_failed_total", reason="connection_error"
        ) == 1


class TestSendQuickReplies:
    @pytest.mark.asyncio
    async def test_buttons_become_quick_replies_in_order(self):
        session = _make_mock_session(_make_response())
        buttons = [
            CampaignButton(id="btn_1", label="السعر", response="r1"),
            CampaignButton(id="btn_2", label="الشحن", response="r2"),
        ]

        with patch("pagebot.transport.messenger_sender.get_sender_session", return_value=session):
            ok = await _sender().send_quick_replies("u1", "اختر أحد الخيارات:", buttons)

        assert ok is True
        assert session.post.call_args.kwargs["json"] == {
            "recipient": {"id": "u1"},
            "message": {
                "text": "اختر أحد الخيارات:",
                "quick_replies": [
                    {"content_type": "text", "title": "السعر", "payload": "btn_1"},
                    {"content_type": "text", "title": "الشحن", "payload": "btn_2"},
                ],
            },
        }
