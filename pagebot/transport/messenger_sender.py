# pagebot/transport/messenger_sender.py
"""
Messenger Send API client.

POST {graph_api_base_url}/{version}/me/messages?access_token=<page token>

The page access token is read from api:settings on every call, so token
changes made in the dashboard apply immediately. A missing token skips the
send. Platform errors and network failures are logged and reported as
False; nothing is raised and nothing is retried.

HTTP session lifecycle:
- Uses the shared sender session from pagebot.infra.http_client.
- Call close_all_sessions() during application shutdown.
"""
from __future__ import annotations
from typing import Optional

import aiohttp

from pagebot.config import settings
from pagebot.core.domain import CampaignButton
from pagebot.core.repository import BotRepository
from pagebot.infra.http_client import get_sender_session
from pagebot.infra.logging_config import get_logger, mask_sender_id
from pagebot.infra.metrics import AppMetrics, inc_counter

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------

def build_text_message(recipient_id: str, text: str, image_url: Optional[str] = None) -> dict:
    message: dict = {"text": text}
    if image_url:
        message["attachment"] = {"type": "image", "payload": {"url": image_url}}
    return {"recipient": {"id": recipient_id}, "message": message}


def build_quick_replies_message(recipient_id: str, text: str, buttons: list[CampaignButton]) -> dict:
    return {
        "recipient": {"id": recipient_id},
        "message": {
            "text": text,
            "quick_replies": [
                {"content_type": "text", "title": b.label, "payload": b.id}
                for b in buttons
            ],
        },
    }


# ---------------------------------------------------------------------------
# Sender
# ---------------------------------------------------------------------------

class MessengerSender:
    def __init__(
        self,
        repository: BotRepository,
        base_url: str | None = None,
        graph_api_version: str | None = None,
    ):
        self.repository = repository
        self._base_url = (base_url or settings.graph_api_base_url).rstrip("/")
        self._version = graph_api_version or settings.graph_api_version

    @property
    def url(self) -> str:
        return f"{self._base_url}/{self._version}/me/messages"

    async def send_text(self, recipient_id: str, text: str, image_url: Optional[str] = None) -> bool:
        return await self._send(recipient_id, build_text_message(recipient_id, text, image_url))

    async def send_quick_replies(self, recipient_id: str, text: str, buttons: list[CampaignButton]) -> bool:
        return await self._send(recipient_id, build_quick_replies_message(recipient_id, text, buttons))

    async def _send(self, recipient_id: str, payload: dict) -> bool:
        to = mask_sender_id(recipient_id)

        try:
            api = await self.repository.get_api_settings()
        except Exception as exc:
            logger.error(f"Messenger send skipped, settings unavailable: to={to}, {type(exc).__name__}")
            AppMetrics.send_failed("settings_unavailable")
            return False

        token = api.facebook_page_access_token
        if not token:
            logger.warning(f"Messenger send skipped, no page access token configured: to={to}")
            AppMetrics.send_failed("no_token")
            return False

        try:
            session = get_sender_session()
            async with session.post(
                self.url,
                params={"access_token": token},
                json=payload,
            ) as resp:
                body = await _safe_response_json(resp)

                if resp.status == 200:
                    msg_id = str((body or {}).get("message_id", "unknown"))
                    logger.info(f"Messenger message sent: to={to}, msg_id={msg_id[:20]}")
                    inc_counter("messenger_outbound_sent")
                    return True

                error = (body or {}).get("error", {}) if isinstance(body, dict) else {}
                logger.error(
                    f"Messenger API error: status={resp.status}, code={error.get('code')}, "
                    f"message={error.get('message', 'Unknown error')}"
                )
                AppMetrics.send_failed(f"http_{resp.status}")
                return False

        except aiohttp.ClientError as exc:
            logger.error(f"Messenger API connection error: {type(exc).__name__}", exc_info=True)
            AppMetrics.send_failed("connection_error")
            return False
        except Exception as exc:
            logger.error(f"Messenger API unexpected error: {type(exc).__name__}", exc_info=True)
            AppMetrics.send_failed("unexpected_error")
            return False


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------

async def _safe_response_json(resp: aiohttp.ClientResponse) -> dict | None:
    """Parse JSON from response, returning None if body is not valid JSON."""
    try:
        return await resp.json()
    except Exception:
        logger.warning(f"Messenger API returned non-JSON body: status={resp.status}")
        return None
