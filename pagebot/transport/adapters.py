# pagebot/transport/adapters.py
"""
Converts Messenger webhook deliveries into core event variants.
Pure converter: no store access, no domain decisions.
"""
from __future__ import annotations
from typing import Any, Optional

from pagebot.core.domain import InboundEvent, MessageEvent, PostbackEvent, ReferralEvent
from pagebot.infra.logging_config import get_logger, mask_sender_id

logger = get_logger(__name__)


class MalformedPayloadError(ValueError):
    """The delivery is not shaped like a Messenger webhook body."""


class MessengerAdapter:
    """
    Adapter for Messenger Platform page webhooks.

    Meta sends JSON payloads with structure:
    {
      "object": "page",
      "entry": [{
        "id": "<PAGE_ID>",
        "time": 1700000000000,
        "messaging": [{
          "sender": {"id": "<PSID>"},
          "recipient": {"id": "<PAGE_ID>"},
          "timestamp": 1700000000000,
          "message": {"mid": "m_xxx", "text": "Hello", "quick_reply": {"payload": "btn_1"}}
          | "postback": {"title": "...", "payload": "btn_1"}
          | "referral": {"ref": "summer_sale", "source": "SHORTLINK", "type": "OPEN_THREAD"}
        }]
      }]
    }
    """

    def adapt_payload(self, payload: Any) -> list[InboundEvent]:
        """
        Ordered events of one delivery (entry order, then messaging order).

        Returns an empty list for non-page objects and deliveries that only
        carry receipts or echoes. Raises MalformedPayloadError when the body
        is not a JSON object or its entry/messaging arrays are malformed.
        A single unusable messaging item is logged and skipped; the rest of
        the delivery is still returned.
        """
        if not isinstance(payload, dict):
            raise MalformedPayloadError("Webhook body is not a JSON object")

        events: list[InboundEvent] = []

        if payload.get("object") != "page":
            logger.debug(f"Messenger webhook: ignoring non-page object: {payload.get('object')}")
            return events

        entries = payload.get("entry")
        if not isinstance(entries, list):
            raise MalformedPayloadError("Webhook body has no entry array")

        for entry in entries:
            if not isinstance(entry, dict):
                raise MalformedPayloadError("Webhook entry is not an object")

            messaging = entry.get("messaging")
            if messaging is None:
                # Other subscriptions (changes, standby) carry no messaging array
                logger.debug(f"Messenger webhook: entry without messaging, keys={sorted(entry)}")
                continue
            if not isinstance(messaging, list):
                raise MalformedPayloadError("Webhook messaging is not an array")

            for position, item in enumerate(messaging):
                try:
                    event = self._parse_messaging(item)
                except MalformedPayloadError as exc:
                    logger.warning(f"Messenger webhook: skipping messaging[{position}]: {exc}")
                    continue
                if event is not None:
                    events.append(event)

        return events

    def _parse_messaging(self, item: Any) -> Optional[InboundEvent]:
        if not isinstance(item, dict):
            raise MalformedPayloadError("messaging item is not an object")

        if "message" in item:
            message = _as_object(item.get("message"), "message")
            if message.get("is_echo"):
                logger.debug("Messenger webhook: ignoring echo of page message")
                return None

            sender_id = self._sender_id(item)

            referral = message.get("referral")
            if isinstance(referral, dict):
                return ReferralEvent(
                    sender_id=sender_id,
                    ref=referral.get("ref") or None,
                    source=referral.get("source"),
                )

            text = message.get("text")
            quick_reply = message.get("quick_reply")
            payload = quick_reply.get("payload") if isinstance(quick_reply, dict) else None
            return MessageEvent(
                sender_id=sender_id,
                message_id=str(message.get("mid", "")),
                text=text if isinstance(text, str) else None,
                quick_reply_payload=str(payload) if payload else None,
            )

        if "postback" in item:
            postback = _as_object(item.get("postback"), "postback")
            return PostbackEvent(
                sender_id=self._sender_id(item),
                payload=str(postback.get("payload") or ""),
                title=postback.get("title"),
            )

        if "referral" in item:
            referral = _as_object(item.get("referral"), "referral")
            return ReferralEvent(
                sender_id=self._sender_id(item),
                ref=referral.get("ref") or None,
                source=referral.get("source"),
            )

        # delivery / read receipts, reactions, unknown shapes
        logger.debug(f"Messenger webhook: ignoring event keys={sorted(item)}")
        return None

    @staticmethod
    def _sender_id(item: dict) -> str:
        sender = item.get("sender")
        sender_id = sender.get("id") if isinstance(sender, dict) else None
        if not sender_id:
            raise MalformedPayloadError("Messaging event has no sender.id")
        return str(sender_id)


def _as_object(value: Any, name: str) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise MalformedPayloadError(f"{name} is not an object")
    return value


def describe_events(events: list[InboundEvent]) -> str:
    """Compact log summary: kinds and masked senders."""
    return ", ".join(f"{e.kind.value}:{mask_sender_id(e.sender_id)}" for e in events) or "none"
