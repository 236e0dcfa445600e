# pagebot/core/resolver.py
"""
Reply resolution for messages and postbacks.

Precedence, first applicable wins:
    1. button payload (postback or quick-reply tap) -> campaign button response
    2. AI reply, when AI is enabled and an OpenAI key is configured
    3. canned response whose trigger is contained in the message

A failed completion yields no reply; canned responses are only consulted
when the AI path is skipped.
"""
from __future__ import annotations
from typing import Callable, Optional

from pagebot.config import settings
from pagebot.core import texts
from pagebot.core.domain import (
    Conversation,
    ConversationStatus,
    InboundEvent,
    MessageEvent,
    PostbackEvent,
    ReplyPayload,
    ReplySource,
    utc_timestamp,
)
from pagebot.core.knowledge import build_system_prompt, select_knowledge
from pagebot.core.ports import AsyncCompletionClient
from pagebot.core.repository import BotRepository
from pagebot.infra.completion_client import CompletionError
from pagebot.infra.logging_config import LogContext, get_logger
from pagebot.infra.metrics import AppMetrics

logger = get_logger(__name__)


class ReplyResolver:
    def __init__(
        self,
        repository: BotRepository,
        completion_client: AsyncCompletionClient,
        default_model: str | None = None,
        default_temperature: float | None = None,
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.repository = repository
        self.completion_client = completion_client
        self.default_model = default_model or settings.openai_default_model
        self.default_temperature = (
            default_temperature if default_temperature is not None else settings.openai_default_temperature
        )
        self._clock = clock

    async def resolve(self, event: InboundEvent) -> Optional[ReplyPayload]:
        if isinstance(event, MessageEvent):
            return await self.resolve_message(event)
        if isinstance(event, PostbackEvent):
            return await self.resolve_postback(event)
        raise TypeError(f"ReplyResolver cannot resolve {type(event).__name__}")

    # ------------------------------------------------------------------
    # Postbacks
    # ------------------------------------------------------------------

    async def resolve_postback(self, event: PostbackEvent) -> Optional[ReplyPayload]:
        reply = await self._resolve_button(event.payload)
        if reply is None:
            ctx = LogContext(logger, sender_id=event.sender_id, event_kind=event.kind.value)
            ctx.info(f"No button matches postback payload: {event.payload}")
        return reply

    async def _resolve_button(self, payload: Optional[str]) -> Optional[ReplyPayload]:
        if not payload:
            return None
        for campaign in await self.repository.list_campaigns():
            button = campaign.find_button(payload)
            if button is not None:
                return ReplyPayload(
                    text=button.response,
                    source=ReplySource.BUTTON,
                    image_url=button.image_url,
                )
        return None

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def resolve_message(self, event: MessageEvent) -> Optional[ReplyPayload]:
        ctx = LogContext(logger, sender_id=event.sender_id, event_kind=event.kind.value)
        session = await self.repository.get_session(event.sender_id)

        await self.record_conversation(event, session.campaign_name if session else None)

        if event.quick_reply_payload:
            reply = await self._resolve_button(event.quick_reply_payload)
            if reply is not None:
                return reply
            ctx.debug(f"Quick reply payload {event.quick_reply_payload} is not a button id")

        if not event.has_text():
            ctx.debug("Message without text, no reply")
            return None

        ai = await self.repository.get_ai_settings()
        api = await self.repository.get_api_settings()

        if ai.enabled and api.openai_api_key:
            items = select_knowledge(session, await self.repository.list_knowledge())
            prompt = build_system_prompt(session.linked_product if session else None, items)
            model = ai.model or self.default_model
            temperature = ai.temperature if ai.temperature is not None else self.default_temperature
            try:
                text = await self.completion_client.complete(
                    prompt, event.text, model, temperature, api_key=api.openai_api_key,
                )
            except CompletionError as exc:
                ctx.error(f"AI completion failed: {exc}")
                AppMetrics.completion_failed()
                return None
            return ReplyPayload(text=text, source=ReplySource.AI)

        for response in await self.repository.list_responses():
            if response.matches(event.text):
                return ReplyPayload(
                    text=response.message,
                    source=ReplySource.CANNED,
                    image_url=response.image_url,
                )

        ctx.debug("No canned trigger matched")
        return None

    async def record_conversation(self, event: MessageEvent, campaign_name: Optional[str]) -> Conversation:
        """Overwrite the sender's latest conversation snapshot."""
        conversation = Conversation(
            id=event.message_id,
            sender_id=event.sender_id,
            customer_name=texts.CUSTOMER_NAME_TEMPLATE.format(sender_id=event.sender_id),
            last_message=event.text or "",
            timestamp=self._clock(),
            source=texts.CONVERSATION_SOURCE,
            campaign_name=campaign_name,
            unread=True,
            status=ConversationStatus.ACTIVE.value,
        )
        await self.repository.save_conversation(conversation)
        return conversation
