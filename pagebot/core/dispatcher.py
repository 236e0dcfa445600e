# pagebot/core/dispatcher.py
from __future__ import annotations

from pagebot.core.attribution import CampaignAttribution
from pagebot.core.domain import InboundEvent, ReferralEvent, ReplyPayload
from pagebot.core.ports import AsyncOutboundSender
from pagebot.core.resolver import ReplyResolver
from pagebot.infra.logging_config import LogContext, get_logger
from pagebot.infra.metrics import AppMetrics

logger = get_logger(__name__)


class EventDispatcher:
    """
    Routes parsed webhook events, one at a time and in delivery order.

    Messages and postbacks go to the reply resolver and any reply is sent;
    referrals go to campaign attribution. A failing event is logged and
    does not stop the ones after it.
    """

    def __init__(
        self,
        resolver: ReplyResolver,
        attribution: CampaignAttribution,
        sender: AsyncOutboundSender,
    ):
        self.resolver = resolver
        self.attribution = attribution
        self.sender = sender

    async def dispatch(self, events: list[InboundEvent]) -> int:
        """Returns how many events were handled without error."""
        handled = 0
        for event in events:
            kind = event.kind.value
            AppMetrics.event_received(kind)
            ctx = LogContext(logger, sender_id=event.sender_id, event_kind=kind)
            try:
                with AppMetrics.track_processing_time(kind):
                    await self.handle(event)
                handled += 1
            except Exception as exc:
                AppMetrics.event_failed(kind)
                ctx.error(f"Event handling failed: {exc}", exc_info=True)
        return handled

    async def handle(self, event: InboundEvent) -> None:
        if isinstance(event, ReferralEvent):
            await self.attribution.attribute(event.sender_id, event.ref)
            return

        reply = await self.resolver.resolve(event)
        if reply is not None:
            await self.deliver(event.sender_id, reply)

    async def deliver(self, recipient_id: str, reply: ReplyPayload) -> bool:
        ok = await self.sender.send_text(recipient_id, reply.text, reply.image_url)
        if ok:
            AppMetrics.reply_sent(reply.source.value)
        return ok
