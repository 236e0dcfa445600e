# pagebot/core/attribution.py
from __future__ import annotations
from typing import Callable, Optional

from pagebot.config import settings
from pagebot.core import texts
from pagebot.core.domain import UserCampaignSession, utc_timestamp
from pagebot.core.ports import AsyncOutboundSender
from pagebot.core.repository import BotRepository
from pagebot.infra.logging_config import LogContext, get_logger
from pagebot.infra.metrics import AppMetrics

logger = get_logger(__name__)


class CampaignAttribution:
    """
    Ties a referral (deep link) to a campaign.

    On a match: bump the campaign counters, send the welcome text and the
    button quick replies, then remember the campaign for the sender. Every
    failure is logged and ends the attribution; earlier steps are not undone.
    """

    def __init__(
        self,
        repository: BotRepository,
        sender: AsyncOutboundSender,
        atomic_counters: bool | None = None,
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.repository = repository
        self.sender = sender
        self.atomic_counters = (
            settings.atomic_campaign_counters if atomic_counters is None else atomic_counters
        )
        self._clock = clock

    async def attribute(self, sender_id: str, ref_code: Optional[str]) -> Optional[UserCampaignSession]:
        """Returns the persisted session, or None when nothing was attributed."""
        ctx = LogContext(logger, sender_id=sender_id, event_kind="referral")

        if not ref_code:
            ctx.info("Referral without ref code, ignoring")
            return None

        try:
            campaign = await self.repository.find_campaign_by_ref(ref_code)

            if campaign is None:
                ctx.info(f"No campaign for ref={ref_code}, sending greeting")
                AppMetrics.referral(matched=False)
                await self.sender.send_text(sender_id, texts.FALLBACK_GREETING)
                return None

            AppMetrics.referral(matched=True)

            if self.atomic_counters:
                updated = await self.repository.increment_campaign_counters(campaign.id)
                if updated is not None:
                    campaign = updated
            else:
                campaign = await self.repository.increment_campaign_counters_unsafe(campaign)

            ctx.info(
                f"Referral attributed to campaign={campaign.id} "
                f"(impressions={campaign.impressions}, conversions={campaign.conversions})"
            )

            await self.sender.send_text(sender_id, campaign.welcome_text)

            if campaign.buttons:
                await self.sender.send_quick_replies(sender_id, texts.QUICK_REPLY_PROMPT, campaign.buttons)

            session = UserCampaignSession(
                campaign_id=campaign.id,
                campaign_name=campaign.name,
                timestamp=self._clock(),
                linked_product=campaign.linked_product,
            )
            await self.repository.save_session(sender_id, session)
            return session

        except Exception as exc:
            ctx.error(f"Campaign attribution failed for ref={ref_code}: {exc}", exc_info=True)
            return None
