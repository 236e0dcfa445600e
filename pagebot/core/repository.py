# pagebot/core/repository.py
"""
Typed access to every store key the bot uses.

Key layout:
    conversation:<senderId>    latest conversation snapshot
    campaign:<id>              campaign definition + counters
    response:<id>              canned trigger response
    knowledge:<id>             knowledge base item
    user_campaign:<senderId>   campaign session from the latest referral
    ai:settings                AI reply settings
    api:settings               platform + LLM credentials
"""
from __future__ import annotations
from typing import Optional

from pagebot.core.domain import (
    AISettings,
    APISettings,
    Campaign,
    CannedResponse,
    Conversation,
    KnowledgeItem,
    UserCampaignSession,
)
from pagebot.core.ports import AsyncKVStore

CONVERSATION_PREFIX = "conversation:"
CAMPAIGN_PREFIX = "campaign:"
RESPONSE_PREFIX = "response:"
KNOWLEDGE_PREFIX = "knowledge:"
USER_CAMPAIGN_PREFIX = "user_campaign:"
AI_SETTINGS_KEY = "ai:settings"
API_SETTINGS_KEY = "api:settings"


class BotRepository:
    def __init__(self, store: AsyncKVStore):
        self.store = store

    # ---------------------------------------------------------------------
    # Settings (never cached: the dashboard may change them at any time)
    # ---------------------------------------------------------------------

    async def get_api_settings(self) -> APISettings:
        return APISettings.from_dict(await self.store.get(API_SETTINGS_KEY))

    async def get_api_settings_raw(self) -> dict:
        return await self.store.get(API_SETTINGS_KEY) or {}

    async def save_api_settings(self, data: dict) -> None:
        await self.store.set(API_SETTINGS_KEY, data)

    async def get_ai_settings(self) -> AISettings:
        return AISettings.from_dict(await self.store.get(AI_SETTINGS_KEY))

    async def get_ai_settings_raw(self) -> Optional[dict]:
        return await self.store.get(AI_SETTINGS_KEY)

    async def save_ai_settings(self, data: dict) -> None:
        await self.store.set(AI_SETTINGS_KEY, data)

    # ---------------------------------------------------------------------
    # Campaigns
    # ---------------------------------------------------------------------

    async def list_campaigns(self) -> list[Campaign]:
        return [Campaign.from_dict(v) for v in await self.store.get_by_prefix(CAMPAIGN_PREFIX) if v]

    async def get_campaign(self, campaign_id: str) -> Optional[Campaign]:
        data = await self.store.get(CAMPAIGN_PREFIX + campaign_id)
        return Campaign.from_dict(data) if data else None

    async def save_campaign(self, campaign: Campaign) -> None:
        await self.store.set(CAMPAIGN_PREFIX + campaign.id, campaign.to_dict())

    async def delete_campaign(self, campaign_id: str) -> None:
        await self.store.delete(CAMPAIGN_PREFIX + campaign_id)

    async def find_campaign_by_ref(self, ref_code: str) -> Optional[Campaign]:
        """First campaign (store order) whose refKey equals ref_code."""
        for campaign in await self.list_campaigns():
            if campaign.ref_key == ref_code:
                return campaign
        return None

    async def increment_campaign_counters(self, campaign_id: str) -> Optional[Campaign]:
        """impressions += 1 and conversions += 1 as one atomic store update."""

        def bump(current: Optional[dict]) -> Optional[dict]:
            if not current:
                return None
            current["impressions"] = int(current.get("impressions") or 0) + 1
            current["conversions"] = int(current.get("conversions") or 0) + 1
            return current

        updated = await self.store.update(CAMPAIGN_PREFIX + campaign_id, bump)
        return Campaign.from_dict(updated) if updated else None

    async def increment_campaign_counters_unsafe(self, campaign: Campaign) -> Campaign:
        """
        Legacy read-modify-write on an already loaded campaign.

        Two concurrent referrals may both write the same value.
        """
        campaign.impressions += 1
        campaign.conversions += 1
        await self.save_campaign(campaign)
        return campaign

    # ---------------------------------------------------------------------
    # Canned responses / knowledge base
    # ---------------------------------------------------------------------

    async def list_responses(self) -> list[CannedResponse]:
        return [CannedResponse.from_dict(v) for v in await self.store.get_by_prefix(RESPONSE_PREFIX) if v]

    async def get_response(self, response_id: str) -> Optional[CannedResponse]:
        data = await self.store.get(RESPONSE_PREFIX + response_id)
        return CannedResponse.from_dict(data) if data else None

    async def save_response(self, response: CannedResponse) -> None:
        await self.store.set(RESPONSE_PREFIX + response.id, response.to_dict())

    async def delete_response(self, response_id: str) -> None:
        await self.store.delete(RESPONSE_PREFIX + response_id)

    async def list_knowledge(self) -> list[KnowledgeItem]:
        return [KnowledgeItem.from_dict(v) for v in await self.store.get_by_prefix(KNOWLEDGE_PREFIX) if v]

    async def get_knowledge(self, item_id: str) -> Optional[KnowledgeItem]:
        data = await self.store.get(KNOWLEDGE_PREFIX + item_id)
        return KnowledgeItem.from_dict(data) if data else None

    async def save_knowledge(self, item: KnowledgeItem) -> None:
        await self.store.set(KNOWLEDGE_PREFIX + item.id, item.to_dict())

    async def delete_knowledge(self, item_id: str) -> None:
        await self.store.delete(KNOWLEDGE_PREFIX + item_id)

    # ---------------------------------------------------------------------
    # Per-sender state
    # ---------------------------------------------------------------------

    async def get_conversation(self, sender_id: str) -> Optional[Conversation]:
        data = await self.store.get(CONVERSATION_PREFIX + sender_id)
        return Conversation.from_dict(data) if data else None

    async def save_conversation(self, conversation: Conversation) -> None:
        await self.store.set(CONVERSATION_PREFIX + conversation.sender_id, conversation.to_dict())

    async def list_conversations(self) -> list[Conversation]:
        return [Conversation.from_dict(v) for v in await self.store.get_by_prefix(CONVERSATION_PREFIX) if v]

    async def get_session(self, sender_id: str) -> Optional[UserCampaignSession]:
        data = await self.store.get(USER_CAMPAIGN_PREFIX + sender_id)
        return UserCampaignSession.from_dict(data) if data else None

    async def save_session(self, sender_id: str, session: UserCampaignSession) -> None:
        await self.store.set(USER_CAMPAIGN_PREFIX + sender_id, session.to_dict())

    async def ping(self) -> bool:
        return await self.store.ping()
