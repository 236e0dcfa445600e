# pagebot/core/__init__.py
"""
Core bot logic: data model, store access, reply resolution and campaign
attribution. Transport-agnostic; the FastAPI layer builds these objects
once at startup.

Canonical imports:
    from pagebot.core import EventDispatcher, ReplyResolver, CampaignAttribution
    from pagebot.core.domain import Campaign, MessageEvent
"""
from pagebot.core.domain import (  # noqa: F401
    Conversation,
    Campaign,
    CampaignButton,
    CannedResponse,
    KnowledgeItem,
    AISettings,
    APISettings,
    UserCampaignSession,
    MessageEvent,
    PostbackEvent,
    ReferralEvent,
    InboundEvent,
    ReplyPayload,
    ReplySource,
)
from pagebot.core.ports import (  # noqa: F401
    AsyncKVStore,
    AsyncOutboundSender,
    AsyncCompletionClient,
)
from pagebot.core.repository import BotRepository  # noqa: F401
from pagebot.core.knowledge import select_knowledge, build_system_prompt  # noqa: F401
from pagebot.core.resolver import ReplyResolver  # noqa: F401
from pagebot.core.attribution import CampaignAttribution  # noqa: F401
from pagebot.core.dispatcher import EventDispatcher  # noqa: F401
