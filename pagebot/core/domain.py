# pagebot/core/domain.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union


# ============================================================================
# STORED ENTITIES
# ============================================================================
#
# Records live in the key-value store as JSON objects with camelCase keys
# (the dashboard reads and writes the same objects). Each dataclass converts
# with from_dict()/to_dict().

class ConversationStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"
    PENDING = "pending"


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass
class Conversation:
    """
    Latest conversation snapshot for one sender.

    Keyed by sender id and overwritten by every inbound message, so it holds
    the most recent message only. It is not a message log.
    """
    id: str
    sender_id: str
    customer_name: str
    last_message: str
    timestamp: str
    source: str = "Messenger"
    campaign_name: Optional[str] = None
    unread: bool = True
    status: str = ConversationStatus.ACTIVE.value

    @classmethod
    def from_dict(cls, data: dict) -> "Conversation":
        return cls(
            id=str(data.get("id", "")),
            sender_id=str(data.get("senderId", "")),
            customer_name=data.get("customerName", ""),
            last_message=data.get("lastMessage") or "",
            timestamp=data.get("timestamp", ""),
            source=data.get("source", "Messenger"),
            campaign_name=data.get("campaignName"),
            unread=bool(data.get("unread", False)),
            status=data.get("status", ConversationStatus.ACTIVE.value),
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "senderId": self.sender_id,
            "customerName": self.customer_name,
            "lastMessage": self.last_message,
            "timestamp": self.timestamp,
            "source": self.source,
            "unread": self.unread,
            "status": self.status,
        }
        if self.campaign_name is not None:
            data["campaignName"] = self.campaign_name
        return data


@dataclass
class CampaignButton:
    id: str
    label: str
    response: str
    image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CampaignButton":
        return cls(
            id=str(data.get("id", "")),
            label=data.get("label", ""),
            response=data.get("response", ""),
            image_url=data.get("imageUrl") or None,
        )

    def to_dict(self) -> dict:
        data = {"id": self.id, "label": self.label, "response": self.response}
        if self.image_url:
            data["imageUrl"] = self.image_url
        return data


@dataclass
class Campaign:
    id: str
    name: str
    description: str = ""
    status: str = CampaignStatus.ACTIVE.value
    conversions: int = 0
    impressions: int = 0
    created_at: str = ""
    buttons: list[CampaignButton] = field(default_factory=list)
    ref_key: Optional[str] = None
    linked_product: Optional[str] = None

    # Keys written by the dashboard that the core does not model
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    _KNOWN_KEYS = frozenset({
        "id", "name", "description", "status", "conversions", "impressions",
        "createdAt", "buttons", "refKey", "linkedProduct",
    })

    @classmethod
    def from_dict(cls, data: dict) -> "Campaign":
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            description=data.get("description") or "",
            status=data.get("status", CampaignStatus.ACTIVE.value),
            conversions=int(data.get("conversions") or 0),
            impressions=int(data.get("impressions") or 0),
            created_at=data.get("createdAt", ""),
            buttons=[CampaignButton.from_dict(b) for b in data.get("buttons") or []],
            ref_key=data.get("refKey") or None,
            linked_product=data.get("linkedProduct") or None,
            extra={k: v for k, v in data.items() if k not in cls._KNOWN_KEYS},
        )

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "conversions": self.conversions,
            "impressions": self.impressions,
            "createdAt": self.created_at,
            "buttons": [b.to_dict() for b in self.buttons],
        })
        if self.ref_key:
            data["refKey"] = self.ref_key
        if self.linked_product:
            data["linkedProduct"] = self.linked_product
        return data

    def find_button(self, button_id: str) -> Optional[CampaignButton]:
        """First button with the given id, in list order."""
        for button in self.buttons:
            if button.id == button_id:
                return button
        return None

    @property
    def welcome_text(self) -> str:
        return f"{self.name}\n\n{self.description}"


@dataclass
class CannedResponse:
    id: str
    trigger: str
    message: str
    category: str = ""
    created_at: str = ""
    image_url: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CannedResponse":
        return cls(
            id=str(data.get("id", "")),
            trigger=data.get("trigger") or "",
            message=data.get("message") or "",
            category=data.get("category", ""),
            created_at=data.get("createdAt", ""),
            image_url=data.get("imageUrl") or None,
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "trigger": self.trigger,
            "message": self.message,
            "category": self.category,
            "createdAt": self.created_at,
        }
        if self.image_url:
            data["imageUrl"] = self.image_url
        return data

    def matches(self, text: str) -> bool:
        """Case-insensitive: the message contains the trigger phrase."""
        if not self.trigger:
            return False
        return self.trigger.lower() in text.lower()


@dataclass
class KnowledgeItem:
    id: str
    content: str
    category: str = ""
    created_at: str = ""
    product_name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "KnowledgeItem":
        return cls(
            id=str(data.get("id", "")),
            content=data.get("content") or "",
            category=data.get("category", ""),
            created_at=data.get("createdAt", ""),
            product_name=data.get("productName") or None,
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "category": self.category,
            "content": self.content,
            "createdAt": self.created_at,
        }
        if self.product_name:
            data["productName"] = self.product_name
        return data


@dataclass
class AISettings:
    """
    AI reply configuration.

    allowed_topics / restricted_topics are persisted for the dashboard but
    the reply resolver does not consult them.
    """
    enabled: bool = True
    model: Optional[str] = None
    temperature: Optional[float] = None
    allowed_topics: list[str] = field(default_factory=list)
    restricted_topics: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict | None) -> "AISettings":
        data = data or {}
        temperature = data.get("temperature")
        return cls(
            enabled=bool(data.get("enabled", True)),
            model=data.get("model") or None,
            temperature=float(temperature) if temperature is not None else None,
            allowed_topics=list(data.get("allowedTopics") or []),
            restricted_topics=list(data.get("restrictedTopics") or []),
        )

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled,
            "model": self.model,
            "temperature": self.temperature,
            "allowedTopics": list(self.allowed_topics),
            "restrictedTopics": list(self.restricted_topics),
        }


@dataclass
class APISettings:
    facebook_page_access_token: str = ""
    facebook_page_id: str = ""
    facebook_verify_token: str = ""
    openai_api_key: str = ""

    @classmethod
    def from_dict(cls, data: dict | None) -> "APISettings":
        data = data or {}
        return cls(
            facebook_page_access_token=data.get("facebookPageAccessToken") or "",
            facebook_page_id=data.get("facebookPageId") or "",
            facebook_verify_token=data.get("facebookVerifyToken") or "",
            openai_api_key=data.get("openaiApiKey") or "",
        )

    def to_dict(self) -> dict:
        return {
            "facebookPageAccessToken": self.facebook_page_access_token,
            "facebookPageId": self.facebook_page_id,
            "facebookVerifyToken": self.facebook_verify_token,
            "openaiApiKey": self.openai_api_key,
        }


@dataclass
class UserCampaignSession:
    """Which campaign (and linked product) a sender arrived from. Latest referral wins."""
    campaign_id: str
    campaign_name: str
    timestamp: str
    linked_product: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "UserCampaignSession":
        return cls(
            campaign_id=str(data.get("campaignId", "")),
            campaign_name=data.get("campaignName", ""),
            timestamp=data.get("timestamp", ""),
            linked_product=data.get("linkedProduct") or None,
        )

    def to_dict(self) -> dict:
        data = {
            "campaignId": self.campaign_id,
            "campaignName": self.campaign_name,
            "timestamp": self.timestamp,
        }
        if self.linked_product:
            data["linkedProduct"] = self.linked_product
        return data


# ============================================================================
# INBOUND EVENTS
# ============================================================================

class EventKind(str, Enum):
    MESSAGE = "message"
    POSTBACK = "postback"
    REFERRAL = "referral"


@dataclass
class MessageEvent:
    """Free-text message (or a quick-reply tap, which carries a payload)."""
    sender_id: str
    message_id: str
    text: Optional[str] = None
    quick_reply_payload: Optional[str] = None

    kind = EventKind.MESSAGE

    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


@dataclass
class PostbackEvent:
    """Button click on a structured message."""
    sender_id: str
    payload: str
    title: Optional[str] = None

    kind = EventKind.POSTBACK


@dataclass
class ReferralEvent:
    """Deep-link arrival, standalone or embedded in a message."""
    sender_id: str
    ref: Optional[str] = None
    source: Optional[str] = None

    kind = EventKind.REFERRAL


InboundEvent = Union[MessageEvent, PostbackEvent, ReferralEvent]


# ============================================================================
# REPLIES
# ============================================================================

class ReplySource(str, Enum):
    BUTTON = "button"
    AI = "ai"
    CANNED = "canned"


@dataclass
class ReplyPayload:
    text: str
    source: ReplySource
    image_url: Optional[str] = None


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix (2024-05-01T10:00:00.000Z)."""
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
