# pagebot/admin/models.py
"""
Pydantic request/response models for the dashboard API.

Field names are snake_case in Python and camelCase on the wire, matching
the records kept in the store.
"""
from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_store(self, exclude_unset: bool = False) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=exclude_unset)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

class UpdateAPISettingsRequest(CamelModel):
    """Partial update of api:settings; omitted fields keep their stored value."""

    facebook_page_access_token: Optional[str] = None
    facebook_page_id: Optional[str] = None
    facebook_verify_token: Optional[str] = None
    openai_api_key: Optional[str] = None


class APISettingsView(CamelModel):
    """api:settings as returned to the dashboard (secrets masked)."""

    facebook_page_access_token: str = ""
    facebook_page_id: str = ""
    facebook_verify_token: str = ""
    openai_api_key: str = ""
    facebook_page_access_token_configured: bool = False
    openai_api_key_configured: bool = False


class UpdateAISettingsRequest(CamelModel):
    enabled: Optional[bool] = None
    model: Optional[str] = Field(default=None, min_length=1, max_length=128)
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    allowed_topics: Optional[list[str]] = None
    restricted_topics: Optional[list[str]] = None


class ToggleAIRequest(CamelModel):
    enabled: bool


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------

class CampaignButtonModel(CamelModel):
    id: str = Field(..., min_length=1, max_length=128)
    label: str = Field(..., min_length=1, max_length=20)
    response: str = ""
    image_url: Optional[str] = None


class CreateCampaignRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=256)
    description: str = ""
    status: Literal["active", "paused", "completed"] = "active"
    buttons: list[CampaignButtonModel] = Field(default_factory=list)
    ref_key: Optional[str] = Field(default=None, max_length=256)
    linked_product: Optional[str] = Field(default=None, max_length=256)

    @field_validator("buttons")
    @classmethod
    def button_ids_unique(cls, v: list[CampaignButtonModel]) -> list[CampaignButtonModel]:
        ids = [b.id for b in v]
        if len(ids) != len(set(ids)):
            raise ValueError("button ids must be unique within a campaign")
        if len(v) > 13:
            raise ValueError("at most 13 buttons (quick reply limit)")
        return v


class UpdateCampaignRequest(CamelModel):
    """Partial update; counters and createdAt are not writable."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=256)
    description: Optional[str] = None
    status: Optional[Literal["active", "paused", "completed"]] = None
    buttons: Optional[list[CampaignButtonModel]] = None
    ref_key: Optional[str] = Field(default=None, max_length=256)
    linked_product: Optional[str] = Field(default=None, max_length=256)

    @field_validator("name", "description", "status", "buttons")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v

    def has_updates(self) -> bool:
        return bool(self.model_fields_set)


# ---------------------------------------------------------------------------
# Canned responses / knowledge
# ---------------------------------------------------------------------------

class CreateResponseRequest(CamelModel):
    trigger: str = Field(..., min_length=1, max_length=512)
    message: str = Field(..., min_length=1)
    category: str = ""
    image_url: Optional[str] = None


class UpdateResponseRequest(CamelModel):
    trigger: Optional[str] = Field(default=None, min_length=1, max_length=512)
    message: Optional[str] = Field(default=None, min_length=1)
    category: Optional[str] = None
    image_url: Optional[str] = None

    @field_validator("trigger", "message", "category")
    @classmethod
    def not_null(cls, v):
        if v is None:
            raise ValueError("may be omitted but not null")
        return v

    def has_updates(self) -> bool:
        return bool(self.model_fields_set)


class CreateKnowledgeRequest(CamelModel):
    content: str = Field(..., min_length=1)
    category: str = ""
    product_name: Optional[str] = Field(default=None, max_length=256)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class StatsResponse(CamelModel):
    total_conversations: int
    new_today: int
    ai_enabled: bool
    active_campaigns: int


class ProductView(CamelModel):
    name: str


class OkResponse(BaseModel):
    """Generic success response."""

    success: bool = True
    id: str | None = None
    enabled: bool | None = None
