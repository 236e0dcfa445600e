# pagebot/admin/service.py
"""
Admin Application Service: the dashboard's CRUD collaborator.

Owns everything the core only reads: campaign definitions, canned
responses, knowledge items and settings. Campaign counters are written by
campaign attribution; here they are only initialised on create.

The transport layer (http_app.py admin routes) stays a thin adapter:
    parse request -> call service -> map AdminError -> return JSON.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Callable

from pagebot.admin.errors import NotFoundError, ValidationError
from pagebot.admin.models import (
    APISettingsView,
    CreateCampaignRequest,
    CreateKnowledgeRequest,
    CreateResponseRequest,
    OkResponse,
    ProductView,
    StatsResponse,
    ToggleAIRequest,
    UpdateAISettingsRequest,
    UpdateAPISettingsRequest,
    UpdateCampaignRequest,
    UpdateResponseRequest,
)
from pagebot.config import settings
from pagebot.core.domain import AISettings, Campaign, CampaignStatus, CannedResponse, KnowledgeItem
from pagebot.core.repository import BotRepository
from pagebot.infra.logging_config import get_logger
from pagebot.transport.security import mask_secret

logger = get_logger(__name__)

# api:settings keys returned masked by get_api_settings()
SECRET_SETTINGS_KEYS = ("facebookPageAccessToken", "openaiApiKey")


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


class AdminApplicationService:
    """Stateless apart from the repository; safe to use as a singleton."""

    def __init__(
        self,
        repository: BotRepository,
        id_factory: Callable[[], str] = _new_id,
        today: Callable[[], str] = _today,
    ) -> None:
        self.repository = repository
        self._new_id = id_factory
        self._today = today

    # ------------------------------------------------------------------
    # API settings
    # ------------------------------------------------------------------

    async def get_api_settings(self) -> APISettingsView:
        api = await self.repository.get_api_settings()
        return APISettingsView(
            facebook_page_access_token=mask_secret(api.facebook_page_access_token),
            facebook_page_id=api.facebook_page_id,
            facebook_verify_token=api.facebook_verify_token,
            openai_api_key=mask_secret(api.openai_api_key),
            facebook_page_access_token_configured=bool(api.facebook_page_access_token),
            openai_api_key_configured=bool(api.openai_api_key),
        )

    async def update_api_settings(self, req: UpdateAPISettingsRequest) -> OkResponse:
        """
        Merge the given credentials into api:settings.

        The dashboard saves the whole form it loaded, so secret fields may
        come back exactly as get_api_settings() masked them; those keep the
        stored value.
        """
        changes = req.to_store(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        stored = await self.repository.get_api_settings_raw()
        for key in SECRET_SETTINGS_KEYS:
            current = stored.get(key) or ""
            if key in changes and current and changes[key] == mask_secret(current):
                del changes[key]

        stored.update({k: (v or "") for k, v in changes.items()})
        await self.repository.save_api_settings(stored)

        logger.info(f"API settings updated: fields={sorted(changes)}")
        return OkResponse()

    # ------------------------------------------------------------------
    # AI settings
    # ------------------------------------------------------------------

    def _effective_ai_settings(self, ai: AISettings) -> dict:
        data = ai.to_dict()
        if data["model"] is None:
            data["model"] = settings.openai_default_model
        if data["temperature"] is None:
            data["temperature"] = settings.openai_default_temperature
        return data

    async def get_ai_settings(self) -> dict:
        return self._effective_ai_settings(await self.repository.get_ai_settings())

    async def update_ai_settings(self, req: UpdateAISettingsRequest) -> OkResponse:
        changes = req.to_store(exclude_unset=True)
        if not changes:
            raise ValidationError("No fields to update")

        stored = await self.repository.get_ai_settings_raw() or AISettings().to_dict()
        stored.update(changes)
        await self.repository.save_ai_settings(stored)

        logger.info(f"AI settings updated: fields={sorted(changes)}")
        return OkResponse()

    async def toggle_ai(self, req: ToggleAIRequest) -> OkResponse:
        """Flip AI replies on/off, keeping the other AI settings."""
        stored = await self.repository.get_ai_settings_raw() or AISettings().to_dict()
        stored["enabled"] = req.enabled
        await self.repository.save_ai_settings(stored)

        logger.info(f"AI replies {'enabled' if req.enabled else 'disabled'}")
        return OkResponse(enabled=req.enabled)

    # ------------------------------------------------------------------
    # Campaigns
    # ------------------------------------------------------------------

    async def list_campaigns(self) -> list[dict]:
        return [c.to_dict() for c in await self.repository.list_campaigns()]

    async def create_campaign(self, req: CreateCampaignRequest) -> dict:
        data = req.to_store()
        data.update({
            "id": self._new_id(),
            "conversions": 0,
            "impressions": 0,
            "createdAt": self._today(),
        })
        campaign = Campaign.from_dict(data)
        await self.repository.save_campaign(campaign)

        logger.info(f"Campaign created: id={campaign.id}, ref={campaign.ref_key}")
        return campaign.to_dict()

    async def update_campaign(self, campaign_id: str, req: UpdateCampaignRequest) -> dict:
        if not req.has_updates():
            raise ValidationError("No fields to update")

        existing = await self.repository.get_campaign(campaign_id)
        if existing is None:
            raise NotFoundError("Campaign not found")

        data = existing.to_dict()
        data.update(req.to_store(exclude_unset=True))
        campaign = Campaign.from_dict(data)
        await self.repository.save_campaign(campaign)

        logger.info(f"Campaign updated: id={campaign_id}, fields={sorted(req.model_fields_set)}")
        return campaign.to_dict()

    async def delete_campaign(self, campaign_id: str) -> OkResponse:
        await self.repository.delete_campaign(campaign_id)
        logger.info(f"Campaign deleted: id={campaign_id}")
        return OkResponse(id=campaign_id)

    # ------------------------------------------------------------------
    # Canned responses
    # ------------------------------------------------------------------

    async def list_responses(self) -> list[dict]:
        return [r.to_dict() for r in await self.repository.list_responses()]

    async def create_response(self, req: CreateResponseRequest) -> dict:
        data = req.to_store()
        data.update({"id": self._new_id(), "createdAt": self._today()})
        response = CannedResponse.from_dict(data)
        await self.repository.save_response(response)
        return response.to_dict()

    async def update_response(self, response_id: str, req: UpdateResponseRequest) -> dict:
        if not req.has_updates():
            raise ValidationError("No fields to update")

        existing = await self.repository.get_response(response_id)
        if existing is None:
            raise NotFoundError("Response not found")

        data = existing.to_dict()
        data.update(req.to_store(exclude_unset=True))
        response = CannedResponse.from_dict(data)
        await self.repository.save_response(response)
        return response.to_dict()

    async def delete_response(self, response_id: str) -> OkResponse:
        await self.repository.delete_response(response_id)
        return OkResponse(id=response_id)

    # ------------------------------------------------------------------
    # Knowledge base
    # ------------------------------------------------------------------

    async def list_knowledge(self) -> list[dict]:
        return [k.to_dict() for k in await self.repository.list_knowledge()]

    async def create_knowledge(self, req: CreateKnowledgeRequest) -> dict:
        data = req.to_store()
        data.update({"id": self._new_id(), "createdAt": self._today()})
        item = KnowledgeItem.from_dict(data)
        await self.repository.save_knowledge(item)
        return item.to_dict()

    async def delete_knowledge(self, item_id: str) -> OkResponse:
        await self.repository.delete_knowledge(item_id)
        return OkResponse(id=item_id)

    async def list_products(self) -> list[ProductView]:
        """Unique knowledge productNames, in first-seen order."""
        names: dict[str, None] = {}
        for item in await self.repository.list_knowledge():
            if item.product_name:
                names.setdefault(item.product_name, None)
        return [ProductView(name=n) for n in names]

    # ------------------------------------------------------------------
    # Conversations / stats
    # ------------------------------------------------------------------

    async def list_conversations(self) -> list[dict]:
        """Latest snapshot per sender, newest first."""
        conversations = await self.repository.list_conversations()
        conversations.sort(key=lambda c: c.timestamp, reverse=True)
        return [c.to_dict() for c in conversations]

    async def get_stats(self) -> StatsResponse:
        conversations = await self.repository.list_conversations()
        campaigns = await self.repository.list_campaigns()
        ai = await self.repository.get_ai_settings()
        today = self._today()

        return StatsResponse(
            total_conversations=len(conversations),
            new_today=sum(1 for c in conversations if c.timestamp.startswith(today)),
            ai_enabled=ai.enabled,
            active_campaigns=sum(1 for c in campaigns if c.status == CampaignStatus.ACTIVE.value),
        )


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------

_svc: AdminApplicationService | None = None


def init_admin_service(repository: BotRepository) -> AdminApplicationService:
    """Bind the singleton to the application's repository (called at startup)."""
    global _svc
    _svc = AdminApplicationService(repository)
    return _svc


def get_admin_service() -> AdminApplicationService:
    """Get the global AdminApplicationService singleton."""
    if _svc is None:
        raise RuntimeError("Admin service not initialized. Call init_admin_service() first.")
    return _svc


def reset_admin_service() -> None:
    """Reset the singleton (for testing)."""
    global _svc
    _svc = None
