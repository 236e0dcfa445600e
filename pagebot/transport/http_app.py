# pagebot/transport/http_app.py
"""
HTTP application: Messenger webhook, dashboard API, health probes.

Security layers:
1. Public: GET/POST /webhook, /health, /ready
2. Protected: /admin/* (Bearer ADMIN_TOKEN)
3. No information leakage in production (docs disabled, sanitized errors)
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException, Request, Depends
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as PydanticValidationError
from starlette.middleware.base import BaseHTTPMiddleware

from pagebot.config import settings
from pagebot.core.attribution import CampaignAttribution
from pagebot.core.dispatcher import EventDispatcher
from pagebot.core.ports import AsyncKVStore
from pagebot.core.repository import BotRepository
from pagebot.core.resolver import ReplyResolver
from pagebot.admin.errors import AdminError
from pagebot.admin.models import (
    CreateCampaignRequest,
    CreateKnowledgeRequest,
    CreateResponseRequest,
    ToggleAIRequest,
    UpdateAISettingsRequest,
    UpdateAPISettingsRequest,
    UpdateCampaignRequest,
    UpdateResponseRequest,
)
from pagebot.admin.service import get_admin_service, init_admin_service
from pagebot.infra.completion_client import OpenAICompletionClient
from pagebot.infra.db_async import close_pool, init_pool
from pagebot.infra.http_client import close_all_sessions
from pagebot.infra.kv_store import InMemoryKVStore
from pagebot.infra.logging_config import setup_logging, get_logger
from pagebot.infra.metrics import get_metrics_collector
from pagebot.infra.pg_kv_store_async import AsyncPostgresKVStore
from pagebot.transport.messenger_sender import MessengerSender
from pagebot.transport.messenger_webhook import messenger_webhook_verify, messenger_webhook_handler
from pagebot.transport.middleware import (
    RequestIDMiddleware,
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
)
from pagebot.transport.security import (
    require_admin_auth,
    SecurityHeaders,
    sanitize_error_message,
)

# Initialize logging first
setup_logging(
    level=settings.log_level,
    use_json=settings.is_production
)

logger = get_logger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        return SecurityHeaders.add_security_headers(response)


# ============================================================================
# WIRING
# ============================================================================

async def build_store() -> AsyncKVStore:
    """Store backend selected by STORE_BACKEND."""
    if settings.store_backend == "postgres":
        # Migrations run separately: python -m pagebot.infra.migrate
        await init_pool()
        logger.info("Store backend: postgres (kv_store table)")
        return AsyncPostgresKVStore()

    logger.info("Store backend: memory (data is lost on restart)")
    return InMemoryKVStore()


def build_dispatcher(repository: BotRepository, sender: MessengerSender) -> EventDispatcher:
    resolver = ReplyResolver(repository, OpenAICompletionClient())
    attribution = CampaignAttribution(repository, sender)
    return EventDispatcher(resolver, attribution, sender)


# ============================================================================
# LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    """Application lifecycle: startup and shutdown"""

    # STARTUP
    logger.info(f"Starting application: env={settings.app_env}, store={settings.store_backend}")

    if settings.is_production:
        missing = settings.validate_required_for_production()
        if missing:
            logger.critical(f"Missing required production settings: {missing}")
            raise RuntimeError(f"Missing production config: {missing}")

        if settings.log_level.upper() == "DEBUG":
            logger.critical("LOG_LEVEL=DEBUG is not allowed in production")
            raise RuntimeError("LOG_LEVEL=DEBUG in production")

    store = await build_store()
    repository = BotRepository(store)
    sender = MessengerSender(repository)

    fastapi_app.state.store = store
    fastapi_app.state.repository = repository
    fastapi_app.state.sender = sender
    fastapi_app.state.dispatcher = build_dispatcher(repository, sender)
    init_admin_service(repository)

    logger.info(
        f"Messenger webhook path: /webhook (Graph API {settings.graph_api_version}), "
        f"atomic_campaign_counters={settings.atomic_campaign_counters}"
    )
    logger.info("Application startup complete")

    yield

    # SHUTDOWN
    logger.info("Shutting down application")
    await close_all_sessions()
    if settings.store_backend == "postgres":
        await close_pool()
    logger.info("Application shutdown complete")


# ============================================================================
# CREATE APP
# ============================================================================

app = FastAPI(
    title="pagebot",
    description="Messenger page bot: campaign attribution and automated replies",
    version="1.0.0",
    lifespan=lifespan,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
    openapi_url=None if settings.is_production else "/openapi.json",
)

# The dashboard is a browser app; restrict origins outside dev
if settings.is_production or settings.is_staging:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins if settings.allowed_origins != ["*"] else [],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(SecurityHeadersMiddleware)

app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(RequestLoggingMiddleware, enabled=settings.enable_request_logging)
app.add_middleware(RequestIDMiddleware)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with appropriate logging"""
    if exc.status_code >= 500:
        logger.error(f"Server error: {exc.detail}", extra={"status_code": exc.status_code})

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions"""
    logger.error(f"Unhandled exception: {exc.__class__.__name__}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={"error": sanitize_error_message(exc, settings.is_production)},
    )


# ============================================================================
# PUBLIC ENDPOINTS (No authentication required)
# ============================================================================

@app.get("/health")
def health():
    """Liveness probe. Returns minimal information."""
    return {"status": "healthy"}


@app.get("/ready")
async def readiness(request: Request):
    """Readiness probe: the store must answer."""
    store: AsyncKVStore = request.app.state.store
    if not await store.ping():
        return JSONResponse(status_code=503, content={"status": "unhealthy"})
    return {"status": "healthy"}


@app.get("/webhook")
async def webhook_verify(request: Request):
    """
    Messenger webhook verification - PUBLIC.

    Meta sends a GET request with hub.verify_token and hub.challenge
    to confirm webhook ownership.
    """
    return await messenger_webhook_verify(request)


@app.post("/webhook")
async def webhook(request: Request):
    """
    Messenger webhook events - PUBLIC.

    Messages, postbacks and referrals are handled inline, in delivery order.
    """
    return await messenger_webhook_handler(request)


# ============================================================================
# ADMIN ENDPOINTS (Dashboard API, require admin token)
# ============================================================================

def _parse(model, payload: dict):
    try:
        return model(**payload)
    except PydanticValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


async def _call(coro):
    try:
        return await coro
    except AdminError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)


@app.get("/admin/metrics", dependencies=[Depends(require_admin_auth)])
def admin_metrics():
    """In-process counters and histograms."""
    return get_metrics_collector().get_metrics()


@app.get("/admin/settings", dependencies=[Depends(require_admin_auth)])
async def admin_get_settings():
    """Platform and LLM credentials (secrets masked)."""
    view = await _call(get_admin_service().get_api_settings())
    return view.model_dump(by_alias=True)


@app.put("/admin/settings", dependencies=[Depends(require_admin_auth)])
async def admin_update_settings(payload: dict):
    """Partial update of the credentials."""
    req = _parse(UpdateAPISettingsRequest, payload)
    result = await _call(get_admin_service().update_api_settings(req))
    return result.model_dump(exclude_none=True)


@app.get("/admin/ai/settings", dependencies=[Depends(require_admin_auth)])
async def admin_get_ai_settings():
    return await _call(get_admin_service().get_ai_settings())


@app.put("/admin/ai/settings", dependencies=[Depends(require_admin_auth)])
async def admin_update_ai_settings(payload: dict):
    req = _parse(UpdateAISettingsRequest, payload)
    result = await _call(get_admin_service().update_ai_settings(req))
    return result.model_dump(exclude_none=True)


@app.post("/admin/ai/toggle", dependencies=[Depends(require_admin_auth)])
async def admin_toggle_ai(payload: dict):
    req = _parse(ToggleAIRequest, payload)
    result = await _call(get_admin_service().toggle_ai(req))
    return result.model_dump(exclude_none=True)


@app.get("/admin/campaigns", dependencies=[Depends(require_admin_auth)])
async def admin_list_campaigns():
    return await _call(get_admin_service().list_campaigns())


@app.post("/admin/campaigns", dependencies=[Depends(require_admin_auth)])
async def admin_create_campaign(payload: dict):
    req = _parse(CreateCampaignRequest, payload)
    return await _call(get_admin_service().create_campaign(req))


@app.put("/admin/campaigns/{campaign_id}", dependencies=[Depends(require_admin_auth)])
async def admin_update_campaign(campaign_id: str, payload: dict):
    req = _parse(UpdateCampaignRequest, payload)
    return await _call(get_admin_service().update_campaign(campaign_id, req))


@app.delete("/admin/campaigns/{campaign_id}", dependencies=[Depends(require_admin_auth)])
async def admin_delete_campaign(campaign_id: str):
    result = await _call(get_admin_service().delete_campaign(campaign_id))
    return result.model_dump(exclude_none=True)


@app.get("/admin/responses", dependencies=[Depends(require_admin_auth)])
async def admin_list_responses():
    return await _call(get_admin_service().list_responses())


@app.post("/admin/responses", dependencies=[Depends(require_admin_auth)])
async def admin_create_response(payload: dict):
    req = _parse(CreateResponseRequest, payload)
    return await _call(get_admin_service().create_response(req))


@app.put("/admin/responses/{response_id}", dependencies=[Depends(require_admin_auth)])
async def admin_update_response(response_id: str, payload: dict):
    req = _parse(UpdateResponseRequest, payload)
    return await _call(get_admin_service().update_response(response_id, req))


@app.delete("/admin/responses/{response_id}", dependencies=[Depends(require_admin_auth)])
async def admin_delete_response(response_id: str):
    result = await _call(get_admin_service().delete_response(response_id))
    return result.model_dump(exclude_none=True)


@app.get("/admin/ai/knowledge", dependencies=[Depends(require_admin_auth)])
async def admin_list_knowledge():
    return await _call(get_admin_service().list_knowledge())


@app.post("/admin/ai/knowledge", dependencies=[Depends(require_admin_auth)])
async def admin_create_knowledge(payload: dict):
    req = _parse(CreateKnowledgeRequest, payload)
    return await _call(get_admin_service().create_knowledge(req))


@app.delete("/admin/ai/knowledge/{item_id}", dependencies=[Depends(require_admin_auth)])
async def admin_delete_knowledge(item_id: str):
    result = await _call(get_admin_service().delete_knowledge(item_id))
    return result.model_dump(exclude_none=True)


@app.get("/admin/products", dependencies=[Depends(require_admin_auth)])
async def admin_list_products():
    """Unique product names tagged on knowledge items."""
    products = await _call(get_admin_service().list_products())
    return [p.model_dump() for p in products]


@app.get("/admin/conversations", dependencies=[Depends(require_admin_auth)])
async def admin_list_conversations():
    return await _call(get_admin_service().list_conversations())


@app.get("/admin/stats", dependencies=[Depends(require_admin_auth)])
async def admin_stats():
    stats = await _call(get_admin_service().get_stats())
    return stats.model_dump(by_alias=True)
