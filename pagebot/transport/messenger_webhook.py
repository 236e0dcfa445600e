# pagebot/transport/messenger_webhook.py
"""
Messenger Platform webhook handler.

Handles:
- GET /webhook  - verification handshake (hub.verify_token + hub.challenge)
- POST /webhook - inbound messages, postbacks and referrals

Once the body parses, the delivery is acknowledged with 200 even when
individual events fail. Bodies that are not valid JSON or not shaped like a
page webhook answer 500.
"""
from __future__ import annotations

import time

from fastapi import Request
from fastapi.responses import JSONResponse, PlainTextResponse

from pagebot.config import settings
from pagebot.core.dispatcher import EventDispatcher
from pagebot.core.repository import BotRepository
from pagebot.transport.adapters import MessengerAdapter, MalformedPayloadError, describe_events
from pagebot.infra.logging_config import get_logger, LogContext
from pagebot.infra.metrics import inc_counter

logger = get_logger(__name__)


# -------------------------------------------------------------------------
# GET - Webhook Verification
# -------------------------------------------------------------------------

async def messenger_webhook_verify(
    request: Request,
    *,
    repository_override: BotRepository | None = None,
):
    """
    Meta sends:
      hub.mode=subscribe
      hub.verify_token=<configured token>
      hub.challenge=<random string>

    Respond with hub.challenge as plain text on success, or 403.
    The expected token comes from api:settings, falling back to
    DEFAULT_VERIFY_TOKEN.
    """
    mode = request.query_params.get("hub.mode")
    token = request.query_params.get("hub.verify_token")
    challenge = request.query_params.get("hub.challenge")

    repository: BotRepository = repository_override or request.app.state.repository
    api = await repository.get_api_settings()
    expected_token = api.facebook_verify_token or settings.default_verify_token

    if mode == "subscribe" and token == expected_token:
        logger.info("Messenger webhook verification successful")
        inc_counter("messenger_webhook_verified")
        return PlainTextResponse(content=challenge or "", status_code=200)

    logger.warning(
        f"Messenger webhook verification failed: mode={mode}, token_match={token == expected_token}"
    )
    inc_counter("messenger_webhook_verify_failed")
    return JSONResponse({"error": "Verification failed"}, status_code=403)


# -------------------------------------------------------------------------
# POST - Inbound Events
# -------------------------------------------------------------------------

async def messenger_webhook_handler(
    request: Request,
    *,
    dispatcher_override: EventDispatcher | None = None,
) -> JSONResponse:
    """
    Args:
        request: FastAPI request
        dispatcher_override: Optional dispatcher (overrides app.state.dispatcher)
    """
    start_time = time.time()
    request_id = getattr(request.state, "request_id", "unknown")
    log_ctx = LogContext(logger, request_id=request_id)

    try:
        payload = await request.json()
        events = MessengerAdapter().adapt_payload(payload)
    except MalformedPayloadError as exc:
        log_ctx.error(f"Messenger webhook: malformed payload: {exc}")
        inc_counter("messenger_webhook_malformed_payload")
        return JSONResponse({"error": "Webhook processing failed"}, status_code=500)
    except ValueError:
        log_ctx.error("Messenger webhook: body is not valid JSON")
        inc_counter("messenger_webhook_malformed_payload")
        return JSONResponse({"error": "Webhook processing failed"}, status_code=500)

    if not events:
        return JSONResponse({"success": True}, status_code=200)

    dispatcher: EventDispatcher = dispatcher_override or request.app.state.dispatcher

    log_ctx.info(f"Messenger webhook received: events=[{describe_events(events)}]")
    handled = await dispatcher.dispatch(events)

    elapsed_ms = (time.time() - start_time) * 1000
    log_ctx.info(
        f"Messenger webhook processed: handled={handled}/{len(events)}, elapsed={elapsed_ms:.0f}ms"
    )

    return JSONResponse({"success": True}, status_code=200)
