# pagebot/infra/http_client.py
"""
Shared aiohttp session for Send API calls.

Created lazily on first use so it binds to the running event loop, and
recreated if something closed it. ``close_all_sessions()`` runs at shutdown.
"""
from __future__ import annotations

import aiohttp

from pagebot.config import settings
from pagebot.infra.logging_config import get_logger

logger = get_logger(__name__)

SENDER_CONNECTION_LIMIT = 20
CONNECT_TIMEOUT_SECONDS = 5

_sender_session: aiohttp.ClientSession | None = None


def get_sender_session() -> aiohttp.ClientSession:
    global _sender_session
    if _sender_session is None or _sender_session.closed:
        _sender_session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(
                total=settings.send_timeout_seconds,
                connect=CONNECT_TIMEOUT_SECONDS,
            ),
            connector=aiohttp.TCPConnector(
                limit=SENDER_CONNECTION_LIMIT,
                keepalive_timeout=30,
            ),
        )
        logger.debug(f"Sender HTTP session created (limit={SENDER_CONNECTION_LIMIT})")
    return _sender_session


async def close_all_sessions() -> None:
    global _sender_session
    session, _sender_session = _sender_session, None
    if session is not None and not session.closed:
        await session.close()
        logger.debug("Sender HTTP session closed")
