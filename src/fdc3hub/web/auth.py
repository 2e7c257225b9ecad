"""API key authentication for the fdc3hub HTTP and WebSocket routes.

The key is read from ``fdc3hub.web.api_key``. HTTP routes accept it as the
``X-API-Key`` header or ``?api_key=``; WebSockets only as ``?api_key=``
because browser extensions cannot set headers on a socket upgrade.
An empty key disables authentication for local use.
"""

from __future__ import annotations

import logging
import secrets
from typing import Optional

from fastapi import HTTPException, Request, WebSocket, status

from ..infra.config import get_config, hub_section

logger = logging.getLogger(__name__)

_warned_no_key = False


def _get_configured_api_key() -> str:
    """Return the configured api_key, or empty string if not set."""
    try:
        return str(hub_section(get_config(), "web").get("api_key", "") or "")
    except Exception as e:
        logger.debug("Cannot read api_key from config: %s", e)
        return ""


def _extract_api_key(request: Request) -> Optional[str]:
    key = request.headers.get("x-api-key")
    if key:
        return key
    return request.query_params.get("api_key") or None


def _auth_disabled(configured_key: str) -> bool:
    global _warned_no_key
    if configured_key:
        return False
    if not _warned_no_key:
        logger.warning("fdc3hub.web.api_key is not configured; every client is allowed to connect")
        _warned_no_key = True
    return True


def _matches(provided: Optional[str], configured: str) -> bool:
    return bool(provided) and secrets.compare_digest(provided, configured)


async def verify_api_key(request: Request) -> None:
    """FastAPI dependency guarding the ``/api`` routes."""
    configured_key = _get_configured_api_key()
    if _auth_disabled(configured_key):
        return
    if not _matches(_extract_api_key(request), configured_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )


async def verify_ws_api_key(websocket: WebSocket) -> bool:
    """Return False when the socket must be closed as unauthorized."""
    configured_key = _get_configured_api_key()
    if _auth_disabled(configured_key):
        return True
    return _matches(websocket.query_params.get("api_key"), configured_key)
