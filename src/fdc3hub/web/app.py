"""
fdc3hub web application

- /ws/endpoint: one socket per interop endpoint (content script, app page)
- /ws/host: the hosting shell that launches apps and shows the resolver
- /api/*: read-only status for debugging, plus directory refresh
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, HTTPException, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from .auth import verify_api_key, verify_ws_api_key
from .services import HubService

logger = logging.getLogger(__name__)

# Service instance
hub_service = HubService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await hub_service.start()
    try:
        yield
    finally:
        await hub_service.stop()


# FastAPI app
app = FastAPI(title="fdc3hub", lifespan=lifespan)

# CORS middleware: endpoints live on arbitrary origins.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# API Routes
# ============================================================================

@app.get("/api/status", dependencies=[Depends(verify_api_key)])
async def api_status() -> Dict[str, Any]:
    """Endpoints, channels, intent listeners and directory state"""
    return hub_service.get_status()


@app.get("/api/channels", dependencies=[Depends(verify_api_key)])
async def api_list_channels() -> List[Dict[str, Any]]:
    return hub_service.lifecycle.channels.snapshot()


@app.get("/api/channels/{channel_id}/context", dependencies=[Depends(verify_api_key)])
async def api_channel_context(channel_id: str) -> Dict[str, Any]:
    channel = hub_service.lifecycle.channels.get(channel_id)
    if channel is None:
        raise HTTPException(status_code=404, detail=f"Unknown channel: {channel_id}")
    return {"channel": channel.id, "context": channel.current_context}


@app.get("/api/directory", dependencies=[Depends(verify_api_key)])
async def api_directory() -> Dict[str, Any]:
    catalog = hub_service.catalog
    return {
        "available": catalog.available,
        "entries": [entry.to_dict() for entry in catalog.entries],
    }


@app.post("/api/directory/refresh", dependencies=[Depends(verify_api_key)])
async def api_refresh_directory() -> Dict[str, Any]:
    """Reload directory.json; cached manifests survive for unchanged entries."""
    ok = await hub_service.catalog.refresh()
    return {"refreshed": ok, "entries": len(hub_service.catalog.entries)}


# ============================================================================
# WebSocket Routes
# ============================================================================

@app.websocket("/ws/endpoint")
async def websocket_endpoint(websocket: WebSocket, senderId: str, tabId: str, url: str = ""):
    """Interop endpoint socket, keyed by (senderId, tabId)."""
    if not await verify_ws_api_key(websocket):
        await websocket.close(code=4001, reason="Unauthorized")
        return
    await hub_service.handle_endpoint_session(websocket, senderId, tabId, url)


@app.websocket("/ws/host")
async def websocket_host(websocket: WebSocket):
    if not await verify_ws_api_key(websocket):
        await websocket.close(code=4001, reason="Unauthorized")
        return
    await hub_service.handle_host_session(websocket)
