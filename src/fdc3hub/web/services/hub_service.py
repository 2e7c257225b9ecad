"""
Hub service: binds the broker core to FastAPI WebSockets.

- ``/ws/endpoint`` sockets become broker endpoints
- ``/ws/host`` is the hosting shell (browser extension, desktop container)
  that opens windows, shows the resolver and reports tab titles
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi import WebSocket, WebSocketDisconnect

from ...core.broker import (
    BadRequest,
    CollaboratorUnavailable,
    ConnectionLifecycle,
    DirectoryCatalog,
    OutboundMessage,
    UpstreamFetchFailed,
)
from ...infra.config import get_config, hub_section
from ...infra.directory_source import build_directory_source
from ...infra.system_channels import load_channel_definitions

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """Non-blocking sender for one WebSocket.

    ``send`` only enqueues; a writer task flushes frames in order.
    Sends after ``close`` are dropped.
    """

    def __init__(self, websocket: WebSocket):
        self._websocket = websocket
        self._queue: asyncio.Queue = asyncio.Queue()
        self._writer: Optional[asyncio.Task] = None
        self.closed = False

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def send(self, message: OutboundMessage) -> None:
        if self.closed:
            logger.debug("Dropping %s for closed connection", message.topic)
            return
        self._queue.put_nowait(message.to_dict())

    async def _write_loop(self) -> None:
        while True:
            payload = await self._queue.get()
            if payload is None:
                return
            try:
                await self._websocket.send_json(payload)
            except Exception as e:
                logger.debug("WebSocket send failed, stopping writer: %s", e)
                self.closed = True
                return

    async def close(self) -> None:
        """Flush what is queued, then stop the writer."""
        self.closed = True
        if self._writer is None:
            return
        self._queue.put_nowait(None)
        await self._writer
        self._writer = None


class HostBridge:
    """Launcher, resolver UI and tab host backed by the ``/ws/host`` socket.

    Round trips carry a ``requestId``; the host answers with ``resolution``
    or ``tabTitle`` frames echoing it. Only one host is attached at a time.
    """

    def __init__(self):
        self._connection: Optional[WebSocketConnection] = None
        self._pending: Dict[str, asyncio.Future] = {}

    @property
    def connected(self) -> bool:
        return self._connection is not None

    @property
    def pending(self) -> int:
        return len(self._pending)

    def attach(self, connection: WebSocketConnection) -> None:
        if self._connection is not None:
            logger.warning("A new host connected; replacing the previous one")
            self._fail_pending("Host was replaced")
        self._connection = connection
        logger.info("Host attached")

    def detach(self, connection: WebSocketConnection) -> None:
        if self._connection is not connection:
            return
        self._connection = None
        self._fail_pending("Host disconnected")
        logger.info("Host detached")

    def _require(self) -> WebSocketConnection:
        if self._connection is None:
            raise CollaboratorUnavailable("No host connected")
        return self._connection

    # --- collaborator protocols ----------------------------------------------

    def launch(self, url: str, name: str) -> None:
        self._require().send(OutboundMessage("launch", {"url": url, "name": name}))

    async def resolve(
        self,
        candidates: List[Dict[str, Any]],
        intent: Optional[str],
        display_names: Dict[str, str],
        context: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        reply = await self._round_trip(
            "resolve",
            {
                "candidates": candidates,
                "intent": intent,
                "displayNames": display_names,
                "context": context,
            },
        )
        selected = reply.get("selected")
        return selected if isinstance(selected, dict) else None

    async def get_tab_title(self, tab_id: str) -> str:
        reply = await self._round_trip("getTabTitle", {"tabId": tab_id})
        return str(reply.get("title") or "")

    # --- plumbing --------------------------------------------------------------

    async def _round_trip(self, topic: str, data: Dict[str, Any]) -> Dict[str, Any]:
        connection = self._require()
        request_id = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        connection.send(OutboundMessage(topic, {"requestId": request_id, **data}))
        try:
            return await future
        finally:
            self._pending.pop(request_id, None)

    def handle_reply(self, frame: Any) -> None:
        """Complete the round trip a host frame answers."""
        if not isinstance(frame, dict):
            logger.warning("Ignoring non-object host frame: %r", frame)
            return
        topic = frame.get("topic")
        data = frame.get("data") if isinstance(frame.get("data"), dict) else frame
        if topic not in ("resolution", "tabTitle"):
            logger.warning("Ignoring host frame with unknown topic %r", topic)
            return
        future = self._pending.get(str(data.get("requestId")))
        if future is None or future.done():
            logger.warning("Host reply %s for unknown request %r", topic, data.get("requestId"))
            return
        future.set_result(data)

    def _fail_pending(self, reason: str) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(CollaboratorUnavailable(reason))


async def _receive_frame(websocket: WebSocket) -> Any:
    """Next inbound frame; text that is not JSON is returned as-is."""
    text = await websocket.receive_text()
    try:
        return json.loads(text)
    except ValueError:
        return text


class HubService:
    """Owns the broker for the lifetime of the web app."""

    def __init__(self, config: Optional[Dict[str, Any]] = None, source: Any = None):
        config = config if config is not None else get_config()
        if source is None:
            try:
                source = build_directory_source(hub_section(config, "directory"))
            except UpstreamFetchFailed as e:
                logger.error("Directory source unusable: %s", e)
                source = None
        self.source = source
        self.host = HostBridge()
        self.catalog = DirectoryCatalog(source)
        self.lifecycle = ConnectionLifecycle(
            self.catalog,
            channel_definitions=load_channel_definitions((config.get("fdc3hub", {}) or {}).get("channels")),
            launcher=self.host,
            resolver=self.host,
            tab_host=self.host,
            strict_templates=bool(hub_section(config, "intents").get("strict_templates", True)),
        )

    async def start(self) -> None:
        await self.catalog.refresh()

    async def stop(self) -> None:
        await self.lifecycle.close()
        close = getattr(self.source, "close", None)
        if close is not None:
            await close()

    def get_status(self) -> Dict[str, Any]:
        status = self.lifecycle.snapshot()
        status["host"] = {"connected": self.host.connected, "pending": self.host.pending}
        return status

    async def handle_endpoint_session(self, websocket: WebSocket, sender_id: str, tab_id: str, url: str = ""):
        """Serve one endpoint socket until it disconnects."""
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        connection.start()
        endpoint = None
        try:
            endpoint = await self.lifecycle.connect(connection, sender_id, tab_id, url)
            logger.info("Endpoint %s connected from %s", endpoint.key, url or "<unknown>")
            while True:
                frame = await _receive_frame(websocket)
                await self.lifecycle.handle_frame(endpoint, frame)
        except BadRequest as e:
            logger.warning("Endpoint rejected: %s", e)
            connection.send(OutboundMessage("result", {"eventId": None, "error": e.to_dict()}))
            await connection.close()
            await websocket.close(code=4400)
        except WebSocketDisconnect:
            logger.info("Endpoint %s disconnected", endpoint.key if endpoint else f"{sender_id}:{tab_id}")
        finally:
            if endpoint is not None:
                self.lifecycle.disconnect(endpoint)
            await connection.close()

    async def handle_host_session(self, websocket: WebSocket):
        """Serve the host socket until it disconnects."""
        await websocket.accept()
        connection = WebSocketConnection(websocket)
        connection.start()
        self.host.attach(connection)
        try:
            while True:
                self.host.handle_reply(await _receive_frame(websocket))
        except WebSocketDisconnect:
            logger.info("Host socket closed")
        finally:
            self.host.detach(connection)
            await connection.close()
