"""Connection lifecycle and request dispatch.

Ties the endpoint registry, channel manager and intent router together:
registers endpoints on connect, purges them from every registry on
disconnect, and routes typed requests to the owning component.

All shared state is mutated on one event loop. Handlers that only touch
registries never await, so they run to completion without interleaving.
Handlers that must wait (manifest fetch, resolver UI, tab host) run as
tracked tasks so the endpoint keeps being served meanwhile.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from .catalog import DirectoryCatalog
from .channels import ChannelManager
from .errors import BadRequest, BrokerError, CollaboratorUnavailable, UpstreamFetchFailed
from .intents import IntentRouter
from .messages import (
    AddContextListener,
    AddIntentListener,
    Broadcast,
    DropContextListener,
    DropIntentListener,
    Envelope,
    FindIntent,
    FindIntentsByContext,
    GetCurrentChannel,
    GetCurrentContext,
    GetOrCreateChannel,
    GetSystemChannels,
    GetTabTitle,
    JoinChannel,
    LeaveCurrentChannel,
    OpenApp,
    RaiseIntent,
    RaiseIntentForContext,
    ResolveIntent,
    parse_frame,
    peek_event_id,
)
from .models import ChannelDefinition, Endpoint, EndpointKey, OutboundMessage
from .protocol import EndpointConnection, Launcher, ResolverUI, TabHost
from .registry import EndpointRegistry

logger = logging.getLogger(__name__)


class ConnectionLifecycle:
    """Broker facade: connect → handle requests → disconnect."""

    _HANDLERS = {
        OpenApp: "_on_open",
        AddContextListener: "_on_add_context_listener",
        DropContextListener: "_on_drop_context_listener",
        AddIntentListener: "_on_add_intent_listener",
        DropIntentListener: "_on_drop_intent_listener",
        Broadcast: "_on_broadcast",
        RaiseIntent: "_on_raise_intent",
        RaiseIntentForContext: "_on_raise_intent_for_context",
        ResolveIntent: "_on_resolve_intent",
        FindIntent: "_on_find_intent",
        FindIntentsByContext: "_on_find_intents_by_context",
        JoinChannel: "_on_join_channel",
        LeaveCurrentChannel: "_on_leave_current_channel",
        GetCurrentContext: "_on_get_current_context",
        GetCurrentChannel: "_on_get_current_channel",
        GetSystemChannels: "_on_get_system_channels",
        GetOrCreateChannel: "_on_get_or_create_channel",
        GetTabTitle: "_on_get_tab_title",
    }

    # Requests that may suspend on a collaborator or a fetch.
    _SUSPENDING = (OpenApp, RaiseIntent, RaiseIntentForContext, ResolveIntent, FindIntentsByContext, GetTabTitle)

    def __init__(
        self,
        catalog: DirectoryCatalog,
        channel_definitions: Optional[List[ChannelDefinition]] = None,
        launcher: Optional[Launcher] = None,
        resolver: Optional[ResolverUI] = None,
        tab_host: Optional[TabHost] = None,
        strict_templates: bool = True,
    ) -> None:
        self.catalog = catalog
        self.registry = EndpointRegistry(catalog)
        self.channels = ChannelManager(self.registry, channel_definitions)
        self.router = IntentRouter(
            self.registry,
            catalog,
            launcher=launcher,
            resolver=resolver,
            strict_templates=strict_templates,
        )
        self.tab_host = tab_host
        self._tasks: Set[asyncio.Task] = set()

    # --- Lifecycle -------------------------------------------------------------

    async def connect(self, connection: EndpointConnection, sender_id: Any, tab_id: Any, url: str = "") -> Endpoint:
        """Register a new endpoint and push its ``environmentData``."""
        key = EndpointKey(sender_id=str(sender_id), tab_id=str(tab_id))
        if not key.sender_id or not key.tab_id or ":" in key.tab_id:
            raise BadRequest(f"Invalid endpoint identity: sender {key.sender_id!r}, tab {key.tab_id!r}")
        stale = self.registry.lookup(key)
        if stale is not None:
            logger.warning("Endpoint %s reconnected before its old connection closed; purging old one", key)
            self._purge(stale)

        endpoint = self.registry.register(connection, key.sender_id, key.tab_id, url)
        entry = endpoint.catalog_entry
        if entry is not None and entry.manifest_url and entry.manifest_content is None:
            try:
                await self.catalog.get_manifest(entry)
            except UpstreamFetchFailed as e:
                logger.warning("Manifest for %s unavailable at connect: %s", entry.name, e)
            except Exception:
                logger.exception("Manifest fetch for %s crashed at connect", entry.name)

        endpoint.send(OutboundMessage("environmentData", self.registry.bootstrap(endpoint)))
        return endpoint

    def disconnect(self, endpoint: Endpoint) -> None:
        """Purge *endpoint* from every registry. Tab → channel memory is kept."""
        if self.registry.lookup(endpoint.key) is not endpoint:
            logger.debug("Ignoring disconnect of replaced endpoint %s", endpoint.key)
            return
        self._purge(endpoint)

    def _purge(self, endpoint: Endpoint) -> None:
        self.channels.remove_endpoint(endpoint.key)
        self.router.remove_endpoint(endpoint.key)
        self.registry.unregister(endpoint.key, endpoint)

    async def drain(self) -> None:
        """Wait for every in-flight suspending request."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()

    # --- Dispatch --------------------------------------------------------------

    async def handle_frame(self, endpoint: Endpoint, frame: Any) -> None:
        try:
            envelope = parse_frame(frame)
        except BadRequest as e:
            logger.warning("Bad frame from %s: %s", endpoint.key, e)
            self._reply_error(endpoint, peek_event_id(frame), e)
            return
        except Exception as e:
            logger.warning("Unparsable frame from %s: %r", endpoint.key, e)
            self._reply_error(endpoint, peek_event_id(frame), BadRequest(f"Malformed frame: {e}"))
            return
        await self.handle(endpoint, envelope)

    async def handle(self, endpoint: Endpoint, envelope: Envelope) -> None:
        if isinstance(envelope.request, self._SUSPENDING):
            task = asyncio.create_task(self._run(endpoint, envelope))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return
        await self._run(endpoint, envelope)

    async def _run(self, endpoint: Endpoint, envelope: Envelope) -> None:
        handler = getattr(self, self._HANDLERS[type(envelope.request)])
        try:
            result = await handler(endpoint, envelope.request)
        except BrokerError as e:
            logger.warning("%s from %s failed: %s", envelope.topic, endpoint.key, e)
            self._reply_error(endpoint, envelope.event_id, e)
            return
        except Exception:
            logger.exception("%s from %s crashed", envelope.topic, endpoint.key)
            self._reply_error(endpoint, envelope.event_id, BrokerError(f"Internal error handling {envelope.topic}"))
            return
        if envelope.event_id is not None:
            endpoint.send(OutboundMessage("result", {"eventId": envelope.event_id, "data": result}))

    @staticmethod
    def _reply_error(endpoint: Endpoint, event_id: Optional[str], error: BrokerError) -> None:
        endpoint.send(OutboundMessage("result", {"eventId": event_id, "error": error.to_dict()}))

    # --- Handlers --------------------------------------------------------------

    async def _on_open(self, endpoint: Endpoint, request: OpenApp) -> Dict[str, Any]:
        return await self.router.open_app(request.name)

    async def _on_add_context_listener(self, endpoint: Endpoint, request: AddContextListener) -> None:
        self.channels.add_context_listener(endpoint.key)

    async def _on_drop_context_listener(self, endpoint: Endpoint, request: DropContextListener) -> None:
        self.channels.drop_context_listener(endpoint.key)

    async def _on_add_intent_listener(self, endpoint: Endpoint, request: AddIntentListener) -> None:
        self.router.add_intent_listener(endpoint.key, request.intent)

    async def _on_drop_intent_listener(self, endpoint: Endpoint, request: DropIntentListener) -> None:
        self.router.drop_intent_listener(endpoint.key, request.intent)

    async def _on_broadcast(self, endpoint: Endpoint, request: Broadcast) -> Dict[str, Any]:
        delivered = self.channels.broadcast(endpoint.key, request.context)
        return {"channel": endpoint.channel, "delivered": delivered}

    async def _on_raise_intent(self, endpoint: Endpoint, request: RaiseIntent) -> Dict[str, Any]:
        resolution = await self.router.raise_intent(endpoint.key, request.intent, request.context)
        return resolution.to_dict()

    async def _on_raise_intent_for_context(self, endpoint: Endpoint, request: RaiseIntentForContext) -> Dict[str, Any]:
        resolution = await self.router.raise_intent_for_context(endpoint.key, request.context)
        return resolution.to_dict()

    async def _on_resolve_intent(self, endpoint: Endpoint, request: ResolveIntent) -> Dict[str, Any]:
        resolution = await self.router.resolve_intent(
            request.selected,
            request.intent,
            request.context,
            source=endpoint.key,
        )
        return resolution.to_dict()

    async def _on_find_intent(self, endpoint: Endpoint, request: FindIntent) -> Dict[str, Any]:
        return await self.router.find_intent(request.intent, request.context)

    async def _on_find_intents_by_context(self, endpoint: Endpoint, request: FindIntentsByContext) -> List[Dict[str, Any]]:
        return await self.router.find_intents_by_context(request.context)

    async def _on_join_channel(self, endpoint: Endpoint, request: JoinChannel) -> Dict[str, Any]:
        self.channels.join(endpoint.key, request.channel, restore_only=request.restore_only)
        return {"channel": request.channel}

    async def _on_leave_current_channel(self, endpoint: Endpoint, request: LeaveCurrentChannel) -> Dict[str, Any]:
        self.channels.leave_to_default(endpoint.key)
        return {"channel": endpoint.channel}

    async def _on_get_current_context(self, endpoint: Endpoint, request: GetCurrentContext) -> Optional[Dict[str, Any]]:
        return self.channels.get_current_context(request.channel or endpoint.channel)

    async def _on_get_current_channel(self, endpoint: Endpoint, request: GetCurrentChannel) -> Dict[str, Any]:
        return {"channel": endpoint.channel}

    async def _on_get_system_channels(self, endpoint: Endpoint, request: GetSystemChannels) -> List[Dict[str, Any]]:
        return [definition.to_dict() for definition in self.channels.system_channels()]

    async def _on_get_or_create_channel(self, endpoint: Endpoint, request: GetOrCreateChannel) -> Dict[str, Any]:
        channel = self.channels.get_or_create_channel(request.channel)
        if channel.definition is not None:
            return channel.definition.to_dict()
        return {"id": channel.id, "type": "app"}

    async def _on_get_tab_title(self, endpoint: Endpoint, request: GetTabTitle) -> Dict[str, Any]:
        if self.tab_host is None:
            raise CollaboratorUnavailable("No tab host available")
        title = await self.tab_host.get_tab_title(request.tab_id)
        payload = {"tabId": request.tab_id, "title": title}
        endpoint.send(OutboundMessage("tabTitle", payload))
        return payload

    # --- Introspection ---------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "endpoints": [endpoint.describe() for endpoint in self.registry.endpoints()],
            "channels": self.channels.snapshot(),
            "intents": {name: [str(k) for k in self.router.listeners(name)] for name in self.router.intent_names()},
            "directory": {
                "available": self.catalog.available,
                "entries": len(self.catalog.entries),
            },
            "pending_requests": len(self._tasks),
        }
