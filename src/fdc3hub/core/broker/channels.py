"""Channel membership and context broadcast."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .models import DEFAULT_CHANNEL, Channel, ChannelDefinition, EndpointKey, OutboundMessage
from .registry import EndpointRegistry

logger = logging.getLogger(__name__)


class ChannelManager:
    """Owns every channel's context history and listener set.

    An endpoint listens on at most one channel at a time. Any channel id is
    accepted; unknown ids are created on first use.
    """

    def __init__(self, registry: EndpointRegistry, definitions: Optional[List[ChannelDefinition]] = None) -> None:
        self._registry = registry
        self._definitions: List[ChannelDefinition] = list(definitions or [])
        self._channels: Dict[str, Channel] = {DEFAULT_CHANNEL: Channel(id=DEFAULT_CHANNEL)}
        for definition in self._definitions:
            self._channels[definition.id] = Channel(id=definition.id, definition=definition)

    def system_channels(self) -> List[ChannelDefinition]:
        return list(self._definitions)

    def get_or_create_channel(self, channel_id: str) -> Channel:
        channel = self._channels.get(channel_id)
        if channel is None:
            channel = Channel(id=channel_id)
            self._channels[channel_id] = channel
            logger.debug("Channel created: %s", channel_id)
        return channel

    def get(self, channel_id: str) -> Optional[Channel]:
        return self._channels.get(channel_id)

    def channels(self) -> List[Channel]:
        return list(self._channels.values())

    def get_current_context(self, channel_id: str) -> Optional[Dict[str, Any]]:
        channel = self._channels.get(channel_id)
        return channel.current_context if channel else None

    def join(self, key: EndpointKey, channel_id: str, restore_only: bool = False) -> None:
        """Move *key* to *channel_id*.

        Unless *restore_only*, the joining endpoint immediately receives the
        channel's current context (``None`` when the channel has no history).
        """
        endpoint = self._registry.require(key)
        channel_id = channel_id or DEFAULT_CHANNEL
        previous = self._channels.get(endpoint.channel or DEFAULT_CHANNEL)
        if previous is not None and key in previous.listeners:
            previous.listeners.remove(key)

        target = self.get_or_create_channel(channel_id)
        if key not in target.listeners:
            target.listeners.append(key)
        endpoint.channel = channel_id
        self._registry.remember_channel(key.tab_id, channel_id)
        logger.info("Endpoint %s joined channel %s (restore_only=%s)", key, channel_id, restore_only)

        if not restore_only:
            endpoint.send(OutboundMessage("context", {"context": target.current_context}))

    def leave_to_default(self, key: EndpointKey) -> None:
        self.join(key, DEFAULT_CHANNEL, restore_only=False)

    def add_context_listener(self, key: EndpointKey) -> None:
        endpoint = self._registry.require(key)
        channel = self.get_or_create_channel(endpoint.channel or DEFAULT_CHANNEL)
        if key not in channel.listeners:
            channel.listeners.append(key)

    def drop_context_listener(self, key: EndpointKey) -> None:
        endpoint = self._registry.require(key)
        channel = self._channels.get(endpoint.channel or DEFAULT_CHANNEL)
        if channel is not None and key in channel.listeners:
            channel.listeners.remove(key)

    def broadcast(self, key: EndpointKey, context: Dict[str, Any]) -> int:
        """Make *context* current on the sender's channel and deliver it.

        Every listener except the sender gets exactly one ``context`` message.
        Returns the number of endpoints delivered to.
        """
        endpoint = self._registry.require(key)
        channel = self.get_or_create_channel(endpoint.channel or DEFAULT_CHANNEL)
        channel.history.insert(0, context)

        delivered = 0
        message = OutboundMessage("context", {"context": context, "source": str(key)})
        for listener_key in list(channel.listeners):
            if listener_key == key:
                continue
            listener = self._registry.lookup(listener_key)
            if listener is None:
                channel.listeners.remove(listener_key)
                continue
            listener.send(message)
            delivered += 1
        logger.debug(
            "Broadcast on %s from %s type=%s delivered=%d",
            channel.id,
            key,
            context.get("type") if isinstance(context, dict) else None,
            delivered,
        )
        return delivered

    def remove_endpoint(self, key: EndpointKey) -> None:
        for channel in self._channels.values():
            if key in channel.listeners:
                channel.listeners.remove(key)

    def snapshot(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": channel.id,
                "listeners": [str(k) for k in channel.listeners],
                "history_size": len(channel.history),
                "current_context": channel.current_context,
            }
            for channel in self._channels.values()
        ]
