"""Registry of connected endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .catalog import DirectoryCatalog
from .errors import NotFound
from .models import Endpoint, EndpointKey

logger = logging.getLogger(__name__)


class EndpointRegistry:
    """Single source of truth for who is connected and where.

    Also remembers the last channel joined from each hosting tab. That memory
    outlives the endpoints so a page reload can rejoin without replaying
    context.
    """

    def __init__(self, catalog: DirectoryCatalog) -> None:
        self._catalog = catalog
        self._endpoints: Dict[EndpointKey, Endpoint] = {}
        self._tab_channels: Dict[str, str] = {}

    def register(self, connection: Any, sender_id: str, tab_id: Any, url: str = "") -> Endpoint:
        key = EndpointKey(sender_id=str(sender_id), tab_id=str(tab_id))
        entry = self._catalog.match_origin(url) if url else None
        endpoint = Endpoint(key=key, connection=connection, url=url, catalog_entry=entry)
        self._endpoints[key] = endpoint
        logger.info(
            "Endpoint registered: %s url=%s app=%s",
            key,
            url,
            entry.name if entry else "-",
        )
        return endpoint

    def unregister(self, key: EndpointKey, endpoint: Optional[Endpoint] = None) -> bool:
        """Remove *key*. With *endpoint*, only if it is still the registered instance."""
        current = self._endpoints.get(key)
        if current is None:
            return False
        if endpoint is not None and current is not endpoint:
            return False
        del self._endpoints[key]
        logger.info("Endpoint unregistered: %s", key)
        return True

    def lookup(self, key: EndpointKey) -> Optional[Endpoint]:
        return self._endpoints.get(key)

    def require(self, key: EndpointKey) -> Endpoint:
        endpoint = self._endpoints.get(key)
        if endpoint is None:
            raise NotFound(f"Endpoint {key} is not connected")
        return endpoint

    def endpoints(self) -> List[Endpoint]:
        return list(self._endpoints.values())

    def __len__(self) -> int:
        return len(self._endpoints)

    def __contains__(self, key: object) -> bool:
        return key in self._endpoints

    # --- Tab → channel memory --------------------------------------------------

    def remember_channel(self, tab_id: str, channel_id: str) -> None:
        self._tab_channels[str(tab_id)] = channel_id

    def restored_channel(self, tab_id: str) -> Optional[str]:
        return self._tab_channels.get(str(tab_id))

    def bootstrap(self, endpoint: Endpoint) -> Dict[str, Any]:
        """Build the ``environmentData`` payload for a freshly connected endpoint."""
        data: Dict[str, Any] = {"tabId": endpoint.key.tab_id}
        channel = self.restored_channel(endpoint.key.tab_id)
        if channel:
            data["currentChannel"] = channel
        if endpoint.catalog_entry is not None:
            data["directory"] = endpoint.catalog_entry.to_dict()
        return data
