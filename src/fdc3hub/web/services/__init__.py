"""
fdc3hub Web Services

Glue between the broker core and FastAPI sockets.
"""

from .hub_service import HostBridge, HubService, WebSocketConnection

__all__ = ["HostBridge", "HubService", "WebSocketConnection"]
