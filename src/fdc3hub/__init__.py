"""
fdc3hub - desktop interop broker

Routes context broadcasts and intents between web applications connected
over WebSockets, backed by an application directory.
"""

__version__ = "0.1.0"

from .core.broker import (
    ConnectionLifecycle,
    DirectoryCatalog,
    EndpointKey,
    EndpointRegistry,
    ChannelManager,
    IntentRouter,
)
from .infra.config import get_config, load_config
from .infra.directory_source import HttpDirectorySource, StaticDirectorySource

__all__ = [
    "ConnectionLifecycle",
    "DirectoryCatalog",
    "EndpointKey",
    "EndpointRegistry",
    "ChannelManager",
    "IntentRouter",
    "get_config",
    "load_config",
    "HttpDirectorySource",
    "StaticDirectorySource",
]
