"""Interop broker: endpoint registry, channels and intent routing."""

from .catalog import DirectoryCatalog
from .channels import ChannelManager
from .errors import (
    BadRequest,
    BrokerError,
    CollaboratorUnavailable,
    NoHandler,
    NotFound,
    ResolutionCancelled,
    UpstreamFetchFailed,
)
from .intents import IntentRouter
from .lifecycle import ConnectionLifecycle
from .models import (
    DEFAULT_CHANNEL,
    Candidate,
    CandidateKind,
    Channel,
    ChannelDefinition,
    DirectoryEntry,
    Endpoint,
    EndpointKey,
    IntentResolution,
    Manifest,
    OutboundMessage,
    Selection,
)
from .protocol import DirectorySource, EndpointConnection, Launcher, ResolverUI, TabHost
from .registry import EndpointRegistry

__all__ = [
    "BadRequest",
    "BrokerError",
    "Candidate",
    "CandidateKind",
    "Channel",
    "ChannelDefinition",
    "ChannelManager",
    "CollaboratorUnavailable",
    "ConnectionLifecycle",
    "DEFAULT_CHANNEL",
    "DirectoryCatalog",
    "DirectoryEntry",
    "DirectorySource",
    "Endpoint",
    "EndpointConnection",
    "EndpointKey",
    "EndpointRegistry",
    "IntentResolution",
    "IntentRouter",
    "Launcher",
    "Manifest",
    "NoHandler",
    "NotFound",
    "OutboundMessage",
    "ResolutionCancelled",
    "ResolverUI",
    "Selection",
    "TabHost",
    "UpstreamFetchFailed",
]
