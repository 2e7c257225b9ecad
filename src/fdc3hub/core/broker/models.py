"""Broker data models: endpoints, channels, catalog entries, manifests, candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from .errors import BadRequest

DEFAULT_CHANNEL = "default"


@dataclass(frozen=True)
class EndpointKey:
    """Stable endpoint identity: the sender identity plus its hosting tab.

    Wire form is ``"{sender_id}:{tab_id}"``. Sender ids may contain ``:``,
    tab ids may not.
    """

    sender_id: str
    tab_id: str

    def __str__(self) -> str:
        return f"{self.sender_id}:{self.tab_id}"

    @classmethod
    def parse(cls, value: str) -> "EndpointKey":
        sender_id, sep, tab_id = str(value).rpartition(":")
        if not sep or not sender_id or not tab_id:
            raise BadRequest(f"Invalid endpoint id: {value!r}")
        return cls(sender_id=sender_id, tab_id=tab_id)


@dataclass
class OutboundMessage:
    """A message pushed from the broker to an endpoint or host."""

    topic: str  # "environmentData" | "context" | "intent" | "tabTitle" | "result" | host topics
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"topic": self.topic, "data": self.data}


@dataclass
class IntentDeclaration:
    """An intent a directory entry says it can handle."""

    name: str
    display_name: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "IntentDeclaration":
        name = str(raw.get("name") or "")
        display_name = raw.get("display_name") or raw.get("displayName") or name
        return cls(name=name, display_name=str(display_name))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "display_name": self.display_name}


@dataclass
class ManifestIntent:
    intent: str
    template: str
    type: Optional[str] = None


@dataclass
class ManifestParam:
    """Extraction rule: read ``key`` from the context, or ``id`` from ``context["id"]``."""

    type: str
    key: Optional[str] = None
    id: Optional[str] = None


@dataclass
class Manifest:
    """Per-application manifest: intent → URL template mapping and param rules."""

    start_url: str = ""
    intents: Optional[List[ManifestIntent]] = None
    templates: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, ManifestParam] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "Manifest":
        if not isinstance(raw, dict):
            raise ValueError("manifest must be a JSON object")
        intents: Optional[List[ManifestIntent]] = None
        if isinstance(raw.get("intents"), list):
            intents = [
                ManifestIntent(
                    intent=str(item.get("intent") or ""),
                    template=str(item.get("template") or ""),
                    type=item.get("type") or None,
                )
                for item in raw["intents"]
                if isinstance(item, dict)
            ]
        params: Dict[str, ManifestParam] = {}
        for name, spec in (raw.get("params") or {}).items():
            if not isinstance(spec, dict):
                continue
            params[name] = ManifestParam(
                type=str(spec.get("type") or ""),
                key=spec.get("key") or None,
                id=spec.get("id") or None,
            )
        return cls(
            start_url=str(raw.get("start_url") or raw.get("startUrl") or ""),
            intents=intents,
            templates={str(k): str(v) for k, v in (raw.get("templates") or {}).items()},
            params=params,
            raw=dict(raw),
        )

    def find_intent(self, intent: str, context_type: Optional[str]) -> Optional[ManifestIntent]:
        """Return the entry for *intent*, preferring an exact context type match.

        Entries that declare no type accept any context.
        """
        fallback = None
        for item in self.intents or []:
            if item.intent != intent:
                continue
            if item.type == context_type and item.type is not None:
                return item
            if item.type is None and fallback is None:
                fallback = item
        return fallback

    def accepts(self, intent: str, context_type: Optional[str]) -> bool:
        if self.intents is None:
            return True
        return self.find_intent(intent, context_type) is not None


@dataclass
class DirectoryEntry:
    """A statically known application from the directory."""

    name: str
    start_url: str = ""
    manifest_url: Optional[str] = None
    title: Optional[str] = None
    icons: List[Dict[str, Any]] = field(default_factory=list)
    intents: List[IntentDeclaration] = field(default_factory=list)
    manifest_content: Optional[Manifest] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "DirectoryEntry":
        manifest_content = raw.get("manifestContent") or raw.get("manifest_content")
        manifest_url = raw.get("manifest") or raw.get("manifestUrl") or raw.get("manifest_url") or None
        if manifest_url is not None and not isinstance(manifest_url, str):
            raise TypeError(f"manifest must be a URL string, got {type(manifest_url).__name__}")
        return cls(
            name=str(raw.get("name") or ""),
            start_url=str(raw.get("start_url") or raw.get("startUrl") or ""),
            manifest_url=manifest_url,
            title=raw.get("title"),
            icons=list(raw.get("icons") or []),
            intents=[
                IntentDeclaration.from_dict(item)
                for item in (raw.get("intents") or [])
                if isinstance(item, dict)
            ],
            manifest_content=Manifest.from_dict(manifest_content) if isinstance(manifest_content, dict) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "title": self.title or self.name,
            "start_url": self.start_url,
            "manifest": self.manifest_url,
            "icons": list(self.icons),
            "intents": [item.to_dict() for item in self.intents],
        }
        if self.manifest_content is not None:
            payload["manifestContent"] = self.manifest_content.raw
        return payload

    @property
    def origin(self) -> Optional[str]:
        return url_origin(self.start_url)

    def declares(self, intent: str) -> bool:
        return any(item.name == intent for item in self.intents)

    def display_name(self, intent: str) -> Optional[str]:
        for item in self.intents:
            if item.name == intent:
                return item.display_name
        return None


@dataclass
class Endpoint:
    """One connected application instance."""

    key: EndpointKey
    connection: Any
    url: str = ""
    channel: str = DEFAULT_CHANNEL
    catalog_entry: Optional[DirectoryEntry] = None

    def send(self, message: OutboundMessage) -> None:
        self.connection.send(message)

    def describe(self) -> Dict[str, Any]:
        return {
            "endpointId": str(self.key),
            "tabId": self.key.tab_id,
            "url": self.url,
            "channel": self.channel,
            "directory": self.catalog_entry.to_dict() if self.catalog_entry else None,
        }


@dataclass
class ChannelDefinition:
    """Visual identity of a channel; carried for clients, never rendered here."""

    id: str
    name: str = ""
    color: str = ""
    glyph: str = ""

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "ChannelDefinition":
        visual = raw.get("visualIdentity") or {}
        return cls(
            id=str(raw["id"]),
            name=str(raw.get("name") or visual.get("name") or raw["id"]),
            color=str(raw.get("color") or visual.get("color") or ""),
            glyph=str(raw.get("glyph") or visual.get("glyph") or ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "system",
            "visualIdentity": {"name": self.name, "color": self.color, "glyph": self.glyph},
        }


@dataclass
class Channel:
    id: str
    definition: Optional[ChannelDefinition] = None
    history: List[Dict[str, Any]] = field(default_factory=list)
    listeners: List[EndpointKey] = field(default_factory=list)

    @property
    def current_context(self) -> Optional[Dict[str, Any]]:
        return self.history[0] if self.history else None


class CandidateKind(str, Enum):
    LIVE_ENDPOINT = "liveEndpoint"
    CATALOG_ENTRY = "catalogEntry"


# Tags sent by the browser-extension host's resolver page.
_KIND_ALIASES = {
    "window": CandidateKind.LIVE_ENDPOINT,
    "directory": CandidateKind.CATALOG_ENTRY,
}


@dataclass
class Candidate:
    """A live endpoint or catalog entry able to handle *intent*."""

    kind: CandidateKind
    intent: str
    endpoint: Optional[Endpoint] = None
    entry: Optional[DirectoryEntry] = None

    @classmethod
    def live(cls, endpoint: Endpoint, intent: str) -> "Candidate":
        return cls(kind=CandidateKind.LIVE_ENDPOINT, intent=intent, endpoint=endpoint)

    @classmethod
    def catalog(cls, entry: DirectoryEntry, intent: str) -> "Candidate":
        return cls(kind=CandidateKind.CATALOG_ENTRY, intent=intent, entry=entry)

    @property
    def app_name(self) -> Optional[str]:
        if self.kind is CandidateKind.CATALOG_ENTRY and self.entry is not None:
            return self.entry.name
        if self.endpoint is not None and self.endpoint.catalog_entry is not None:
            return self.endpoint.catalog_entry.name
        return None

    def to_dict(self) -> Dict[str, Any]:
        if self.kind is CandidateKind.LIVE_ENDPOINT and self.endpoint is not None:
            details = self.endpoint.describe()
        else:
            details = self.entry.to_dict() if self.entry else {}
        return {"kind": self.kind.value, "intent": self.intent, "details": details}


@dataclass
class Selection:
    """A resolver choice as received over the wire, before lookup."""

    kind: CandidateKind
    endpoint_key: Optional[EndpointKey] = None
    app_name: Optional[str] = None
    intent: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Any) -> "Selection":
        if not isinstance(raw, dict):
            raise BadRequest("selection must be an object")
        tag = raw.get("kind") or raw.get("type")
        kind = _KIND_ALIASES.get(tag)
        if kind is None:
            try:
                kind = CandidateKind(tag)
            except ValueError:
                raise BadRequest(f"Unknown candidate kind: {tag!r}") from None
        details = raw.get("details") or {}
        if not isinstance(details, dict):
            raise BadRequest("selection details must be an object")
        intent = raw.get("intent") or None
        if kind is CandidateKind.LIVE_ENDPOINT:
            endpoint_id = details.get("endpointId") or raw.get("endpointId")
            if not endpoint_id:
                raise BadRequest("liveEndpoint selection requires details.endpointId")
            return cls(kind=kind, endpoint_key=EndpointKey.parse(endpoint_id), intent=intent)
        name = details.get("name") or raw.get("name")
        if not name:
            raise BadRequest("catalogEntry selection requires details.name")
        return cls(kind=kind, app_name=str(name), intent=intent)


@dataclass
class IntentResolution:
    """Outcome of a resolved intent: delivered to a live endpoint or launched."""

    intent: str
    status: str  # "delivered" | "launched"
    target: str
    url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"intent": self.intent, "status": self.status, "target": self.target}
        if self.url is not None:
            payload["url"] = self.url
        return payload


def url_origin(url: Optional[str]) -> Optional[str]:
    """Return ``scheme://host[:port]`` for *url*, or None if it has no host."""
    if not url:
        return None
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"
