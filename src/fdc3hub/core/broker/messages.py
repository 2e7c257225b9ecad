"""Endpoint → broker requests as a closed set of typed variants.

Frames arrive as ``{"topic": ..., "data": {...}, "eventId": ...}``. Fields
may also sit at the top level of the frame; ``data`` wins on conflict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from .errors import BadRequest
from .models import Selection


@dataclass
class OpenApp:
    name: str


@dataclass
class AddContextListener:
    pass


@dataclass
class DropContextListener:
    pass


@dataclass
class AddIntentListener:
    intent: str


@dataclass
class DropIntentListener:
    intent: str


@dataclass
class Broadcast:
    context: Dict[str, Any]


@dataclass
class RaiseIntent:
    intent: str
    context: Dict[str, Any]


@dataclass
class RaiseIntentForContext:
    context: Dict[str, Any]


@dataclass
class ResolveIntent:
    selected: Selection
    context: Dict[str, Any]
    intent: Optional[str] = None


@dataclass
class FindIntent:
    intent: str
    context: Optional[Dict[str, Any]] = None


@dataclass
class FindIntentsByContext:
    context: Dict[str, Any]


@dataclass
class JoinChannel:
    channel: str
    restore_only: bool = False


@dataclass
class LeaveCurrentChannel:
    pass


@dataclass
class GetCurrentContext:
    channel: Optional[str] = None


@dataclass
class GetCurrentChannel:
    pass


@dataclass
class GetSystemChannels:
    pass


@dataclass
class GetOrCreateChannel:
    channel: str


@dataclass
class GetTabTitle:
    tab_id: str


Request = Union[
    OpenApp,
    AddContextListener,
    DropContextListener,
    AddIntentListener,
    DropIntentListener,
    Broadcast,
    RaiseIntent,
    RaiseIntentForContext,
    ResolveIntent,
    FindIntent,
    FindIntentsByContext,
    JoinChannel,
    LeaveCurrentChannel,
    GetCurrentContext,
    GetCurrentChannel,
    GetSystemChannels,
    GetOrCreateChannel,
    GetTabTitle,
]


@dataclass
class Envelope:
    """A parsed request plus the caller's correlation id."""

    topic: str
    request: Request
    event_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def _str_field(fields: Dict[str, Any], name: str, topic: str) -> str:
    value = fields.get(name)
    if not isinstance(value, str) or not value:
        raise BadRequest(f"{topic}: '{name}' must be a non-empty string")
    return value


def _context_field(fields: Dict[str, Any], topic: str, required: bool = True) -> Optional[Dict[str, Any]]:
    value = fields.get("context")
    if value is None and not required:
        return None
    if not isinstance(value, dict):
        raise BadRequest(f"{topic}: 'context' must be an object")
    return value


_PARSERS: Dict[str, Callable[[Dict[str, Any]], Request]] = {
    "open": lambda f: OpenApp(name=_str_field(f, "name", "open")),
    "addContextListener": lambda f: AddContextListener(),
    "dropContextListener": lambda f: DropContextListener(),
    "addIntentListener": lambda f: AddIntentListener(intent=_str_field(f, "intent", "addIntentListener")),
    "dropIntentListener": lambda f: DropIntentListener(intent=_str_field(f, "intent", "dropIntentListener")),
    "broadcast": lambda f: Broadcast(context=_context_field(f, "broadcast")),
    "raiseIntent": lambda f: RaiseIntent(
        intent=_str_field(f, "intent", "raiseIntent"),
        context=_context_field(f, "raiseIntent"),
    ),
    "raiseIntentForContext": lambda f: RaiseIntentForContext(context=_context_field(f, "raiseIntentForContext")),
    "resolveIntent": lambda f: ResolveIntent(
        selected=Selection.from_dict(f.get("selected")),
        context=_context_field(f, "resolveIntent"),
        intent=f.get("intent") or None,
    ),
    "findIntent": lambda f: FindIntent(
        intent=_str_field(f, "intent", "findIntent"),
        context=_context_field(f, "findIntent", required=False),
    ),
    "findIntentsByContext": lambda f: FindIntentsByContext(context=_context_field(f, "findIntentsByContext")),
    "joinChannel": lambda f: JoinChannel(
        channel=_str_field(f, "channel", "joinChannel"),
        restore_only=f.get("restoreOnly") is True,
    ),
    "leaveCurrentChannel": lambda f: LeaveCurrentChannel(),
    "getCurrentContext": lambda f: GetCurrentContext(channel=f.get("channel") or None),
    "getCurrentChannel": lambda f: GetCurrentChannel(),
    "getSystemChannels": lambda f: GetSystemChannels(),
    "getOrCreateChannel": lambda f: GetOrCreateChannel(channel=_str_field(f, "channel", "getOrCreateChannel")),
    "getTabTitle": lambda f: GetTabTitle(tab_id=str(f.get("tabId") if f.get("tabId") is not None else "")),
}

TOPICS = tuple(_PARSERS)


def parse_frame(frame: Any) -> Envelope:
    """Parse one inbound JSON frame. Raises :class:`BadRequest`."""
    if not isinstance(frame, dict):
        raise BadRequest("frame must be a JSON object")
    topic = frame.get("topic") or frame.get("method")
    parser = _PARSERS.get(topic) if isinstance(topic, str) else None
    if parser is None:
        raise BadRequest(f"Unknown topic: {topic!r}")

    fields = {k: v for k, v in frame.items() if k not in ("topic", "method", "data")}
    data = frame.get("data")
    if isinstance(data, dict):
        fields.update(data)
    event_id = fields.get("eventId")
    request = parser(fields)
    if isinstance(request, GetTabTitle) and not request.tab_id:
        raise BadRequest("getTabTitle: 'tabId' is required")
    return Envelope(
        topic=topic,
        request=request,
        event_id=str(event_id) if event_id is not None else None,
        raw=frame,
    )


def peek_event_id(frame: Any) -> Optional[str]:
    """Best-effort correlation id from a frame that failed to parse."""
    if not isinstance(frame, dict):
        return None
    data = frame.get("data")
    value = data.get("eventId") if isinstance(data, dict) and "eventId" in data else frame.get("eventId")
    return str(value) if value is not None else None
