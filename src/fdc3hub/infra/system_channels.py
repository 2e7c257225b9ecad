"""System channel definitions loaded at startup."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..core.broker.models import DEFAULT_CHANNEL, ChannelDefinition

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_CHANNELS: List[Dict[str, Any]] = [
    {"id": "red", "visualIdentity": {"name": "Red", "color": "#FF0000", "glyph": "1"}},
    {"id": "orange", "visualIdentity": {"name": "Orange", "color": "#FF8000", "glyph": "2"}},
    {"id": "yellow", "visualIdentity": {"name": "Yellow", "color": "#FFFF00", "glyph": "3"}},
    {"id": "green", "visualIdentity": {"name": "Green", "color": "#00FF00", "glyph": "4"}},
    {"id": "blue", "visualIdentity": {"name": "Blue", "color": "#0000FF", "glyph": "5"}},
    {"id": "purple", "visualIdentity": {"name": "Purple", "color": "#FF00FF", "glyph": "6"}},
    {"id": "cyan", "visualIdentity": {"name": "Cyan", "color": "#00FFFF", "glyph": "7"}},
    {"id": "magenta", "visualIdentity": {"name": "Magenta", "color": "#8000FF", "glyph": "8"}},
]


def load_channel_definitions(raw_channels: Any) -> List[ChannelDefinition]:
    """Parse the ``fdc3hub.channels`` config list.

    Malformed items and the reserved ``default`` id are skipped with a warning.
    """
    if not isinstance(raw_channels, list):
        return [ChannelDefinition.from_dict(item) for item in DEFAULT_SYSTEM_CHANNELS]

    definitions: List[ChannelDefinition] = []
    seen = set()
    for item in raw_channels:
        if not isinstance(item, dict) or not item.get("id"):
            logger.warning("Skipping malformed channel definition: %r", item)
            continue
        definition = ChannelDefinition.from_dict(item)
        if definition.id == DEFAULT_CHANNEL or definition.id in seen:
            logger.warning("Skipping reserved or duplicate channel id: %s", definition.id)
            continue
        seen.add(definition.id)
        definitions.append(definition)
    return definitions
