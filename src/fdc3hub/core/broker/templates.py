"""Manifest URL templates: parameter extraction and ``${name}`` substitution."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional

from .errors import NotFound
from .models import DirectoryEntry, Manifest, ManifestParam

_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}")


def extract_params(params: Mapping[str, ManifestParam], context: Dict[str, Any]) -> Dict[str, Any]:
    """Build ``name -> value`` from the params declared for the context's type.

    ``key`` reads a top level field, ``id`` reads ``context["id"][id]``.
    Values missing from the context are skipped.
    """
    values: Dict[str, Any] = {}
    context_type = context.get("type")
    for name, param in params.items():
        if param.type != context_type:
            continue
        if param.key:
            if param.key in context:
                values[name] = context[param.key]
        elif param.id:
            ids = context.get("id")
            if isinstance(ids, dict) and param.id in ids:
                values[name] = ids[param.id]
    return values


def unresolved_placeholders(template: str) -> List[str]:
    return _PLACEHOLDER.findall(template)


def render_template(template: str, values: Mapping[str, Any], strict: bool = True) -> str:
    """Replace every ``${name}`` in *template* with ``values[name]``.

    Placeholders without a value are left verbatim, or raise
    :class:`NotFound` when *strict*.
    """
    missing: List[str] = []

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in values and values[name] is not None:
            return str(values[name])
        missing.append(name)
        return match.group(0)

    rendered = _PLACEHOLDER.sub(_substitute, template)
    if missing and strict:
        raise NotFound(f"No context value for template placeholder(s): {', '.join(missing)}")
    return rendered


def build_launch_url(
    entry: DirectoryEntry,
    manifest: Optional[Manifest],
    intent: Optional[str],
    context: Optional[Dict[str, Any]],
    strict: bool = True,
) -> str:
    """Resolve the URL that opens *entry* for *intent* with *context*.

    No manifest: the entry's start URL. Manifest without an ``intents``
    list, or no intent requested: the manifest start URL.
    """
    if manifest is None:
        return entry.start_url
    if intent is None or manifest.intents is None:
        return manifest.start_url or entry.start_url

    context = context or {}
    context_type = context.get("type")
    intent_entry = manifest.find_intent(intent, context_type)
    if intent_entry is None:
        raise NotFound(f"Manifest for {entry.name!r} has no template for intent {intent!r} and type {context_type!r}")
    template = manifest.templates.get(intent_entry.template)
    if template is None:
        raise NotFound(f"Manifest for {entry.name!r} has no template named {intent_entry.template!r}")
    return render_template(template, extract_params(manifest.params, context), strict=strict)
