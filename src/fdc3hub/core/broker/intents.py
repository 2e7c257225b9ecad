"""Intent discovery and resolution.

Candidate gathering runs in two passes with fixed precedence:

1. live endpoints that registered a listener for the intent;
2. directory entries declaring the intent, unless a live candidate is
   already running as that same directory app.

One candidate resolves immediately. Several are handed to the resolver UI
collaborator and the router waits for its choice.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Union

from .catalog import DirectoryCatalog
from .errors import (
    BadRequest,
    CollaboratorUnavailable,
    NoHandler,
    NotFound,
    ResolutionCancelled,
    UpstreamFetchFailed,
)
from .models import (
    Candidate,
    CandidateKind,
    DirectoryEntry,
    Endpoint,
    EndpointKey,
    IntentResolution,
    OutboundMessage,
    Selection,
)
from .protocol import Launcher, ResolverUI
from .registry import EndpointRegistry
from .templates import build_launch_url

logger = logging.getLogger(__name__)


class IntentRouter:
    """Owns the intent listener registry and the raise/resolve algorithms."""

    def __init__(
        self,
        registry: EndpointRegistry,
        catalog: DirectoryCatalog,
        launcher: Optional[Launcher] = None,
        resolver: Optional[ResolverUI] = None,
        strict_templates: bool = True,
    ) -> None:
        self._registry = registry
        self._catalog = catalog
        self.launcher = launcher
        self.resolver = resolver
        self.strict_templates = strict_templates
        self._listeners: Dict[str, List[EndpointKey]] = {}

    # --- Listener registry -----------------------------------------------------

    def add_intent_listener(self, key: EndpointKey, intent: str) -> None:
        self._listeners.setdefault(intent, []).append(key)
        logger.debug("Intent listener added: %s -> %s", intent, key)

    def drop_intent_listener(self, key: EndpointKey, intent: str) -> None:
        keys = self._listeners.get(intent)
        if keys:
            self._listeners[intent] = [k for k in keys if k != key]

    def remove_endpoint(self, key: EndpointKey) -> None:
        for intent, keys in self._listeners.items():
            if key in keys:
                self._listeners[intent] = [k for k in keys if k != key]

    def listeners(self, intent: str) -> List[EndpointKey]:
        return list(self._listeners.get(intent, []))

    def intent_names(self) -> List[str]:
        return [name for name, keys in self._listeners.items() if keys]

    # --- Candidates ------------------------------------------------------------

    def candidates(self, intent: str) -> List[Candidate]:
        result: List[Candidate] = []
        seen: List[EndpointKey] = []
        for key in self._listeners.get(intent, []):
            if key in seen:
                continue
            seen.append(key)
            endpoint = self._registry.lookup(key)
            if endpoint is not None:
                result.append(Candidate.live(endpoint, intent))

        running_apps = {c.app_name for c in result if c.app_name}
        for entry in self._catalog.entries_for_intent(intent):
            if entry.name in running_apps:
                continue
            result.append(Candidate.catalog(entry, intent))
        return result

    def display_name(self, intent: str) -> str:
        return self._catalog.display_names().get(intent, intent)

    async def find_intent(self, intent: str, context: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        apps = self.candidates(intent)
        if context is not None:
            apps = await self._filter_by_context(apps, context)
        return {
            "intent": {"name": intent, "displayName": self.display_name(intent)},
            "apps": [c.to_dict() for c in apps],
        }

    async def find_intents_by_context(self, context: Dict[str, Any]) -> List[Dict[str, Any]]:
        groups: List[Dict[str, Any]] = []
        for intent, apps in await self._candidates_by_context(context):
            groups.append({
                "intent": {"name": intent, "displayName": self.display_name(intent)},
                "apps": [c.to_dict() for c in apps],
            })
        return groups

    async def _candidates_by_context(self, context: Dict[str, Any]) -> List[tuple]:
        names = self.intent_names()
        for name in self._catalog.intent_names():
            if name not in names:
                names.append(name)
        grouped = []
        for intent in names:
            apps = await self._filter_by_context(self.candidates(intent), context)
            if apps:
                grouped.append((intent, apps))
        return grouped

    async def _filter_by_context(self, candidates: List[Candidate], context: Dict[str, Any]) -> List[Candidate]:
        context_type = context.get("type") if isinstance(context, dict) else None
        kept: List[Candidate] = []
        for candidate in candidates:
            if candidate.kind is CandidateKind.LIVE_ENDPOINT:
                entry = candidate.endpoint.catalog_entry if candidate.endpoint else None
                manifest = entry.manifest_content if entry else None
            else:
                try:
                    manifest = await self._catalog.get_manifest(candidate.entry)
                except UpstreamFetchFailed as e:
                    logger.warning("Keeping %s unfiltered, manifest unavailable: %s", candidate.app_name, e)
                    manifest = None
            if manifest is None or manifest.accepts(candidate.intent, context_type):
                kept.append(candidate)
        return kept

    # --- Raise / resolve -------------------------------------------------------

    async def raise_intent(
        self,
        raiser: Optional[EndpointKey],
        intent: str,
        context: Dict[str, Any],
    ) -> IntentResolution:
        candidates = self.candidates(intent)
        logger.info("raiseIntent %s from %s: %d candidate(s)", intent, raiser, len(candidates))
        if not candidates:
            raise NoHandler(f"No handler for intent {intent!r}")
        if len(candidates) == 1:
            return await self._resolve_candidate(candidates[0], context, raiser)
        chosen = await self._choose(candidates, intent, context)
        return await self._resolve_candidate(chosen, context, raiser)

    async def raise_intent_for_context(
        self,
        raiser: Optional[EndpointKey],
        context: Dict[str, Any],
    ) -> IntentResolution:
        candidates: List[Candidate] = []
        for _intent, apps in await self._candidates_by_context(context):
            candidates.extend(apps)
        logger.info(
            "raiseIntentForContext type=%s from %s: %d candidate(s)",
            context.get("type"),
            raiser,
            len(candidates),
        )
        if not candidates:
            raise NoHandler(f"No intent handles context type {context.get('type')!r}")
        if len(candidates) == 1:
            return await self._resolve_candidate(candidates[0], context, raiser)
        chosen = await self._choose(candidates, None, context)
        return await self._resolve_candidate(chosen, context, raiser)

    async def resolve_intent(
        self,
        selection: Union[Selection, Dict[str, Any]],
        intent: Optional[str],
        context: Dict[str, Any],
        source: Optional[EndpointKey] = None,
    ) -> IntentResolution:
        """Deliver or launch a user-confirmed selection."""
        if not isinstance(selection, Selection):
            selection = Selection.from_dict(selection)
        intent = intent or selection.intent
        if not intent:
            raise BadRequest("resolveIntent requires an intent name")
        if selection.kind is CandidateKind.LIVE_ENDPOINT:
            endpoint = self._registry.require(selection.endpoint_key)
            candidate = Candidate.live(endpoint, intent)
        else:
            entry = self._catalog.find_by_name(selection.app_name)
            if entry is None:
                raise NotFound(f"No directory entry named {selection.app_name!r}")
            candidate = Candidate.catalog(entry, intent)
        return await self._resolve_candidate(candidate, context, source)

    async def open_app(self, name: str) -> Dict[str, Any]:
        entry = self._catalog.find_by_name(name)
        if entry is None:
            raise NotFound(f"No directory entry named {name!r}")
        manifest = await self._catalog.get_manifest(entry)
        url = build_launch_url(entry, manifest, None, None)
        self._require_launcher().launch(url, entry.name)
        logger.info("Opened %s at %s", entry.name, url)
        return {"name": entry.name, "url": url}

    async def _choose(
        self,
        candidates: List[Candidate],
        intent: Optional[str],
        context: Dict[str, Any],
    ) -> Candidate:
        if self.resolver is None:
            raise CollaboratorUnavailable("No resolver UI available to choose between candidates")
        picked = await self.resolver.resolve(
            [c.to_dict() for c in candidates],
            intent,
            self._catalog.display_names(),
            context,
        )
        if picked is None:
            raise ResolutionCancelled(f"Resolution of {intent or context.get('type')!r} was cancelled")
        selection = Selection.from_dict(picked)
        for candidate in candidates:
            if candidate.kind is not selection.kind:
                continue
            if selection.intent and candidate.intent != selection.intent:
                continue
            if candidate.kind is CandidateKind.LIVE_ENDPOINT and candidate.endpoint.key == selection.endpoint_key:
                return candidate
            if candidate.kind is CandidateKind.CATALOG_ENTRY and candidate.entry.name == selection.app_name:
                return candidate
        raise NotFound("Resolver selection does not match any offered candidate")

    async def _resolve_candidate(
        self,
        candidate: Candidate,
        context: Dict[str, Any],
        source: Optional[EndpointKey],
    ) -> IntentResolution:
        if candidate.kind is CandidateKind.LIVE_ENDPOINT:
            endpoint = self._registry.lookup(candidate.endpoint.key)
            if endpoint is None:
                raise NotFound(f"Endpoint {candidate.endpoint.key} is no longer connected")
            self._deliver(endpoint, candidate.intent, context, source)
            return IntentResolution(intent=candidate.intent, status="delivered", target=str(endpoint.key))
        return await self._launch(candidate.entry, candidate.intent, context)

    def _deliver(
        self,
        endpoint: Endpoint,
        intent: str,
        context: Dict[str, Any],
        source: Optional[EndpointKey],
    ) -> None:
        data: Dict[str, Any] = {"intent": intent, "context": context}
        if source is not None:
            data["source"] = str(source)
        endpoint.send(OutboundMessage("intent", data))
        logger.info("Intent %s delivered to %s", intent, endpoint.key)

    async def _launch(self, entry: DirectoryEntry, intent: str, context: Dict[str, Any]) -> IntentResolution:
        launcher = self._require_launcher()
        manifest = await self._catalog.get_manifest(entry)
        url = build_launch_url(entry, manifest, intent, context, strict=self.strict_templates)
        launcher.launch(url, entry.name)
        logger.info("Intent %s launched %s at %s", intent, entry.name, url)
        return IntentResolution(intent=intent, status="launched", target=entry.name, url=url)

    def _require_launcher(self) -> Launcher:
        if self.launcher is None:
            raise CollaboratorUnavailable("No launcher available to open applications")
        return self.launcher
