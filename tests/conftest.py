"""Shared fakes and fixtures for broker tests."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List, Optional

import pytest

from src.fdc3hub.core.broker import (
    ConnectionLifecycle,
    DirectoryCatalog,
    DirectoryEntry,
    EndpointRegistry,
    OutboundMessage,
)
from src.fdc3hub.infra.directory_source import StaticDirectorySource
from src.fdc3hub.infra.system_channels import DEFAULT_SYSTEM_CHANNELS, load_channel_definitions

CHART_MANIFEST_URL = "https://chart.example.com/manifest.json"
NEWS_MANIFEST_URL = "https://news.example.com/manifest.json"

DIRECTORY: List[Dict[str, Any]] = [
    {
        "name": "ChartApp",
        "title": "Chart",
        "start_url": "https://chart.example.com/",
        "manifest": CHART_MANIFEST_URL,
        "intents": [{"name": "ViewChart", "display_name": "View Chart"}],
    },
    {
        "name": "NewsApp",
        "title": "News",
        "start_url": "https://news.example.com/app",
        "manifest": NEWS_MANIFEST_URL,
        "intents": [
            {"name": "ViewChart", "display_name": "View Chart"},
            {"name": "ViewNews", "display_name": "View News"},
        ],
    },
    {
        "name": "NotesApp",
        "start_url": "https://notes.example.com/",
        "intents": [{"name": "StartNote", "display_name": "Start Note"}],
    },
]

MANIFESTS: Dict[str, Dict[str, Any]] = {
    CHART_MANIFEST_URL: {
        "start_url": "https://chart.example.com/",
        "intents": [{"intent": "ViewChart", "type": "fdc3.instrument", "template": "chart"}],
        "templates": {"chart": "https://chart.example.com/?sym=${symbol}"},
        "params": {"symbol": {"type": "fdc3.instrument", "id": "ticker"}},
    },
    NEWS_MANIFEST_URL: {
        "start_url": "https://news.example.com/app",
        "intents": [
            {"intent": "ViewChart", "type": "fdc3.instrument", "template": "news"},
            {"intent": "ViewNews", "template": "news"},
        ],
        "templates": {"news": "https://news.example.com/app?q=${symbol}"},
        "params": {"symbol": {"type": "fdc3.instrument", "id": "ticker"}},
    },
}

INSTRUMENT = {"type": "fdc3.instrument", "id": {"ticker": "MSFT"}}


class FakeConnection:
    """Collects every message the broker pushes."""

    def __init__(self):
        self.sent: List[OutboundMessage] = []

    def send(self, message: OutboundMessage) -> None:
        self.sent.append(message)

    def topics(self) -> List[str]:
        return [m.topic for m in self.sent]

    def of(self, topic: str) -> List[Dict[str, Any]]:
        return [m.data for m in self.sent if m.topic == topic]

    def clear(self) -> None:
        self.sent.clear()


class FakeLauncher:
    def __init__(self):
        self.launched: List[tuple] = []

    def launch(self, url: str, name: str) -> None:
        self.launched.append((url, name))


class ScriptedResolver:
    """Resolver UI that answers with ``pick(candidates)``; None means cancel."""

    def __init__(self, pick: Optional[Callable[[List[Dict[str, Any]]], Optional[Dict[str, Any]]]] = None):
        self.pick = pick or (lambda candidates: candidates[0])
        self.calls: List[Dict[str, Any]] = []

    async def resolve(self, candidates, intent, display_names, context):
        self.calls.append({
            "candidates": candidates,
            "intent": intent,
            "display_names": display_names,
            "context": context,
        })
        return self.pick(candidates)


class FakeTabHost:
    def __init__(self, titles: Optional[Dict[str, str]] = None):
        self.titles = titles or {}

    async def get_tab_title(self, tab_id: str) -> str:
        return self.titles.get(tab_id, "")


def make_catalog(records: Optional[List[Dict[str, Any]]] = None, manifests: Optional[Dict[str, Any]] = None) -> DirectoryCatalog:
    records = copy.deepcopy(DIRECTORY if records is None else records)
    source = StaticDirectorySource(entries=records, manifests=copy.deepcopy(MANIFESTS if manifests is None else manifests))
    return DirectoryCatalog(source, entries=[DirectoryEntry.from_dict(r) for r in records])


@pytest.fixture
def catalog() -> DirectoryCatalog:
    return make_catalog()


@pytest.fixture
def registry(catalog) -> EndpointRegistry:
    return EndpointRegistry(catalog)


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def resolver() -> ScriptedResolver:
    return ScriptedResolver()


@pytest.fixture
def lifecycle(catalog, launcher, resolver) -> ConnectionLifecycle:
    return ConnectionLifecycle(
        catalog,
        channel_definitions=load_channel_definitions(copy.deepcopy(DEFAULT_SYSTEM_CHANNELS)),
        launcher=launcher,
        resolver=resolver,
        tab_host=FakeTabHost({"7": "Quarterly report"}),
    )
