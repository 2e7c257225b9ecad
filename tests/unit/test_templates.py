"""Unit tests for manifest URL template handling."""

from __future__ import annotations

import pytest

from src.fdc3hub.core.broker.errors import NotFound
from src.fdc3hub.core.broker.models import DirectoryEntry, Manifest, ManifestParam
from src.fdc3hub.core.broker.templates import (
    build_launch_url,
    extract_params,
    render_template,
    unresolved_placeholders,
)


def test_security_ticker_example():
    manifest = Manifest.from_dict({
        "start_url": "app://open",
        "intents": [{"intent": "ViewChart", "type": "security", "template": "open"}],
        "templates": {"open": "app://open?sym=${symbol}"},
        "params": {"symbol": {"type": "security", "key": "ticker"}},
    })
    entry = DirectoryEntry(name="Charts", start_url="app://open")

    url = build_launch_url(entry, manifest, "ViewChart", {"type": "security", "ticker": "MSFT"})

    assert url == "app://open?sym=MSFT"


class TestExtractParams:
    def test_key_and_id_rules(self):
        params = {
            "ticker": ManifestParam(type="fdc3.instrument", id="ticker"),
            "name": ManifestParam(type="fdc3.instrument", key="name"),
            "email": ManifestParam(type="fdc3.contact", id="email"),
        }
        context = {"type": "fdc3.instrument", "name": "Microsoft", "id": {"ticker": "MSFT"}}
        assert extract_params(params, context) == {"ticker": "MSFT", "name": "Microsoft"}

    def test_missing_values_are_skipped(self):
        params = {"ticker": ManifestParam(type="fdc3.instrument", id="ticker")}
        assert extract_params(params, {"type": "fdc3.instrument"}) == {}
        assert extract_params(params, {"type": "fdc3.instrument", "id": "flat"}) == {}


class TestRenderTemplate:
    def test_replaces_every_occurrence(self):
        assert render_template("${a}-${b}-${a}", {"a": 1, "b": "x"}) == "1-x-1"

    def test_lenient_leaves_unmatched_verbatim(self):
        assert render_template("q=${a}&r=${b}", {"a": "1"}, strict=False) == "q=1&r=${b}"

    def test_strict_raises_not_found(self):
        with pytest.raises(NotFound, match="b"):
            render_template("q=${a}&r=${b}", {"a": "1"})

    def test_unresolved_placeholders(self):
        assert unresolved_placeholders("x=${a}&y=${b}") == ["a", "b"]
        assert unresolved_placeholders("plain") == []


class TestBuildLaunchUrl:
    def test_no_manifest_uses_entry_start_url(self):
        entry = DirectoryEntry(name="NotesApp", start_url="https://notes.example.com/")
        assert build_launch_url(entry, None, "StartNote", {"type": "x"}) == "https://notes.example.com/"

    def test_manifest_without_intents_uses_manifest_start_url(self):
        entry = DirectoryEntry(name="App", start_url="https://app.example.com/")
        manifest = Manifest.from_dict({"start_url": "https://app.example.com/home"})
        assert build_launch_url(entry, manifest, "Any", {"type": "x"}) == "https://app.example.com/home"

    def test_open_without_intent(self):
        entry = DirectoryEntry(name="App", start_url="https://app.example.com/")
        manifest = Manifest.from_dict({"intents": []})
        assert build_launch_url(entry, manifest, None, None) == "https://app.example.com/"

    def test_missing_intent_entry(self):
        entry = DirectoryEntry(name="App")
        manifest = Manifest.from_dict({"intents": [{"intent": "ViewChart", "type": "a", "template": "t"}]})
        with pytest.raises(NotFound):
            build_launch_url(entry, manifest, "ViewChart", {"type": "b"})

    def test_missing_template(self):
        entry = DirectoryEntry(name="App")
        manifest = Manifest.from_dict({"intents": [{"intent": "ViewChart", "template": "gone"}]})
        with pytest.raises(NotFound):
            build_launch_url(entry, manifest, "ViewChart", {"type": "b"})
