"""
Shared fixtures for WebSocket / HTTP tests against the FastAPI app.
"""

from __future__ import annotations

import copy
import time
from typing import Any, Callable

import pytest
from fastapi.testclient import TestClient

from src.fdc3hub.infra.config import get_default_config
from src.fdc3hub.infra.directory_source import StaticDirectorySource
from src.fdc3hub.web import app as web_app
from src.fdc3hub.web.services import HubService
from tests.conftest import DIRECTORY, MANIFESTS


def receive_until(ws, stop_predicate, max_messages: int = 20) -> list[dict[str, Any]]:
    """Read frames until one satisfies *stop_predicate*; return all read."""
    payloads: list[dict[str, Any]] = []
    for _ in range(max_messages):
        payload = ws.receive_json()
        payloads.append(payload)
        if stop_predicate(payload):
            return payloads
    raise AssertionError(f"Predicate not satisfied after {max_messages} messages: {payloads}")


def result_for(ws, event_id: str) -> dict[str, Any]:
    frames = receive_until(ws, lambda m: m["topic"] == "result" and m["data"].get("eventId") == event_id)
    return frames[-1]["data"]


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until server-side cleanup catches up with a closed socket."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


def endpoint_url(sender: str = "ext", tab: str = "1", url: str = "") -> str:
    return f"/ws/endpoint?senderId={sender}&tabId={tab}&url={url}"


@pytest.fixture
def hub(monkeypatch):
    """A HubService over the in-memory test directory, installed into the app."""
    service = HubService(
        config=get_default_config(),
        source=StaticDirectorySource(copy.deepcopy(DIRECTORY), copy.deepcopy(MANIFESTS)),
    )
    monkeypatch.setattr(web_app, "hub_service", service)
    monkeypatch.setattr("src.fdc3hub.web.auth._get_configured_api_key", lambda: "")
    return service


@pytest.fixture
def client(hub):
    """Start the app (runs the lifespan, which loads the directory)."""
    with TestClient(web_app.app) as test_client:
        yield test_client
