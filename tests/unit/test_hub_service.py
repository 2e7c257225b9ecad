"""Unit tests for the web glue: WebSocketConnection, HostBridge, HubService."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import WebSocketDisconnect

from src.fdc3hub.core.broker import CollaboratorUnavailable, OutboundMessage
from src.fdc3hub.infra.config import get_default_config
from src.fdc3hub.infra.directory_source import HttpDirectorySource, StaticDirectorySource
from src.fdc3hub.web.services.hub_service import HostBridge, HubService, WebSocketConnection
from tests.conftest import DIRECTORY, MANIFESTS


class RecordingHost:
    """Stands in for a host WebSocketConnection."""

    def __init__(self):
        self.sent = []

    def send(self, message: OutboundMessage) -> None:
        self.sent.append(message)


class TestWebSocketConnection:
    @pytest.mark.asyncio
    async def test_sends_in_order_and_flushes_on_close(self):
        ws = MagicMock()
        ws.send_json = AsyncMock()
        conn = WebSocketConnection(ws)
        conn.start()

        conn.send(OutboundMessage("context", {"n": 1}))
        conn.send(OutboundMessage("context", {"n": 2}))
        await conn.close()

        payloads = [call.args[0] for call in ws.send_json.await_args_list]
        assert payloads == [{"topic": "context", "data": {"n": 1}}, {"topic": "context", "data": {"n": 2}}]

    @pytest.mark.asyncio
    async def test_send_after_close_is_dropped(self):
        ws = MagicMock()
        ws.send_json = AsyncMock()
        conn = WebSocketConnection(ws)
        conn.start()
        await conn.close()

        conn.send(OutboundMessage("context", {}))
        ws.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_writer_stops_on_socket_error(self):
        ws = MagicMock()
        ws.send_json = AsyncMock(side_effect=RuntimeError("closed"))
        conn = WebSocketConnection(ws)
        conn.start()
        conn.send(OutboundMessage("context", {}))
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        assert conn.closed is True
        await conn.close()


class TestHostBridge:
    def test_launch_without_host(self):
        with pytest.raises(CollaboratorUnavailable):
            HostBridge().launch("https://a/", "A")

    def test_launch_sends_frame(self):
        bridge, host = HostBridge(), RecordingHost()
        bridge.attach(host)
        bridge.launch("https://a/", "A")
        assert host.sent[0].to_dict() == {"topic": "launch", "data": {"url": "https://a/", "name": "A"}}

    @pytest.mark.asyncio
    async def test_resolve_round_trip(self):
        bridge, host = HostBridge(), RecordingHost()
        bridge.attach(host)

        task = asyncio.create_task(bridge.resolve([{"kind": "catalogEntry"}], "ViewChart", {"ViewChart": "View"}, {}))
        await asyncio.sleep(0)
        request = host.sent[0]
        assert request.topic == "resolve"
        assert request.data["intent"] == "ViewChart"
        assert request.data["displayNames"] == {"ViewChart": "View"}

        bridge.handle_reply({
            "topic": "resolution",
            "data": {"requestId": request.data["requestId"], "selected": {"kind": "catalogEntry"}},
        })
        assert await task == {"kind": "catalogEntry"}
        assert bridge.pending == 0

    @pytest.mark.asyncio
    async def test_resolve_cancelled_by_host(self):
        bridge, host = HostBridge(), RecordingHost()
        bridge.attach(host)
        task = asyncio.create_task(bridge.resolve([], None, {}, {}))
        await asyncio.sleep(0)
        bridge.handle_reply({"topic": "resolution", "requestId": host.sent[0].data["requestId"], "selected": None})
        assert await task is None

    @pytest.mark.asyncio
    async def test_tab_title_round_trip(self):
        bridge, host = HostBridge(), RecordingHost()
        bridge.attach(host)
        task = asyncio.create_task(bridge.get_tab_title("7"))
        await asyncio.sleep(0)
        request = host.sent[0]
        assert request.to_dict()["data"]["tabId"] == "7"
        bridge.handle_reply({"topic": "tabTitle", "data": {"requestId": request.data["requestId"], "title": "Doc"}})
        assert await task == "Doc"

    @pytest.mark.asyncio
    async def test_detach_fails_pending_round_trips(self):
        bridge, host = HostBridge(), RecordingHost()
        bridge.attach(host)
        task = asyncio.create_task(bridge.get_tab_title("7"))
        await asyncio.sleep(0)

        bridge.detach(host)

        with pytest.raises(CollaboratorUnavailable):
            await task
        assert bridge.connected is False

    @pytest.mark.asyncio
    async def test_detach_of_replaced_host_is_ignored(self):
        bridge, old, new = HostBridge(), RecordingHost(), RecordingHost()
        bridge.attach(old)
        bridge.attach(new)
        bridge.detach(old)
        assert bridge.connected is True

    def test_stray_replies_are_ignored(self):
        bridge = HostBridge()
        bridge.handle_reply("garbage")
        bridge.handle_reply({"topic": "resolution", "requestId": "unknown"})
        bridge.handle_reply({"topic": "other"})
        assert bridge.pending == 0


class TestHubService:
    def test_builds_broker_from_config(self):
        config = get_default_config()
        config["fdc3hub"]["channels"] = [{"id": "desk"}]
        config["fdc3hub"]["intents"]["strict_templates"] = False

        service = HubService(config=config)

        assert isinstance(service.source, HttpDirectorySource)
        assert [d.id for d in service.lifecycle.channels.system_channels()] == ["desk"]
        assert service.lifecycle.router.strict_templates is False
        assert service.lifecycle.router.launcher is service.host
        assert service.lifecycle.tab_host is service.host

    def test_broken_directory_file_degrades(self, tmp_path):
        config = get_default_config()
        config["fdc3hub"]["directory"]["file"] = str(tmp_path / "missing.yaml")
        service = HubService(config=config)
        assert service.source is None

    @pytest.mark.asyncio
    async def test_start_and_status(self):
        service = HubService(config=get_default_config(), source=StaticDirectorySource(DIRECTORY, MANIFESTS))
        await service.start()
        status = service.get_status()
        assert status["directory"] == {"available": True, "entries": 3}
        assert status["host"] == {"connected": False, "pending": 0}
        assert status["endpoints"] == []
        await service.stop()

    @pytest.mark.asyncio
    async def test_endpoint_session_cleans_up_after_connect(self):
        service = HubService(config=get_default_config(), source=StaticDirectorySource(DIRECTORY, MANIFESTS))
        await service.start()
        service.source.fetch_manifest = AsyncMock(side_effect=TypeError("bad url"))
        ws = MagicMock()
        ws.accept = AsyncMock()
        ws.send_json = AsyncMock()
        ws.receive_text = AsyncMock(side_effect=WebSocketDisconnect())

        await service.handle_endpoint_session(ws, "ext", "1", "https://chart.example.com/")

        sent = [call.args[0]["topic"] for call in ws.send_json.await_args_list]
        assert sent == ["environmentData"]
        assert len(service.lifecycle.registry) == 0
        await service.stop()

    @pytest.mark.asyncio
    async def test_endpoint_session_rejects_bad_tab_id(self):
        service = HubService(config=get_default_config(), source=StaticDirectorySource(DIRECTORY, MANIFESTS))
        ws = MagicMock()
        ws.accept = AsyncMock()
        ws.send_json = AsyncMock()
        ws.close = AsyncMock()

        await service.handle_endpoint_session(ws, "ext", "a:b")

        reply = ws.send_json.await_args_list[0].args[0]
        assert reply["data"]["error"]["type"] == "BadRequest"
        ws.close.assert_awaited_once_with(code=4400)
        assert len(service.lifecycle.registry) == 0
