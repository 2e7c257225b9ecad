"""Unit tests for channel membership and context broadcast."""

from __future__ import annotations

import pytest

from src.fdc3hub.core.broker.channels import ChannelManager
from src.fdc3hub.core.broker.errors import NotFound
from src.fdc3hub.core.broker.models import ChannelDefinition, EndpointKey
from tests.conftest import FakeConnection

CONTEXT = {"type": "fdc3.instrument", "id": {"ticker": "AAPL"}}


@pytest.fixture
def channels(registry):
    return ChannelManager(registry, [ChannelDefinition(id="red", name="Red", color="#FF0000", glyph="1")])


def _connect(registry, tab):
    connection = FakeConnection()
    endpoint = registry.register(connection, "ext", tab)
    return endpoint, connection


class TestJoin:
    def test_join_delivers_current_context_once(self, registry, channels):
        sender, _ = _connect(registry, "1")
        channels.join(sender.key, "red", restore_only=True)
        channels.broadcast(sender.key, CONTEXT)

        joiner, conn = _connect(registry, "2")
        channels.join(joiner.key, "red")
        assert conn.of("context") == [{"context": CONTEXT}]

    def test_join_empty_channel_delivers_none(self, registry, channels):
        joiner, conn = _connect(registry, "2")
        channels.join(joiner.key, "red")
        assert conn.of("context") == [{"context": None}]

    def test_restore_only_delivers_nothing(self, registry, channels):
        joiner, conn = _connect(registry, "2")
        channels.join(joiner.key, "red", restore_only=True)
        assert conn.sent == []
        assert joiner.channel == "red"
        assert registry.restored_channel("2") == "red"

    def test_join_moves_listener_between_channels(self, registry, channels):
        endpoint, _ = _connect(registry, "1")
        channels.join(endpoint.key, "red")
        channels.join(endpoint.key, "blue")
        assert endpoint.key not in channels.get("red").listeners
        assert endpoint.key in channels.get("blue").listeners

    def test_unknown_channel_is_created(self, registry, channels):
        endpoint, _ = _connect(registry, "1")
        channels.join(endpoint.key, "my-app-channel")
        assert channels.get("my-app-channel") is not None
        assert channels.get("my-app-channel").definition is None

    def test_leave_to_default(self, registry, channels):
        endpoint, conn = _connect(registry, "1")
        channels.join(endpoint.key, "red", restore_only=True)
        channels.leave_to_default(endpoint.key)
        assert endpoint.channel == "default"
        assert conn.of("context") == [{"context": None}]

    def test_join_unknown_endpoint(self, channels):
        with pytest.raises(NotFound):
            channels.join(EndpointKey("ext", "missing"), "red")


class TestBroadcast:
    def test_broadcast_becomes_current_and_skips_sender(self, registry, channels):
        sender, sender_conn = _connect(registry, "1")
        listener_a, conn_a = _connect(registry, "2")
        listener_b, conn_b = _connect(registry, "3")
        for endpoint in (sender, listener_a, listener_b):
            channels.join(endpoint.key, "red", restore_only=True)

        delivered = channels.broadcast(sender.key, CONTEXT)

        assert delivered == 2
        assert channels.get_current_context("red") == CONTEXT
        assert sender_conn.sent == []
        expected = [{"context": CONTEXT, "source": "ext:1"}]
        assert conn_a.of("context") == expected
        assert conn_b.of("context") == expected

    def test_broadcast_without_channel_uses_default(self, registry, channels):
        sender, _ = _connect(registry, "1")
        listener, conn = _connect(registry, "2")
        channels.add_context_listener(listener.key)

        channels.broadcast(sender.key, CONTEXT)

        assert channels.get_current_context("default") == CONTEXT
        assert len(conn.of("context")) == 1

    def test_history_is_newest_first(self, registry, channels):
        sender, _ = _connect(registry, "1")
        channels.broadcast(sender.key, {"type": "a"})
        channels.broadcast(sender.key, {"type": "b"})
        assert [c["type"] for c in channels.get("default").history] == ["b", "a"]

    def test_disconnected_listener_is_pruned(self, registry, channels):
        sender, _ = _connect(registry, "1")
        gone, _ = _connect(registry, "2")
        channels.add_context_listener(gone.key)
        registry.unregister(gone.key)

        assert channels.broadcast(sender.key, CONTEXT) == 0
        assert gone.key not in channels.get("default").listeners


class TestListeners:
    def test_add_context_listener_is_idempotent(self, registry, channels):
        endpoint, _ = _connect(registry, "1")
        channels.add_context_listener(endpoint.key)
        channels.add_context_listener(endpoint.key)
        assert channels.get("default").listeners == [endpoint.key]

    def test_drop_context_listener(self, registry, channels):
        endpoint, _ = _connect(registry, "1")
        channels.add_context_listener(endpoint.key)
        channels.drop_context_listener(endpoint.key)
        channels.drop_context_listener(endpoint.key)
        assert channels.get("default").listeners == []

    def test_remove_endpoint_clears_every_channel(self, registry, channels):
        endpoint, _ = _connect(registry, "1")
        channels.join(endpoint.key, "red", restore_only=True)
        channels.get_or_create_channel("blue").listeners.append(endpoint.key)

        channels.remove_endpoint(endpoint.key)
        channels.remove_endpoint(endpoint.key)

        assert all(endpoint.key not in ch.listeners for ch in channels.channels())


def test_system_channels_and_snapshot(registry, channels):
    assert [d.id for d in channels.system_channels()] == ["red"]
    ids = [item["id"] for item in channels.snapshot()]
    assert ids == ["default", "red"]
    assert channels.get_current_context("nope") is None
