"""
Unit tests for the realtime layer: client registry, broadcast fan-out and
the per-connection authentication handshake.
"""

import asyncio
import json

import pytest

from conftest import FakeConnection, FakeVerifier
from pishield.realtime import BroadcastService, ClientRegistry, ClientSession, SessionState
from pishield.realtime.types import encode_message, make_message
from pishield.schemas import DashboardStats, RiskLevel


def _decoded(conn: FakeConnection):
    return [json.loads(frame) for frame in conn.sent]


class TestClientRegistry:
    """Tests for ClientRegistry."""

    def test_register_same_principal_twice_keeps_one_entry(self):
        """Last connection wins; only one entry per principal."""
        registry = ClientRegistry()
        first, second = FakeConnection(), FakeConnection()

        registry.register("user-1", first)
        registry.register("user-1", second)

        assert len(registry) == 1
        assert registry.get("user-1").connection is second

    def test_unregister_is_idempotent(self):
        """Unregistering twice or an unknown principal raises nothing."""
        registry = ClientRegistry()
        registry.register("user-1", FakeConnection())

        assert registry.unregister("user-1") is True
        assert registry.unregister("user-1") is False
        assert registry.unregister("never-seen") is False
        assert len(registry) == 0

    def test_clients_returns_snapshot(self):
        """Mutating the registry does not affect an earlier snapshot."""
        registry = ClientRegistry()
        registry.register("a", FakeConnection())
        snapshot = registry.clients()
        registry.register("b", FakeConnection())

        assert [c.principal_id for c in snapshot] == ["a"]
        assert sorted(registry.principal_ids()) == ["a", "b"]
        assert "b" in registry


class StalledConnection(FakeConnection):
    """Open connection whose peer never reads: writes hang until cancelled."""

    async def send_text(self, text: str) -> None:
        await asyncio.Event().wait()


class SlowConnection(FakeConnection):
    """Each write takes a different amount of time."""

    def __init__(self, delays):
        super().__init__()
        self.delays = list(delays)

    async def send_text(self, text: str) -> None:
        await asyncio.sleep(self.delays.pop(0))
        self.sent.append(text)


class TestBroadcastService:
    """Tests for BroadcastService.send() targeting and soft-fail."""

    def setup_method(self):
        self.registry = ClientRegistry()
        self.service = BroadcastService(self.registry, send_timeout=0.1)
        self.a, self.b, self.c = FakeConnection(), FakeConnection(), FakeConnection()
        self.registry.register("a", self.a)
        self.registry.register("b", self.b)
        self.registry.register("c", self.c)

    @pytest.mark.asyncio
    async def test_send_to_all(self):
        delivered = await self.service.send({"type": "STATS_UPDATE", "data": {}})
        await self.service.flush()

        assert delivered == 3
        for conn in (self.a, self.b, self.c):
            assert _decoded(conn) == [{"type": "STATS_UPDATE", "data": {}}]

    @pytest.mark.asyncio
    async def test_send_to_single_principal(self):
        delivered = await self.service.send({"type": "NEW_ALERT"}, "b")
        await self.service.flush()

        assert delivered == 1
        assert self.a.sent == [] and self.c.sent == []
        assert len(self.b.sent) == 1

    @pytest.mark.asyncio
    async def test_send_to_set_ignores_unknown_and_duplicates(self):
        delivered = await self.service.send({"type": "NEW_ALERT"}, ["a", "c", "ghost", "a"])
        await self.service.flush()

        assert delivered == 2
        assert len(self.a.sent) == 1
        assert len(self.c.sent) == 1
        assert self.b.sent == []

    @pytest.mark.asyncio
    async def test_closed_and_failing_connections_are_skipped(self):
        self.a.open = False
        self.b.fail = True

        delivered = await self.service.send({"type": "NEW_ALERT"})
        await self.service.flush()

        assert delivered == 2
        assert self.a.sent == []
        assert self.b.sent == []
        assert len(self.c.sent) == 1

    @pytest.mark.asyncio
    async def test_stalled_connection_blocks_neither_caller_nor_others(self):
        stalled = StalledConnection()
        self.registry.register("a", stalled)

        delivered = await asyncio.wait_for(self.service.send({"type": "NEW_ALERT"}), timeout=0.05)
        await asyncio.sleep(0.01)

        assert delivered == 3
        assert len(self.b.sent) == 1
        assert len(self.c.sent) == 1

        await self.service.flush()
        assert stalled.sent == []

    @pytest.mark.asyncio
    async def test_writes_to_one_connection_keep_send_order(self):
        slow = SlowConnection([0.03, 0.0, 0.01])
        self.registry.register("a", slow)

        for kind in ("NEW_ALERT", "STATS_UPDATE", "NEW_ATTACK_SOURCE"):
            await self.service.send({"type": kind}, "a")
        await self.service.flush()

        assert [m["type"] for m in _decoded(slow)] == ["NEW_ALERT", "STATS_UPDATE", "NEW_ATTACK_SOURCE"]

    @pytest.mark.asyncio
    async def test_close_abandons_pending_writes(self):
        stalled = StalledConnection()
        self.registry.register("a", stalled)
        await self.service.send({"type": "NEW_ALERT"}, "a")

        self.service.close()
        await asyncio.sleep(0)

        await asyncio.wait_for(self.service.flush(), timeout=0.05)
        assert stalled.sent == []

    @pytest.mark.asyncio
    async def test_broadcast_reaches_only_latest_connection_of_principal(self):
        replacement = FakeConnection()
        self.registry.register("a", replacement)

        await self.service.send({"type": "NEW_ALERT"}, "a")
        await self.service.flush()

        assert self.a.sent == []
        assert len(replacement.sent) == 1

    @pytest.mark.asyncio
    async def test_alert_update_envelope(self):
        await self.service.broadcast_alert_update("alert-9", "resolved")
        await self.service.flush()

        assert _decoded(self.a) == [{"type": "ALERT_UPDATE", "data": {"id": "alert-9", "status": "resolved"}}]

    @pytest.mark.asyncio
    async def test_stats_payload_uses_wire_aliases(self):
        stats = DashboardStats(
            attacks_blocked=4,
            active_alerts=2,
            risk_level=RiskLevel.MEDIUM,
            device_count=10,
            blocked_ip_count=1,
        )
        await self.service.broadcast_stats_update(stats)
        await self.service.flush()

        message = _decoded(self.c)[0]
        assert message["type"] == "STATS_UPDATE"
        assert message["data"] == {
            "attacksBlocked": 4,
            "activeAlerts": 2,
            "riskLevel": "Medium",
            "deviceCount": 10,
            "blockedIpCount": 1,
        }

    @pytest.mark.asyncio
    async def test_no_clients_is_a_noop(self):
        service = BroadcastService()
        assert await service.send({"type": "NEW_ALERT"}) == 0


class TestWireHelpers:
    """Tests for envelope construction."""

    def test_make_message_omits_empty_fields(self):
        assert make_message("AUTH_SUCCESS", message="ok") == {"type": "AUTH_SUCCESS", "message": "ok"}
        assert make_message("PING") == {"type": "PING"}

    def test_encode_passes_strings_through(self):
        assert encode_message('{"type":"X"}') == '{"type":"X"}'


class TestClientSession:
    """Tests for the authentication handshake state machine."""

    def setup_method(self):
        self.registry = ClientRegistry()
        self.verifier = FakeVerifier()
        self.conn = FakeConnection()
        self.session = ClientSession(self.conn, self.registry, self.verifier)

    @pytest.mark.asyncio
    async def test_valid_token_authenticates_and_registers(self):
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "valid"}))

        assert self.session.state == SessionState.AUTHENTICATED
        assert self.session.principal_id == "user-1"
        assert self.registry.get("user-1").connection is self.conn
        assert _decoded(self.conn)[-1]["type"] == "AUTH_SUCCESS"

    @pytest.mark.asyncio
    async def test_invalid_token_replies_error_and_leaves_registry(self):
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "invalid"}))

        assert self.session.state == SessionState.UNAUTHENTICATED
        assert len(self.registry) == 0
        assert _decoded(self.conn) == [{"type": "AUTH_ERROR", "message": "Authentication failed"}]

    @pytest.mark.asyncio
    async def test_retry_after_failure_succeeds(self):
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "invalid"}))
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "valid"}))

        assert self.session.authenticated
        assert [m["type"] for m in _decoded(self.conn)] == ["AUTH_ERROR", "AUTH_SUCCESS"]

    @pytest.mark.asyncio
    async def test_auth_without_token_is_rejected(self):
        await self.session.handle_message(json.dumps({"type": "AUTH"}))

        assert self.verifier.calls == []
        assert _decoded(self.conn)[0]["type"] == "AUTH_ERROR"

    @pytest.mark.asyncio
    async def test_failed_reauth_keeps_existing_registration(self):
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "valid"}))
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "invalid"}))

        assert self.session.authenticated
        assert "user-1" in self.registry

    @pytest.mark.asyncio
    async def test_reauth_as_other_principal_moves_registration(self):
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "valid"}))
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "other"}))

        assert self.registry.principal_ids() == ["user-2"]

    @pytest.mark.asyncio
    async def test_malformed_frames_are_ignored(self):
        await self.session.handle_message("not json")
        await self.session.handle_message("[1, 2, 3]")
        await self.session.handle_message(json.dumps({"type": "SUBSCRIBE"}))

        assert self.conn.sent == []
        assert self.session.state == SessionState.UNAUTHENTICATED

    @pytest.mark.asyncio
    async def test_disconnect_after_auth_unregisters(self):
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "valid"}))
        self.session.close()

        assert self.session.state == SessionState.CLOSED
        assert "user-1" not in self.registry

    def test_disconnect_while_unauthenticated(self):
        self.session.close()

        assert self.session.state == SessionState.CLOSED
        assert len(self.registry) == 0

    @pytest.mark.asyncio
    async def test_stale_connection_close_unregisters_principal(self):
        """Disconnect removes the principal even if a newer login replaced it."""
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "valid"}))
        newer = ClientSession(FakeConnection(), self.registry, self.verifier)
        await newer.handle_message(json.dumps({"type": "AUTH", "token": "valid"}))

        self.session.close()

        assert "user-1" not in self.registry

    @pytest.mark.asyncio
    async def test_messages_after_close_are_ignored(self):
        self.session.close()
        await self.session.handle_message(json.dumps({"type": "AUTH", "token": "valid"}))

        assert len(self.registry) == 0
        assert self.conn.sent == []

    @pytest.mark.asyncio
    async def test_keepalive_pings_and_stops_on_close(self):
        session = ClientSession(self.conn, self.registry, self.verifier, ping_interval=0.01)
        session.start()
        await asyncio.sleep(0.05)
        session.close()
        sent_at_close = len(self.conn.sent)
        await asyncio.sleep(0.03)

        assert sent_at_close >= 1
        assert all(m["type"] == "PING" for m in _decoded(self.conn))
        assert len(self.conn.sent) == sent_at_close
