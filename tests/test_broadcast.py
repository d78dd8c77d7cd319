"""Tests for snapshot fanout and SSE framing."""

import json
import re
from datetime import datetime, timezone

from app.core.schemas import CountSnapshot
from app.services.live_broadcast import LiveBroadcaster
from app.services.registry import ConnectionRegistry
from app.services.sse import HEARTBEAT_FRAME, encode_snapshot, format_data_frame

ISO_UTC_MS = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$")


def _payload(frame):
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):-2])


class TestFraming:
    def test_data_frame(self):
        assert format_data_frame('{"a": 1}') == 'data: {"a": 1}\n\n'

    def test_heartbeat_is_comment(self):
        assert HEARTBEAT_FRAME == ": heartbeat\n\n"
        assert "data:" not in HEARTBEAT_FRAME

    def test_snapshot_wire_format(self):
        snap = CountSnapshot(
            total_connections=3,
            unique_visitors=2,
            timestamp=datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc),
        )
        body = _payload(encode_snapshot(snap))
        assert body == {
            "totalConnections": 3,
            "uniqueVisitors": 2,
            "timestamp": "2024-05-01T12:00:00.123Z",
        }

    def test_naive_timestamp_treated_as_utc(self):
        snap = CountSnapshot(total_connections=0, unique_visitors=0, timestamp=datetime(2024, 1, 1))
        assert _payload(encode_snapshot(snap))["timestamp"] == "2024-01-01T00:00:00.000Z"


class TestLiveBroadcaster:
    def test_broadcast_empty(self):
        """Broadcasting to no connections should not fail."""
        b = LiveBroadcaster(ConnectionRegistry())
        snap = b.broadcast_current_state()
        assert (snap.total_connections, snap.unique_visitors) == (0, 0)
        assert b.broadcasts == 1

    def test_every_handle_gets_current_counts(self, make_handle):
        reg = ConnectionRegistry()
        handles = [make_handle("v1"), make_handle("v1"), make_handle("v2")]
        for h in handles:
            reg.attach(h.visitor_id, h)

        LiveBroadcaster(reg).broadcast_current_state()

        for h in handles:
            assert len(h.messages) == 1
            body = _payload(h.messages[0])
            assert body["totalConnections"] == 3
            assert body["uniqueVisitors"] == 2
            assert ISO_UTC_MS.match(body["timestamp"])

    def test_delivery_matches_registry_after_each_event(self, make_handle):
        reg = ConnectionRegistry()
        b = LiveBroadcaster(reg)
        h1, h2 = make_handle("v1"), make_handle("v2")

        reg.attach("v1", h1)
        b.broadcast_current_state()
        reg.attach("v2", h2)
        b.broadcast_current_state()
        reg.detach("v1", h1)
        b.broadcast_current_state()

        counts = [(_payload(m)["totalConnections"], _payload(m)["uniqueVisitors"]) for m in h2.messages]
        assert counts == [(2, 2), (1, 1)]
        assert counts[-1] == reg.snapshot()

    def test_failed_send_goes_to_callback(self, make_handle):
        reg = ConnectionRegistry()
        dropped = []
        b = LiveBroadcaster(reg, on_send_failure=dropped.append)
        alive, dead = make_handle("v1"), make_handle("v2", alive=False)
        reg.attach("v1", alive)
        reg.attach("v2", dead)

        b.broadcast_current_state()

        assert dropped == [dead]
        assert len(alive.messages) == 1
        assert b.failed_sends == 1

    def test_failed_send_without_callback_detaches_and_rebroadcasts(self, make_handle):
        reg = ConnectionRegistry()
        b = LiveBroadcaster(reg)
        alive, dead = make_handle("v1"), make_handle("v2", alive=False)
        reg.attach("v1", alive)
        reg.attach("v2", dead)

        b.broadcast_current_state()

        assert reg.snapshot() == (1, 1)
        assert "v2" not in reg
        counts = [_payload(m)["totalConnections"] for m in alive.messages]
        assert counts == [2, 1]
        assert b.broadcasts == 2

    def test_current_snapshot_does_not_push(self, make_handle):
        reg = ConnectionRegistry()
        h = make_handle("v1")
        reg.attach("v1", h)
        snap = LiveBroadcaster(reg).current_snapshot()
        assert snap.total_connections == 1
        assert h.messages == []

    def test_many_failures_take_one_follow_up_pass(self, make_handle):
        reg = ConnectionRegistry()
        b = LiveBroadcaster(reg)
        alive = make_handle("v1")
        reg.attach("v1", alive)
        for i in range(500):
            reg.attach(f"gone{i}", make_handle(f"gone{i}", alive=False))

        snap = b.broadcast_current_state()

        assert (snap.total_connections, snap.unique_visitors) == (1, 1)
        assert reg.snapshot() == (1, 1)
        assert b.broadcasts == 2
        assert b.failed_sends == 500
        assert [_payload(m)["totalConnections"] for m in alive.messages] == [501, 1]

    def test_callback_that_removes_nothing_stops_fanout(self, make_handle):
        reg = ConnectionRegistry()
        b = LiveBroadcaster(reg, on_send_failure=lambda h: False)
        reg.attach("v1", make_handle("v1", alive=False))

        b.broadcast_current_state()

        assert b.broadcasts == 1
        assert reg.snapshot() == (1, 1)
