"""Tests for the live broadcast hub (engine/broadcast_hub.py)."""

import threading
import time

import pytest

from conftest import parse_frames
from engine.broadcast_hub import HEARTBEAT_FRAME, BroadcastHub, Subscription
from engine.errors import BroadcastDeliveryFailure


@pytest.fixture
def hub():
    hub = BroadcastHub(heartbeat_seconds=0.05, sweep_seconds=0.05, queue_size=10)
    yield hub
    hub.stop()


class TestSubscribe:
    def test_connected_frame_is_first(self, hub):
        sub = hub.subscribe("m1")
        frames = parse_frames(sub.drain())
        assert frames == [{"type": "connected", "matchId": "m1", "clientId": sub.client_id}]

    def test_client_ids_are_unique(self, hub):
        ids = {hub.subscribe("m1").client_id for _ in range(20)}
        assert len(ids) == 20

    def test_counts(self, hub):
        hub.subscribe("m1")
        hub.subscribe("m1")
        hub.subscribe("m2")
        assert hub.subscriber_count("m1") == 2
        assert hub.subscriber_count() == 3
        assert hub.stats() == {"matches": 2, "subscribers": 3}


class TestPublish:
    def test_one_publish_reaches_every_subscriber_once(self, hub):
        subs = [hub.subscribe("m1") for _ in range(5)]
        other = hub.subscribe("m2")
        for sub in subs + [other]:
            sub.drain()

        delivered = hub.publish("m1", {"type": "score_update", "matchId": "m1"})

        assert delivered == 5
        for sub in subs:
            assert parse_frames(sub.drain()) == [{"type": "score_update", "matchId": "m1"}]
        assert other.drain() == []

    def test_no_subscribers(self, hub):
        assert hub.publish("nobody", {"type": "score_update"}) == 0

    def test_frame_format(self, hub):
        sub = hub.subscribe("m1")
        sub.drain()
        hub.publish("m1", {"type": "wicket"})
        assert sub.drain() == ['data: {"type": "wicket"}\n\n']

    def test_closed_subscription_gets_nothing_and_is_dropped(self, hub):
        alive = hub.subscribe("m1")
        dead = hub.subscribe("m1")
        dead.close()
        dead.drain()

        assert hub.publish("m1", {"type": "score_update"}) == 1
        assert dead.drain() == []
        assert hub.subscriber_count("m1") == 1
        assert alive.pending() == 2

    def test_reader_that_stops_draining_is_dropped(self):
        hub = BroadcastHub(queue_size=3)
        slow = hub.subscribe("m1")
        hub.publish("m1", {"n": 1})
        hub.publish("m1", {"n": 2})
        assert hub.publish("m1", {"n": 3}) == 0
        assert slow.is_terminated
        assert not hub.has_match("m1")


class TestUnsubscribeAndSweep:
    def test_unsubscribe_removes_empty_match_entry(self, hub):
        first = hub.subscribe("m1")
        second = hub.subscribe("m1")
        hub.unsubscribe(first)
        assert hub.subscriber_count("m1") == 1
        hub.unsubscribe(second)
        assert not hub.has_match("m1")
        assert first.is_terminated and second.is_terminated

    def test_unsubscribe_twice_is_harmless(self, hub):
        sub = hub.subscribe("m1")
        hub.unsubscribe(sub)
        hub.unsubscribe(sub)
        assert hub.subscriber_count() == 0

    def test_sweep_removes_terminated_transports(self, hub):
        keep = hub.subscribe("m1")
        gone = hub.subscribe("m1")
        lonely = hub.subscribe("m2")
        gone.close()
        lonely.close()

        assert hub.sweep() == 2
        assert hub.subscriber_count("m1") == 1
        assert not hub.has_match("m2")
        keep.drain()
        hub.publish("m1", {"type": "x"})
        assert len(keep.drain()) == 1

    def test_sweep_with_nothing_to_do(self, hub):
        hub.subscribe("m1")
        assert hub.sweep() == 0


class TestHeartbeat:
    def test_heartbeat_line_and_activity_marker(self, hub):
        sub = hub.subscribe("m1")
        sub.drain()
        before = sub.last_activity
        time.sleep(0.01)
        assert hub.heartbeat() == 1
        assert sub.drain() == [HEARTBEAT_FRAME]
        assert sub.last_activity > before

    def test_heartbeat_drops_dead_subscribers(self, hub):
        sub = hub.subscribe("m1")
        sub.close()
        assert hub.heartbeat() == 0
        assert not hub.has_match("m1")

    def test_background_loops(self, hub):
        sub = hub.subscribe("m1")
        dead = hub.subscribe("m1")
        dead.close()
        hub.start()
        deadline = time.time() + 2
        while time.time() < deadline and hub.subscriber_count("m1") != 1:
            time.sleep(0.02)
        time.sleep(0.1)
        assert hub.subscriber_count("m1") == 1
        assert HEARTBEAT_FRAME in sub.drain()


class TestSubscription:
    def test_write_after_close_fails(self):
        sub = Subscription("m1")
        sub.close()
        with pytest.raises(BroadcastDeliveryFailure):
            sub.write("data: {}\n\n")

    def test_frames_generator_ends_after_close(self):
        sub = Subscription("m1")
        sub.write("a")
        sub.write("b")
        sub.close()
        assert list(sub.frames(poll_interval=0.01)) == ["a", "b"]


class TestConcurrency:
    def test_concurrent_subscribe_publish_and_close(self, hub):
        errors = []
        subs = []
        subs_lock = threading.Lock()

        def subscriber():
            try:
                for _ in range(20):
                    sub = hub.subscribe("m1")
                    with subs_lock:
                        subs.append(sub)
                    if len(subs) % 3 == 0:
                        hub.unsubscribe(sub)
            except Exception as e:
                errors.append(e)

        def publisher():
            try:
                for i in range(50):
                    hub.publish("m1", {"n": i})
                    hub.sweep()
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=subscriber) for _ in range(4)]
        threads += [threading.Thread(target=publisher) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)

        assert errors == []
        live = [s for s in subs if not s.is_terminated]
        assert hub.subscriber_count("m1") == len(live)
