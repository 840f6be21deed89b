"""
Live Broadcast Hub
==================

Per-match registry of server-sent-event subscriptions. Every mutation of the
registry (subscribe, unsubscribe, publish fan-out, heartbeat, sweep) happens
under one lock; callers never see the underlying lists.

Each Subscription owns a bounded queue that its SSE generator drains. A full
queue or a closed flag means the transport is dead, and the subscription is
dropped on the spot or by the next sweep. Delivery is best-effort and
at-most-once: nothing is retried or replayed.
"""

import json
import logging
import queue
import threading
import time
import uuid

from engine.errors import BroadcastDeliveryFailure

logger = logging.getLogger(__name__)

HEARTBEAT_FRAME = ": heartbeat\n\n"

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_frame(payload):
    return f"data: {json.dumps(payload, default=str)}\n\n"


def new_client_id():
    return f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


class Subscription:
    """One connected observer of one match."""

    def __init__(self, match_id, client_id=None, queue_size=100):
        self.match_id = match_id
        self.client_id = client_id or new_client_id()
        self.connected_at = time.time()
        self.last_activity = self.connected_at
        self._queue = queue.Queue(maxsize=queue_size)
        self._closed = threading.Event()

    @property
    def is_terminated(self):
        return self._closed.is_set()

    def write(self, chunk):
        if self.is_terminated:
            raise BroadcastDeliveryFailure(f"Subscription {self.client_id} is closed")
        try:
            self._queue.put_nowait(chunk)
        except queue.Full:
            # A reader this far behind is treated as gone.
            self._closed.set()
            raise BroadcastDeliveryFailure(f"Subscription {self.client_id} is not draining")
        self.last_activity = time.time()

    def close(self):
        self._closed.set()

    def frames(self, poll_interval=1.0):
        """Yield queued chunks until the subscription is closed.

        Meant to back a streaming Flask response; the generator ends shortly
        after close() is called from any thread.
        """
        while True:
            try:
                chunk = self._queue.get(timeout=poll_interval)
            except queue.Empty:
                if self.is_terminated:
                    return
                continue
            yield chunk

    def drain(self):
        """Everything queued right now, without blocking."""
        chunks = []
        while True:
            try:
                chunks.append(self._queue.get_nowait())
            except queue.Empty:
                return chunks

    def pending(self):
        return self._queue.qsize()

    def __repr__(self):
        return f"<Subscription {self.client_id} match={self.match_id}>"


class BroadcastHub:
    def __init__(self, heartbeat_seconds=15, sweep_seconds=30, queue_size=100):
        self.heartbeat_seconds = heartbeat_seconds
        self.sweep_seconds = sweep_seconds
        self.queue_size = queue_size
        self._subscriptions = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._threads = []

    # ------------------------------------------------------------------ #
    #  Registry
    # ------------------------------------------------------------------ #

    def subscribe(self, match_id):
        """Register a new observer and queue its ``connected`` frame."""
        sub = Subscription(match_id, queue_size=self.queue_size)
        sub.write(format_frame({"type": "connected", "matchId": match_id, "clientId": sub.client_id}))
        with self._lock:
            self._subscriptions.setdefault(match_id, []).append(sub)
            total = len(self._subscriptions[match_id])
        logger.info(f"[Hub] New SSE connection [{sub.client_id}] for match {match_id}. Total: {total}")
        return sub

    def unsubscribe(self, sub):
        sub.close()
        with self._lock:
            self._remove_locked(sub)

    def _remove_locked(self, sub):
        subs = self._subscriptions.get(sub.match_id)
        if not subs:
            return
        if sub in subs:
            subs.remove(sub)
            logger.info(f"[Hub] SSE connection [{sub.client_id}] closed for match {sub.match_id}. "
                        f"Remaining: {len(subs)}")
        if not subs:
            del self._subscriptions[sub.match_id]
            logger.info(f"[Hub] No more connections for match {sub.match_id}, cleaned up")

    # ------------------------------------------------------------------ #
    #  Fan-out
    # ------------------------------------------------------------------ #

    def publish(self, match_id, payload):
        """Serialize ``payload`` once and write it to every live subscriber.

        Returns the number of subscribers the frame was delivered to. Dead
        subscribers are dropped and never retried.
        """
        with self._lock:
            subs = self._subscriptions.get(match_id)
            if not subs:
                logger.debug(f"[Hub] No active connections for match {match_id}")
                return 0

            frame = format_frame(payload)
            delivered = 0
            dead = []
            for sub in subs:
                try:
                    sub.write(frame)
                    delivered += 1
                except BroadcastDeliveryFailure as e:
                    logger.debug(f"[Hub] Dropping subscriber: {e}")
                    dead.append(sub)

            for sub in dead:
                sub.close()
                self._remove_locked(sub)

        logger.debug(f"[Hub] Broadcast {payload.get('type')} to {delivered} clients for match {match_id}")
        return delivered

    def heartbeat(self):
        """Write a comment line to every subscriber; returns how many were kept alive."""
        with self._lock:
            alive = 0
            dead = []
            for subs in self._subscriptions.values():
                for sub in subs:
                    try:
                        sub.write(HEARTBEAT_FRAME)
                        alive += 1
                    except BroadcastDeliveryFailure:
                        dead.append(sub)
            for sub in dead:
                self._remove_locked(sub)
        return alive

    def sweep(self):
        """Drop terminated subscriptions and empty match entries. Returns the count removed."""
        with self._lock:
            removed = 0
            for match_id in list(self._subscriptions):
                subs = self._subscriptions[match_id]
                live = [s for s in subs if not s.is_terminated]
                removed += len(subs) - len(live)
                if live:
                    self._subscriptions[match_id] = live
                else:
                    del self._subscriptions[match_id]
        if removed:
            logger.info(f"[Hub] Cleaned {removed} dead connections")
        return removed

    # ------------------------------------------------------------------ #
    #  Introspection
    # ------------------------------------------------------------------ #

    def subscriber_count(self, match_id=None):
        with self._lock:
            if match_id is not None:
                return len(self._subscriptions.get(match_id, []))
            return sum(len(subs) for subs in self._subscriptions.values())

    def has_match(self, match_id):
        with self._lock:
            return match_id in self._subscriptions

    def stats(self):
        with self._lock:
            return {
                "matches": len(self._subscriptions),
                "subscribers": sum(len(subs) for subs in self._subscriptions.values()),
            }

    # ------------------------------------------------------------------ #
    #  Background loops
    # ------------------------------------------------------------------ #

    def _run_every(self, interval, task, name):
        while not self._stop.wait(interval):
            try:
                task()
            except Exception as e:
                logger.error(f"[Hub] Error in {name} loop: {e}", exc_info=True)

    def start(self):
        if self._threads:
            return
        self._stop.clear()
        self._threads = [
            threading.Thread(target=self._run_every, args=(self.heartbeat_seconds, self.heartbeat, "heartbeat"),
                             name="hub-heartbeat", daemon=True),
            threading.Thread(target=self._run_every, args=(self.sweep_seconds, self.sweep, "sweep"),
                             name="hub-sweep", daemon=True),
        ]
        for thread in self._threads:
            thread.start()
        logger.info(f"[Hub] Heartbeat every {self.heartbeat_seconds}s, sweep every {self.sweep_seconds}s")

    def stop(self, timeout=5):
        self._stop.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads = []
        with self._lock:
            for subs in self._subscriptions.values():
                for sub in subs:
                    sub.close()
            self._subscriptions.clear()
