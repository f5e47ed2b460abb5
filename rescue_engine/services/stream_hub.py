"""Real-time fan-out of rescue mutations and per-user notifications.

Producers are the synchronous services running on the request thread pool;
consumers are async streaming responses. Frames cross over with
``loop.call_soon_threadsafe`` so they reach each subscriber queue in the order
they were offered. Publication for one rescue id is serialized, which keeps
deltas for that rescue in publish order for every subscriber.

Delivery is best-effort and at-most-once: nothing is buffered for a client
once its connection is gone, and a subscriber whose queue overflows is closed
so that it reconnects and refetches.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any

from rescue_engine.core.config import settings
from rescue_engine.core.locks import KeyedLock
from rescue_engine.services.filters import RescueFilters, RescueSnapshot
from rescue_engine.services.geo_service import Bounds

logger = logging.getLogger(__name__)

DELTA_KINDS = frozenset({"created", "status", "assigned", "location", "candidate", "message"})

_CLOSED = object()


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    CLOSED = "closed"
    CLOSED_ERROR = "closed_error"


@dataclass(frozen=True)
class RescueDelta:
    """Partial update for one rescue, to be merged by id on the client."""

    kind: str
    rescue_id: int
    seq: int
    patch: dict[str, Any]

    def __post_init__(self) -> None:
        if self.kind not in DELTA_KINDS:
            raise ValueError(f"Unknown delta kind: {self.kind}")

    def to_frame(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "rescueId": self.rescue_id,
            "seq": self.seq,
            "rescue": {**self.patch, "id": self.rescue_id},
        }


class Subscription:
    """One live connection fed through a bounded asyncio queue."""

    def __init__(self, loop: asyncio.AbstractEventLoop, queue_size: int) -> None:
        self._loop = loop
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=queue_size)
        self.state = ConnectionState.CONNECTING

    @property
    def closed(self) -> bool:
        return self.state in (ConnectionState.CLOSED, ConnectionState.CLOSED_ERROR)

    def offer(self, frame: dict[str, Any]) -> None:
        """Queue a frame from any thread."""
        if self.closed:
            return
        try:
            self._loop.call_soon_threadsafe(self._put, frame)
        except RuntimeError:
            # Owning loop already shut down
            self.state = ConnectionState.CLOSED_ERROR

    def close(self, *, error: bool = False) -> None:
        if self.closed:
            return
        self.state = ConnectionState.CLOSED_ERROR if error else ConnectionState.CLOSED
        try:
            self._loop.call_soon_threadsafe(self._wake)
        except RuntimeError:
            pass

    async def next(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Next frame, or None on timeout or once the subscription is closed.

        Frames still queued when the subscription closes are discarded.
        """
        if self.closed:
            return None
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED or self.closed:
            return None
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict[str, Any]:
        frame = await self.next()
        if frame is None:
            raise StopAsyncIteration
        return frame

    def _put(self, frame: dict[str, Any]) -> None:
        if self.closed:
            return
        try:
            self._queue.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning("Subscriber queue overflow, dropping %s", self)
            self.state = ConnectionState.CLOSED_ERROR
            self._wake()

    def _wake(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)


class ViewportSubscription(Subscription):
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        queue_size: int,
        bounds: Bounds,
        filters: RescueFilters,
    ) -> None:
        super().__init__(loop, queue_size)
        self.bounds = bounds
        self.filters = filters

    def wants(self, kind: str, snapshot: RescueSnapshot) -> bool:
        if not self.bounds.contains(snapshot.latitude, snapshot.longitude):
            return False
        return self.filters.matches(snapshot, kind=kind)

    def __repr__(self) -> str:
        return f"<ViewportSubscription {self.bounds} {self.state.value}>"


class UserSubscription(Subscription):
    def __init__(self, loop: asyncio.AbstractEventLoop, queue_size: int, user_id: int) -> None:
        super().__init__(loop, queue_size)
        self.user_id = user_id

    def __repr__(self) -> str:
        return f"<UserSubscription user={self.user_id} {self.state.value}>"


class StreamHub:
    """Dispatch tables for viewport and per-user subscriptions."""

    def __init__(self, queue_size: int | None = None) -> None:
        self._queue_size = queue_size or settings.stream_queue_size
        # Guards the dispatch tables only; never held while delivering.
        self._tables_lock = threading.Lock()
        self._viewers: set[ViewportSubscription] = set()
        self._users: dict[int, set[UserSubscription]] = {}
        self._ordering = KeyedLock()

    # ---- subscriptions (called from the event loop) ----

    def subscribe(self, bounds: Bounds, filters: RescueFilters) -> ViewportSubscription:
        sub = ViewportSubscription(asyncio.get_running_loop(), self._queue_size, bounds, filters)
        with self._tables_lock:
            self._viewers.add(sub)
        sub.state = ConnectionState.STREAMING
        logger.info("Viewport subscribed: %s (viewers=%s)", bounds, self.viewer_count)
        return sub

    def subscribe_user(self, user_id: int) -> UserSubscription:
        sub = UserSubscription(asyncio.get_running_loop(), self._queue_size, user_id)
        with self._tables_lock:
            self._users.setdefault(user_id, set()).add(sub)
        sub.state = ConnectionState.STREAMING
        logger.info("Notification channel opened: user=%s", user_id)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Remove a subscription from dispatch; safe to call more than once."""
        with self._tables_lock:
            if isinstance(sub, ViewportSubscription):
                self._viewers.discard(sub)
            elif isinstance(sub, UserSubscription):
                subs = self._users.get(sub.user_id)
                if subs is not None:
                    subs.discard(sub)
                    if not subs:
                        del self._users[sub.user_id]
        sub.close(error=sub.state is ConnectionState.CLOSED_ERROR)
        logger.info("Unsubscribed %r", sub)

    # ---- publication (called from any thread) ----

    def publish(self, delta: RescueDelta, snapshot: RescueSnapshot) -> int:
        """Deliver a delta to every viewer whose box and filters match."""
        frame = delta.to_frame()
        delivered = 0
        with self._ordering.hold(delta.rescue_id):
            with self._tables_lock:
                viewers = list(self._viewers)
            for sub in viewers:
                if sub.closed:
                    self.unsubscribe(sub)
                    continue
                if sub.wants(delta.kind, snapshot):
                    sub.offer(frame)
                    delivered += 1
        logger.debug("Published %s rescue=%s seq=%s to %s viewers", delta.kind, delta.rescue_id, delta.seq, delivered)
        return delivered

    def notify(self, user_id: int, event: dict[str, Any]) -> int:
        """Deliver a notification to every open channel of one user."""
        with self._tables_lock:
            subs = list(self._users.get(user_id, ()))
        for sub in subs:
            sub.offer(event)
        return len(subs)

    @property
    def viewer_count(self) -> int:
        with self._tables_lock:
            return len(self._viewers)

    def user_channel_count(self, user_id: int) -> int:
        with self._tables_lock:
            return len(self._users.get(user_id, ()))


# Singleton instance used across the app
stream_hub = StreamHub()
