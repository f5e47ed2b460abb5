"""Viewport stream consumer with reconnect-with-backoff.

States: IDLE -> STREAMING -> BACKOFF(delay) -> STREAMING ... -> CLOSED.
Any transport failure, non-200 response or end of stream moves to BACKOFF;
only ``close()`` reaches CLOSED. Each (re)connect opens the stream, then
refetches the snapshot from ``/all`` before reading deltas; the server
buffers nothing while the client is away.
"""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from rescue_engine.client.collection import RescueCollection
from rescue_engine.core.errors import ConnectionLost

logger = logging.getLogger(__name__)

DEFAULT_RETRY_SECONDS = 3.0
MAX_RETRY_SECONDS = 60.0


class StreamState(str, enum.Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    BACKOFF = "backoff"
    CLOSED = "closed"


@dataclass
class SseEvent:
    event: str | None = None
    id: str | None = None
    data: str = ""
    retry: int | None = None


class SseParser:
    """Incremental text/event-stream parser; feed it chunks as they arrive."""

    def __init__(self) -> None:
        self._buffer = ""
        self._reset()

    def _reset(self) -> None:
        self._event: str | None = None
        self._id: str | None = None
        self._data: list[str] = []
        self._retry: int | None = None

    def feed(self, chunk: str) -> list[SseEvent]:
        self._buffer += chunk.replace("\r\n", "\n")
        events: list[SseEvent] = []
        while "\n" in self._buffer:
            line, self._buffer = self._buffer.split("\n", 1)
            if not line:
                if self._data or self._retry is not None:
                    events.append(SseEvent(self._event, self._id, "\n".join(self._data), self._retry))
                self._reset()
                continue
            if line.startswith(":"):
                continue
            name, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if name == "event":
                self._event = value
            elif name == "id":
                self._id = value
            elif name == "data":
                self._data.append(value)
            elif name == "retry" and value.isdigit():
                self._retry = int(value)
        return events


class RescueStreamClient:
    """Keeps a RescueCollection in sync with one viewport of the server."""

    def __init__(
        self,
        base_url: str,
        token: str,
        params: dict[str, Any] | None = None,
        *,
        collection: RescueCollection | None = None,
        retry_delay: float = DEFAULT_RETRY_SECONDS,
        backoff_factor: float = 1.0,
        max_delay: float = MAX_RETRY_SECONDS,
        api_prefix: str = "/api",
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        on_frame: Callable[[dict[str, Any]], Any] | None = None,
    ) -> None:
        self.base_url = base_url
        self.params = {k: v for k, v in (params or {}).items() if v is not None}
        self.collection = collection or RescueCollection(drop_resolved=self.params.get("status", "active") == "active")
        self.retry_delay = retry_delay
        self.backoff_factor = backoff_factor
        self.max_delay = max_delay
        self.state = StreamState.IDLE
        self.attempts = 0
        self._headers = {"Authorization": f"Bearer {token}", "Accept": "text/event-stream"}
        self._prefix = api_prefix.rstrip("/")
        self._transport = transport
        self._sleep = sleep
        self._on_frame = on_frame
        self._closed = False
        self._task: asyncio.Task | None = None

    def next_delay(self) -> float:
        """Fixed delay by default; grows by ``backoff_factor`` per failed attempt."""
        delay = self.retry_delay * (self.backoff_factor ** max(self.attempts - 1, 0))
        return min(delay, self.max_delay)

    async def run(self) -> None:
        """Connect and keep reconnecting until ``close()``."""
        self._task = asyncio.current_task()
        try:
            while not self._closed:
                try:
                    await self._connect_once()
                    raise ConnectionLost("stream ended")
                except (httpx.HTTPError, ConnectionLost) as exc:
                    if self._closed:
                        break
                    self.attempts += 1
                    delay = self.next_delay()
                    self.state = StreamState.BACKOFF
                    logger.warning("Rescue stream lost (%s); retrying in %.1fs", exc, delay)
                    await self._sleep(delay)
        except asyncio.CancelledError:
            if not self._closed:
                raise
        finally:
            self.state = StreamState.CLOSED
            self._task = None

    async def close(self) -> None:
        self._closed = True
        self.state = StreamState.CLOSED
        task = self._task
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    @property
    def closed(self) -> bool:
        return self._closed

    async def _connect_once(self) -> None:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers,
            transport=self._transport,
            timeout=httpx.Timeout(10.0, read=None),
        ) as client:
            # Subscribe first; deltas buffered while the snapshot loads are
            # merged by seq afterwards.
            async with client.stream("GET", f"{self._prefix}/rescue/stream", params=self.params) as response:
                if response.status_code != 200:
                    raise ConnectionLost(f"stream refused with HTTP {response.status_code}")
                snapshot = await client.get(f"{self._prefix}/rescue/all", params=self.params)
                if snapshot.status_code != 200:
                    raise ConnectionLost(f"snapshot failed with HTTP {snapshot.status_code}")
                self.collection.load(snapshot.json())
                self.state = StreamState.STREAMING
                self.attempts = 0
                parser = SseParser()
                async for chunk in response.aiter_text():
                    for event in parser.feed(chunk):
                        self._handle(event)
                    if self._closed:
                        return

    def _handle(self, event: SseEvent) -> None:
        if event.retry is not None:
            self.retry_delay = event.retry / 1000
        if not event.data:
            return
        try:
            frame = json.loads(event.data)
        except ValueError:
            logger.debug("Ignoring malformed frame: %r", event.data[:200])
            return
        if not isinstance(frame, dict) or not self.collection.apply(frame):
            return
        if self._on_frame is not None:
            self._on_frame(frame)
