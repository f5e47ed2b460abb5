"""Server-sent events framing for hub subscriptions."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable, Iterable
from typing import Any

from fastapi import Request
from fastapi.responses import StreamingResponse

from rescue_engine.core.config import settings
from rescue_engine.services.stream_hub import Subscription, stream_hub

KEEP_ALIVE = ": keep-alive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(data: dict[str, Any], event: str | None = None, event_id: int | str | None = None) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"data: {json.dumps(data, separators=(',', ':'), default=str)}")
    return "\n".join(lines) + "\n\n"


def rescue_frame(frame: dict[str, Any]) -> str:
    return format_event(frame, event=frame["kind"], event_id=frame["seq"])


def notification_frame(note: dict[str, Any]) -> str:
    return format_event(note, event="notification", event_id=note["id"])


async def event_stream(
    request: Request,
    sub: Subscription,
    render: Callable[[dict[str, Any]], str],
    backlog: Iterable[dict[str, Any]] = (),
) -> AsyncIterator[str]:
    """Drain ``sub`` as SSE text until the client goes away or the hub drops it."""
    try:
        yield f"retry: {settings.stream_retry_ms}\n\n"
        for item in backlog:
            yield render(item)
        while True:
            if await request.is_disconnected():
                break
            frame = await sub.next(timeout=settings.stream_heartbeat_seconds)
            if frame is None:
                if sub.closed:
                    break
                yield KEEP_ALIVE
                continue
            yield render(frame)
    finally:
        stream_hub.unsubscribe(sub)


def sse_response(stream: AsyncIterator[str]) -> StreamingResponse:
    return StreamingResponse(stream, media_type="text/event-stream", headers=SSE_HEADERS)
