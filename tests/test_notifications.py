"""Notification API and SSE framing tests."""

import json

import pytest

from rescue_engine.api import sse
from rescue_engine.core.config import settings
from rescue_engine.services.filters import RescueFilters
from rescue_engine.services.geo_service import Bounds
from rescue_engine.services.stream_hub import ConnectionState, StreamHub


def _rescue_with_offer(client, owner, helper):
    rid = client.post("/api/rescue/request", headers=owner, json={"latitude": 5.0, "longitude": 5.0}).json()["id"]
    cid = client.post(f"/api/rescue/{rid}/candidates", headers=helper).json()["id"]
    return rid, cid


def test_lifecycle_notifications(client, auth, new_id):
    owner_id, helper_id = new_id(), new_id()
    owner, helper = auth(owner_id), auth(helper_id)
    rid, cid = _rescue_with_offer(client, owner, helper)

    notes = client.get("/api/notifications", headers=owner).json()
    assert [n["type"] for n in notes] == ["rescue_candidate"]
    assert notes[0]["data"] == {"rescueId": rid, "candidateId": cid, "userId": helper_id, "teamId": None}

    client.post(f"/api/rescue/{rid}/assign", headers=owner, json={"candidateId": cid})
    client.post(f"/api/rescue/{rid}/messages", headers=owner, json={"content": "Where are you?"})
    client.patch(f"/api/rescue/{rid}", headers=owner, json={"status": "resolved"})

    notes = client.get("/api/notifications", headers=helper).json()
    assert [n["type"] for n in notes] == ["rescue_assigned", "rescue_message", "rescue_resolved"]
    assert notes[1]["message"] == "Where are you?"
    ids = [n["id"] for n in notes]
    assert ids == sorted(ids)


def test_mark_read(client, auth, new_id):
    owner, helper = auth(new_id()), auth(new_id())
    _rescue_with_offer(client, owner, helper)
    note = client.get("/api/notifications", headers=owner).json()[0]

    r = client.post(f"/api/notifications/{note['id']}/read", headers=helper)
    assert r.status_code == 403
    r = client.post(f"/api/notifications/{note['id']}/read", headers=owner)
    assert r.status_code == 200
    assert r.json()["readAt"] is not None
    assert note["id"] not in [n["id"] for n in client.get("/api/notifications", headers=owner).json()]

    assert client.post("/api/notifications/987654321/read", headers=owner).status_code == 404


def test_format_event():
    text = sse.format_event({"kind": "created", "seq": 1}, event="created", event_id=1)
    assert text == 'event: created\nid: 1\ndata: {"kind":"created","seq":1}\n\n'


class _FakeRequest:
    def __init__(self):
        self.gone = False

    async def is_disconnected(self):
        return self.gone


@pytest.mark.asyncio
async def test_event_stream_framing(monkeypatch):
    monkeypatch.setattr(settings, "stream_heartbeat_seconds", 0.05)
    hub = StreamHub()
    monkeypatch.setattr(sse, "stream_hub", hub)
    sub = hub.subscribe(Bounds.world(), RescueFilters.build())
    request = _FakeRequest()
    stream = sse.event_stream(request, sub, sse.notification_frame, backlog=[{"id": 4, "type": "rescue_message"}])

    assert await stream.__anext__() == f"retry: {settings.stream_retry_ms}\n\n"
    backlog = await stream.__anext__()
    assert backlog.startswith("event: notification\nid: 4\n")
    assert await stream.__anext__() == sse.KEEP_ALIVE

    sub.offer({"id": 5, "type": "rescue_resolved"})
    frame = await stream.__anext__()
    assert json.loads(frame.split("data: ", 1)[1]) == {"id": 5, "type": "rescue_resolved"}

    request.gone = True
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert hub.viewer_count == 0
    assert sub.state is ConnectionState.CLOSED
