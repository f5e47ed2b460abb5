"""Rescue record store tests: create, bounding-box query, resolve, assistance."""

import threading

import pytest

from rescue_engine.core.errors import AlreadyResolved, Forbidden, NotFound, ValidationError
from rescue_engine.core.locks import rescue_locks
from rescue_engine.services import candidate_service, rescue_service
from rescue_engine.services.filters import RescueFilters
from rescue_engine.services.geo_service import Bounds


def _box(lat, lng, pad=0.01):
    return Bounds.from_values(lat - pad, lat + pad, lng - pad, lng + pad)


@pytest.mark.parametrize("lat,lng", [(-38.0055, -57.5426), (89.99, 179.99), (-89.99, -179.99), (0.0, 0.0)])
def test_created_rescue_is_found_inside_box_only(db, new_id, lat, lng):
    rescue = rescue_service.create_rescue(db, new_id(), lat, lng)
    assert rescue.status == "pending"
    assert rescue.assigned_rescuer_id is None and rescue.assigned_team_id is None
    assert rescue.version == 1

    inside = rescue_service.query_by_bounds(db, _box(lat, lng))
    assert rescue.id in [r.id for r in inside]

    far_lat = lat - 5 if lat > 0 else lat + 5
    outside = rescue_service.query_by_bounds(db, _box(far_lat, lng))
    assert rescue.id not in [r.id for r in outside]


def test_create_rejects_bad_input(db, new_id):
    with pytest.raises(ValidationError) as exc:
        rescue_service.create_rescue(db, new_id(), 91, 0)
    assert exc.value.field == "latitude"
    with pytest.raises(ValidationError) as exc:
        rescue_service.create_rescue(db, new_id(), 0, 0, metadata={"vehicle_type": "spaceship"})
    assert exc.value.field == "vehicle_type"
    with pytest.raises(ValidationError):
        rescue_service.create_rescue(db, new_id(), 0, 0, metadata={"colour": "red"})


def test_create_stores_metadata(db, new_id):
    rescue = rescue_service.create_rescue(
        db,
        new_id(),
        -38.1,
        -57.6,
        metadata={"vehicle_type": "suv", "drivetrain": "four_wd", "terrain_type": "sand", "problem_type": "stuck"},
        message="  Stuck in dunes  ",
    )
    assert rescue.vehicle_type == "suv"
    assert rescue.drivetrain == "four_wd"
    assert rescue.message == "Stuck in dunes"


def test_query_newest_first_filters_and_limit(db, new_id):
    lat, lng = 12.3456, 45.6789
    owner = new_id()
    a = rescue_service.create_rescue(db, owner, lat, lng, metadata={"vehicle_type": "truck"})
    b = rescue_service.create_rescue(db, owner, lat, lng, metadata={"vehicle_type": "car"})
    c = rescue_service.create_rescue(db, owner, lat, lng, metadata={"vehicle_type": "truck"})

    ids = [r.id for r in rescue_service.query_by_bounds(db, _box(lat, lng))]
    assert ids[:3] == [c.id, b.id, a.id]

    trucks = rescue_service.query_by_bounds(db, _box(lat, lng), RescueFilters.build(vehicle_type="truck"))
    assert [r.id for r in trucks][:2] == [c.id, a.id]
    assert b.id not in [r.id for r in trucks]

    assert len(rescue_service.query_by_bounds(db, _box(lat, lng), limit=2)) == 2


def test_query_scope_hides_resolved_by_default(db, new_id):
    lat, lng = 23.4567, 56.789
    owner = new_id()
    rescue = rescue_service.create_rescue(db, owner, lat, lng)
    rescue_service.mark_resolved(db, rescue.id, owner)

    assert rescue.id not in [r.id for r in rescue_service.query_by_bounds(db, _box(lat, lng))]
    resolved = rescue_service.query_by_bounds(db, _box(lat, lng), RescueFilters.build(scope="resolved"))
    assert rescue.id in [r.id for r in resolved]


def test_mark_resolved_twice(db, new_id):
    owner = new_id()
    rescue = rescue_service.create_rescue(db, owner, 1.0, 1.0)

    resolved = rescue_service.mark_resolved(db, rescue.id, owner)
    assert resolved.status == "resolved"
    assert resolved.resolved_at is not None
    assert resolved.version == 2

    with pytest.raises(AlreadyResolved):
        rescue_service.mark_resolved(db, rescue.id, owner)
    assert rescue_service.get_rescue(db, rescue.id).status == "resolved"


def test_mark_resolved_requires_party(db, new_id):
    rescue = rescue_service.create_rescue(db, new_id(), 1.0, 1.0)
    with pytest.raises(Forbidden):
        rescue_service.mark_resolved(db, rescue.id, new_id())
    with pytest.raises(NotFound):
        rescue_service.mark_resolved(db, 987654321, new_id())


def test_resolve_voids_open_candidates(db, new_id):
    owner = new_id()
    rescue = rescue_service.create_rescue(db, owner, 2.0, 2.0)
    candidate = candidate_service.register(db, rescue.id, new_id())

    rescue_service.mark_resolved(db, rescue.id, owner)
    db.refresh(candidate)
    assert candidate.status == "rejected"


def test_update_assistance(db, new_id):
    owner = new_id()
    rescue = rescue_service.create_rescue(db, owner, 3.0, 3.0)

    updated = rescue_service.update_assistance(
        db,
        rescue.id,
        owner,
        {"assistance_status": "en_route", "assistance_channel": "official", "assistance_provider": " Coast Guard "},
    )
    assert updated.assistance_status == "en_route"
    assert updated.assistance_provider == "Coast Guard"
    # assistance "resolved" is metadata, not a lifecycle transition
    updated = rescue_service.update_assistance(db, rescue.id, owner, {"assistance_status": "resolved"})
    assert updated.status == "pending"

    with pytest.raises(Forbidden):
        rescue_service.update_assistance(db, rescue.id, new_id(), {"assistance_status": "on_site"})
    with pytest.raises(ValidationError):
        rescue_service.update_assistance(db, rescue.id, owner, {"latitude": 0})


def test_list_my_rescues(db, new_id):
    owner = new_id()
    first = rescue_service.create_rescue(db, owner, 4.0, 4.0)
    second = rescue_service.create_rescue(db, owner, 4.0, 4.0)
    rescue_service.create_rescue(db, new_id(), 4.0, 4.0)

    assert [r.id for r in rescue_service.list_my_rescues(db, owner)] == [second.id, first.id]


def test_created_is_published_under_the_rescue_lock(db, new_id, monkeypatch):
    real_publish = rescue_service.publish
    contenders = []
    acquired_early = []

    def publish(rescue, kind, extra=None):
        rescue_id = rescue.id
        entered = threading.Event()

        def contend():
            with rescue_locks.hold(rescue_id):
                entered.set()

        thread = threading.Thread(target=contend)
        thread.start()
        contenders.append(thread)
        acquired_early.append(entered.wait(0.2))
        real_publish(rescue, kind, extra)

    monkeypatch.setattr(rescue_service, "publish", publish)
    rescue_service.create_rescue(db, new_id(), 1.0, 1.0)
    for thread in contenders:
        thread.join(timeout=2)

    # another writer on the same id waits until "created" is out
    assert acquired_early == [False]
    assert not any(thread.is_alive() for thread in contenders)


def test_resolve_delta_carries_full_record(db, new_id):
    owner = new_id()
    rescue = rescue_service.create_rescue(db, owner, -38.0, -57.5)
    rescue_service.update_assistance(db, rescue.id, owner, {"assistance_status": "en_route"})
    assert "latitude" not in rescue_service.delta_patch(rescue, "status")

    rescue_service.mark_resolved(db, rescue.id, owner)
    patch = rescue_service.delta_patch(rescue, "status")
    assert patch["latitude"] == -38.0
    assert patch["status"] == "resolved"
    assert patch["version"] == rescue.version
