"""Rescue filter parsing and in-memory matching."""

from datetime import datetime, timedelta, timezone

import pytest

from rescue_engine.core.enums import StatusScope, VehicleType
from rescue_engine.core.errors import ValidationError
from rescue_engine.services.filters import RescueFilters, RescueSnapshot, parse_choice

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _snapshot(**overrides):
    values = {
        "id": 1,
        "latitude": -38.0,
        "longitude": -57.5,
        "status": "pending",
        "created_at": NOW,
        "metadata": {"vehicle_type": "suv", "terrain_type": "sand"},
    }
    values.update(overrides)
    return RescueSnapshot(**values)


def test_parse_choice():
    assert parse_choice(VehicleType, "truck", "vehicle_type") == "truck"
    assert parse_choice(VehicleType, VehicleType.ATV, "vehicle_type") == "atv"
    assert parse_choice(VehicleType, "", "vehicle_type") is None
    with pytest.raises(ValidationError) as exc:
        parse_choice(VehicleType, "hovercraft", "vehicle_type")
    assert exc.value.field == "vehicle_type"


def test_build_defaults_to_active_scope():
    f = RescueFilters.build()
    assert f.scope is StatusScope.ACTIVE
    assert f.choices == {}


def test_build_rejects_unknown_filter_and_bad_range():
    with pytest.raises(ValidationError):
        RescueFilters.build(colour="red")
    with pytest.raises(ValidationError):
        RescueFilters.build(scope="archived")
    with pytest.raises(ValidationError):
        RescueFilters.build(created_from=NOW, created_to=NOW - timedelta(days=1))


def test_build_treats_naive_times_as_utc():
    f = RescueFilters.build(created_from=datetime(2026, 3, 1))
    assert f.created_from == datetime(2026, 3, 1, tzinfo=timezone.utc)


def test_matches_scope():
    resolved = _snapshot(status="resolved")
    assert not RescueFilters.build().matches(resolved)
    assert RescueFilters.build(scope="resolved").matches(resolved)
    assert RescueFilters.build(scope="all").matches(resolved)
    # A resolve reaches active viewers so they can drop the record
    assert RescueFilters.build().matches(resolved, kind="status")
    assert not RescueFilters.build().matches(resolved, kind="location")


def test_status_delta_respects_resolved_scope():
    pending = _snapshot(status="pending")
    assert not RescueFilters.build(scope="resolved").matches(pending, kind="status")
    assert RescueFilters.build(scope="all").matches(pending, kind="status")


def test_matches_metadata_and_range():
    snap = _snapshot()
    assert RescueFilters.build(vehicle_type="suv", terrain_type="sand").matches(snap)
    assert not RescueFilters.build(vehicle_type="truck").matches(snap)
    assert RescueFilters.build(created_from=NOW - timedelta(hours=1)).matches(snap)
    assert not RescueFilters.build(created_to=NOW - timedelta(hours=1)).matches(snap)
