"""Rescue requests API."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from rescue_engine.api.sse import event_stream, rescue_frame, sse_response
from rescue_engine.core.config import settings
from rescue_engine.core.deps import Actor, get_current_actor, get_stream_actor
from rescue_engine.core.enums import RescueStatus
from rescue_engine.core.errors import ValidationError
from rescue_engine.db.session import get_db
from rescue_engine.schemas.rescue import (
    DistanceResponse,
    LocationReport,
    LocationReportResult,
    RescueCreate,
    RescueRead,
    RescueUpdate,
)
from rescue_engine.services import location_service, rescue_service
from rescue_engine.services.filters import RescueFilters
from rescue_engine.services.geo_service import Bounds
from rescue_engine.services.stream_hub import stream_hub

router = APIRouter(prefix=f"{settings.api_prefix}/rescue", tags=["rescue"])


class ViewportParams:
    """Bounding box and filter query parameters shared by /all and /stream."""

    def __init__(
        self,
        min_lat: float | None = Query(default=None, alias="minLat"),
        max_lat: float | None = Query(default=None, alias="maxLat"),
        min_lng: float | None = Query(default=None, alias="minLng"),
        max_lng: float | None = Query(default=None, alias="maxLng"),
        status_scope: str | None = Query(default=None, alias="status"),
        created_from: datetime | None = Query(default=None, alias="from"),
        created_to: datetime | None = Query(default=None, alias="to"),
        vehicle_type: str | None = Query(default=None, alias="vehicleType"),
        drivetrain: str | None = Query(default=None),
        terrain_type: str | None = Query(default=None, alias="terrainType"),
        problem_type: str | None = Query(default=None, alias="problemType"),
        assistance_status: str | None = Query(default=None, alias="assistanceStatus"),
        assistance_channel: str | None = Query(default=None, alias="assistanceChannel"),
    ):
        self.bounds = Bounds.from_values(min_lat, max_lat, min_lng, max_lng)
        self.filters = RescueFilters.build(
            scope=status_scope,
            created_from=created_from,
            created_to=created_to,
            vehicle_type=vehicle_type,
            drivetrain=drivetrain,
            terrain_type=terrain_type,
            problem_type=problem_type,
            assistance_status=assistance_status,
            assistance_channel=assistance_channel,
        )


@router.post("/request", response_model=RescueRead, status_code=status.HTTP_201_CREATED)
def create_request(
    body: RescueCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Report a new incident at the given position."""
    return rescue_service.create_rescue(
        db,
        actor.user_id,
        body.latitude,
        body.longitude,
        metadata=body.metadata(),
        message=body.message,
    )


@router.get("/all", response_model=list[RescueRead])
def list_in_bounds(
    viewport: ViewportParams = Depends(),
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Rescues inside the box, newest first. Omit the box for the whole map."""
    return rescue_service.query_by_bounds(db, viewport.bounds, viewport.filters, limit)


@router.get("/my", response_model=list[RescueRead])
def list_mine(
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return rescue_service.list_my_rescues(db, actor.user_id, limit)


@router.get("/stream")
async def stream(
    request: Request,
    viewport: ViewportParams = Depends(),
    actor: Actor = Depends(get_stream_actor),
):
    """Live deltas for the viewport. Fetch /all first; only later changes arrive here."""
    sub = stream_hub.subscribe(viewport.bounds, viewport.filters)
    return sse_response(event_stream(request, sub, rescue_frame))


@router.get("/{rescue_id}", response_model=RescueRead)
def get_request(
    rescue_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return rescue_service.get_rescue(db, rescue_id)


@router.patch("/{rescue_id}", response_model=RescueRead)
def update_request(
    rescue_id: int,
    body: RescueUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Update assistance metadata and/or resolve with {"status": "resolved"}."""
    if body.status is not None and body.status is not RescueStatus.RESOLVED:
        raise ValidationError("status can only be set to resolved", rescue_id=rescue_id, field="status")
    changes = body.model_dump(mode="json", exclude_unset=True, exclude={"status"})
    rescue = None
    if changes:
        rescue = rescue_service.update_assistance(db, rescue_id, actor.user_id, changes)
    if body.status is RescueStatus.RESOLVED:
        rescue = rescue_service.mark_resolved(db, rescue_id, actor.user_id)
    return rescue or rescue_service.get_rescue(db, rescue_id)


@router.post("/{rescue_id}/location", response_model=LocationReportResult)
def report_location(
    rescue_id: int,
    body: LocationReport,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Assigned rescuer's live position. Reports inside the throttle window are dropped."""
    accepted = location_service.report(db, rescue_id, actor.user_id, body.latitude, body.longitude)
    return LocationReportResult(accepted=accepted)


@router.get("/{rescue_id}/distance", response_model=DistanceResponse)
def get_distance(
    rescue_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return DistanceResponse(rescue_id=rescue_id, distance_km=location_service.distance_to(db, rescue_id))
