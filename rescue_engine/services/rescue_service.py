"""Rescue record store: lifecycle state, bounding-box queries, publication."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from rescue_engine.core.clock import utcnow
from rescue_engine.core.config import settings
from rescue_engine.core.enums import ASSISTANCE_FIELDS, METADATA_CHOICES, CandidateStatus, RescueStatus
from rescue_engine.core.errors import (
    AlreadyAssigned,
    AlreadyResolved,
    Forbidden,
    NotFound,
    ValidationError,
)
from rescue_engine.core.locks import rescue_locks
from rescue_engine.models.rescue_candidate import RescueCandidate
from rescue_engine.models.rescue_request import RescueRequest
from rescue_engine.schemas.rescue import RescueRead
from rescue_engine.services import notification_service, team_service
from rescue_engine.services.filters import RescueFilters, RescueSnapshot, parse_choice
from rescue_engine.services.geo_service import Bounds, validate_coordinates
from rescue_engine.services.stream_hub import RescueDelta, stream_hub

logger = logging.getLogger(__name__)

PROVIDER_MAX_LENGTH = 120

# Fields carried by each partial delta (None = full record)
_DELTA_FIELDS: dict[str, tuple[str, ...] | None] = {
    "created": None,
    "status": (
        "status",
        "assistance_status",
        "assistance_channel",
        "assistance_provider",
        "resolved_at",
        "updated_at",
    ),
    "assigned": ("assigned_rescuer_id", "assigned_team_id", "updated_at"),
    "location": ("rescuer_latitude", "rescuer_longitude", "rescuer_updated_at"),
    "candidate": ("updated_at",),
}


# ---------- Reads ----------


def get_rescue(db: Session, rescue_id: int) -> RescueRequest:
    rescue = db.get(RescueRequest, rescue_id)
    if not rescue:
        raise NotFound("Rescue not found", rescue_id=rescue_id)
    return rescue


def query_by_bounds(
    db: Session,
    bounds: Bounds,
    filters: RescueFilters | None = None,
    limit: int | None = None,
) -> list[RescueRequest]:
    """Rescues inside ``bounds`` matching ``filters``, newest first, capped."""
    filters = filters or RescueFilters()
    limit = min(limit or settings.query_default_limit, settings.query_max_limit)
    if limit < 1:
        raise ValidationError("limit must be positive", field="limit")
    stmt = (
        select(RescueRequest)
        .where(bounds.clause(RescueRequest.latitude, RescueRequest.longitude), *filters.clauses())
        .order_by(RescueRequest.created_at.desc(), RescueRequest.id.desc())
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def list_my_rescues(db: Session, user_id: int, limit: int = 50) -> list[RescueRequest]:
    """List the requester's own rescues, newest first."""
    result = db.execute(
        select(RescueRequest)
        .where(RescueRequest.user_id == user_id)
        .order_by(RescueRequest.created_at.desc(), RescueRequest.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ---------- Parties ----------


def is_assigned_party(db: Session, rescue: RescueRequest, user_id: int) -> bool:
    """True for the assigned individual or any member of the assigned team."""
    if rescue.assigned_rescuer_id is not None:
        return rescue.assigned_rescuer_id == user_id
    if rescue.assigned_team_id is not None:
        return team_service.is_member(db, user_id, rescue.assigned_team_id)
    return False


def is_party(db: Session, rescue: RescueRequest, user_id: int) -> bool:
    return rescue.user_id == user_id or is_assigned_party(db, rescue, user_id)


def party_user_ids(db: Session, rescue: RescueRequest) -> list[int]:
    """Requester plus everyone on the assigned side."""
    return [rescue.user_id, *team_service.recipient_ids(db, rescue.assigned_rescuer_id, rescue.assigned_team_id)]


# ---------- Writes ----------


def _clean_metadata(metadata: dict[str, Any] | None) -> dict[str, str | None]:
    cleaned: dict[str, str | None] = {}
    for name, value in (metadata or {}).items():
        if name in METADATA_CHOICES:
            cleaned[name] = parse_choice(METADATA_CHOICES[name], value, name)
        elif name == "assistance_provider":
            provider = (value or "").strip() or None
            if provider and len(provider) > PROVIDER_MAX_LENGTH:
                raise ValidationError("assistance_provider is too long", field=name)
            cleaned[name] = provider
        else:
            raise ValidationError(f"Unknown rescue field: {name}", field=name)
    return cleaned


def create_rescue(
    db: Session,
    requester_id: int,
    latitude: float,
    longitude: float,
    metadata: dict[str, Any] | None = None,
    message: str | None = None,
) -> RescueRequest:
    """Store a new pending rescue and announce it to matching viewers."""
    lat, lng = validate_coordinates(latitude, longitude)
    fields = _clean_metadata(metadata)
    text = (message or "").strip() or None
    if text and len(text) > settings.chat_max_length:
        raise ValidationError("message is too long", field="message")

    rescue = RescueRequest(
        user_id=requester_id,
        latitude=lat,
        longitude=lng,
        message=text,
        status=RescueStatus.PENDING.value,
        version=1,
        **fields,
    )
    db.add(rescue)
    try:
        db.flush()
    except Exception:
        db.rollback()
        raise

    # "created" must go out before any other delta for this id
    with rescue_locks.hold(rescue.id):
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(rescue)
        logger.info("Rescue created: id=%s requester=%s at (%.5f, %.5f)", rescue.id, requester_id, lat, lng)
        publish(rescue, "created")
    return rescue


def update_assignment(
    db: Session,
    rescue_id: int,
    *,
    rescuer_id: int | None = None,
    team_id: int | None = None,
) -> None:
    """Set the assignment fields inside the caller's transaction.

    Compare-and-set on "still unassigned and not resolved", so a second
    writer fails even if it bypassed the assignment service's own checks.
    """
    if (rescuer_id is None) == (team_id is None):
        raise ValidationError("Exactly one of rescuer_id or team_id is required", rescue_id=rescue_id)
    result = db.execute(
        update(RescueRequest)
        .where(
            RescueRequest.id == rescue_id,
            RescueRequest.assigned_rescuer_id.is_(None),
            RescueRequest.assigned_team_id.is_(None),
            RescueRequest.status != RescueStatus.RESOLVED.value,
        )
        .values(
            assigned_rescuer_id=rescuer_id,
            assigned_team_id=team_id,
            version=RescueRequest.version + 1,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        return
    status = db.execute(select(RescueRequest.status).where(RescueRequest.id == rescue_id)).scalar_one_or_none()
    if status is None:
        raise NotFound("Rescue not found", rescue_id=rescue_id)
    if status == RescueStatus.RESOLVED.value:
        raise AlreadyResolved("Rescue is already resolved", rescue_id=rescue_id)
    raise AlreadyAssigned("Rescue is already assigned", rescue_id=rescue_id)


def bump_version(db: Session, rescue_id: int) -> None:
    """Advance the per-rescue sequence for a mutation stored elsewhere."""
    db.execute(
        update(RescueRequest)
        .where(RescueRequest.id == rescue_id)
        .values(version=RescueRequest.version + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )


def mark_resolved(db: Session, rescue_id: int, actor_id: int) -> RescueRequest:
    """Close a rescue for good. Requester or assigned party only."""
    with rescue_locks.hold(rescue_id):
        rescue = get_rescue(db, rescue_id)
        if not is_party(db, rescue, actor_id):
            raise Forbidden("Only the requester or the assigned rescuer can resolve", rescue_id=rescue_id)
        if rescue.is_resolved:
            raise AlreadyResolved("Rescue is already resolved", rescue_id=rescue_id)

        now = utcnow()
        try:
            result = db.execute(
                update(RescueRequest)
                .where(RescueRequest.id == rescue_id, RescueRequest.status != RescueStatus.RESOLVED.value)
                .values(
                    status=RescueStatus.RESOLVED.value,
                    resolved_at=now,
                    updated_at=now,
                    version=RescueRequest.version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyResolved("Rescue is already resolved", rescue_id=rescue_id)

            # Open offers die with the rescue
            open_offers = list(
                db.execute(
                    select(RescueCandidate).where(
                        RescueCandidate.rescue_id == rescue_id,
                        RescueCandidate.status == CandidateStatus.PENDING.value,
                    )
                ).scalars().all()
            )
            recipients = [uid for uid in party_user_ids(db, rescue) if uid != actor_id]
            for offer in open_offers:
                recipients.extend(team_service.recipient_ids(db, offer.user_id, offer.team_id))
            db.execute(
                update(RescueCandidate)
                .where(
                    RescueCandidate.rescue_id == rescue_id,
                    RescueCandidate.status == CandidateStatus.PENDING.value,
                )
                .values(status=CandidateStatus.REJECTED.value, responded_at=now)
                .execution_options(synchronize_session=False)
            )
            notes = notification_service.stage(
                db,
                [uid for uid in recipients if uid != actor_id],
                notification_service.RESCUE_RESOLVED,
                rescue_id,
            )
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(rescue)
        logger.info("Rescue resolved: id=%s by=%s", rescue_id, actor_id)
        publish(rescue, "status")
        notification_service.dispatch(notes)
        return rescue


def update_assistance(db: Session, rescue_id: int, actor_id: int, changes: dict[str, Any]) -> RescueRequest:
    """Update assistance status/channel/provider on an open rescue."""
    unknown = set(changes) - set(ASSISTANCE_FIELDS)
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(f"Field cannot be updated: {name}", rescue_id=rescue_id, field=name)
    cleaned = _clean_metadata(changes)

    with rescue_locks.hold(rescue_id):
        rescue = get_rescue(db, rescue_id)
        if not is_party(db, rescue, actor_id):
            raise Forbidden("Only the requester or the assigned rescuer can update assistance", rescue_id=rescue_id)
        if rescue.is_resolved:
            raise AlreadyResolved("Rescue is already resolved", rescue_id=rescue_id)
        if not cleaned:
            return rescue
        try:
            db.execute(
                update(RescueRequest)
                .where(RescueRequest.id == rescue_id)
                .values(**cleaned, version=RescueRequest.version + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.refresh(rescue)
        publish(rescue, "status")
        return rescue


# ---------- Publication ----------


def delta_patch(rescue: RescueRequest, kind: str, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    """camelCase partial payload for a delta of ``kind``."""
    full = RescueRead.model_validate(rescue).model_dump(mode="json", by_alias=True)
    names = _DELTA_FIELDS.get(kind)
    # Resolving brings the rescue into resolved-scope views, which need all of it
    if names is None or (kind == "status" and rescue.is_resolved):
        patch = full
    else:
        keys = [RescueRead.model_fields[name].alias or name for name in names]
        patch = {key: full[key] for key in keys}
        patch["version"] = full["version"]
    if extra:
        patch.update(extra)
    return patch


def publish(rescue: RescueRequest, kind: str, extra: dict[str, Any] | None = None) -> None:
    """Send the current state of ``rescue`` to the stream hub as a delta.

    Callers that mutate an existing rescue hold its lock while publishing, so
    sequence numbers reach subscribers in order.
    """
    delta = RescueDelta(kind=kind, rescue_id=rescue.id, seq=rescue.version, patch=delta_patch(rescue, kind, extra))
    stream_hub.publish(delta, RescueSnapshot.of(rescue))
