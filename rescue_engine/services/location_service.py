"""Location relay: live position of the party en route to a rescue."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Hashable

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from rescue_engine.core.clock import utcnow
from rescue_engine.core.config import settings
from rescue_engine.core.enums import RescueStatus
from rescue_engine.core.errors import AlreadyResolved, Forbidden
from rescue_engine.core.locks import rescue_locks
from rescue_engine.models.rescue_request import RescueRequest
from rescue_engine.services import rescue_service
from rescue_engine.services.geo_service import haversine_km, validate_coordinates

logger = logging.getLogger(__name__)

_PRUNE_THRESHOLD = 1024


class LocationThrottle:
    """Minimum interval between accepted reports, per (rescue, actor) key.

    Check and stamp happen under one lock against a monotonic clock, so two
    concurrent reports from the same key cannot both pass.
    """

    def __init__(self, interval: float | None = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.interval = settings.location_throttle_seconds if interval is None else interval
        self._clock = clock
        self._lock = threading.Lock()
        self._last: dict[Hashable, float] = {}

    def allow(self, key: Hashable) -> bool:
        with self._lock:
            now = self._clock()
            last = self._last.get(key)
            if last is not None and now - last < self.interval:
                return False
            self._last[key] = now
            if len(self._last) > _PRUNE_THRESHOLD:
                self._prune(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self._last.clear()

    def _prune(self, now: float) -> None:
        expired = [key for key, stamp in self._last.items() if now - stamp >= self.interval]
        for key in expired:
            del self._last[key]


throttle = LocationThrottle()


def authorize(db: Session, rescue_id: int, actor_id: int) -> bool:
    """True iff actor is the assigned party of an assigned, unresolved rescue."""
    rescue = rescue_service.get_rescue(db, rescue_id)
    return _may_report(db, rescue, actor_id)


def _may_report(db: Session, rescue: RescueRequest, actor_id: int) -> bool:
    return rescue.is_assigned and not rescue.is_resolved and rescue_service.is_assigned_party(db, rescue, actor_id)


def report(db: Session, rescue_id: int, actor_id: int, latitude: float, longitude: float) -> bool:
    """Store the rescuer's position. Returns False when the throttle drops it."""
    lat, lng = validate_coordinates(latitude, longitude)
    with rescue_locks.hold(rescue_id):
        rescue = rescue_service.get_rescue(db, rescue_id)
        if rescue.is_resolved and rescue_service.is_assigned_party(db, rescue, actor_id):
            raise AlreadyResolved("Rescue is already resolved", rescue_id=rescue_id)
        if not _may_report(db, rescue, actor_id):
            raise Forbidden("Only the assigned rescuer can report location", rescue_id=rescue_id)

        if not throttle.allow((rescue_id, actor_id)):
            logger.debug("Location report throttled: rescue=%s actor=%s", rescue_id, actor_id)
            return False

        now = utcnow()
        try:
            result = db.execute(
                update(RescueRequest)
                .where(
                    RescueRequest.id == rescue_id,
                    RescueRequest.status != RescueStatus.RESOLVED.value,
                    or_(RescueRequest.rescuer_updated_at.is_(None), RescueRequest.rescuer_updated_at <= now),
                )
                .values(
                    rescuer_latitude=lat,
                    rescuer_longitude=lng,
                    rescuer_updated_at=now,
                    version=RescueRequest.version + 1,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        if result.rowcount != 1:
            # A newer position is already stored
            return False

        db.refresh(rescue)
        rescue_service.publish(rescue, "location")
        return True


def distance_to(db: Session, rescue_id: int) -> float | None:
    """Great-circle km from the incident to the last rescuer position, if any."""
    rescue = rescue_service.get_rescue(db, rescue_id)
    if rescue.rescuer_latitude is None or rescue.rescuer_longitude is None:
        return None
    return haversine_km(rescue.latitude, rescue.longitude, rescue.rescuer_latitude, rescue.rescuer_longitude)
