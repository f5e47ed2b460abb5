"""Rescue request model."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from rescue_engine.core.clock import utcnow
from rescue_engine.db.base import Base


class RescueRequest(Base):
    """One stranded-party incident and its assignment/tracking state."""

    __tablename__ = "rescue_requests"
    __table_args__ = (
        # Bounding-box lookups filter on both coordinates
        Index("ix_rescue_requests_lat_lng", "latitude", "longitude"),
        Index("ix_rescue_requests_created_at", "created_at"),
        CheckConstraint(
            "assigned_rescuer_id IS NULL OR assigned_team_id IS NULL",
            name="single_assignment",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True, nullable=False)  # requester
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending | resolved

    vehicle_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    drivetrain: Mapped[str | None] = mapped_column(String(20), nullable=True)
    terrain_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    problem_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    assistance_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    assistance_channel: Mapped[str | None] = mapped_column(String(20), nullable=True)
    assistance_provider: Mapped[str | None] = mapped_column(String(120), nullable=True)

    assigned_rescuer_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)
    assigned_team_id: Mapped[int | None] = mapped_column(Integer, index=True, nullable=True)

    rescuer_latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    rescuer_longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    rescuer_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Per-rescue sequence number, bumped by every published mutation
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_assigned(self) -> bool:
        return self.assigned_rescuer_id is not None or self.assigned_team_id is not None

    @property
    def is_resolved(self) -> bool:
        return self.status == "resolved"
