"""Rescue request schemas."""

from pydantic import Field

from rescue_engine.core.enums import (
    AssistanceChannel,
    AssistanceStatus,
    Drivetrain,
    ProblemType,
    RescueStatus,
    TerrainType,
    VehicleType,
)
from rescue_engine.schemas.common import CamelModel, UtcDatetime


class RescueCreate(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    message: str | None = Field(default=None, max_length=2000)
    vehicle_type: VehicleType | None = None
    drivetrain: Drivetrain | None = None
    terrain_type: TerrainType | None = None
    problem_type: ProblemType | None = None
    assistance_status: AssistanceStatus | None = None
    assistance_channel: AssistanceChannel | None = None
    assistance_provider: str | None = Field(default=None, max_length=120)

    def metadata(self) -> dict[str, str | None]:
        """Incident/assistance metadata as plain values, unset fields omitted."""
        return self.model_dump(
            mode="json",
            exclude_unset=True,
            exclude={"latitude", "longitude", "message"},
        )


class RescueUpdate(CamelModel):
    """PATCH body: resolve and/or update assistance metadata."""

    status: RescueStatus | None = None
    assistance_status: AssistanceStatus | None = None
    assistance_channel: AssistanceChannel | None = None
    assistance_provider: str | None = Field(default=None, max_length=120)


class RescueRead(CamelModel):
    id: int
    user_id: int
    latitude: float
    longitude: float
    message: str | None
    status: str
    vehicle_type: str | None
    drivetrain: str | None
    terrain_type: str | None
    problem_type: str | None
    assistance_status: str | None
    assistance_channel: str | None
    assistance_provider: str | None
    assigned_rescuer_id: int | None
    assigned_team_id: int | None
    rescuer_latitude: float | None
    rescuer_longitude: float | None
    rescuer_updated_at: UtcDatetime | None
    version: int
    created_at: UtcDatetime
    updated_at: UtcDatetime
    resolved_at: UtcDatetime | None


class LocationReport(CamelModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class LocationReportResult(CamelModel):
    accepted: bool  # False when dropped by the throttle


class DistanceResponse(CamelModel):
    rescue_id: int
    distance_km: float | None  # None until a rescuer position is known
