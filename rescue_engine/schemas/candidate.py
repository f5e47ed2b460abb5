"""Rescue candidate and assignment schemas."""

from rescue_engine.schemas.common import CamelModel, UtcDatetime
from rescue_engine.schemas.rescue import RescueRead


class CandidateCreate(CamelModel):
    """Empty body offers personal help; teamId offers one of your teams."""

    team_id: int | None = None


class CandidateRead(CamelModel):
    id: int
    rescue_id: int
    user_id: int | None
    team_id: int | None
    status: str
    created_at: UtcDatetime
    responded_at: UtcDatetime | None


class AssignRequest(CamelModel):
    candidate_id: int


class AssignResponse(CamelModel):
    rescue: RescueRead
    candidates: list[CandidateRead]
