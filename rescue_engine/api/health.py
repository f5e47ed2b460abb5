"""Health check endpoint."""

from fastapi import APIRouter

from rescue_engine.services.stream_hub import stream_hub

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    """Return API health status."""
    return {"status": "ok", "viewers": stream_hub.viewer_count}
