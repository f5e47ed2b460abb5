"""Rescue coordination engine FastAPI application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from rescue_engine import models  # noqa: F401  (register tables)
from rescue_engine.api import candidates, health, messages, notifications, rescue, ws
from rescue_engine.core.config import settings
from rescue_engine.core.errors import RescueError
from rescue_engine.db.base import Base
from rescue_engine.db.session import engine

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
)

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@app.exception_handler(RescueError)
async def rescue_error_handler(request: Request, exc: RescueError) -> JSONResponse:
    if exc.status_code >= 409:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query values share the ValidationError shape."""
    first = exc.errors()[0] if exc.errors() else {}
    loc = [str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")]
    rescue_id = request.path_params.get("rescue_id")
    return JSONResponse(
        status_code=400,
        content={
            "error": first.get("msg", "Invalid request"),
            "code": "VALIDATION_ERROR",
            "rescueId": int(rescue_id) if rescue_id and str(rescue_id).isdigit() else None,
            "field": ".".join(loc) or None,
        },
    )


# Dev convenience; deployments run the alembic migrations
Base.metadata.create_all(bind=engine)

app.include_router(health.router)
app.include_router(rescue.router)
app.include_router(candidates.router)
app.include_router(messages.router)
app.include_router(notifications.router)
app.include_router(ws.router)
