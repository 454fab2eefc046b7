"""
Health probes.

- GET /healthz: liveness, no dependencies
- GET /readyz: database reachable and required tables present
"""
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from consultchat.core.database import check_connection, missing_tables

logger = logging.getLogger("consultchat")

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    """Lightweight liveness check (no deps)."""
    return {"status": "ok"}


@router.get("/readyz")
def readyz(request: Request):
    """Readiness check: DB connectivity + required tables."""
    engine = request.app.state.engine
    if not check_connection(engine):
        return JSONResponse(status_code=503, content={"status": "error", "detail": "database unreachable"})

    missing = missing_tables(engine)
    if missing:
        detail = f"missing tables: {', '.join(missing)}"
        logger.warning(f"[readyz] {detail}")
        return JSONResponse(status_code=503, content={"status": "error", "detail": detail})

    return {"status": "ok"}
