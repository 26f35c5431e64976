# File: app/routers/health.py | Version: 2.0 | Title: Health & readiness endpoints
import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings
from app.db.session import engine

log = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/healthz")
def healthz() -> dict:
    """
    Liveness probe: returns 200 if the app can serve requests.
    """
    return {"status": "ok"}


@router.get("/readyz")
def readyz():
    """
    Readiness probe: 200 if the DB answers SELECT 1 and DATA_DIR is usable, else 503.
    """
    checks = {"db": "ok", "storage": "ok"}
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        log.warning("Readiness: database unavailable: %s", exc)
        checks["db"] = "error"
    try:
        settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        log.warning("Readiness: data dir unavailable: %s", exc)
        checks["storage"] = "error"

    if "error" in checks.values():
        return JSONResponse({"status": "degraded", **checks}, status_code=503)
    return {"status": "ok", **checks}
