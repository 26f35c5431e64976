# File: /app/core/error_handlers.py | Version: 2.0 | Title: Domain + Standardized Error Handlers
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import DataEngineError

log = logging.getLogger(__name__)

_CODE_MAP = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    422: "UNPROCESSABLE_ENTITY",
    429: "TOO_MANY_REQUESTS",
    500: "INTERNAL_SERVER_ERROR",
}


def _err(code: int, message: str, machine_code: str | None = None):
    return {"error": {"code": machine_code or _CODE_MAP.get(code, "ERROR"), "message": message}}


def register_exception_handlers(app: FastAPI, *, standardized: bool = False) -> None:
    """
    Domain errors are always mapped to their HTTP status. With ``standardized``
    every error (domain, HTTP, validation, unhandled) uses the ``{"error": ...}`` envelope.
    """

    @app.exception_handler(DataEngineError)
    async def _domain_exc(_req: Request, exc: DataEngineError):
        if standardized:
            content = _err(exc.status_code, exc.message, exc.code)
        else:
            content = {"detail": exc.message, "code": exc.code}
        return JSONResponse(status_code=exc.status_code, content=content)

    if not standardized:
        return

    @app.exception_handler(StarletteHTTPException)
    async def _http_exc(_req: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_err(exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_exc(_req: Request, exc: RequestValidationError):
        return JSONResponse(status_code=422, content=_err(422, "Validation error"))

    @app.exception_handler(Exception)
    async def _unhandled(_req: Request, exc: Exception):
        # Avoid leaking internals
        log.exception("Unhandled error")
        return JSONResponse(status_code=500, content=_err(500, "Internal server error"))
