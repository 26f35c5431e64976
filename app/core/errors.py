# File: /app/core/errors.py | Version: 1.0 | Title: Data engine error taxonomy
"""
Domain errors raised by the data engine.

Routers never translate these by hand: ``register_exception_handlers`` maps
each class to its HTTP status and machine-readable code.
"""
from __future__ import annotations


class DataEngineError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundOrForbidden(DataEngineError):
    """Missing and foreign resources look the same to the caller."""

    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, message: str = "Not found"):
        super().__init__(message)


class ValidationError(DataEngineError):
    status_code = 400
    code = "VALIDATION_ERROR"


class SandboxRejected(DataEngineError):
    status_code = 403
    code = "SANDBOX_REJECTED"


class EngineExecutionError(DataEngineError):
    status_code = 400
    code = "QUERY_FAILED"
