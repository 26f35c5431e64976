# File: /app/main.py | Version: 2.0 | Title: FastAPI App (data engine routers + domain error handlers)
from __future__ import annotations

import importlib
import importlib.util

from fastapi import FastAPI

from app.core.config import settings
from app.core.error_handlers import register_exception_handlers
from app.core.logging import configure_logging
from app.middleware.rate_limit import MemoryRateLimiter
from app.observability.sentry import init_sentry_if_configured

# Initialize logging & observability
configure_logging()
init_sentry_if_configured()

# App
app = FastAPI(title="TableDesk Data API")
app.add_middleware(MemoryRateLimiter)  # no-op unless RATE_LIMIT_ENABLED=true


def include_if_exists(module_path: str, attr_name: str = "router") -> bool:
    spec = importlib.util.find_spec(module_path)
    if not spec:
        return False
    mod = importlib.import_module(module_path)
    router = getattr(mod, attr_name, None)
    if router is not None:
        app.include_router(router)
        return True
    return False


# Required routers
include_if_exists("app.routers.auth")
include_if_exists("app.routers.projects")
include_if_exists("app.routers.tables")
include_if_exists("app.routers.upload")
include_if_exists("app.routers.search")
include_if_exists("app.routers.query")

# Optional routers
include_if_exists("app.routers.health")

# Domain errors always map to 4xx; ENABLE_STD_ERRORS switches to the {"error": ...} envelope
register_exception_handlers(app, standardized=settings.ENABLE_STD_ERRORS)
