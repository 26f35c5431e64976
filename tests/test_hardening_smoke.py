# File: tests/test_hardening_smoke.py | Version: 2.0 | Title: Logging, rate limit, sentry, health and error envelope
import json
import logging

import pytest
from fastapi import FastAPI
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from app.core import errors
from app.core.error_handlers import register_exception_handlers
from app.core.logging import JsonConsole, configure_logging
from app.middleware.rate_limit import MemoryRateLimiter
from app.observability.sentry import init_sentry_if_configured


def test_configure_logging_plain_and_json(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("LOG_JSON", "false")
    configure_logging()
    logging.getLogger(__name__).debug("plain-log")

    monkeypatch.setenv("LOG_JSON", "true")
    configure_logging()
    logging.getLogger(__name__).info("json-log")
    assert logging.getLogger("app.engine").level == logging.DEBUG

    monkeypatch.setenv("LOG_LEVEL", "INFO")
    monkeypatch.setenv("LOG_JSON", "false")
    configure_logging()


def test_json_formatter_shape():
    record = logging.LogRecord("app.engine.rows", logging.WARNING, __file__, 1, "row %s", (7,), None)
    payload = json.loads(JsonConsole().format(record))
    assert payload == {"level": "WARNING", "logger": "app.engine.rows", "message": "row 7"}


def _star_app():
    async def ping(request):
        return PlainTextResponse("pong")

    app = Starlette(routes=[Route("/ping", ping), Route("/free", ping)])
    app.add_middleware(MemoryRateLimiter)
    return app


def test_rate_limiter_allows_then_blocks(monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
    monkeypatch.setenv("RATE_LIMIT_WINDOW_SECONDS", "2")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "2")
    monkeypatch.setenv("RATE_LIMIT_PATHS", "/ping")

    client = TestClient(_star_app())
    headers = {"x-forwarded-for": "1.2.3.4"}
    assert client.get("/ping", headers=headers).status_code == 200
    assert client.get("/ping", headers=headers).status_code == 200
    r3 = client.get("/ping", headers=headers)
    assert r3.status_code == 429
    assert r3.json() == {"detail": "Too Many Requests"}
    assert int(r3.headers["Retry-After"]) >= 1

    # unlisted paths and other clients are unaffected
    for _ in range(4):
        assert client.get("/free", headers=headers).status_code == 200
    assert client.get("/ping", headers={"x-forwarded-for": "5.6.7.8"}).status_code == 200


def test_rate_limiter_disabled_by_default(monkeypatch):
    monkeypatch.delenv("RATE_LIMIT_ENABLED", raising=False)
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "1")
    monkeypatch.setenv("RATE_LIMIT_PATHS", "/ping")
    client = TestClient(_star_app())
    assert [client.get("/ping").status_code for _ in range(3)] == [200, 200, 200]


def test_sentry_init_disabled_then_enabled(monkeypatch):
    monkeypatch.delenv("SENTRY_DSN", raising=False)
    assert init_sentry_if_configured() is False

    sentry_sdk = pytest.importorskip("sentry_sdk")
    calls = []
    monkeypatch.setattr(sentry_sdk, "init", lambda **kwargs: calls.append(kwargs))
    monkeypatch.setenv("SENTRY_DSN", "https://dummy-public@o0.ingest.sentry.io/0")
    monkeypatch.setenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")
    monkeypatch.delenv("SENTRY_ENV", raising=False)

    assert init_sentry_if_configured() is True
    assert calls == [
        {
            "dsn": "https://dummy-public@o0.ingest.sentry.io/0",
            "environment": "development",
            "traces_sample_rate": 0.05,
            "send_default_pii": False,
        }
    ]


def test_health_and_readiness(client, engine, monkeypatch):
    import app.routers.health as health

    monkeypatch.setattr(health, "engine", engine)
    assert client.get("/healthz").json() == {"status": "ok"}
    r = client.get("/readyz")
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "ok", "db": "ok", "storage": "ok"}


def _errors_app(standardized: bool) -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app, standardized=standardized)

    @app.get("/missing")
    def missing():
        raise errors.NotFoundOrForbidden("Table not found")

    @app.get("/rejected")
    def rejected():
        raise errors.SandboxRejected("System tables cannot be queried")

    @app.get("/typed/{n}")
    def typed(n: int):
        return {"n": n}

    @app.get("/boom")
    def boom():
        raise RuntimeError("secret internals")

    return app


def test_domain_errors_without_envelope():
    client = TestClient(_errors_app(False))
    r = client.get("/missing")
    assert r.status_code == 404
    assert r.json() == {"detail": "Table not found", "code": "NOT_FOUND"}
    assert client.get("/typed/abc").status_code == 422
    assert "detail" in client.get("/typed/abc").json()


def test_standardized_error_envelope():
    client = TestClient(_errors_app(True), raise_server_exceptions=False)
    r = client.get("/rejected")
    assert r.status_code == 403
    assert r.json() == {
        "error": {"code": "SANDBOX_REJECTED", "message": "System tables cannot be queried"}
    }
    r = client.get("/typed/abc")
    assert r.status_code == 422
    assert r.json()["error"]["code"] == "UNPROCESSABLE_ENTITY"
    r = client.get("/nowhere")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"
    r = client.get("/boom")
    assert r.status_code == 500
    assert r.json() == {"error": {"code": "INTERNAL_SERVER_ERROR", "message": "Internal server error"}}
