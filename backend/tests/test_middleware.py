"""
MCT API — Middleware Chain Tests
==================================

What we test:
    ✅ Fixed interceptor order: logging → recovery → CORS → handler
    ✅ OPTIONS short-circuits with 204, empty body, CORS headers, no handler
    ✅ Origin echo for allow-listed origins, first-entry fallback otherwise
    ✅ Handler faults become a generic 500 envelope and are fully logged
    ✅ The server keeps serving after a fault
    ✅ Every request is logged with method/path/client/status/latency
"""

import logging

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from mct_api.main import create_app
from mct_api.middleware import (
    MIDDLEWARE_CHAIN,
    CORSMiddleware,
    RecoveryMiddleware,
    RequestLoggingMiddleware,
)
from mct_api.middleware.cors import ALLOWED_HEADERS, ALLOWED_METHODS, resolve_allowed_origin


@pytest.fixture
def handler_calls():
    return []


@pytest.fixture
def app(app, handler_calls):
    @app.api_route("/probe", methods=["GET", "POST", "OPTIONS"])
    async def probe():
        handler_calls.append("handler")
        return {"ok": True}

    @app.get("/boom")
    async def boom():
        raise RuntimeError("db password is hunter2")

    @app.get("/boom-key")
    async def boom_key():
        return {}["missing"]

    return app


# ══════════════════════════════════════════════════════════════════════════
# Ordering
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def order_probe(monkeypatch, handler_calls):
    """
    Wrap each middleware's dispatch so entry order lands in ``handler_calls``.
    Must run before the first request builds the middleware stack.
    """
    labels = {
        RequestLoggingMiddleware: "logging",
        RecoveryMiddleware: "recovery",
        CORSMiddleware: "cors",
    }
    for cls, label in labels.items():
        original = cls.dispatch

        def make_recording(original, label):
            async def recording(self, request, call_next):
                handler_calls.append(label)
                return await original(self, request, call_next)

            return recording

        monkeypatch.setattr(cls, "dispatch", make_recording(original, label))
    return handler_calls


def test_chain_declares_fixed_order():
    assert MIDDLEWARE_CHAIN == (RequestLoggingMiddleware, RecoveryMiddleware, CORSMiddleware)


def test_registration_matches_declared_chain(app):
    # Starlette runs user_middleware[0] outermost
    installed = [m.cls for m in app.user_middleware]
    assert installed == list(MIDDLEWARE_CHAIN)


@pytest.mark.asyncio
async def test_interceptors_run_in_order_before_handler(order_probe, test_client):
    response = await test_client.get("/probe")

    assert response.status_code == 200
    assert order_probe == ["logging", "recovery", "cors", "handler"]


@pytest.mark.asyncio
async def test_preflight_stops_after_cors(order_probe, test_client):
    response = await test_client.options("/probe")

    assert response.status_code == 204
    assert order_probe == ["logging", "recovery", "cors"]


@pytest.mark.asyncio
async def test_order_holds_for_every_request(order_probe, test_client):
    for _ in range(3):
        await test_client.post("/probe")

    assert order_probe == ["logging", "recovery", "cors", "handler"] * 3


# ══════════════════════════════════════════════════════════════════════════
# CORS
# ══════════════════════════════════════════════════════════════════════════

class TestResolveAllowedOrigin:

    allowed = ("http://localhost:3000", "http://127.0.0.1:3001")

    def test_exact_match_is_echoed(self):
        assert resolve_allowed_origin("http://127.0.0.1:3001", self.allowed) == "http://127.0.0.1:3001"

    def test_unknown_origin_falls_back_to_first_entry(self):
        assert resolve_allowed_origin("https://evil.example", self.allowed) == "http://localhost:3000"

    def test_missing_origin_falls_back_to_first_entry(self):
        assert resolve_allowed_origin(None, self.allowed) == "http://localhost:3000"

    def test_match_is_exact_not_prefix(self):
        assert resolve_allowed_origin("http://localhost:30000", self.allowed) == "http://localhost:3000"

    def test_empty_allow_list_yields_wildcard(self):
        assert resolve_allowed_origin("http://localhost:3000", ()) == "*"


@pytest.mark.asyncio
async def test_preflight_short_circuits_without_handler(test_client, handler_calls):
    response = await test_client.options(
        "/probe",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 204
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert response.headers["access-control-allow-credentials"] == "true"
    assert response.headers["access-control-allow-headers"] == ALLOWED_HEADERS
    assert response.headers["access-control-allow-methods"] == ALLOWED_METHODS
    assert handler_calls == []


@pytest.mark.asyncio
async def test_options_on_unknown_path_is_still_204(test_client):
    response = await test_client.options("/does-not-exist")

    assert response.status_code == 204
    assert "access-control-allow-origin" in response.headers


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "origin",
    [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:3001",
    ],
)
async def test_allow_listed_origin_echoed_on_normal_requests(test_client, origin):
    response = await test_client.get("/probe", headers={"Origin": origin})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == origin
    assert response.headers["access-control-allow-methods"] == ALLOWED_METHODS


@pytest.mark.asyncio
async def test_unlisted_origin_gets_fallback(test_client):
    response = await test_client.get("/probe", headers={"Origin": "https://evil.example"})

    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_allow_list_comes_from_settings(test_settings):
    settings = test_settings.model_copy(
        update={"cors_allowed_origins": "https://app.example.com, https://admin.example.com"}
    )
    app = create_app(settings)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        echoed = await client.get("/api/v1/ping", headers={"Origin": "https://admin.example.com"})
        fallback = await client.get("/api/v1/ping", headers={"Origin": "http://localhost:3000"})

    assert echoed.headers["access-control-allow-origin"] == "https://admin.example.com"
    assert fallback.headers["access-control-allow-origin"] == "https://app.example.com"


# ══════════════════════════════════════════════════════════════════════════
# Recovery
# ══════════════════════════════════════════════════════════════════════════

@pytest.mark.asyncio
async def test_fault_becomes_generic_500_envelope(test_client):
    response = await test_client.get("/boom", headers={"Origin": "http://127.0.0.1:3000"})

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": {"code": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
    }
    assert "hunter2" not in response.text
    assert "Traceback" not in response.text
    assert response.headers["access-control-allow-origin"] == "http://127.0.0.1:3000"


@pytest.mark.asyncio
async def test_fault_is_logged_with_request_context(test_client, caplog):
    caplog.set_level(logging.ERROR, logger="mct_api.middleware.recovery")

    await test_client.get("/boom", headers={"User-Agent": "pytest-agent"})

    record = next(r for r in caplog.records if r.getMessage() == "Panic recovered")
    assert record.levelno == logging.ERROR
    assert record.method == "GET"
    assert record.path == "/boom"
    assert record.client_ip == "127.0.0.1"
    assert record.user_agent == "pytest-agent"
    assert "hunter2" in record.panic
    assert "RuntimeError" in record.stack
    assert "boom" in record.stack


@pytest.mark.asyncio
async def test_server_keeps_serving_after_faults(test_client):
    first = await test_client.get("/boom")
    second = await test_client.get("/boom-key")
    after = await test_client.get("/api/v1/ping")

    assert first.status_code == 500
    assert second.status_code == 500
    assert after.status_code == 200
    assert after.json() == {"success": True, "data": "pong"}


@pytest.mark.asyncio
async def test_app_errors_bypass_recovery(test_client, caplog):
    caplog.set_level(logging.ERROR, logger="mct_api.middleware.recovery")

    response = await test_client.get("/nope")

    assert response.status_code == 404
    assert not [r for r in caplog.records if r.getMessage() == "Panic recovered"]


# ══════════════════════════════════════════════════════════════════════════
# Logging
# ══════════════════════════════════════════════════════════════════════════

def _access_records(caplog):
    return [r for r in caplog.records if r.name == "mct_api.access" and hasattr(r, "status")]


@pytest.mark.asyncio
async def test_every_request_is_logged(test_client, caplog):
    caplog.set_level(logging.DEBUG, logger="mct_api.access")

    await test_client.get("/health")
    await test_client.options("/probe")
    await test_client.get("/boom")

    records = _access_records(caplog)
    assert [(r.method, r.path, r.status) for r in records] == [
        ("GET", "/health", 200),
        ("OPTIONS", "/probe", 204),
        ("GET", "/boom", 500),
    ]
    for record in records:
        assert record.client_ip == "127.0.0.1"
        assert record.duration_ms >= 0


@pytest.mark.asyncio
async def test_log_level_follows_status(test_client, caplog):
    caplog.set_level(logging.DEBUG, logger="mct_api.access")

    await test_client.get("/api/v1/ping")
    await test_client.get("/nope")
    await test_client.get("/boom")

    levels = [r.levelno for r in _access_records(caplog)]
    assert levels == [logging.INFO, logging.WARNING, logging.ERROR]


@pytest.mark.asyncio
async def test_arrival_is_logged_at_debug(test_client, caplog):
    caplog.set_level(logging.DEBUG, logger="mct_api.access")

    await test_client.get("/api/v1/ping")

    arrival = [r for r in caplog.records if r.name == "mct_api.access" and not hasattr(r, "status")]
    assert len(arrival) == 1
    assert arrival[0].levelno == logging.DEBUG
    assert arrival[0].path == "/api/v1/ping"


@pytest_asyncio.fixture
async def failing_downstream_client():
    """Logging middleware directly over an app that raises, with no recovery layer."""
    from starlette.applications import Starlette
    from starlette.routing import Route

    async def explode(request):
        raise ValueError("unrecovered")

    raw = Starlette(routes=[Route("/explode", explode)])
    raw.add_middleware(RequestLoggingMiddleware)
    transport = ASGITransport(app=raw, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_logging_records_500_even_if_fault_escapes(failing_downstream_client, caplog):
    caplog.set_level(logging.DEBUG, logger="mct_api.access")

    await failing_downstream_client.get("/explode")

    records = _access_records(caplog)
    assert [(r.path, r.status) for r in records] == [("/explode", 500)]
