"""Tests for classified HTTP requests."""

from __future__ import annotations

from typing import Callable

from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse

from buildguard.process import allocate_ephemeral_port
from buildguard.validate.http import (
    CONN_REFUSED,
    HTTP_NON_2XX,
    TIMEOUT,
    code_for_kind,
    http_request_json,
    normalize_client_url,
)
from tests._fixtures.live_server import LiveServer


def _app() -> FastAPI:
    app = FastAPI()

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    @app.get("/text")
    async def text() -> PlainTextResponse:
        return PlainTextResponse("plain")

    @app.get("/down")
    async def down() -> JSONResponse:
        return JSONResponse({"status": "down"}, status_code=503)

    return app


def test_json_response_is_parsed(live_server: Callable[[FastAPI], LiveServer]) -> None:
    server = live_server(_app())

    result = http_request_json(f"{server.base_url}/health")

    assert result.ok is True
    assert result.is_success is True
    assert result.status_code == 200
    assert result.json == {"status": "ok"}


def test_non_json_body_keeps_text(live_server: Callable[[FastAPI], LiveServer]) -> None:
    server = live_server(_app())

    result = http_request_json(f"{server.base_url}/text")

    assert result.ok is True
    assert result.json is None
    assert result.json_error
    assert result.body_text == "plain"


def test_error_status_is_still_a_response(live_server: Callable[[FastAPI], LiveServer]) -> None:
    server = live_server(_app())

    result = http_request_json(f"{server.base_url}/down")

    assert result.ok is True
    assert result.is_success is False
    assert result.status_code == 503


def test_closed_port_is_connection_refused() -> None:
    port = allocate_ephemeral_port()

    result = http_request_json(f"http://127.0.0.1:{port}/health", timeout=1.0)

    assert result.ok is False
    assert result.error is not None
    assert result.error.kind == CONN_REFUSED
    assert result.error.connected is False
    assert result.error.message == f"connect ECONNREFUSED 127.0.0.1:{port}"
    assert result.error.to_dict()["code"] == "ERR_HEALTH_CONNREFUSED"


def test_localhost_urls_are_pinned_to_ipv4() -> None:
    assert normalize_client_url("http://localhost:3000/health") == "http://127.0.0.1:3000/health"
    assert normalize_client_url("http://0.0.0.0:8080/") == "http://127.0.0.1:8080/"
    assert normalize_client_url("http://example.com/health") == "http://example.com/health"


def test_code_for_kind() -> None:
    assert code_for_kind(TIMEOUT) == "ERR_HEALTH_TIMEOUT"
    assert code_for_kind(HTTP_NON_2XX, 500) == "ERR_HEALTH_HTTP_500"
    assert code_for_kind(HTTP_NON_2XX) == "ERR_HEALTH_HTTP_NULL"
