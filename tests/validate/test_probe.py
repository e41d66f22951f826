"""Tests for the bounded health probe."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Callable

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from buildguard.contracts.fixture_app import HEALTH_TIMEOUT, create_app
from buildguard.process import allocate_ephemeral_port, start_process
from buildguard.validate.http import CONN_REFUSED, HTTP_NON_2XX, TIMEOUT
from buildguard.validate.probe import PROCESS_EXITED, START_EXIT_CODE, probe_health
from tests._fixtures.live_server import LiveServer


def test_probe_returns_health_json(live_server: Callable[[FastAPI], LiveServer]) -> None:
    server = live_server(create_app())

    result = probe_health(f"{server.base_url}/health", deadline=5.0)

    assert result.ok is True
    assert result.failure is None
    assert result.json["status"] == "ok"
    assert result.attempts == 1


def test_probe_without_listener_is_connection_refused() -> None:
    port = allocate_ephemeral_port()

    result = probe_health(
        f"http://127.0.0.1:{port}/health", per_attempt_timeout=0.2, deadline=0.6, interval=0.05
    )

    assert result.ok is False
    assert result.failure is not None
    assert result.failure.kind == CONN_REFUSED
    assert result.failure.code == "ERR_HEALTH_CONNREFUSED"
    assert result.attempts >= 2


def test_probe_times_out_when_app_never_answers(live_server: Callable[[FastAPI], LiveServer]) -> None:
    server = live_server(create_app(HEALTH_TIMEOUT))

    result = probe_health(
        f"{server.base_url}/health", per_attempt_timeout=0.3, deadline=1.0, interval=0.05
    )

    assert result.ok is False
    assert result.failure is not None
    assert result.failure.kind == TIMEOUT
    assert result.failure.code == "ERR_HEALTH_TIMEOUT"


def test_probe_reports_last_non_2xx_status(live_server: Callable[[FastAPI], LiveServer]) -> None:
    app = FastAPI()

    @app.get("/health")
    async def health() -> JSONResponse:
        return JSONResponse({"status": "starting"}, status_code=503)

    server = live_server(app)

    result = probe_health(f"{server.base_url}/health", deadline=0.5, interval=0.05)

    assert result.failure is not None
    assert result.failure.kind == HTTP_NON_2XX
    assert result.failure.code == "ERR_HEALTH_HTTP_503"
    assert result.failure.details == {"statusCode": 503}


def test_exited_process_is_a_start_failure(tmp_path: Path) -> None:
    handle = start_process(
        [sys.executable, "-c", "import sys; sys.stderr.write('bad config'); sys.exit(4)"],
        cwd=tmp_path,
        quiet=True,
    )
    handle.wait(10)
    port = allocate_ephemeral_port()

    result = probe_health(f"http://127.0.0.1:{port}/health", deadline=5.0, process=handle)

    assert result.ok is False
    assert result.failure is not None
    assert result.failure.kind == PROCESS_EXITED
    assert result.failure.code == START_EXIT_CODE
    payload = result.failure.to_dict()
    assert payload["exitCode"] == 4
    assert payload["stderrSnippet"] == "bad config"
    assert result.attempts == 0


def test_probe_honours_injected_clock() -> None:
    ticks = iter([0.0, 100.0, 100.0])
    sleeps: list[float] = []

    result = probe_health(
        "http://127.0.0.1:9/health",
        deadline=1.0,
        clock=lambda: next(ticks),
        sleep=sleeps.append,
    )

    assert result.ok is False
    assert result.attempts == 0
    assert sleeps == []
