from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Iterator

import pytest
from fastapi import FastAPI

from tests._fixtures.app_builder import AppBuilder
from tests._fixtures.live_server import LiveServer

REPO_ROOT = Path(__file__).resolve().parents[1]


@pytest.fixture
def app_builder(tmp_path: Path) -> AppBuilder:
    """Provide a reusable app builder rooted at the pytest tmp_path."""
    return AppBuilder(tmp_path)


@pytest.fixture
def live_server() -> Iterator[Callable[[FastAPI], LiveServer]]:
    """Start FastAPI apps on loopback; every server is stopped at teardown."""
    started: list[LiveServer] = []

    def _start(app: FastAPI) -> LiveServer:
        server = LiveServer(app).__enter__()
        started.append(server)
        return server

    yield _start
    for server in started:
        server.__exit__(None, None, None)


@pytest.fixture
def child_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Environment for spawned children that can import buildguard from the checkout."""
    existing = os.environ.get("PYTHONPATH")
    value = str(REPO_ROOT) if not existing else os.pathsep.join([str(REPO_ROOT), existing])
    monkeypatch.setenv("PYTHONPATH", value)
    monkeypatch.delenv("INSTALL_MODE", raising=False)
    return dict(os.environ)
