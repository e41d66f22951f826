"""FastAPI application served by the diagnostic fixtures and used in tests."""

from __future__ import annotations

import asyncio
import os
import time
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

HEALTHY = "healthy"
HEALTH_TIMEOUT = "health_timeout"
FIXTURE_MODES = (HEALTHY, HEALTH_TIMEOUT)


class HealthResponse(BaseModel):
    status: str
    uptimeSeconds: float
    timestamp: str


class ItemsResponse(BaseModel):
    items: list[str]


def create_app(mode: str = HEALTHY) -> FastAPI:
    """Create the fixture app.

    ``healthy`` answers ``/health`` with the strict health contract;
    ``health_timeout`` accepts the connection and never answers.
    """
    if mode not in FIXTURE_MODES:
        raise ValueError(f"Unknown fixture mode: {mode}")

    app = FastAPI(title="buildguard fixture", version="1.0.0")
    started = time.monotonic()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        if mode == HEALTH_TIMEOUT:
            await asyncio.Event().wait()
        return HealthResponse(
            status="ok",
            uptimeSeconds=round(time.monotonic() - started, 3),
            timestamp=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        )

    @app.get("/items", response_model=ItemsResponse)
    async def items() -> ItemsResponse:
        return ItemsResponse(items=["alpha", "beta"])

    return app


def serve(mode: str = HEALTHY, host: str = "127.0.0.1", port: int | None = None) -> None:  # pragma: no cover - integration path
    """Run the fixture app on ``port`` (default: ``$PORT``, then 3000)."""
    bound_port = port if port is not None else int(os.environ.get("PORT", "3000"))
    uvicorn.run(create_app(mode), host=host, port=bound_port, log_level="warning")


__all__ = ["FIXTURE_MODES", "HEALTHY", "HEALTH_TIMEOUT", "HealthResponse", "create_app", "serve"]
