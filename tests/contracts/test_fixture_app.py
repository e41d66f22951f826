"""Tests for the FastAPI app behind the diagnostic fixtures."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from buildguard.contracts.fixture_app import HEALTH_TIMEOUT, create_app


def test_healthy_app_answers_strict_health_contract() -> None:
    client = TestClient(create_app())

    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert isinstance(body["uptimeSeconds"], float)
    assert body["timestamp"].endswith("Z")


def test_items_endpoint() -> None:
    client = TestClient(create_app())
    assert client.get("/items").json() == {"items": ["alpha", "beta"]}


def test_health_timeout_mode_still_serves_items() -> None:
    client = TestClient(create_app(HEALTH_TIMEOUT))
    assert client.get("/items").status_code == 200


def test_unknown_mode_is_rejected() -> None:
    with pytest.raises(ValueError):
        create_app("explode")
