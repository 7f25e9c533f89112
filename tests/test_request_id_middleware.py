from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.core.app_factory import create_app


@pytest.fixture
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


def test_preserves_incoming_request_id_header(client: TestClient):
    incoming_id = "test-request-id-123"
    resp = client.get("/health", headers={"X-Request-ID": incoming_id})

    assert resp.status_code == 200
    assert resp.headers.get("X-Request-ID") == incoming_id


def test_generates_request_id_when_missing(client: TestClient):
    resp = client.get("/health")

    assert resp.status_code == 200
    generated = resp.headers.get("X-Request-ID")
    assert generated
    assert isinstance(generated, str)
    assert len(generated) > 0

    duration = resp.headers.get("X-Request-Duration-ms")
    assert duration is not None


def test_replaces_oversized_request_id(client: TestClient):
    resp = client.get("/health", headers={"X-Request-ID": "x" * 500})

    generated = resp.headers.get("X-Request-ID")
    assert generated != "x" * 500
    assert len(generated) == 36


def test_request_id_echoed_on_errors(client: TestClient):
    resp = client.post("/v1/zone-ingredients", json={"ingredients": []}, headers={"X-Request-ID": "req-422"})

    assert resp.status_code == 422
    assert resp.headers.get("X-Request-ID") == "req-422"
