"""
Middleware Tests.

- Unhandled exceptions return the structured error body with an error_id
- Request id and calibration run id are echoed as headers
"""

import pytest
from httpx import ASGITransport, AsyncClient

from impactcal.main import create_app
from tests.conftest import add_validations, add_weights, auth


@pytest.mark.asyncio
async def test_unhandled_error_uses_structured_body(admin_token):
    app = create_app()

    @app.get("/api/v1/calibration/explode")
    async def explode():
        raise RuntimeError("connection string postgres://secret")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        resp = await c.get(
            "/api/v1/calibration/explode",
            headers={**auth(admin_token), "X-Request-ID": "req-123"},
        )

    assert resp.status_code == 500
    body = resp.json()
    assert body["request_id"] == "req-123"
    assert body["error"]["code"] == "internal_error"
    assert body["error"]["details"]["error_id"]
    assert "secret" not in resp.text


@pytest.mark.asyncio
async def test_calibration_error_has_same_shape(client, admin_token):
    resp = await client.post("/api/v1/calibration/runs", json={"model_version": 1}, headers=auth(admin_token))
    assert resp.status_code == 400
    assert set(resp.json()) == {"error", "request_id"}
    assert set(resp.json()["error"]) == {"code", "message", "details"}


@pytest.mark.asyncio
async def test_run_id_and_request_id_headers(client, session_factory, tenant_a, admin_token):
    async with session_factory() as session:
        await add_validations(session, tenant_a, [(60, 55)] * 3)
        await add_weights(session, tenant_a)

    resp = await client.post(
        "/api/v1/calibration/runs",
        json={"tenant_id": str(tenant_a), "model_version": 1},
        headers=auth(admin_token),
    )
    assert resp.status_code == 200
    assert resp.headers["X-Calibration-Run-ID"] == resp.json()["calibration_run_id"]
    assert resp.headers["X-Request-ID"]

    listing = await client.get("/api/v1/calibration/runs", headers=auth(admin_token))
    assert "X-Calibration-Run-ID" not in listing.headers
