"""
Weight Governance API Tests.
"""

import pytest

from tests.conftest import add_validations, add_weights, auth

WEIGHTS = "/api/v1/calibration/weights"
SUGGESTIONS = "/api/v1/calibration/suggestions"


async def _draft(client, session_factory, tenant_id, token) -> dict:
    async with session_factory() as session:
        await add_validations(session, tenant_id, [(72, 48)] * 3 + [(90, 90)] * 3)
        await add_weights(session, tenant_id, version=1)
    resp = await client.post(
        "/api/v1/calibration/runs",
        json={"tenant_id": str(tenant_id), "model_version": 1},
        headers=auth(token),
    )
    return resp.json()["weight_suggestion"]


@pytest.mark.asyncio
async def test_active_weights_not_found(client, viewer_token):
    resp = await client.get(f"{WEIGHTS}/active", headers=auth(viewer_token))
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


@pytest.mark.asyncio
async def test_create_weight_versions(client, admin_token, viewer_token):
    vector = {"engagement": 0.4, "completion": 0.3, "feedback_quality": 0.2, "compliance_linkage": 0.1}

    first = await client.post(WEIGHTS, json=vector, headers=auth(admin_token))
    assert first.status_code == 201
    assert first.json()["version"] == 1

    second = await client.post(WEIGHTS, json={**vector, "engagement": 0.1, "compliance_linkage": 0.4}, headers=auth(admin_token))
    assert second.json()["version"] == 2

    active = await client.get(f"{WEIGHTS}/active", headers=auth(viewer_token))
    assert active.json()["version"] == 2
    assert active.json()["compliance_linkage_weight"] == pytest.approx(0.4)

    versions = await client.get(WEIGHTS, headers=auth(viewer_token))
    assert [(w["version"], w["is_active"]) for w in versions.json()] == [(2, True), (1, False)]


@pytest.mark.asyncio
async def test_create_weights_validation(client, admin_token, analyst_token):
    bad_sum = {"engagement": 0.4, "completion": 0.4, "feedback_quality": 0.4, "compliance_linkage": 0.1}
    assert (await client.post(WEIGHTS, json=bad_sum, headers=auth(admin_token))).status_code == 422

    ok = {"engagement": 0.25, "completion": 0.25, "feedback_quality": 0.25, "compliance_linkage": 0.25}
    assert (await client.post(WEIGHTS, json=ok, headers=auth(analyst_token))).status_code == 403


@pytest.mark.asyncio
async def test_accept_suggestion_activates_new_version(client, session_factory, tenant_a, admin_token):
    draft = await _draft(client, session_factory, tenant_a, admin_token)

    listed = await client.get(SUGGESTIONS, params={"status": "draft"}, headers=auth(admin_token))
    assert [s["id"] for s in listed.json()] == [draft["id"]]

    resp = await client.post(f"{SUGGESTIONS}/{draft['id']}/accept", headers=auth(admin_token))
    assert resp.status_code == 200
    body = resp.json()
    assert body["suggestion"]["status"] == "accepted"
    assert body["suggestion"]["approved_by"]
    assert body["weight"]["version"] == 2
    assert body["weight"]["is_active"] is True
    assert body["weight"]["source_suggestion_id"] == draft["id"]

    active = await client.get(f"{WEIGHTS}/active", headers=auth(admin_token))
    assert active.json()["version"] == 2

    again = await client.post(f"{SUGGESTIONS}/{draft['id']}/accept", headers=auth(admin_token))
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "invalid_transition"


@pytest.mark.asyncio
async def test_reject_suggestion(client, session_factory, tenant_a, admin_token, manager_token):
    draft = await _draft(client, session_factory, tenant_a, admin_token)

    denied = await client.post(f"{SUGGESTIONS}/{draft['id']}/reject", headers=auth(manager_token))
    assert denied.status_code == 403

    resp = await client.post(f"{SUGGESTIONS}/{draft['id']}/reject", headers=auth(admin_token))
    assert resp.status_code == 200
    assert resp.json()["status"] == "rejected"

    active = await client.get(f"{WEIGHTS}/active", headers=auth(admin_token))
    assert active.json()["version"] == 1


@pytest.mark.asyncio
async def test_suggestion_isolated_by_tenant(client, session_factory, tenant_a, admin_token, tenant_b_admin_token):
    draft = await _draft(client, session_factory, tenant_a, admin_token)

    resp = await client.get(f"{SUGGESTIONS}/{draft['id']}", headers=auth(tenant_b_admin_token))
    assert resp.status_code == 404
    resp = await client.post(f"{SUGGESTIONS}/{draft['id']}/accept", headers=auth(tenant_b_admin_token))
    assert resp.status_code == 404
