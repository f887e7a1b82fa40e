from __future__ import annotations

from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from tenantdesk.apps.api.main import create_app
from tenantdesk.tests.utils.auth import create_test_api_key


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


def _setup_payload() -> dict:
    return {
        "country": "AE",
        "tab": "new",
        "businessName": "Audit Co",
        "consentVersion": "v1",
        "idempotencyKey": str(uuid4()),
    }


@pytest.mark.asyncio
async def test_setup_events_are_listed_for_tenant_admins() -> None:
    _raw_admin, admin_headers, _admin_id, _k1 = await create_test_api_key(tenant_id="t1", role="admin")
    _raw_member, member_headers, _member_id, _k2 = await create_test_api_key(tenant_id="t1", role="member")
    _raw_other, other_headers, _other_id, _k3 = await create_test_api_key(tenant_id="t2", role="admin")

    async with _client() as client:
        for _ in range(3):
            created = await client.post("/api/entities/setup", json=_setup_payload(), headers=member_headers)
            assert created.status_code == 201

        page = await client.get(
            "/api/admin/audit/events",
            params={"eventType": "entity.setup.requested", "limit": 2},
            headers=admin_headers,
        )
        assert page.status_code == 200
        data = page.json()["data"]
        assert len(data["items"]) == 2
        assert data["nextOffset"] == 2

        rest = await client.get(
            "/api/admin/audit/events",
            params={"eventType": "entity.setup.requested", "limit": 2, "offset": 2},
            headers=admin_headers,
        )
        assert len(rest.json()["data"]["items"]) == 1
        assert rest.json()["data"]["nextOffset"] is None

        event_id = data["items"][0]["id"]
        detail = await client.get(f"/api/admin/audit/events/{event_id}", headers=admin_headers)
        assert detail.status_code == 200
        assert detail.json()["data"]["metadata"]["country"] == "AE"
        assert detail.json()["data"]["type"] == "entity.setup.requested"

        foreign = await client.get(f"/api/admin/audit/events/{event_id}", headers=other_headers)
        assert foreign.status_code == 404
        other_list = await client.get("/api/admin/audit/events", headers=other_headers)
        assert other_list.json()["data"]["items"] == []

        forbidden = await client.get("/api/admin/audit/events", headers=member_headers)
        assert forbidden.status_code == 403


@pytest.mark.asyncio
async def test_health_and_unknown_routes_use_envelopes() -> None:
    async with _client() as client:
        health = await client.get("/api/health")
        missing = await client.get("/api/nope")
    assert health.json() == {"success": True, "data": {"status": "ok"}}
    assert missing.status_code == 404
    assert missing.json()["success"] is False
    assert missing.json()["error"]["code"] == "NOT_FOUND"
