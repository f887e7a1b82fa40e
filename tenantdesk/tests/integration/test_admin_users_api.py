from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from httpx import ASGITransport, AsyncClient

from tenantdesk.apps.api.main import create_app
from tenantdesk.tests.utils.auth import create_test_api_key
from tenantdesk.tests.utils.seed import seed_preset, seed_user


_BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _seed_directory() -> None:
    await seed_user(tenant_id="t1", name="Ann Lee", email="ann@acme.io", role="member", created_at=_BASE)
    await seed_user(
        tenant_id="t1",
        name="Bob Stone",
        email="bob@acme.io",
        role="member",
        status="invited",
        created_at=_BASE + timedelta(days=2),
    )
    await seed_user(
        tenant_id="t1",
        name="Cara Diaz",
        phone="+971501234567",
        role="manager",
        status="invited",
        created_at=_BASE + timedelta(days=1),
    )
    await seed_user(tenant_id="t2", name="Anna Other", email="anna@other.io", role="member", created_at=_BASE)


@pytest.mark.asyncio
async def test_search_filters_users_and_reports_stats() -> None:
    _raw_key, headers, _user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")
    await _seed_directory()

    async with _client() as client:
        response = await client.get("/api/admin/users", params={"search": "ANN"}, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert [user["name"] for user in data["users"]] == ["Ann Lee"]
    assert data["hasActiveFilters"] is True
    # Three seeded users plus the caller; the other tenant is never loaded.
    assert data["stats"] == {"totalCount": 4, "filteredCount": 1, "isFiltered": True}


@pytest.mark.asyncio
async def test_unfiltered_listing_is_newest_first() -> None:
    _raw_key, headers, _user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")
    await _seed_directory()

    async with _client() as client:
        response = await client.get("/api/admin/users", params={"role": "member"}, headers=headers)

    data = response.json()["data"]
    assert [user["name"] for user in data["users"]] == ["Bob Stone", "Ann Lee"]
    assert data["filters"]["role"] == "member"
    assert data["filters"]["search"] == ""


@pytest.mark.asyncio
async def test_preset_filters_apply_and_query_refines() -> None:
    _raw_key, headers, user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")
    await _seed_directory()
    preset_id = await seed_preset(tenant_id="t1", created_by=user_id, filters={"status": "invited"})

    async with _client() as client:
        preset_only = await client.get("/api/admin/users", params={"presetId": preset_id}, headers=headers)
        refined = await client.get(
            "/api/admin/users",
            params={"presetId": preset_id, "search": "971"},
            headers=headers,
        )
        missing = await client.get("/api/admin/users", params={"presetId": "nope"}, headers=headers)

    assert [user["name"] for user in preset_only.json()["data"]["users"]] == ["Bob Stone", "Cara Diaz"]
    assert [user["name"] for user in refined.json()["data"]["users"]] == ["Cara Diaz"]
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_listing_requires_admin_role() -> None:
    _raw_key, headers, _user_id, _key_id = await create_test_api_key(tenant_id="t1", role="member")
    async with _client() as client:
        response = await client.get("/api/admin/users", headers=headers)
        anonymous = await client.get("/api/admin/users")
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"
    assert anonymous.status_code == 401


@pytest.mark.asyncio
async def test_malformed_stored_preset_values_are_ignored() -> None:
    _raw_key, headers, user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")
    await _seed_directory()
    preset_id = await seed_preset(
        tenant_id="t1",
        created_by=user_id,
        filters={"search": 5, "roles": 7, "status": "invited"},
    )

    async with _client() as client:
        response = await client.get("/api/admin/users", params={"presetId": preset_id}, headers=headers)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["filters"]["search"] == ""
    assert data["filters"]["roles"] == []
    assert [user["name"] for user in data["users"]] == ["Bob Stone", "Cara Diaz"]
