from __future__ import annotations

import asyncio
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from tenantdesk.apps.api.main import create_app
from tenantdesk.domain.models import FilterPreset
from tenantdesk.persistence.db import SessionLocal
from tenantdesk.persistence.repos import filter_presets as presets_repo
from tenantdesk.tests.utils.auth import create_test_api_key
from tenantdesk.tests.utils.seed import seed_preset


def _client() -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=create_app()), base_url="http://test")


async def _usage_count(preset_id: str) -> int:
    async with SessionLocal() as session:
        preset = await session.get(FilterPreset, preset_id)
        return preset.usage_count


@pytest.mark.asyncio
async def test_track_usage_increments_and_stamps_time() -> None:
    _raw_key, headers, user_id, _key_id = await create_test_api_key(tenant_id="t1", role="manager")
    preset_id = await seed_preset(tenant_id="t1", created_by=user_id, usage_count=4)

    async with _client() as client:
        first = await client.post(f"/api/admin/filter-presets/{preset_id}/track-usage", headers=headers)
        second = await client.post(f"/api/admin/filter-presets/{preset_id}/track-usage", headers=headers)

    assert first.status_code == 200
    body = first.json()
    assert body["success"] is True
    assert body["usageCount"] == 5
    assert datetime.fromisoformat(body["lastUsedAt"]).tzinfo is not None
    assert second.json()["usageCount"] == 6
    assert await _usage_count(preset_id) == 6


@pytest.mark.asyncio
async def test_public_preset_is_usable_by_other_tenant_members() -> None:
    _raw_owner, _owner_headers, owner_id, _k1 = await create_test_api_key(tenant_id="t1", role="admin")
    _raw_member, member_headers, _member_id, _k2 = await create_test_api_key(tenant_id="t1", role="member")
    preset_id = await seed_preset(tenant_id="t1", created_by=owner_id, is_public=True)

    async with _client() as client:
        response = await client.post(f"/api/admin/filter-presets/{preset_id}/track-usage", headers=member_headers)
    assert response.status_code == 200
    assert response.json()["usageCount"] == 1


@pytest.mark.asyncio
async def test_private_preset_of_another_user_is_forbidden() -> None:
    _raw_owner, _owner_headers, owner_id, _k1 = await create_test_api_key(tenant_id="t1", role="admin")
    _raw_other, other_headers, _other_id, _k2 = await create_test_api_key(tenant_id="t1", role="admin")
    preset_id = await seed_preset(tenant_id="t1", created_by=owner_id, is_public=False)

    async with _client() as client:
        response = await client.post(f"/api/admin/filter-presets/{preset_id}/track-usage", headers=other_headers)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"
    assert await _usage_count(preset_id) == 0


@pytest.mark.asyncio
async def test_missing_and_cross_tenant_presets_are_not_found() -> None:
    _raw_a, _headers_a, user_a, _k1 = await create_test_api_key(tenant_id="t1", role="admin")
    _raw_b, headers_b, _user_b, _k2 = await create_test_api_key(tenant_id="t2", role="admin")
    preset_id = await seed_preset(tenant_id="t1", created_by=user_a, is_public=True)

    async with _client() as client:
        missing = await client.post("/api/admin/filter-presets/does-not-exist/track-usage", headers=headers_b)
        foreign = await client.post(f"/api/admin/filter-presets/{preset_id}/track-usage", headers=headers_b)
    assert missing.status_code == 404
    assert foreign.status_code == 404
    assert foreign.json()["error"]["code"] == "NOT_FOUND"
    assert await _usage_count(preset_id) == 0


@pytest.mark.asyncio
async def test_track_usage_requires_authentication() -> None:
    _raw_key, _headers, user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")
    preset_id = await seed_preset(tenant_id="t1", created_by=user_id, is_public=True)
    async with _client() as client:
        response = await client.post(f"/api/admin/filter-presets/{preset_id}/track-usage")
    assert response.status_code == 401
    assert await _usage_count(preset_id) == 0


@pytest.mark.asyncio
async def test_concurrent_usage_is_never_lost() -> None:
    _raw_key, headers, user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")
    preset_id = await seed_preset(tenant_id="t1", created_by=user_id)

    async with _client() as client:
        responses = await asyncio.gather(
            *(
                client.post(f"/api/admin/filter-presets/{preset_id}/track-usage", headers=headers)
                for _ in range(5)
            )
        )

    assert all(response.status_code == 200 for response in responses)
    assert sorted(response.json()["usageCount"] for response in responses) == [1, 2, 3, 4, 5]
    assert await _usage_count(preset_id) == 5


@pytest.mark.asyncio
async def test_create_and_list_presets() -> None:
    _raw_a, headers_a, user_a, _k1 = await create_test_api_key(tenant_id="t1", role="admin")
    _raw_b, headers_b, _user_b, _k2 = await create_test_api_key(tenant_id="t1", role="member")

    async with _client() as client:
        created = await client.post(
            "/api/admin/filter-presets",
            json={"name": "Invited", "filters": {"status": "invited", "team": "ops"}, "isPublic": False},
            headers=headers_a,
        )
        assert created.status_code == 201
        preset = created.json()["data"]
        assert preset["createdBy"] == user_a
        assert preset["usageCount"] == 0
        assert preset["lastUsedAt"] is None
        # Unknown keys are dropped when the preset is stored.
        assert "team" not in preset["filters"]
        assert preset["filters"]["status"] == "invited"

        public = await client.post(
            "/api/admin/filter-presets",
            json={"name": "Admins", "filters": {"role": "admin"}, "isPublic": True},
            headers=headers_a,
        )
        assert public.status_code == 201

        own_list = await client.get("/api/admin/filter-presets", headers=headers_a)
        other_list = await client.get("/api/admin/filter-presets", headers=headers_b)

    assert {item["name"] for item in own_list.json()["data"]} == {"Invited", "Admins"}
    assert [item["name"] for item in other_list.json()["data"]] == ["Admins"]


@pytest.mark.asyncio
async def test_create_preset_validates_name() -> None:
    _raw_key, headers, _user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")
    async with _client() as client:
        response = await client.post("/api/admin/filter-presets", json={"name": ""}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["details"]["errors"][0]["field"] == "name"


@pytest.mark.asyncio
async def test_create_preset_rejects_mistyped_filters() -> None:
    _raw_key, headers, _user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")
    async with _client() as client:
        numeric_search = await client.post(
            "/api/admin/filter-presets",
            json={"name": "Bad search", "filters": {"search": 5}},
            headers=headers,
        )
        scalar_roles = await client.post(
            "/api/admin/filter-presets",
            json={"name": "Bad roles", "filters": {"roles": "admin"}},
            headers=headers,
        )
        listed = await client.get("/api/admin/filter-presets", headers=headers)

    assert numeric_search.status_code == 400
    assert numeric_search.json()["error"]["details"]["errors"][0]["field"] == "filters.search"
    assert scalar_roles.status_code == 400
    assert scalar_roles.json()["error"]["details"]["errors"][0]["field"] == "filters.roles"
    assert listed.json()["data"] == []


@pytest.mark.asyncio
async def test_list_failure_returns_coded_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    _raw_key, headers, _user_id, _key_id = await create_test_api_key(tenant_id="t1", role="admin")

    async def _broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(presets_repo, "list_visible_presets", _broken)
    async with _client() as client:
        response = await client.get("/api/admin/filter-presets", headers=headers)

    assert response.status_code == 500
    error = response.json()["error"]
    assert error == {"code": "INTERNAL_ERROR", "message": "Failed to list filter presets"}
