from __future__ import annotations

from contextlib import asynccontextmanager

import pytest

from tenantdesk.domain.models import FilterPreset, IdempotencyKey, User
from tenantdesk.persistence.guards import TenantPredicateError, tenant_predicate, tenant_select
from tenantdesk.persistence.repos import filter_presets as presets_repo
from tenantdesk.persistence.repos import idempotency_keys as idempotency_repo
from tenantdesk.persistence.repos import users as users_repo


class _UnreachableSession:
    async def execute(self, *args, **kwargs):
        raise AssertionError("statement reached the session without a tenant predicate")


@pytest.mark.parametrize("tenant_id", [None, ""])
def test_missing_tenant_names_the_table(tenant_id: str | None) -> None:
    with pytest.raises(TenantPredicateError) as excinfo:
        tenant_select(User, tenant_id, User.id == "u1")
    assert excinfo.value.table == "users"
    assert "users" in excinfo.value.message


def test_predicate_scopes_to_tenant() -> None:
    statement = tenant_select(FilterPreset, "t1", FilterPreset.id == "p1")
    compiled = str(statement.compile(compile_kwargs={"literal_binds": True}))
    assert "filter_presets.tenant_id = 't1'" in compiled
    assert "filter_presets.id = 'p1'" in compiled
    with pytest.raises(TenantPredicateError) as excinfo:
        tenant_predicate(IdempotencyKey, None)
    assert excinfo.value.table == "idempotency_keys"


async def test_repos_refuse_to_query_without_tenant() -> None:
    session = _UnreachableSession()
    with pytest.raises(TenantPredicateError) as excinfo:
        await idempotency_repo.get_key(session, tenant_id="", key="k")  # type: ignore[arg-type]
    assert excinfo.value.table == "idempotency_keys"
    with pytest.raises(TenantPredicateError) as excinfo:
        await presets_repo.get_preset_for_tenant(session, tenant_id=None, preset_id="p")  # type: ignore[arg-type]
    assert excinfo.value.table == "filter_presets"
    with pytest.raises(TenantPredicateError) as excinfo:
        await users_repo.list_users_by_tenant(session, None, limit=10)  # type: ignore[arg-type]
    assert excinfo.value.table == "users"


async def test_error_survives_session_context_manager() -> None:
    @asynccontextmanager
    async def _session_scope():
        yield _UnreachableSession()

    with pytest.raises(TenantPredicateError) as excinfo:
        async with _session_scope() as session:
            await users_repo.list_users_by_tenant(session, "", limit=1)  # type: ignore[arg-type]
    assert excinfo.value.table == "users"
