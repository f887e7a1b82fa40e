from __future__ import annotations

from typing import Any

from sqlalchemy import Select, select


class TenantPredicateError(RuntimeError):
    # A repository call was about to run without a tenant boundary.
    # Plain attributes: contextlib assigns __traceback__ on RuntimeErrors it re-raises.
    def __init__(self, message: str, table: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.table = table


def tenant_predicate(model: Any, tenant_id: str | None) -> Any:
    if not tenant_id:
        table = getattr(model, "__tablename__", None)
        raise TenantPredicateError(f"tenant_id is required to query {table or model!r}", table=table)
    return model.tenant_id == tenant_id


def tenant_select(model: Any, tenant_id: str | None, *criteria: Any) -> Select:
    """``SELECT model`` restricted to one tenant, with extra criteria ANDed on."""
    return select(model).where(tenant_predicate(model, tenant_id), *criteria)
