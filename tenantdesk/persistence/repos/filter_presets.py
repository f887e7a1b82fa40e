from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.domain.models import FilterPreset
from tenantdesk.persistence.guards import tenant_predicate, tenant_select


async def get_preset_for_tenant(session: AsyncSession, *, tenant_id: str, preset_id: str) -> FilterPreset | None:
    # Cross-tenant ids resolve to None so existence is never leaked.
    result = await session.execute(tenant_select(FilterPreset, tenant_id, FilterPreset.id == preset_id))
    return result.scalar_one_or_none()


async def list_visible_presets(session: AsyncSession, *, tenant_id: str, user_id: str) -> list[FilterPreset]:
    result = await session.execute(
        tenant_select(
            FilterPreset,
            tenant_id,
            or_(FilterPreset.is_public.is_(True), FilterPreset.created_by == user_id),
        )
        .order_by(FilterPreset.usage_count.desc(), FilterPreset.name, FilterPreset.id)
    )
    return list(result.scalars().all())


def add_preset(
    session: AsyncSession,
    *,
    tenant_id: str,
    created_by: str,
    name: str,
    filters: dict[str, Any],
    is_public: bool,
    created_at: datetime,
) -> FilterPreset:
    preset = FilterPreset(
        id=uuid4().hex,
        tenant_id=tenant_id,
        name=name,
        filters_json=filters,
        is_public=is_public,
        created_by=created_by,
        usage_count=0,
        last_used_at=None,
        created_at=created_at,
    )
    session.add(preset)
    return preset


async def increment_usage(
    session: AsyncSession,
    *,
    tenant_id: str,
    preset_id: str,
    used_at: datetime,
) -> tuple[int, datetime | None] | None:
    # Single UPDATE ... RETURNING so concurrent callers never lose increments.
    result = await session.execute(
        update(FilterPreset)
        .where(tenant_predicate(FilterPreset, tenant_id), FilterPreset.id == preset_id)
        .values(usage_count=FilterPreset.usage_count + 1, last_used_at=used_at)
        .returning(FilterPreset.usage_count, FilterPreset.last_used_at)
        .execution_options(synchronize_session=False)
    )
    row = result.one_or_none()
    if row is None:
        return None
    return int(row[0]), row[1]
