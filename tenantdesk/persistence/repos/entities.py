from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.domain.models import Entity
from tenantdesk.persistence.guards import tenant_select


def add_entity(
    session: AsyncSession,
    *,
    entity_id: str,
    tenant_id: str,
    created_by: str,
    name: str,
    country: str,
    legal_form: str | None,
    entity_type: str,
    status: str,
    licenses: list[dict[str, Any]],
    registrations: list[dict[str, Any]],
) -> Entity:
    entity = Entity(
        id=entity_id,
        tenant_id=tenant_id,
        name=name,
        country=country,
        legal_form=legal_form,
        entity_type=entity_type,
        status=status,
        licenses_json=licenses,
        registrations_json=registrations,
        created_by=created_by,
    )
    session.add(entity)
    return entity


async def get_entity_for_tenant(session: AsyncSession, *, tenant_id: str, entity_id: str) -> Entity | None:
    result = await session.execute(tenant_select(Entity, tenant_id, Entity.id == entity_id))
    return result.scalar_one_or_none()
