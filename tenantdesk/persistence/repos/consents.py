from __future__ import annotations

from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.domain.models import Consent
from tenantdesk.persistence.guards import tenant_select


def add_consent(
    session: AsyncSession,
    *,
    tenant_id: str,
    entity_id: str,
    consent_type: str,
    version: str,
    accepted_by: str,
    ip: str | None,
    user_agent: str | None,
) -> Consent:
    consent = Consent(
        id=uuid4().hex,
        tenant_id=tenant_id,
        entity_id=entity_id,
        type=consent_type,
        version=version,
        accepted_by=accepted_by,
        ip=ip,
        user_agent=user_agent,
    )
    session.add(consent)
    return consent


async def list_consents_for_entity(session: AsyncSession, *, tenant_id: str, entity_id: str) -> list[Consent]:
    result = await session.execute(
        tenant_select(Consent, tenant_id, Consent.entity_id == entity_id)
        .order_by(Consent.created_at, Consent.id)
    )
    return list(result.scalars().all())
