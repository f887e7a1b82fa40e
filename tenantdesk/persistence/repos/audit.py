from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.domain.models import AuditEvent
from tenantdesk.persistence.guards import tenant_select


@dataclass(frozen=True)
class AuditEventQuery:
    event_type: str | None = None
    resource_type: str | None = None
    resource_id: str | None = None
    actor_id: str | None = None
    occurred_from: datetime | None = None
    occurred_to: datetime | None = None

    def criteria(self) -> list[Any]:
        equals = (
            (AuditEvent.event_type, self.event_type),
            (AuditEvent.resource_type, self.resource_type),
            (AuditEvent.resource_id, self.resource_id),
            (AuditEvent.actor_id, self.actor_id),
        )
        clauses: list[Any] = [column == value for column, value in equals if value]
        if self.occurred_from:
            clauses.append(AuditEvent.occurred_at >= self.occurred_from)
        if self.occurred_to:
            clauses.append(AuditEvent.occurred_at <= self.occurred_to)
        return clauses


async def list_events(
    session: AsyncSession,
    *,
    tenant_id: str,
    query: AuditEventQuery | None = None,
    offset: int = 0,
    limit: int = 50,
) -> list[AuditEvent]:
    # Newest first; id breaks ties between events stamped in the same instant.
    stmt = (
        tenant_select(AuditEvent, tenant_id, *(query or AuditEventQuery()).criteria())
        .order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_event(session: AsyncSession, *, tenant_id: str, event_id: int) -> AuditEvent | None:
    result = await session.execute(tenant_select(AuditEvent, tenant_id, AuditEvent.id == event_id))
    return result.scalar_one_or_none()
