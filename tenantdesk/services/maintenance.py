from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import get_settings
from tenantdesk.domain.models import AuditEvent


async def prune_audit_events(
    session: AsyncSession,
    *,
    retention_days: int | None = None,
    now: datetime | None = None,
) -> int:
    # Remove audit events beyond the retention window; the caller commits.
    days = retention_days if retention_days is not None else get_settings().audit_retention_days
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
    result = await session.execute(delete(AuditEvent).where(AuditEvent.occurred_at < cutoff))
    return result.rowcount or 0
