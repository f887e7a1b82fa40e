from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from tenantdesk.domain.models import AuditEvent
from tenantdesk.persistence.db import SessionLocal
from tenantdesk.services.audit import build_event
from tenantdesk.services.maintenance import prune_audit_events


@pytest.mark.asyncio
async def test_prune_removes_only_events_outside_window() -> None:
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    async with SessionLocal() as session:
        for event_type, age_days in (("old", 40), ("recent", 5)):
            session.add(
                build_event(
                    tenant_id="t1",
                    actor_type="system",
                    actor_id=None,
                    actor_role=None,
                    event_type=event_type,
                    outcome="success",
                    occurred_at=now - timedelta(days=age_days),
                )
            )
        await session.commit()

    async with SessionLocal() as session:
        deleted = await prune_audit_events(session, retention_days=30, now=now)
        await session.commit()
    assert deleted == 1

    async with SessionLocal() as session:
        remaining = (await session.execute(select(AuditEvent.event_type))).scalars().all()
    assert remaining == ["recent"]
