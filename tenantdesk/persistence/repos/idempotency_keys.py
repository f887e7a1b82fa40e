from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.domain.models import (
    IDEMPOTENCY_STATUS_PENDING,
    IDEMPOTENCY_STATUS_PROCESSED,
    IdempotencyKey,
)
from tenantdesk.persistence.guards import tenant_select


async def get_key(session: AsyncSession, *, tenant_id: str, key: str) -> IdempotencyKey | None:
    result = await session.execute(tenant_select(IdempotencyKey, tenant_id, IdempotencyKey.key == key))
    return result.scalar_one_or_none()


async def lock_key(session: AsyncSession, *, tenant_id: str, key: str) -> IdempotencyKey | None:
    # Row lock so only one transaction resolves an unresolved key; SQLite ignores FOR UPDATE.
    result = await session.execute(
        tenant_select(IdempotencyKey, tenant_id, IdempotencyKey.key == key)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def claim_key(
    session: AsyncSession,
    *,
    tenant_id: str,
    key: str,
    user_id: str,
    entity_type: str,
) -> IdempotencyKey:
    # Flush immediately so the unique constraint fires before any side effect is written.
    record = IdempotencyKey(
        tenant_id=tenant_id,
        key=key,
        user_id=user_id,
        entity_type=entity_type,
        entity_id=None,
        status=IDEMPOTENCY_STATUS_PENDING,
    )
    session.add(record)
    await session.flush()
    return record


def mark_processed(record: IdempotencyKey, *, entity_id: str) -> None:
    record.entity_id = entity_id
    record.status = IDEMPOTENCY_STATUS_PROCESSED
