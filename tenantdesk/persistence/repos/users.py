from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.domain.models import User
from tenantdesk.persistence.guards import tenant_select


async def list_users_by_tenant(session: AsyncSession, tenant_id: str, *, limit: int) -> list[User]:
    # Filtering happens in memory; the query only bounds and tenant-scopes the source list.
    result = await session.execute(
        tenant_select(User, tenant_id)
        .order_by(User.created_at.desc(), User.id)
        .limit(limit)
    )
    return list(result.scalars().all())
