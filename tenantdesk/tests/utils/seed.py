from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from tenantdesk.domain.models import FilterPreset, User
from tenantdesk.persistence.db import SessionLocal


async def seed_user(
    *,
    tenant_id: str,
    name: str,
    email: str | None = None,
    phone: str | None = None,
    role: str = "member",
    status: str = "active",
    created_at: datetime | None = None,
) -> str:
    user_id = uuid4().hex
    async with SessionLocal() as session:
        session.add(
            User(
                id=user_id,
                tenant_id=tenant_id,
                name=name,
                email=email,
                phone=phone,
                role=role,
                status=status,
                is_active=True,
                created_at=created_at or datetime.now(timezone.utc),
            )
        )
        await session.commit()
    return user_id


async def seed_preset(
    *,
    tenant_id: str,
    created_by: str,
    name: str = "preset",
    filters: dict[str, Any] | None = None,
    is_public: bool = False,
    usage_count: int = 0,
) -> str:
    # Insert presets directly to avoid relying on the create endpoint.
    preset_id = uuid4().hex
    async with SessionLocal() as session:
        session.add(
            FilterPreset(
                id=preset_id,
                tenant_id=tenant_id,
                name=name,
                filters_json=filters or {},
                is_public=is_public,
                created_by=created_by,
                usage_count=usage_count,
                last_used_at=None,
                created_at=datetime.now(timezone.utc),
            )
        )
        await session.commit()
    return preset_id
