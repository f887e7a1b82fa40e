from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.errors import DatabaseError, PresetAccessDeniedError, PresetNotFoundError
from tenantdesk.domain.models import FilterPreset
from tenantdesk.persistence.repos import filter_presets as presets_repo
from tenantdesk.services.auth.context import Principal


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UsageSnapshot:
    usage_count: int
    last_used_at: datetime | None

    def to_payload(self) -> dict[str, Any]:
        return {
            "usageCount": self.usage_count,
            "lastUsedAt": self.last_used_at.isoformat() if self.last_used_at else None,
        }


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite returns naive datetimes from RETURNING; values are always written in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def can_use_preset(preset: FilterPreset, principal: Principal) -> bool:
    return bool(preset.is_public) or preset.created_by == principal.user_id


async def load_usable_preset(session: AsyncSession, *, principal: Principal, preset_id: str) -> FilterPreset:
    try:
        preset = await presets_repo.get_preset_for_tenant(
            session, tenant_id=principal.tenant_id, preset_id=preset_id
        )
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to load filter preset") from exc
    if preset is None:
        raise PresetNotFoundError(preset_id)
    if not can_use_preset(preset, principal):
        raise PresetAccessDeniedError(preset_id)
    return preset


async def track_preset_usage(
    *,
    session: AsyncSession,
    principal: Principal,
    preset_id: str,
    clock: Callable[[], datetime] = _utc_now,
) -> UsageSnapshot:
    await load_usable_preset(session, principal=principal, preset_id=preset_id)
    try:
        updated = await presets_repo.increment_usage(
            session,
            tenant_id=principal.tenant_id,
            preset_id=preset_id,
            used_at=clock(),
        )
        if updated is None:
            # Deleted between the visibility check and the increment.
            await session.rollback()
            raise PresetNotFoundError(preset_id)
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise DatabaseError("Failed to track filter preset usage") from exc

    usage_count, last_used_at = updated
    logger.info(
        "filter_preset_used tenant_id=%s preset_id=%s usage_count=%s",
        principal.tenant_id,
        preset_id,
        usage_count,
    )
    return UsageSnapshot(usage_count=usage_count, last_used_at=_as_utc(last_used_at))
