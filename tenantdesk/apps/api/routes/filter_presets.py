from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.apps.api.deps import api_error, get_db, require_user
from tenantdesk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantdesk.apps.api.response import flat_success_response, success_response
from tenantdesk.core.errors import DatabaseError, PresetAccessDeniedError, PresetNotFoundError
from tenantdesk.persistence.repos import filter_presets as presets_repo
from tenantdesk.services.auth.context import Principal
from tenantdesk.services.usage_tracker import track_preset_usage
from tenantdesk.services.user_filters import state_from_mapping


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/filter-presets", tags=["filter-presets"], responses=DEFAULT_ERROR_RESPONSES)


class PresetFilters(BaseModel):
    # Unknown keys are dropped; known ones must have the filter state's types.
    search: str = Field(default="", max_length=200)
    roles: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    role: str | None = None
    status: str | None = None


class FilterPresetCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1, max_length=120)
    filters: PresetFilters = Field(default_factory=PresetFilters)
    is_public: bool = Field(default=False, alias="isPublic")


def _to_payload(preset) -> dict[str, Any]:
    return {
        "id": preset.id,
        "name": preset.name,
        "filters": preset.filters_json or {},
        "isPublic": preset.is_public,
        "createdBy": preset.created_by,
        "usageCount": preset.usage_count,
        "lastUsedAt": preset.last_used_at.isoformat() if preset.last_used_at else None,
    }


@router.get("")
async def list_filter_presets(
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    try:
        presets = await presets_repo.list_visible_presets(
            db, tenant_id=principal.tenant_id, user_id=principal.user_id
        )
    except SQLAlchemyError as exc:
        logger.exception("filter_presets_list_failed tenant_id=%s", principal.tenant_id)
        raise api_error(500, "INTERNAL_ERROR", "Failed to list filter presets") from exc
    return success_response(data=[_to_payload(preset) for preset in presets])


@router.post("", status_code=201)
async def create_filter_preset(
    payload: FilterPresetCreateRequest,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    # Normalize through the filter state so presets only ever store known keys.
    filters = state_from_mapping(payload.filters.model_dump()).to_payload()
    try:
        preset = presets_repo.add_preset(
            db,
            tenant_id=principal.tenant_id,
            created_by=principal.user_id,
            name=payload.name,
            filters=filters,
            is_public=payload.is_public,
            created_at=datetime.now(timezone.utc),
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.exception("filter_preset_create_failed tenant_id=%s", principal.tenant_id)
        raise api_error(500, "INTERNAL_ERROR", "Failed to create filter preset") from exc
    logger.info("filter_preset_created tenant_id=%s preset_id=%s", principal.tenant_id, preset.id)
    return success_response(data=_to_payload(preset))


@router.post("/{preset_id}/track-usage")
async def track_usage(
    preset_id: str,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    try:
        snapshot = await track_preset_usage(session=db, principal=principal, preset_id=preset_id)
    except PresetNotFoundError as exc:
        raise api_error(404, "NOT_FOUND", "Preset not found") from exc
    except PresetAccessDeniedError as exc:
        raise api_error(403, "AUTH_FORBIDDEN", "Forbidden") from exc
    except DatabaseError as exc:
        logger.exception("filter_preset_track_usage_failed preset_id=%s", preset_id)
        raise api_error(500, "INTERNAL_ERROR", "Failed to track usage") from exc
    return flat_success_response(**snapshot.to_payload())
