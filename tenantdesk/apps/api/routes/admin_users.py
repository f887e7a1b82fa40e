from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.apps.api.deps import api_error, get_db, require_role
from tenantdesk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantdesk.apps.api.response import success_response
from tenantdesk.core.config import get_settings
from tenantdesk.core.errors import DatabaseError, PresetAccessDeniedError, PresetNotFoundError
from tenantdesk.persistence.repos import users as users_repo
from tenantdesk.services.auth.context import Principal
from tenantdesk.services.usage_tracker import load_usable_preset
from tenantdesk.services.user_filters import FilterStateManager, UserItem, state_from_mapping


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["admin-users"], responses=DEFAULT_ERROR_RESPONSES)


@router.get("")
async def list_users(
    search: str | None = Query(default=None, max_length=200),
    role: str | None = None,
    status: str | None = None,
    preset_id: str | None = Query(default=None, alias="presetId"),
    principal: Principal = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    settings = get_settings()
    try:
        users = await users_repo.list_users_by_tenant(
            db, principal.tenant_id, limit=settings.admin_users_page_limit
        )
        preset = (
            await load_usable_preset(db, principal=principal, preset_id=preset_id)
            if preset_id
            else None
        )
    except PresetNotFoundError as exc:
        raise api_error(404, "NOT_FOUND", "Preset not found") from exc
    except PresetAccessDeniedError as exc:
        raise api_error(403, "AUTH_FORBIDDEN", "Forbidden") from exc
    except (SQLAlchemyError, DatabaseError) as exc:
        logger.exception("admin_users_list_failed tenant_id=%s", principal.tenant_id)
        raise api_error(500, "INTERNAL_ERROR", "Failed to list users") from exc

    manager = FilterStateManager([UserItem.from_model(user) for user in users])
    if preset is not None:
        manager.set_filters(state_from_mapping(preset.filters_json))
    # Explicit query parameters refine whatever the preset selected.
    if search is not None:
        manager.update_filter("search", search)
    if role is not None:
        manager.update_filter("role", role)
    if status is not None:
        manager.update_filter("status", status)
    return success_response(data=manager.snapshot())
