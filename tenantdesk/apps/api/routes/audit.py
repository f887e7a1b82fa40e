from __future__ import annotations

from datetime import datetime
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.apps.api.deps import api_error, get_db, require_role
from tenantdesk.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from tenantdesk.apps.api.response import success_response
from tenantdesk.domain.models import AuditEvent
from tenantdesk.persistence.repos import audit as audit_repo
from tenantdesk.persistence.repos.audit import AuditEventQuery
from tenantdesk.services.auth.context import Principal


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/audit", tags=["audit"], responses=DEFAULT_ERROR_RESPONSES)


def _event_payload(event: AuditEvent) -> dict[str, Any]:
    return {
        "id": event.id,
        "occurredAt": event.occurred_at.isoformat(),
        "type": event.event_type,
        "outcome": event.outcome,
        "actor": {"type": event.actor_type, "id": event.actor_id, "role": event.actor_role},
        "resource": {"type": event.resource_type, "id": event.resource_id},
        "requestId": event.request_id,
        "ipAddress": event.ip_address,
        "userAgent": event.user_agent,
        "metadata": event.metadata_json or {},
        "errorCode": event.error_code,
    }


def _lookup_failed(tenant_id: str) -> HTTPException:
    logger.exception("audit_lookup_failed tenant_id=%s", tenant_id)
    return api_error(500, "INTERNAL_ERROR", "Failed to read audit events")


@router.get("/events")
async def list_audit_events(
    event_type: str | None = Query(default=None, alias="eventType"),
    resource_type: str | None = Query(default=None, alias="resourceType"),
    resource_id: str | None = Query(default=None, alias="resourceId"),
    actor_id: str | None = Query(default=None, alias="actorId"),
    occurred_from: datetime | None = Query(default=None, alias="from"),
    occurred_to: datetime | None = Query(default=None, alias="to"),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    principal: Principal = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    query = AuditEventQuery(
        event_type=event_type,
        resource_type=resource_type,
        resource_id=resource_id,
        actor_id=actor_id,
        occurred_from=occurred_from,
        occurred_to=occurred_to,
    )
    try:
        # One extra row tells us whether another page exists.
        events = await audit_repo.list_events(
            db, tenant_id=principal.tenant_id, query=query, offset=offset, limit=limit + 1
        )
    except SQLAlchemyError as exc:
        raise _lookup_failed(principal.tenant_id) from exc

    has_more = len(events) > limit
    return success_response(
        data={
            "items": [_event_payload(event) for event in events[:limit]],
            "nextOffset": offset + limit if has_more else None,
        }
    )


@router.get("/events/{event_id}")
async def get_audit_event(
    event_id: int,
    principal: Principal = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    try:
        event = await audit_repo.get_event(db, tenant_id=principal.tenant_id, event_id=event_id)
    except SQLAlchemyError as exc:
        raise _lookup_failed(principal.tenant_id) from exc
    if event is None:
        raise api_error(404, "NOT_FOUND", "Audit event not found")
    return success_response(data=_event_payload(event))
