from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.apps.api.deps import api_error, get_client_info, get_db, require_user
from tenantdesk.apps.api.openapi import DEFAULT_ERROR_RESPONSES, SETUP_CONFLICT_RESPONSE
from tenantdesk.apps.api.response import success_response
from tenantdesk.core.errors import DatabaseError, IdempotencyConflictError
from tenantdesk.persistence.repos import consents as consents_repo
from tenantdesk.persistence.repos import entities as entities_repo
from tenantdesk.services.audit import ClientInfo
from tenantdesk.services.auth.context import Principal
from tenantdesk.services.entity_setup import SetupWizardRequest, process_setup


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/entities", tags=["entities"], responses=DEFAULT_ERROR_RESPONSES)


def _internal_error() -> HTTPException:
    return api_error(500, "INTERNAL_ERROR", "Internal server error")


async def _read_setup_request(request: Request) -> SetupWizardRequest:
    # Parsed inside the handler so authentication is always decided first.
    try:
        raw = await request.json()
    except ValueError as exc:
        raise RequestValidationError(
            [{"loc": ("body",), "msg": "Request body must be valid JSON", "type": "json_invalid"}]
        ) from exc
    try:
        return SetupWizardRequest.model_validate(raw)
    except ValidationError as exc:
        raise RequestValidationError(exc.errors(include_url=False)) from exc


@router.post("/setup", status_code=201, responses=SETUP_CONFLICT_RESPONSE)
async def setup_entity(
    request: Request,
    principal: Principal = Depends(require_user),
    client: ClientInfo = Depends(get_client_info),
    db: AsyncSession = Depends(get_db),
) -> JSONResponse:
    payload = await _read_setup_request(request)
    try:
        result = await process_setup(session=db, principal=principal, payload=payload, client=client)
    except IdempotencyConflictError as exc:
        raise api_error(409, "IDEMPOTENCY_IN_PROGRESS", str(exc)) from exc
    except DatabaseError as exc:
        logger.exception("entity_setup_failed tenant_id=%s request_id=%s", principal.tenant_id, client.request_id)
        raise _internal_error() from exc

    # 201 for the first execution, 200 for replays of an already processed key.
    return JSONResponse(
        status_code=201 if result.created else 200,
        content=success_response(data=result.to_payload()),
    )


def _entity_payload(entity, consents) -> dict[str, Any]:
    return {
        "id": entity.id,
        "name": entity.name,
        "country": entity.country,
        "legalForm": entity.legal_form,
        "entityType": entity.entity_type,
        "status": entity.status,
        "licenses": entity.licenses_json or [],
        "registrations": entity.registrations_json or [],
        "consents": [
            {"type": consent.type, "version": consent.version, "acceptedBy": consent.accepted_by}
            for consent in consents
        ],
    }


@router.get("/{entity_id}")
async def get_entity(
    entity_id: str,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> dict[str, Any]:
    # Lets the wizard poll setup status by the setupJobId it was handed.
    try:
        entity = await entities_repo.get_entity_for_tenant(db, tenant_id=principal.tenant_id, entity_id=entity_id)
        consents = (
            await consents_repo.list_consents_for_entity(db, tenant_id=principal.tenant_id, entity_id=entity_id)
            if entity is not None
            else []
        )
    except SQLAlchemyError as exc:
        logger.exception("entity_lookup_failed tenant_id=%s entity_id=%s", principal.tenant_id, entity_id)
        raise _internal_error() from exc
    if entity is None:
        raise api_error(404, "NOT_FOUND", "Entity not found")
    return success_response(data=_entity_payload(entity, consents))
