"""Idempotent entity setup for the onboarding wizard.

A setup request carries a client-generated idempotency key. The create-entity
side effect runs at most once per ``(tenant_id, key)``:

* a key that already references an entity short-circuits to
  ``ALREADY_PROCESSED`` without writing anything;
* otherwise the key claim, entity, consent, key resolution and audit event are
  written in one transaction. The ``(tenant_id, key)`` unique constraint makes
  a concurrent first-time request fail on its claim; that request rolls back
  everything it wrote and answers with the winner's entity instead.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import Settings, get_settings
from tenantdesk.core.errors import DatabaseError, IdempotencyConflictError
from tenantdesk.domain.models import IdempotencyKey
from tenantdesk.persistence.repos import consents as consents_repo
from tenantdesk.persistence.repos import idempotency_keys as idempotency_repo
from tenantdesk.services.audit import ClientInfo, record_event
from tenantdesk.services.auth.context import Principal
from tenantdesk.services.entities import (
    ENTITY_STATUS_PENDING_VERIFICATION,
    ENTITY_TYPE_COMPANY,
    ENTITY_TYPE_INDIVIDUAL,
    EntityDraft,
    LicenseDraft,
    RegistrationDraft,
    create_entity,
    resolve_license_authority,
)


logger = logging.getLogger(__name__)

STATUS_ALREADY_PROCESSED = "ALREADY_PROCESSED"
IDEMPOTENCY_ENTITY_TYPE = "entity"
AUDIT_EVENT_SETUP_REQUESTED = "entity.setup.requested"


class RegistrationInput(BaseModel):
    type: str
    value: str


class SetupWizardRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    country: str = Field(min_length=2, max_length=2)
    tab: Literal["existing", "new", "individual"]
    business_name: str = Field(alias="businessName", min_length=1, max_length=255)
    legal_form: str | None = Field(default=None, alias="legalForm")
    license_number: str | None = Field(default=None, alias="licenseNumber")
    economic_zone_id: str | None = Field(default=None, alias="economicZoneId")
    registrations: list[RegistrationInput] | None = None
    consent_version: str = Field(alias="consentVersion")
    idempotency_key: UUID = Field(alias="idempotencyKey")

    @field_validator("country")
    @classmethod
    def _upper_country(cls, value: str) -> str:
        return value.upper()


@dataclass(frozen=True)
class SetupResult:
    entity_id: str
    status: str
    created: bool
    verification_estimate: str | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "entityId": self.entity_id,
            # The verification job is keyed by the entity it verifies.
            "setupJobId": self.entity_id,
            "status": self.status,
        }
        if self.verification_estimate is not None:
            payload["verificationEstimate"] = self.verification_estimate
        return payload


def _already_processed(entity_id: str) -> SetupResult:
    return SetupResult(entity_id=entity_id, status=STATUS_ALREADY_PROCESSED, created=False)


def build_entity_draft(payload: SetupWizardRequest, settings: Settings | None = None) -> EntityDraft:
    licenses: list[LicenseDraft] = []
    if payload.license_number:
        licenses.append(
            LicenseDraft(
                country=payload.country,
                authority=resolve_license_authority(payload.country, settings),
                license_number=payload.license_number,
                economic_zone_id=payload.economic_zone_id,
            )
        )
    return EntityDraft(
        country=payload.country,
        name=payload.business_name,
        legal_form=payload.legal_form,
        entity_type=ENTITY_TYPE_INDIVIDUAL if payload.tab == "individual" else ENTITY_TYPE_COMPANY,
        licenses=licenses,
        registrations=[
            RegistrationDraft(type=item.type, value=item.value) for item in payload.registrations or []
        ],
    )


async def _claim(
    session: AsyncSession,
    *,
    principal: Principal,
    key: str,
    existing: IdempotencyKey | None,
) -> IdempotencyKey:
    if existing is None:
        return await idempotency_repo.claim_key(
            session,
            tenant_id=principal.tenant_id,
            key=key,
            user_id=principal.user_id,
            entity_type=IDEMPOTENCY_ENTITY_TYPE,
        )
    # An unresolved row from an earlier attempt: lock it, then re-check under the lock.
    locked = await idempotency_repo.lock_key(session, tenant_id=principal.tenant_id, key=key)
    if locked is None:
        return await idempotency_repo.claim_key(
            session,
            tenant_id=principal.tenant_id,
            key=key,
            user_id=principal.user_id,
            entity_type=IDEMPOTENCY_ENTITY_TYPE,
        )
    return locked


async def _resolve_conflict(session: AsyncSession, *, tenant_id: str, key: str) -> SetupResult:
    try:
        winner = await idempotency_repo.get_key(session, tenant_id=tenant_id, key=key)
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to re-read idempotency key after conflict") from exc
    if winner is not None and winner.entity_id:
        logger.info("entity_setup_conflict_resolved tenant_id=%s entity_id=%s", tenant_id, winner.entity_id)
        return _already_processed(winner.entity_id)
    raise IdempotencyConflictError("Setup request with this idempotency key is still in progress")


async def process_setup(
    *,
    session: AsyncSession,
    principal: Principal,
    payload: SetupWizardRequest,
    client: ClientInfo | None = None,
    settings: Settings | None = None,
) -> SetupResult:
    resolved_settings = settings or get_settings()
    client = client or ClientInfo()
    tenant_id = principal.tenant_id
    key = str(payload.idempotency_key)

    try:
        existing = await idempotency_repo.get_key(session, tenant_id=tenant_id, key=key)
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to look up idempotency key") from exc
    if existing is not None and existing.entity_id:
        logger.info("entity_setup_replayed tenant_id=%s entity_id=%s", tenant_id, existing.entity_id)
        return _already_processed(existing.entity_id)

    try:
        record = await _claim(session, principal=principal, key=key, existing=existing)
        if record.entity_id:
            # Another request resolved the key while we waited on the row lock.
            await session.rollback()
            return _already_processed(record.entity_id)

        entity = await create_entity(
            session,
            tenant_id=tenant_id,
            user_id=principal.user_id,
            draft=build_entity_draft(payload, resolved_settings),
        )
        consents_repo.add_consent(
            session,
            tenant_id=tenant_id,
            entity_id=entity.id,
            consent_type=resolved_settings.setup_consent_type,
            version=payload.consent_version,
            accepted_by=principal.user_id,
            ip=client.ip_address,
            user_agent=client.user_agent,
        )
        idempotency_repo.mark_processed(record, entity_id=entity.id)
        # Audit the request itself so partially failed verifications remain visible.
        await record_event(
            session=session,
            best_effort=False,
            tenant_id=tenant_id,
            actor_type=principal.auth_method,
            actor_id=principal.user_id,
            actor_role=principal.role,
            event_type=AUDIT_EVENT_SETUP_REQUESTED,
            outcome="success",
            resource_type="entity",
            resource_id=entity.id,
            client=client,
            metadata={"entityId": entity.id, "country": payload.country, "tab": payload.tab},
        )
        await session.commit()
    except IntegrityError:
        await session.rollback()
        return await _resolve_conflict(session, tenant_id=tenant_id, key=key)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise DatabaseError("Failed to persist entity setup") from exc

    logger.info(
        "entity_setup_initiated tenant_id=%s entity_id=%s country=%s tab=%s",
        tenant_id,
        entity.id,
        payload.country,
        payload.tab,
    )
    return SetupResult(
        entity_id=entity.id,
        status=ENTITY_STATUS_PENDING_VERIFICATION,
        created=True,
        verification_estimate=resolved_settings.setup_verification_estimate,
    )
