from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import Settings, get_settings
from tenantdesk.domain.models import Entity
from tenantdesk.persistence.repos import entities as entities_repo


ENTITY_TYPE_COMPANY = "company"
ENTITY_TYPE_INDIVIDUAL = "individual"
ENTITY_STATUS_PENDING_VERIFICATION = "PENDING_VERIFICATION"


@dataclass(frozen=True)
class LicenseDraft:
    country: str
    authority: str
    license_number: str
    economic_zone_id: str | None = None


@dataclass(frozen=True)
class RegistrationDraft:
    type: str
    value: str


@dataclass(frozen=True)
class EntityDraft:
    country: str
    name: str
    entity_type: str
    legal_form: str | None = None
    licenses: list[LicenseDraft] = field(default_factory=list)
    registrations: list[RegistrationDraft] = field(default_factory=list)


def resolve_license_authority(country: str, settings: Settings | None = None) -> str:
    # Per-country overrides win; everything else falls back to the default authority.
    resolved = settings or get_settings()
    overrides = {code.upper(): authority for code, authority in resolved.setup_license_authorities.items()}
    return overrides.get(country.upper(), resolved.setup_default_license_authority)


def _license_json(license_draft: LicenseDraft) -> dict[str, Any]:
    payload = asdict(license_draft)
    if payload["economic_zone_id"] is None:
        payload.pop("economic_zone_id")
    return payload


async def create_entity(
    session: AsyncSession,
    *,
    tenant_id: str,
    user_id: str,
    draft: EntityDraft,
) -> Entity:
    # Flush so dependent rows (consents) can reference the entity inside the same transaction.
    entity = entities_repo.add_entity(
        session,
        entity_id=uuid4().hex,
        tenant_id=tenant_id,
        created_by=user_id,
        name=draft.name,
        country=draft.country,
        legal_form=draft.legal_form,
        entity_type=draft.entity_type,
        status=ENTITY_STATUS_PENDING_VERIFICATION,
        licenses=[_license_json(item) for item in draft.licenses],
        registrations=[asdict(item) for item in draft.registrations],
    )
    await session.flush()
    return entity
