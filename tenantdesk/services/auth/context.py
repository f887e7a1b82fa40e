from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Mapping, Protocol

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.core.config import Settings, get_settings
from tenantdesk.domain.models import ApiKey, User
from tenantdesk.services.auth.api_keys import hash_api_key, looks_like_api_key, normalize_role


logger = logging.getLogger(__name__)


class Principal(BaseModel):
    # Authenticated identity; tenant scope always comes from here, never from request bodies.
    user_id: str
    tenant_id: str
    role: str
    api_key_id: str | None = None
    auth_method: str = "api_key"


class AuthContext(Protocol):
    async def current_user(self) -> Principal | None:
        ...


class StaticAuthContext:
    """Auth context bound to a fixed principal (or to nobody)."""

    def __init__(self, principal: Principal | None) -> None:
        self._principal = principal

    async def current_user(self) -> Principal | None:
        return self._principal


def _parse_bearer_token(header_value: str | None) -> str | None:
    if not header_value:
        return None
    parts = header_value.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; treat them as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ApiKeyAuthContext:
    """Resolve the caller from a bearer API key (or dev headers when enabled).

    Every failure mode resolves to ``None``; callers decide whether anonymous
    access is an error. The resolved principal is memoized per instance, so one
    context serves one request.
    """

    def __init__(
        self,
        *,
        headers: Mapping[str, str],
        session: AsyncSession,
        settings: Settings | None = None,
    ) -> None:
        self._headers = headers
        self._session = session
        self._settings = settings or get_settings()
        self._resolved = False
        self._principal: Principal | None = None

    async def current_user(self) -> Principal | None:
        if not self._resolved:
            self._principal = await self._resolve()
            self._resolved = True
        return self._principal

    def _principal_from_dev_headers(self) -> Principal | None:
        tenant_id = self._headers.get("X-Tenant-Id")
        user_id = self._headers.get("X-User-Id")
        if not tenant_id or not user_id:
            return None
        try:
            role = normalize_role(self._headers.get("X-Role", "admin"))
        except ValueError:
            logger.info("auth_dev_bypass_rejected reason=invalid_role tenant_id=%s", tenant_id)
            return None
        return Principal(user_id=user_id, tenant_id=tenant_id, role=role, auth_method="dev_bypass")

    async def _resolve(self) -> Principal | None:
        settings = self._settings
        bearer_token = _parse_bearer_token(self._headers.get(settings.auth_api_key_header))
        if not settings.auth_enabled or not bearer_token:
            if settings.auth_dev_bypass:
                return self._principal_from_dev_headers()
            return None
        if not looks_like_api_key(bearer_token):
            # Not one of ours; skip the lookup.
            logger.info("auth_rejected reason=malformed_key")
            return None

        result = await self._session.execute(
            select(ApiKey, User)
            .join(User, ApiKey.user_id == User.id)
            .where(ApiKey.key_hash == hash_api_key(bearer_token))
        )
        row = result.first()
        if row is None:
            logger.info("auth_rejected reason=unknown_key")
            return None
        api_key, user = row
        if api_key.revoked_at is not None or not user.is_active:
            logger.info("auth_rejected reason=revoked_or_inactive api_key_id=%s", api_key.id)
            return None
        if api_key.expires_at is not None and _as_utc(api_key.expires_at) <= datetime.now(timezone.utc):
            logger.info("auth_rejected reason=expired api_key_id=%s", api_key.id)
            return None
        if api_key.tenant_id != user.tenant_id:
            logger.warning("auth_rejected reason=tenant_mismatch api_key_id=%s", api_key.id)
            return None
        try:
            role = normalize_role(user.role)
        except ValueError:
            logger.warning("auth_rejected reason=invalid_role api_key_id=%s", api_key.id)
            return None
        return Principal(
            user_id=user.id,
            tenant_id=user.tenant_id,
            role=role,
            api_key_id=api_key.id,
            auth_method="api_key",
        )
