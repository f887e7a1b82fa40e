"""Append-only audit trail.

Rows are built by ``build_event`` (metadata is scrubbed of credentials first)
and written by ``record_event``, either inside the caller's transaction or in
a session of their own.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import Request

from tenantdesk.domain.models import AuditEvent
from tenantdesk.persistence.db import SessionLocal


logger = logging.getLogger(__name__)

_SENSITIVE_KEY_FRAGMENTS = ("api_key", "authorization", "token", "secret", "password")
_REDACTED = "[REDACTED]"


@dataclass(frozen=True)
class ClientInfo:
    # Request hints stored with consent and audit rows.
    request_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None


def sanitize_metadata(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            str(key): _REDACTED
            if any(fragment in str(key).lower() for fragment in _SENSITIVE_KEY_FRAGMENTS)
            else sanitize_metadata(item)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [sanitize_metadata(item) for item in value]
    return value


def client_ip(request: Request) -> str | None:
    # First X-Forwarded-For hop, then X-Real-IP, then the socket peer.
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None


def client_info(request: Request | None) -> ClientInfo:
    if request is None:
        return ClientInfo()
    return ClientInfo(
        request_id=getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id"),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def build_event(
    *,
    tenant_id: str | None,
    actor_type: str,
    actor_id: str | None,
    actor_role: str | None,
    event_type: str,
    outcome: str,
    resource_type: str | None = None,
    resource_id: str | None = None,
    client: ClientInfo | None = None,
    metadata: dict[str, Any] | None = None,
    error_code: str | None = None,
    occurred_at: datetime | None = None,
) -> AuditEvent:
    client = client or ClientInfo()
    return AuditEvent(
        occurred_at=occurred_at or datetime.now(timezone.utc),
        tenant_id=tenant_id,
        actor_type=actor_type,
        actor_id=actor_id,
        actor_role=actor_role,
        event_type=event_type,
        outcome=outcome,
        resource_type=resource_type,
        resource_id=resource_id,
        request_id=client.request_id,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
        metadata_json=sanitize_metadata(metadata or {}),
        error_code=error_code,
    )


def _report_write_failure(event: AuditEvent, exc: SQLAlchemyError, *, best_effort: bool) -> None:
    log = logger.warning if best_effort else logger.error
    log(
        "audit_event_write_failed event_type=%s tenant_id=%s request_id=%s",
        event.event_type,
        event.tenant_id,
        event.request_id,
        exc_info=exc,
    )


async def record_event(
    *,
    session: AsyncSession | None = None,
    commit: bool = False,
    best_effort: bool = True,
    **fields: Any,
) -> AuditEvent | None:
    """Append one audit row built from ``fields`` (see ``build_event``).

    With ``session`` the row joins the caller's transaction and is committed
    only when ``commit`` is true. Without one it is written and committed in a
    short-lived session. A failed write is logged; it propagates only when
    ``best_effort`` is false. Returns the event, or ``None`` if it was dropped.
    """
    event = build_event(**fields)
    owns_session = session is None
    target = SessionLocal() if owns_session else session
    try:
        target.add(event)
        if owns_session or commit:
            await target.commit()
    except SQLAlchemyError as exc:
        if owns_session or commit:
            await target.rollback()
        _report_write_failure(event, exc, best_effort=best_effort)
        if not best_effort:
            raise
        return None
    finally:
        if owns_session:
            await target.close()
    return event
