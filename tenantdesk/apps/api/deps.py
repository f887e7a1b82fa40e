from __future__ import annotations

import logging
from typing import AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tenantdesk.persistence.db import get_session
from tenantdesk.services.audit import ClientInfo, client_info
from tenantdesk.services.auth.api_keys import role_allows
from tenantdesk.services.auth.context import ApiKeyAuthContext, AuthContext, Principal


logger = logging.getLogger(__name__)


def api_error(
    status_code: int,
    code: str,
    message: str,
    *,
    headers: dict[str, str] | None = None,
) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"code": code, "message": message}, headers=headers)


async def get_db() -> AsyncIterator[AsyncSession]:
    async with get_session() as session:
        yield session


async def get_auth_context(request: Request, db: AsyncSession = Depends(get_db)) -> AuthContext:
    # Tests and alternative identity providers override this one.
    return ApiKeyAuthContext(headers=request.headers, session=db)


async def require_user(
    request: Request,
    auth: AuthContext = Depends(get_auth_context),
) -> Principal:
    # Routes that must answer 401 ahead of 400 read their body only after this resolves.
    try:
        principal = await auth.current_user()
    except SQLAlchemyError as exc:
        logger.exception("auth_lookup_failed path=%s", request.url.path)
        raise api_error(
            status.HTTP_503_SERVICE_UNAVAILABLE, "AUTH_UNAVAILABLE", "Authentication unavailable"
        ) from exc
    if principal is not None:
        return principal
    logger.info("auth_unauthorized path=%s method=%s", request.url.path, request.method)
    raise api_error(
        status.HTTP_401_UNAUTHORIZED,
        "AUTH_UNAUTHORIZED",
        "Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_role(minimum_role: str):
    """Build a dependency admitting principals at ``minimum_role`` or above."""

    async def _check_role(request: Request, principal: Principal = Depends(require_user)) -> Principal:
        if role_allows(role=principal.role, minimum_role=minimum_role):
            return principal
        logger.info(
            "rbac_forbidden path=%s user_id=%s role=%s required_role=%s",
            request.url.path,
            principal.user_id,
            principal.role,
            minimum_role,
        )
        raise api_error(status.HTTP_403_FORBIDDEN, "AUTH_FORBIDDEN", "Insufficient role for this operation")

    return _check_role


def get_client_info(request: Request) -> ClientInfo:
    return client_info(request)
