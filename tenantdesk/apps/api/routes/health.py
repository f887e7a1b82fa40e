from __future__ import annotations

from fastapi import APIRouter

from tenantdesk.apps.api.response import success_response

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    return success_response(data={"status": "ok"})
