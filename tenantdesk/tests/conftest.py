from __future__ import annotations

import os
import tempfile

# Point settings at a throwaway SQLite file before any tenantdesk module builds the engine.
_DB_DIR = tempfile.mkdtemp(prefix="tenantdesk-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ["AUTH_ENABLED"] = "true"
os.environ["AUTH_DEV_BYPASS"] = "false"

import pytest

from tenantdesk.domain.models import Base
from tenantdesk.persistence.db import engine


@pytest.fixture(autouse=True)
async def reset_schema_between_tests() -> None:
    # Every test starts from empty tables so row counts are exact.
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield
    # Dispose the async engine to prevent cross-loop connection reuse between tests.
    await engine.dispose()
