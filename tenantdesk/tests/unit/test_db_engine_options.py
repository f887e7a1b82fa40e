from __future__ import annotations

from tenantdesk.core.config import Settings
from tenantdesk.persistence.db import engine_options


def test_postgres_gets_bounded_pool_and_statement_timeout() -> None:
    settings = Settings(
        database_url="postgresql+asyncpg://u:p@db/app",
        api_db_pool_size=4,
        api_db_max_overflow=-3,
        api_db_statement_timeout_ms=2500,
    )
    options = engine_options(settings)
    assert options["pool_size"] == 4
    assert options["max_overflow"] == 0
    assert options["connect_args"] == {"server_settings": {"statement_timeout": "2500"}}


def test_statement_timeout_can_be_disabled() -> None:
    settings = Settings(database_url="postgresql+asyncpg://u:p@db/app", api_db_statement_timeout_ms=0)
    assert "connect_args" not in engine_options(settings)


def test_sqlite_waits_on_busy_lock_without_pool_sizing() -> None:
    settings = Settings(database_url="sqlite+aiosqlite:///./local.db", sqlite_busy_timeout_s=7.5)
    options = engine_options(settings)
    assert options["connect_args"] == {"timeout": 7.5}
    assert "pool_size" not in options
