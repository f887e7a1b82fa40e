from __future__ import annotations

import argparse
import asyncio

from tenantdesk.persistence.db import SessionLocal
from tenantdesk.services.maintenance import prune_audit_events


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delete audit events older than the retention window")
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Retention window in days (defaults to AUDIT_RETENTION_DAYS)",
    )
    return parser


async def prune(days: int | None = None) -> int:
    async with SessionLocal() as session:
        deleted = await prune_audit_events(session, retention_days=days)
        await session.commit()
    print(f"pruned_audit_events={deleted}")
    return deleted


if __name__ == "__main__":
    args = _build_parser().parse_args()
    asyncio.run(prune(args.days))
