from __future__ import annotations

import argparse
import asyncio
import sys
from uuid import uuid4

from tenantdesk.domain.models import ApiKey, User
from tenantdesk.persistence.db import SessionLocal
from tenantdesk.services.audit import record_event
from tenantdesk.services.auth.api_keys import issue_api_key, normalize_role


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create an API key for a tenant user")
    parser.add_argument("--tenant", required=True, help="Tenant identifier")
    parser.add_argument("--role", required=True, help="Role: member|manager|admin")
    parser.add_argument("--name", required=True, help="Key label shown to operators")
    parser.add_argument("--user-id", default=None, help="Existing user id to attach")
    parser.add_argument("--user-name", default=None, help="Display name for a new user")
    parser.add_argument("--email", default=None, help="Optional user email")
    return parser


async def _create_key(args: argparse.Namespace) -> int:
    role = normalize_role(args.role)
    user_id = args.user_id or uuid4().hex
    issued = issue_api_key()

    async with SessionLocal() as session:
        user = await session.get(User, user_id)
        if user is None:
            user = User(
                id=user_id,
                tenant_id=args.tenant,
                name=args.user_name,
                email=args.email,
                role=role,
                status="active",
                is_active=True,
            )
            session.add(user)
        else:
            # Keys never move a user across tenants.
            if user.tenant_id != args.tenant:
                raise ValueError("User tenant_id does not match requested tenant")
            if user.role != role:
                user.role = role
            if args.email and user.email != args.email:
                user.email = args.email
        # api_keys.user_id references users.id
        await session.flush()

        session.add(
            ApiKey(
                id=issued.key_id,
                user_id=user.id,
                tenant_id=user.tenant_id,
                key_prefix=issued.key_prefix,
                key_hash=issued.key_hash,
                name=args.name,
            )
        )
        # Key row and its audit trail land together.
        await record_event(
            session=session,
            tenant_id=user.tenant_id,
            actor_type="system",
            actor_id="create_api_key",
            actor_role=role,
            event_type="auth.api_key.created",
            outcome="success",
            resource_type="api_key",
            resource_id=issued.key_id,
            metadata={"user_id": user.id, "key_prefix": issued.key_prefix, "key_name": args.name},
            commit=True,
            best_effort=False,
        )

    # The raw key is not stored; it cannot be shown again.
    for label, value in (
        ("key_id", issued.key_id),
        ("key_prefix", issued.key_prefix),
        ("user_id", user_id),
        ("api_key", issued.raw_key),
    ):
        print(f"{label}={value}")
    return 0


def main() -> int:
    args = _build_parser().parse_args()
    try:
        return asyncio.run(_create_key(args))
    except Exception as exc:  # noqa: BLE001
        print(f"create_api_key failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
