from __future__ import annotations

from dataclasses import dataclass
import hashlib
import secrets
from uuid import uuid4


ROLE_ORDER: dict[str, int] = {
    "member": 1,
    "manager": 2,
    "admin": 3,
}

# Raw keys look like tdk_<key id>_<secret>.
API_KEY_PREFIX = "tdk"
DISPLAY_PREFIX_LENGTH = 12


@dataclass(frozen=True)
class IssuedApiKey:
    key_id: str
    raw_key: str
    key_prefix: str
    key_hash: str


def normalize_role(role: str) -> str:
    normalized = role.strip().lower()
    if normalized not in ROLE_ORDER:
        raise ValueError(f"Unsupported role: {role}")
    return normalized


def role_allows(*, role: str, minimum_role: str) -> bool:
    # Unknown roles rank below everything.
    return ROLE_ORDER.get(role, 0) >= ROLE_ORDER.get(minimum_role, 0)


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def looks_like_api_key(raw_key: str) -> bool:
    parts = raw_key.split("_", 2)
    return len(parts) == 3 and parts[0] == API_KEY_PREFIX and all(parts[1:])


def issue_api_key(*, key_id: str | None = None) -> IssuedApiKey:
    """Mint a new key. Only ``key_hash`` and ``key_prefix`` are ever stored."""
    resolved_id = key_id or uuid4().hex
    raw_key = f"{API_KEY_PREFIX}_{resolved_id}_{secrets.token_urlsafe(32)}"
    return IssuedApiKey(
        key_id=resolved_id,
        raw_key=raw_key,
        key_prefix=raw_key[:DISPLAY_PREFIX_LENGTH],
        key_hash=hash_api_key(raw_key),
    )
