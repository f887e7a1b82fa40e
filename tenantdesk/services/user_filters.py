"""In-memory filtering for the admin user list.

``filter_users`` is the generic predicate-based filter; ``FilterStateManager``
holds the dashboard's filter criteria and derives the filtered view and counts
from a source list of users. Nothing here performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
import logging
from typing import Any, Iterable, Sequence

from tenantdesk.core.errors import InvalidFilterError, UnknownFilterError


logger = logging.getLogger(__name__)

DEFAULT_SEARCH_FIELDS: tuple[str, ...] = ("name", "email", "phone")


@dataclass(frozen=True)
class UserItem:
    id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    role: str | None = None
    status: str | None = None
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, user: Any) -> "UserItem":
        return cls(
            id=user.id,
            name=user.name,
            email=user.email,
            phone=user.phone,
            role=user.role,
            status=user.status,
            created_at=user.created_at,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "status": self.status,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class FilterState:
    search: str = ""
    # Multi-select criteria; carried in state but not applied by the filter yet.
    roles: tuple[str, ...] = ()
    statuses: tuple[str, ...] = ()
    # Legacy single-select criteria, still the ones the filter applies.
    role: str | None = None
    status: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "search": self.search,
            "roles": list(self.roles),
            "statuses": list(self.statuses),
            "role": self.role,
            "status": self.status,
        }


FILTER_KEYS = frozenset(item.name for item in fields(FilterState))
MULTI_SELECT_KEYS = frozenset({"roles", "statuses"})


@dataclass(frozen=True)
class FilterStats:
    total_count: int
    filtered_count: int
    is_filtered: bool

    def to_payload(self) -> dict[str, Any]:
        return {
            "totalCount": self.total_count,
            "filteredCount": self.filtered_count,
            "isFiltered": self.is_filtered,
        }


@dataclass(frozen=True)
class FilterOptions:
    search: str = ""
    role: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class FilterConfig:
    search_fields: tuple[str, ...] = DEFAULT_SEARCH_FIELDS
    case_insensitive: bool = True
    sort_by_date: bool = True
    server_side: bool = False


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(user: UserItem) -> tuple[bool, datetime]:
    # Newest first; undated users sink to the end.
    created_at = user.created_at
    if created_at is None:
        return (False, _EPOCH)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return (True, created_at)


def _matches_search(user: UserItem, needle: str, config: FilterConfig) -> bool:
    for name in config.search_fields:
        value = getattr(user, name, None)
        if value is None:
            continue
        haystack = str(value)
        if config.case_insensitive:
            haystack = haystack.lower()
        if needle in haystack:
            return True
    return False


def filter_users(
    users: Iterable[UserItem],
    options: FilterOptions,
    config: FilterConfig | None = None,
) -> list[UserItem]:
    resolved = config or FilterConfig()
    needle = options.search.strip()
    if resolved.case_insensitive:
        needle = needle.lower()

    result: list[UserItem] = []
    for user in users:
        if options.role and user.role != options.role:
            continue
        if options.status and user.status != options.status:
            continue
        if needle and not _matches_search(user, needle, resolved):
            continue
        result.append(user)

    if resolved.sort_by_date:
        result.sort(key=_sort_key, reverse=True)
    return result


def _coerce(key: str, value: Any) -> Any:
    if key in MULTI_SELECT_KEYS:
        if value is None:
            return ()
        if isinstance(value, str):
            return (value,) if value else ()
        if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
            return tuple(item for item in value if item)
        raise InvalidFilterError(f"Filter {key} expects a list of strings")
    if value is None:
        return "" if key == "search" else None
    if not isinstance(value, str):
        raise InvalidFilterError(f"Filter {key} expects a string")
    if key == "search":
        return value
    return value or None


def state_from_mapping(raw: Any) -> FilterState:
    # Build state from stored/preset JSON. Unknown keys and malformed values are dropped.
    if not isinstance(raw, dict):
        return FilterState()
    values: dict[str, Any] = {}
    for key in FILTER_KEYS.intersection(raw):
        try:
            values[key] = _coerce(key, raw[key])
        except InvalidFilterError:
            logger.warning("filter_value_ignored key=%s", key)
    return FilterState(**values)


class FilterStateManager:
    """Filter criteria plus the derived, memoized view of a user list.

    ``filtered_users`` is recomputed only after the source list or the filter
    state changes. ``has_active_filters`` looks at ``search``, ``role`` and
    ``status`` only; the multi-select ``roles``/``statuses`` do not count.
    """

    def __init__(self, users: Sequence[UserItem], config: FilterConfig | None = None) -> None:
        self._users: list[UserItem] = list(users)
        self._config = config or FilterConfig()
        self._filters = FilterState()
        self._revision = 0
        self._cache: tuple[int, list[UserItem]] | None = None

    @property
    def users(self) -> list[UserItem]:
        return list(self._users)

    def set_users(self, users: Sequence[UserItem]) -> None:
        self._users = list(users)
        self._revision += 1

    @property
    def filters(self) -> FilterState:
        return self._filters

    def set_filters(self, filters: FilterState) -> None:
        self._filters = filters
        self._revision += 1

    def update_filter(self, key: str, value: Any) -> None:
        if key not in FILTER_KEYS:
            raise UnknownFilterError(f"Unknown filter: {key}")
        self.set_filters(replace(self._filters, **{key: _coerce(key, value)}))

    def clear_filters(self) -> None:
        self.set_filters(FilterState())

    @property
    def filtered_users(self) -> list[UserItem]:
        if self._cache is not None and self._cache[0] == self._revision:
            return list(self._cache[1])
        options = FilterOptions(
            search=self._filters.search,
            role=self._filters.role or None,
            status=self._filters.status or None,
        )
        result = filter_users(self._users, options, self._config)
        self._cache = (self._revision, result)
        return list(result)

    @property
    def has_active_filters(self) -> bool:
        # Matches filter_users, which ignores surrounding whitespace in the search text.
        return bool(self._filters.search.strip() or self._filters.role or self._filters.status)

    @property
    def stats(self) -> FilterStats:
        return FilterStats(
            total_count=len(self._users),
            filtered_count=len(self.filtered_users),
            is_filtered=self.has_active_filters,
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "filters": self._filters.to_payload(),
            "users": [user.to_payload() for user in self.filtered_users],
            "hasActiveFilters": self.has_active_filters,
            "stats": self.stats.to_payload(),
        }
