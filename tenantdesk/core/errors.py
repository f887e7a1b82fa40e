from __future__ import annotations


class TenantDeskError(Exception):
    """Base error for tenantdesk."""


class DatabaseError(TenantDeskError):
    """Database layer failure."""


class IdempotencyConflictError(TenantDeskError):
    """Idempotency key is claimed by a request that has not finished yet."""


class PresetNotFoundError(TenantDeskError):
    """Filter preset does not exist for the caller's tenant."""


class PresetAccessDeniedError(TenantDeskError):
    """Filter preset is private and the caller is not its creator."""


class UnknownFilterError(TenantDeskError, ValueError):
    """Filter key is not part of the user filter state."""


class InvalidFilterError(TenantDeskError, ValueError):
    """Filter value has the wrong shape for its key."""
