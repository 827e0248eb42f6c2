"""Tenant scopes.

Every document belongs either to one organization (``Tenant``) or to the shared
platform namespace (``SYSTEM_DEFAULT``). The system default is readable by all
tenants, so a search scope always unions the caller's tenant with it.

Only this module knows how a scope is written to the ``organization_id`` column.
"""
from dataclasses import dataclass
from typing import List, Union

SYSTEM_DEFAULT_KEY = "system-default"


@dataclass(frozen=True)
class Tenant:
    id: str

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("tenant id must be non-empty")
        if self.id == SYSTEM_DEFAULT_KEY:
            raise ValueError(f"'{SYSTEM_DEFAULT_KEY}' is reserved; use SYSTEM_DEFAULT")

    @property
    def storage_key(self) -> str:
        return self.id

    @property
    def is_system_default(self) -> bool:
        return False


@dataclass(frozen=True)
class SystemDefault:
    @property
    def storage_key(self) -> str:
        return SYSTEM_DEFAULT_KEY

    @property
    def is_system_default(self) -> bool:
        return True


SYSTEM_DEFAULT = SystemDefault()

TenantScope = Union[Tenant, SystemDefault]


def scope_from_key(key: str) -> TenantScope:
    """Inverse of ``storage_key``: rebuild a scope from a stored organization id."""
    if key == SYSTEM_DEFAULT_KEY:
        return SYSTEM_DEFAULT
    return Tenant(key)


def readable_keys(scope: TenantScope, include_system_defaults: bool = True) -> List[str]:
    """Organization ids a caller in ``scope`` may read."""
    keys = [scope.storage_key]
    if include_system_defaults and not scope.is_system_default:
        keys.append(SYSTEM_DEFAULT_KEY)
    return keys
