"""Tests for tenant scopes."""
import pytest

from brain.tenancy import SYSTEM_DEFAULT, SYSTEM_DEFAULT_KEY, Tenant, readable_keys, scope_from_key


def test_tenant_storage_key_is_its_id():
    """A tenant is stored under its own id."""
    t = Tenant("org-1")
    assert t.storage_key == "org-1"
    assert not t.is_system_default


def test_system_default_storage_key():
    """The shared namespace has the reserved key."""
    assert SYSTEM_DEFAULT.storage_key == SYSTEM_DEFAULT_KEY
    assert SYSTEM_DEFAULT.is_system_default


@pytest.mark.parametrize("bad", ["", "   ", SYSTEM_DEFAULT_KEY])
def test_tenant_rejects_empty_and_reserved_ids(bad):
    """Empty ids and the reserved key cannot name a tenant."""
    with pytest.raises(ValueError):
        Tenant(bad)


def test_scope_from_key_round_trip():
    """Stored keys map back to the scope they came from."""
    assert scope_from_key(SYSTEM_DEFAULT_KEY) is SYSTEM_DEFAULT
    assert scope_from_key("org-9") == Tenant("org-9")


def test_readable_keys_union_system_default():
    """Tenants read their own documents plus the system default."""
    assert readable_keys(Tenant("org-1")) == ["org-1", SYSTEM_DEFAULT_KEY]
    assert readable_keys(Tenant("org-1"), include_system_defaults=False) == ["org-1"]


def test_readable_keys_for_system_default_has_no_duplicates():
    """The system default scope reads only itself."""
    assert readable_keys(SYSTEM_DEFAULT) == [SYSTEM_DEFAULT_KEY]
