"""Request dependencies: caller identity and the shared service.

The gateway in front of this service authenticates the user and forwards the
resolved identity in headers; nothing here verifies credentials.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Query, Request

from .config import settings
from .services.brain import BrainService
from .tenancy import SYSTEM_DEFAULT, Tenant, TenantScope, scope_from_key


@dataclass(frozen=True)
class Caller:
    organization: TenantScope
    user_id: str
    role: str

    @property
    def is_platform_operator(self) -> bool:
        return self.role == settings.PLATFORM_OPERATOR_ROLE


def get_caller(
    x_organization_id: Optional[str] = Header(None),
    x_user_id: str = Header(...),
    x_user_role: str = Header(...),
    org_id: Optional[str] = Query(None, alias="orgId"),
) -> Caller:
    # Platform operators act on the system default unless they target a tenant
    if x_user_role == settings.PLATFORM_OPERATOR_ROLE:
        try:
            scope = scope_from_key(org_id.strip()) if org_id is not None else SYSTEM_DEFAULT
        except ValueError as e:
            raise HTTPException(400, str(e))
        return Caller(organization=scope, user_id=x_user_id, role=x_user_role)

    if not x_organization_id or not x_organization_id.strip():
        raise HTTPException(400, "Organization context required.")
    try:
        scope = Tenant(x_organization_id.strip())
    except ValueError as e:
        raise HTTPException(400, str(e))
    return Caller(organization=scope, user_id=x_user_id, role=x_user_role)


def get_brain_service(request: Request) -> BrainService:
    service = getattr(request.app.state, "brain", None)
    if service is None:
        reason = getattr(request.app.state, "brain_unavailable", None)
        raise HTTPException(503, reason or "Database connection is not available.")
    return service
