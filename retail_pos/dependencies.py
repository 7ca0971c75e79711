from typing import Optional

from fastapi import Depends, Query
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from retail_pos.core.exceptions import UnauthorizedException
from retail_pos.core.security import extract_identity
from retail_pos.models.tenant_context import TenantContext, Scope, scope_from_optional

security = HTTPBearer(auto_error=False)


def get_tenant_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TenantContext:
    """
    FastAPI dependency building the TenantContext for a request.

    Flow:
    1. Extract token from Authorization: Bearer <token>
    2. Validate JWT using shared SECRET_KEY
    3. Read the (user id, role, tenant id) triple from its claims
    4. Return an immutable TenantContext for use in endpoints

    The identity service is trusted completely; no user lookup happens here.

    Raises:
        UnauthorizedException: If token missing, invalid, expired, or carries an unknown role
    """
    if credentials is None:
        raise UnauthorizedException("Not authenticated")

    user_id, role, tenant_id = extract_identity(credentials.credentials)
    try:
        return TenantContext.from_identity(user_id, role, tenant_id)
    except ValueError:
        raise UnauthorizedException(f"Unknown role: {role}")


def get_requested_scope(
    tenant_id: Optional[str] = Query(None, description="Restrict to one tenant (admins); sellers may only name their own"),
) -> Scope:
    return scope_from_optional(tenant_id)
