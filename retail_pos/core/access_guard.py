"""
Tenant access guard.

Pure functions shared by every service. Callers must validate access
before resolving the effective scope, and resolve the scope before
building any query; a denied request never reaches the storage layer.
"""

import logging

from sqlalchemy.orm import Query

from retail_pos.core.exceptions import (
    AdminRequiredException,
    CrossTenantAccessDeniedException,
    SellerUnassignedException,
    ValidationException,
)
from retail_pos.models.tenant_context import TenantContext, Scope, ScopedTo, UNSCOPED

logger = logging.getLogger(__name__)


def validate_tenant_access(context: TenantContext, requested: Scope = UNSCOPED) -> None:
    """
    Check a requested scope against the caller.

    Raises:
        SellerUnassignedException: SELLER without a tenant
        CrossTenantAccessDeniedException: SELLER requesting another tenant
    """
    if context.is_admin():
        return

    if not context.tenant_id:
        logger.warning("Unassigned seller %s attempted a tenant-scoped operation", context.user_id)
        raise SellerUnassignedException()

    if isinstance(requested, ScopedTo) and requested.tenant_id != context.tenant_id:
        logger.warning(
            "Seller %s of tenant %s denied access to tenant %s",
            context.user_id,
            context.tenant_id,
            requested.tenant_id,
        )
        raise CrossTenantAccessDeniedException()


def resolve_effective_scope(context: TenantContext, requested: Scope = UNSCOPED) -> Scope:
    """
    Scope actually applied to queries.

    Sellers are always confined to their own tenant; admins get what they
    asked for, which may be Unscoped (cross-tenant).
    """
    if context.is_seller():
        if not context.tenant_id:
            raise SellerUnassignedException()
        return ScopedTo(context.tenant_id)
    return requested


def authorize_scope(context: TenantContext, requested: Scope = UNSCOPED) -> Scope:
    """Validate access, then resolve the effective scope."""
    validate_tenant_access(context, requested)
    return resolve_effective_scope(context, requested)


def require_tenant_scope(context: TenantContext, requested: Scope = UNSCOPED) -> ScopedTo:
    """
    Authorize an operation that must target exactly one tenant (creates, invoices).

    Raises:
        ValidationException: an admin did not name a tenant
    """
    scope = authorize_scope(context, requested)
    if not isinstance(scope, ScopedTo):
        raise ValidationException("tenant_id is required")
    return scope


def require_admin(context: TenantContext) -> None:
    if not context.is_admin():
        logger.warning("User %s attempted an admin-only operation", context.user_id)
        raise AdminRequiredException()


def apply_scope(query: Query, tenant_column, scope: Scope) -> Query:
    """Add the tenant filter for a scope to a query (no-op when Unscoped)."""
    if isinstance(scope, ScopedTo):
        return query.filter(tenant_column == scope.tenant_id)
    return query
