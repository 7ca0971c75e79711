"""Tenant context and tenant scope for request authorization."""

from dataclasses import dataclass
from retail_pos.models.role import UserRole


@dataclass(frozen=True)
class Unscoped:
    """No tenant filter: the query spans every tenant (admin only)."""

    def __repr__(self) -> str:
        return "Unscoped()"


@dataclass(frozen=True)
class ScopedTo:
    """Restrict the query to a single tenant."""

    tenant_id: str

    def __post_init__(self):
        if not isinstance(self.tenant_id, str) or not self.tenant_id.strip():
            raise ValueError("ScopedTo requires a non-empty tenant id")


Scope = Unscoped | ScopedTo

UNSCOPED = Unscoped()


def scope_from_optional(tenant_id: str | None) -> Scope:
    """Build a requested scope from an optional tenant id (None or "" means no scope)."""
    if tenant_id is None or not tenant_id.strip():
        return UNSCOPED
    return ScopedTo(tenant_id.strip())


@dataclass(frozen=True)
class TenantContext:
    """
    Identity of the caller for one request.

    Built once from the verified identity triple and passed to every service.
    It is the only source of role and tenant information the core uses.

    Attributes:
        user_id: The acting user's id
        role: ADMIN or SELLER
        tenant_id: The seller's tenant; always None for admins
    """

    user_id: int
    role: UserRole
    tenant_id: str | None = None

    @classmethod
    def from_identity(cls, user_id: int, role: UserRole | str, tenant_id: str | None) -> "TenantContext":
        role = UserRole(role)
        # Admins are never tenant-bound
        if role == UserRole.ADMIN:
            tenant_id = None
        return cls(user_id=user_id, role=role, tenant_id=tenant_id or None)

    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def is_seller(self) -> bool:
        return self.role == UserRole.SELLER

    def __repr__(self) -> str:
        return f"<TenantContext(user_id={self.user_id}, tenant_id={self.tenant_id}, role={self.role.value})>"
