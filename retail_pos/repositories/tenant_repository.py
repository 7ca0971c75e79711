"""Repository for Tenant model operations."""

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload
from retail_pos.models.tenant import Tenant
from retail_pos.models.user import User
from retail_pos.models.product import Product
from retail_pos.models.invoice import Invoice


class TenantRepository:
    """Repository for Tenant model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, tenant_id: str) -> Tenant | None:
        """
        Get tenant by ID.

        Args:
            tenant_id: Tenant ID

        Returns:
            Tenant object or None if not found
        """
        return (
            self.db.query(Tenant)
            .options(selectinload(Tenant.users))
            .filter(Tenant.id == tenant_id)
            .first()
        )

    def get_by_name(self, name: str) -> Tenant | None:
        return self.db.query(Tenant).filter(Tenant.name == name).first()

    def exists(self, tenant_id: str) -> bool:
        return self.db.query(Tenant.id).filter(Tenant.id == tenant_id).first() is not None

    def get_all(self, limit: int | None = None, offset: int = 0) -> list[Tenant]:
        """
        Get tenants newest first, with their users loaded.

        Args:
            limit: Maximum number of tenants (None for all)
            offset: Pagination offset
        """
        query = (
            self.db.query(Tenant)
            .options(selectinload(Tenant.users))
            .order_by(Tenant.created_at.desc(), Tenant.name)
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count_products(self, tenant_ids: list[str]) -> dict[str, int]:
        return self._count_by_tenant(Product.tenant_id, Product.id, tenant_ids)

    def count_invoices(self, tenant_ids: list[str]) -> dict[str, int]:
        return self._count_by_tenant(Invoice.tenant_id, Invoice.id, tenant_ids)

    def count_users(self, tenant_ids: list[str]) -> dict[str, int]:
        return self._count_by_tenant(User.tenant_id, User.id, tenant_ids)

    def _count_by_tenant(self, tenant_column, id_column, tenant_ids: list[str]) -> dict[str, int]:
        if not tenant_ids:
            return {}
        rows = (
            self.db.query(tenant_column, func.count(id_column))
            .filter(tenant_column.in_(tenant_ids))
            .group_by(tenant_column)
            .all()
        )
        return {tenant_id: count for tenant_id, count in rows}

    def create(self, tenant: Tenant) -> Tenant:
        """
        Add a new tenant. Caller responsible for commit.

        Raises:
            IntegrityError: If the name is already taken
        """
        self.db.add(tenant)
        self.db.flush()
        return tenant

    def delete(self, tenant: Tenant) -> None:
        """Delete a tenant. Caller must have checked for dependents."""
        self.db.delete(tenant)
        self.db.flush()
