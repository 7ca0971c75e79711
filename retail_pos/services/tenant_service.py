import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from retail_pos.core.access_guard import require_admin
from retail_pos.core.exceptions import (
    NotFoundException,
    ValidationException,
    DuplicateTenantNameException,
    DependentDataExistsException,
    InternalException,
)
from retail_pos.core.validation import FieldValidator
from retail_pos.database import atomic
from retail_pos.models.role import UserRole
from retail_pos.models.tenant import Tenant
from retail_pos.models.tenant_context import TenantContext
from retail_pos.models.user import User
from retail_pos.repositories.tenant_repository import TenantRepository
from retail_pos.repositories.user_repository import UserRepository
from retail_pos.schemas.tenant_schemas import TenantCreate, TenantUpdate

logger = logging.getLogger(__name__)


class TenantManagementService:
    """Service layer for tenant lifecycle and seller assignment (ADMIN only)"""

    def __init__(self, db: Session):
        self.db = db
        self.tenant_repo = TenantRepository(db)
        self.user_repo = UserRepository(db)

    @staticmethod
    def _validate(data: TenantCreate | TenantUpdate, partial: bool) -> None:
        validator = FieldValidator()
        if not partial or data.name is not None:
            validator.required_text("name", data.name, max_length=255)
        validator.max_length("address", data.address, 500)
        validator.max_length("contact", data.contact, 255)
        validator.raise_if_invalid()

    def _get_or_404(self, tenant_id: str) -> Tenant:
        tenant = self.tenant_repo.get_by_id(tenant_id)
        if not tenant:
            raise NotFoundException("Tenant not found")
        return tenant

    def _with_counts(self, tenants: list[Tenant]) -> list[dict]:
        ids = [tenant.id for tenant in tenants]
        products = self.tenant_repo.count_products(ids)
        invoices = self.tenant_repo.count_invoices(ids)
        return [
            {
                "id": tenant.id,
                "name": tenant.name,
                "address": tenant.address,
                "contact": tenant.contact,
                "created_at": tenant.created_at,
                "updated_at": tenant.updated_at,
                "users": tenant.users,
                "user_count": len(tenant.users),
                "product_count": products.get(tenant.id, 0),
                "invoice_count": invoices.get(tenant.id, 0),
            }
            for tenant in tenants
        ]

    def _check_name_free(self, name: str, exclude_id: str | None = None) -> None:
        existing = self.tenant_repo.get_by_name(name)
        if existing and existing.id != exclude_id:
            logger.warning("Rejected duplicate tenant name %r", name)
            raise DuplicateTenantNameException(name)

    def list_tenants(
        self, context: TenantContext, limit: int | None = None, offset: int = 0
    ) -> list[dict]:
        """
        List tenants newest first with users and dependent counts.

        Raises:
            AdminRequiredException: If caller is not ADMIN
        """
        require_admin(context)
        return self._with_counts(self.tenant_repo.get_all(limit=limit, offset=offset))

    def get_tenant(self, tenant_id: str, context: TenantContext) -> dict:
        require_admin(context)
        return self._with_counts([self._get_or_404(tenant_id)])[0]

    def create_tenant(self, data: TenantCreate, context: TenantContext) -> Tenant:
        """
        Create a new tenant.

        Raises:
            ValidationException: Listing every invalid field
            DuplicateTenantNameException: If the name is taken
        """
        require_admin(context)
        self._validate(data, partial=False)

        name = data.name.strip()
        self._check_name_free(name)

        try:
            with atomic(self.db):
                tenant = self.tenant_repo.create(
                    Tenant(name=name, address=data.address, contact=data.contact)
                )
        except IntegrityError as exc:
            # Lost a race with a concurrent create of the same name
            raise DuplicateTenantNameException(name) from exc

        logger.info("Created tenant %s (%s)", tenant.id, name)
        return tenant

    def update_tenant(self, tenant_id: str, data: TenantUpdate, context: TenantContext) -> Tenant:
        require_admin(context)
        self._validate(data, partial=True)

        tenant = self._get_or_404(tenant_id)
        name = data.name.strip() if data.name is not None else None
        if name is not None:
            self._check_name_free(name, exclude_id=tenant.id)

        try:
            with atomic(self.db):
                if name is not None:
                    tenant.name = name
                if data.address is not None:
                    tenant.address = data.address
                if data.contact is not None:
                    tenant.contact = data.contact
                self.db.flush()
        except IntegrityError as exc:
            raise DuplicateTenantNameException(name or tenant.name) from exc

        logger.info("Updated tenant %s", tenant_id)
        return tenant

    def delete_tenant(self, tenant_id: str, context: TenantContext) -> None:
        """
        Delete a tenant that owns nothing.

        Raises:
            NotFoundException: If tenant doesn't exist
            DependentDataExistsException: If users, products or invoices remain
        """
        require_admin(context)
        tenant = self._get_or_404(tenant_id)

        ids = [tenant.id]
        dependents = {
            "users": self.tenant_repo.count_users(ids).get(tenant.id, 0),
            "products": self.tenant_repo.count_products(ids).get(tenant.id, 0),
            "invoices": self.tenant_repo.count_invoices(ids).get(tenant.id, 0),
        }
        blocking = [f"{count} {label}" for label, count in dependents.items() if count]
        if blocking:
            logger.warning("Refused to delete tenant %s with %s", tenant_id, ", ".join(blocking))
            raise DependentDataExistsException(
                f"Cannot delete tenant with existing data: {', '.join(blocking)}"
            )

        try:
            with atomic(self.db):
                self.tenant_repo.delete(tenant)
        except IntegrityError as exc:
            # Rows were added between the check and the delete
            raise DependentDataExistsException("Cannot delete tenant with existing data") from exc

        logger.info("Deleted tenant %s", tenant_id)

    def assign_user_to_tenant(self, user_id: int, tenant_id: str, context: TenantContext) -> User:
        """
        Bind a SELLER to a tenant, replacing any previous binding.

        Raises:
            NotFoundException: If user or tenant doesn't exist
            ValidationException: If the user is an ADMIN
        """
        require_admin(context)
        tenant = self._get_or_404(tenant_id)
        user = self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundException("User not found")
        if user.role == UserRole.ADMIN:
            raise ValidationException("Admin users cannot be assigned to a tenant")

        with atomic(self.db):
            user.tenant_id = tenant.id

        logger.info("Assigned user %s to tenant %s", user_id, tenant_id)
        return user

    def list_tenant_users(self, tenant_id: str, context: TenantContext) -> list[User]:
        require_admin(context)
        self._get_or_404(tenant_id)
        return self.user_repo.list_by_tenant(tenant_id)

    def remove_user_from_tenant(self, tenant_id: str, user_id: int, context: TenantContext) -> User:
        """
        Unbind a user from a tenant; the user becomes unassigned.

        Raises:
            NotFoundException: If the user is not bound to this tenant
        """
        require_admin(context)
        user = self.user_repo.get_in_tenant(user_id, tenant_id)
        if not user:
            raise NotFoundException("User not found in this tenant")

        try:
            with atomic(self.db):
                user.tenant_id = None
        except IntegrityError as exc:
            logger.exception("Failed to remove user %s from tenant %s", user_id, tenant_id)
            raise InternalException("Failed to remove user from tenant") from exc

        logger.info("Removed user %s from tenant %s", user_id, tenant_id)
        return user
