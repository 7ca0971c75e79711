import logging

from sqlalchemy.orm import Session

from retail_pos.config import settings
from retail_pos.core.access_guard import authorize_scope, require_tenant_scope
from retail_pos.core.exceptions import NotFoundException, DependentDataExistsException
from retail_pos.core.validation import FieldValidator
from retail_pos.database import atomic
from retail_pos.models.product import Product
from retail_pos.models.tenant_context import TenantContext, Scope, UNSCOPED, scope_from_optional
from retail_pos.repositories.product_repository import ProductRepository
from retail_pos.repositories.reservation_repository import ReservationRepository
from retail_pos.repositories.tenant_repository import TenantRepository
from retail_pos.repositories.variant_repository import VariantRepository
from retail_pos.schemas.product_schemas import ProductCreate, ProductUpdate

logger = logging.getLogger(__name__)


class ProductService:
    """Catalog operations on products, confined to the caller's tenant scope"""

    def __init__(self, db: Session):
        self.db = db
        self.product_repo = ProductRepository(db)
        self.variant_repo = VariantRepository(db)
        self.tenant_repo = TenantRepository(db)
        self.reservation_repo = ReservationRepository(db)

    @staticmethod
    def _validate_fields(
        validator: FieldValidator,
        name: str | None,
        description: str | None,
        category: str | None,
        partial: bool,
    ) -> None:
        if not partial or name is not None:
            validator.required_text("name", name, max_length=255)
        validator.max_length("description", description, 1000)
        validator.max_length("category", category, 100)

    def list_products(
        self,
        context: TenantContext,
        scope: Scope = UNSCOPED,
        category: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[Product], int]:
        """
        List products visible to the caller, newest first.

        Returns:
            Tuple of (products, total_count)
        """
        effective = authorize_scope(context, scope)
        products = self.product_repo.get_all(effective, category=category, limit=limit, offset=offset)
        return products, self.product_repo.count(effective, category=category)

    def get_product(
        self, product_id: int, context: TenantContext, scope: Scope = UNSCOPED
    ) -> Product:
        """
        Get product within the caller's scope.

        Raises:
            NotFoundException: If product doesn't exist or belongs to another tenant
        """
        effective = authorize_scope(context, scope)
        product = self.product_repo.get(product_id, effective)
        if not product:
            raise NotFoundException("Product not found or access denied")
        return product

    def create_product(self, data: ProductCreate, context: TenantContext) -> Product:
        """
        Create a product in the caller's tenant (admins must name the tenant).

        Raises:
            ValidationException: Listing every invalid field
            NotFoundException: If the tenant does not exist
        """
        tenant_scope = require_tenant_scope(context, scope_from_optional(data.tenant_id))

        validator = FieldValidator()
        self._validate_fields(validator, data.name, data.description, data.category, partial=False)
        validator.raise_if_invalid()

        if not self.tenant_repo.exists(tenant_scope.tenant_id):
            raise NotFoundException("Tenant not found")

        with atomic(self.db):
            product = self.product_repo.create(
                Product(
                    name=data.name.strip(),
                    description=data.description,
                    category=data.category,
                    tenant_id=tenant_scope.tenant_id,
                )
            )
            product_id = product.id

        logger.info("Created product %s in tenant %s", product_id, tenant_scope.tenant_id)
        return self.product_repo.get(product_id, tenant_scope)

    def update_product(
        self,
        product_id: int,
        data: ProductUpdate,
        context: TenantContext,
        scope: Scope = UNSCOPED,
    ) -> Product:
        """Update name/description/category; the owning tenant never changes"""
        effective = authorize_scope(context, scope)

        validator = FieldValidator()
        self._validate_fields(validator, data.name, data.description, data.category, partial=True)
        validator.raise_if_invalid()

        with atomic(self.db):
            product = self.product_repo.get(product_id, effective)
            if not product:
                raise NotFoundException("Product not found or access denied")

            if data.name is not None:
                product.name = data.name.strip()
            if data.description is not None:
                product.description = data.description
            if data.category is not None:
                product.category = data.category

        return self.product_repo.get(product_id, effective)

    def delete_product(
        self, product_id: int, context: TenantContext, scope: Scope = UNSCOPED
    ) -> None:
        """
        Delete a product together with its variants as one unit.

        Raises:
            NotFoundException: If product doesn't exist or belongs to another tenant
            DependentDataExistsException: If any variant appears on an invoice
        """
        effective = authorize_scope(context, scope)

        with atomic(self.db):
            product = self.product_repo.get(product_id, effective)
            if not product:
                raise NotFoundException("Product not found or access denied")

            variants = list(product.variants)
            variant_ids = [variant.id for variant in variants]
            if self.variant_repo.is_referenced_by_invoices(variant_ids):
                raise DependentDataExistsException(
                    "Cannot delete product with variants that have been used in invoices"
                )

            self.reservation_repo.delete_for_variants(variant_ids)
            self.variant_repo.delete_many(variants)
            self.product_repo.delete(product)

        logger.info("Deleted product %s with %d variant(s)", product_id, len(variant_ids))

    def get_inventory_stats(self, context: TenantContext, scope: Scope = UNSCOPED) -> dict:
        """Catalog summary: counts, stock alerts, categories and top products by stock value"""
        effective = authorize_scope(context, scope)

        total_variants, low_stock, out_of_stock = self.product_repo.variant_stock_counts(
            effective, settings.LOW_STOCK_THRESHOLD
        )
        return {
            "total_products": self.product_repo.count(effective),
            "total_variants": total_variants,
            "low_stock_count": low_stock,
            "out_of_stock_count": out_of_stock,
            "products_by_category": [
                {"category": category, "count": count}
                for category, count in self.product_repo.count_by_category(effective)
            ],
            "top_products_by_value": [
                {
                    "id": product.id,
                    "name": product.name,
                    "tenant_name": product.tenant.name,
                    "total_value": total_value,
                    "total_stock": total_stock,
                }
                for product, total_value, total_stock in self.product_repo.top_by_stock_value(effective)
            ],
        }
