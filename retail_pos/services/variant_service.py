import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from retail_pos.core.access_guard import authorize_scope
from retail_pos.core.exceptions import (
    NotFoundException,
    DuplicateBarcodeException,
    DependentDataExistsException,
    InternalException,
)
from retail_pos.core.validation import FieldValidator
from retail_pos.database import atomic
from retail_pos.models.product import ProductVariant
from retail_pos.models.tenant_context import TenantContext, Scope, UNSCOPED, scope_from_optional
from retail_pos.repositories.product_repository import ProductRepository
from retail_pos.repositories.reservation_repository import ReservationRepository
from retail_pos.repositories.variant_repository import VariantRepository
from retail_pos.schemas.product_schemas import VariantCreate, VariantUpdate

logger = logging.getLogger(__name__)


class VariantService:
    """
    Catalog operations on product variants.

    Stock is not writable here; see InventoryTransactionService.
    """

    def __init__(self, db: Session):
        self.db = db
        self.variant_repo = VariantRepository(db)
        self.product_repo = ProductRepository(db)
        self.reservation_repo = ReservationRepository(db)

    def get_variant_by_barcode(
        self, barcode: str, context: TenantContext, scope: Scope = UNSCOPED
    ) -> ProductVariant:
        """
        Resolve a scanned barcode within the caller's scope.

        Raises:
            NotFoundException: If no visible variant carries the barcode
        """
        effective = authorize_scope(context, scope)
        variant = self.variant_repo.get_by_barcode(barcode, effective)
        if not variant:
            raise NotFoundException("Product variant not found or access denied")
        return variant

    def get_variant(
        self, variant_id: int, context: TenantContext, scope: Scope = UNSCOPED
    ) -> ProductVariant:
        effective = authorize_scope(context, scope)
        variant = self.variant_repo.get(variant_id, effective)
        if not variant:
            raise NotFoundException("Product variant not found or access denied")
        return variant

    def list_variants(
        self, product_id: int, context: TenantContext, scope: Scope = UNSCOPED
    ) -> list[ProductVariant]:
        effective = authorize_scope(context, scope)
        if not self.product_repo.get(product_id, effective):
            raise NotFoundException("Product not found or access denied")
        return self.variant_repo.list_for_product(product_id, effective)

    def create_variant(self, data: VariantCreate, context: TenantContext) -> ProductVariant:
        """
        Create a variant under a visible product.

        The variant inherits the product's tenant. Barcodes are unique across
        all tenants; uniqueness is enforced by the storage constraint.

        Raises:
            ValidationException: Listing every invalid field
            NotFoundException: If the product is missing or outside scope
            DuplicateBarcodeException: If any tenant already uses the barcode
        """
        effective = authorize_scope(context, scope_from_optional(data.tenant_id))

        validator = FieldValidator()
        validator.barcode("barcode", data.barcode)
        validator.non_negative("weight", data.weight)
        validator.non_negative("price", data.price)
        validator.integer("stock", data.stock)
        validator.non_negative("stock", data.stock)
        validator.raise_if_invalid()

        product = self.product_repo.get(data.product_id, effective)
        if not product:
            raise NotFoundException("Product not found or access denied")

        barcode = data.barcode.strip()
        try:
            with atomic(self.db):
                variant = self.variant_repo.create(
                    ProductVariant(
                        barcode=barcode,
                        weight=data.weight,
                        price=data.price,
                        stock=data.stock,
                        product_id=product.id,
                        tenant_id=product.tenant_id,
                    )
                )
                variant_id = variant.id
        except IntegrityError as exc:
            raise self._translate_integrity_error(barcode) from exc

        logger.info("Created variant %s (%s) for product %s", variant_id, barcode, product.id)
        return self.variant_repo.get(variant_id, effective)

    def update_variant(
        self,
        variant_id: int,
        data: VariantUpdate,
        context: TenantContext,
        scope: Scope = UNSCOPED,
    ) -> ProductVariant:
        """Update barcode, weight or price of a visible variant"""
        effective = authorize_scope(context, scope)

        validator = FieldValidator()
        if data.barcode is not None:
            validator.barcode("barcode", data.barcode)
        validator.non_negative("weight", data.weight)
        validator.non_negative("price", data.price)
        validator.raise_if_invalid()

        barcode = data.barcode.strip() if data.barcode is not None else None
        try:
            with atomic(self.db):
                variant = self.variant_repo.get(variant_id, effective)
                if not variant:
                    raise NotFoundException("Product variant not found or access denied")

                if barcode is not None:
                    variant.barcode = barcode
                if data.weight is not None:
                    variant.weight = data.weight
                if data.price is not None:
                    variant.price = data.price
                self.db.flush()
        except IntegrityError as exc:
            raise self._translate_integrity_error(barcode) from exc

        return self.variant_repo.get(variant_id, effective)

    def delete_variant(
        self, variant_id: int, context: TenantContext, scope: Scope = UNSCOPED
    ) -> None:
        """
        Delete a variant that has never been sold.

        Raises:
            NotFoundException: If variant doesn't exist or belongs to another tenant
            DependentDataExistsException: If any invoice item references it
        """
        effective = authorize_scope(context, scope)

        with atomic(self.db):
            variant = self.variant_repo.get(variant_id, effective)
            if not variant:
                raise NotFoundException("Product variant not found or access denied")
            if self.variant_repo.is_referenced_by_invoices([variant.id]):
                raise DependentDataExistsException(
                    "Cannot delete variant that has been used in invoices"
                )
            self.reservation_repo.delete_for_variants([variant.id])
            self.variant_repo.delete(variant)

        logger.info("Deleted variant %s", variant_id)

    def _translate_integrity_error(self, barcode: str | None) -> Exception:
        if barcode is not None and self.variant_repo.get_by_barcode(barcode, UNSCOPED):
            logger.warning("Rejected duplicate barcode %s", barcode)
            return DuplicateBarcodeException(barcode)
        logger.exception("Unexpected constraint violation while saving variant")
        return InternalException("Failed to save product variant")
