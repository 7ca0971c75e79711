from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from retail_pos.core.access_guard import apply_scope
from retail_pos.models.product import Product, ProductVariant
from retail_pos.models.invoice import InvoiceItem
from retail_pos.models.tenant_context import Scope


class VariantRepository:
    """
    Repository for ProductVariant data access.

    Stock writes are issued as single UPDATE statements (increment,
    conditional decrement, absolute set) and never as a read-modify-write
    of a value loaded outside the current transaction. None of the write
    methods commit; the inventory engine owns the transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, scope: Scope):
        return apply_scope(self.db.query(ProductVariant), ProductVariant.tenant_id, scope)

    def get(self, variant_id: int, scope: Scope) -> ProductVariant | None:
        return (
            self._scoped(scope)
            .options(joinedload(ProductVariant.product))
            .filter(ProductVariant.id == variant_id)
            .first()
        )

    def get_by_barcode(self, barcode: str, scope: Scope) -> ProductVariant | None:
        return (
            self._scoped(scope)
            .options(joinedload(ProductVariant.product).joinedload(Product.tenant))
            .filter(ProductVariant.barcode == barcode)
            .first()
        )

    def list_for_product(self, product_id: int, scope: Scope) -> list[ProductVariant]:
        return (
            self._scoped(scope)
            .options(joinedload(ProductVariant.product))
            .filter(ProductVariant.product_id == product_id)
            .order_by(ProductVariant.created_at.desc(), ProductVariant.id.desc())
            .all()
        )

    def lock_many(self, variant_ids: list[int], scope: Scope) -> dict[int, ProductVariant]:
        """
        Re-read variants inside the current transaction with row locks.

        Rows are locked in id order so concurrent batches over overlapping
        variants cannot deadlock. Variants outside the scope are absent
        from the result. SQLite ignores FOR UPDATE.
        """
        if not variant_ids:
            return {}
        variants = (
            self._scoped(scope)
            .filter(ProductVariant.id.in_(sorted(set(variant_ids))))
            .order_by(ProductVariant.id)
            .with_for_update()
            .populate_existing()
            .all()
        )
        return {variant.id: variant for variant in variants}

    def lock_one(self, variant_id: int, scope: Scope) -> ProductVariant | None:
        return self.lock_many([variant_id], scope).get(variant_id)

    def current_stock(self, variant_id: int) -> int:
        stock = self.db.query(ProductVariant.stock).filter(ProductVariant.id == variant_id).scalar()
        return stock or 0

    def increment_stock(self, variant_id: int, quantity: int) -> None:
        self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(stock=ProductVariant.stock + quantity)
            .execution_options(synchronize_session=False)
        )

    def decrement_stock(self, variant_id: int, quantity: int) -> bool:
        """
        Decrement only if enough stock remains.

        Returns:
            False if the row did not have `quantity` in stock (nothing written)
        """
        result = self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.stock >= quantity)
            .values(stock=ProductVariant.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def set_stock(self, variant_id: int, new_stock: int) -> None:
        self.db.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id)
            .values(stock=new_stock)
            .execution_options(synchronize_session=False)
        )

    def low_stock(self, threshold: int, scope: Scope) -> list[ProductVariant]:
        """Variants with stock <= threshold, lowest stock first"""
        return (
            self._scoped(scope)
            .options(joinedload(ProductVariant.product).joinedload(Product.tenant))
            .filter(ProductVariant.stock <= threshold)
            .order_by(ProductVariant.stock.asc(), ProductVariant.id)
            .all()
        )

    def is_referenced_by_invoices(self, variant_ids: list[int]) -> bool:
        if not variant_ids:
            return False
        return (
            self.db.query(InvoiceItem.id)
            .filter(InvoiceItem.variant_id.in_(variant_ids))
            .first()
            is not None
        )

    def create(self, variant: ProductVariant) -> ProductVariant:
        """
        Add variant without committing.

        Raises:
            IntegrityError: If the barcode is already used by any tenant
        """
        self.db.add(variant)
        self.db.flush()
        return variant

    def delete(self, variant: ProductVariant) -> None:
        self.db.delete(variant)
        self.db.flush()

    def delete_many(self, variants: list[ProductVariant]) -> None:
        for variant in variants:
            self.db.delete(variant)
        self.db.flush()
