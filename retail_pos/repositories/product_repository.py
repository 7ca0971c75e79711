from sqlalchemy import func, case
from sqlalchemy.orm import Session, selectinload, joinedload

from retail_pos.core.access_guard import apply_scope
from retail_pos.models.product import Product, ProductVariant
from retail_pos.models.tenant_context import Scope


class ProductRepository:
    """Repository for Product data access; every read takes an effective scope"""

    def __init__(self, db: Session):
        self.db = db

    def _scoped(self, scope: Scope):
        query = self.db.query(Product).options(
            selectinload(Product.variants), joinedload(Product.tenant)
        )
        return apply_scope(query, Product.tenant_id, scope)

    def get_all(
        self,
        scope: Scope,
        category: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Product]:
        """Products newest first, with variants and tenant loaded"""
        query = self._scoped(scope)
        if category is not None:
            query = query.filter(Product.category == category)
        query = query.order_by(Product.created_at.desc(), Product.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get(self, product_id: int, scope: Scope) -> Product | None:
        """
        Get product within scope.

        Returns None if product doesn't exist or belongs to another tenant.
        """
        return self._scoped(scope).filter(Product.id == product_id).first()

    def create(self, product: Product) -> Product:
        """Add product without committing"""
        self.db.add(product)
        self.db.flush()
        return product

    def delete(self, product: Product) -> None:
        self.db.delete(product)
        self.db.flush()

    # Statistics

    def count(self, scope: Scope, category: str | None = None) -> int:
        query = apply_scope(self.db.query(func.count(Product.id)), Product.tenant_id, scope)
        if category is not None:
            query = query.filter(Product.category == category)
        return query.scalar()

    def count_by_category(self, scope: Scope) -> list[tuple[str | None, int]]:
        query = self.db.query(Product.category, func.count(Product.id))
        query = apply_scope(query, Product.tenant_id, scope)
        rows = query.group_by(Product.category).order_by(func.count(Product.id).desc()).all()
        return [(category, count) for category, count in rows]

    def top_by_stock_value(self, scope: Scope, limit: int = 10) -> list[tuple[Product, float, int]]:
        """
        Products ranked by the value of stock on hand (sum of stock * price).

        Returns:
            List of (product, total_value, total_stock)
        """
        value = func.coalesce(func.sum(ProductVariant.stock * ProductVariant.price), 0)
        stock = func.coalesce(func.sum(ProductVariant.stock), 0)
        query = (
            self.db.query(Product, value.label("total_value"), stock.label("total_stock"))
            .outerjoin(ProductVariant, ProductVariant.product_id == Product.id)
            .options(selectinload(Product.tenant))
        )
        query = apply_scope(query, Product.tenant_id, scope)
        rows = (
            query.group_by(Product.id)
            .order_by(value.desc(), Product.id)
            .limit(limit)
            .all()
        )
        return [(product, float(total_value), int(total_stock)) for product, total_value, total_stock in rows]

    def variant_stock_counts(self, scope: Scope, low_stock_threshold: int) -> tuple[int, int, int]:
        """
        Returns:
            (total_variants, low_stock_variants, out_of_stock_variants)
        """
        query = self.db.query(
            func.count(ProductVariant.id),
            func.coalesce(func.sum(case((ProductVariant.stock < low_stock_threshold, 1), else_=0)), 0),
            func.coalesce(func.sum(case((ProductVariant.stock == 0, 1), else_=0)), 0),
        )
        total, low, out = apply_scope(query, ProductVariant.tenant_id, scope).one()
        return int(total), int(low), int(out)
