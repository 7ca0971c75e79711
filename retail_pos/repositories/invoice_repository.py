from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session, selectinload, joinedload

from retail_pos.core.access_guard import apply_scope
from retail_pos.models.invoice import Invoice, InvoiceItem
from retail_pos.models.product import ProductVariant
from retail_pos.models.tenant_context import Scope


class InvoiceRepository:
    """Repository for Invoice and InvoiceItem data access"""

    def __init__(self, db: Session):
        self.db = db

    def _filtered(
        self,
        query,
        scope: Scope,
        user_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ):
        query = apply_scope(query, Invoice.tenant_id, scope)
        if user_id is not None:
            query = query.filter(Invoice.user_id == user_id)
        if start_date is not None:
            query = query.filter(Invoice.created_at >= start_date)
        if end_date is not None:
            query = query.filter(Invoice.created_at <= end_date)
        return query

    def _with_details(self):
        return self.db.query(Invoice).options(
            selectinload(Invoice.items)
            .joinedload(InvoiceItem.variant)
            .joinedload(ProductVariant.product),
            joinedload(Invoice.user),
            joinedload(Invoice.tenant),
        )

    def create(self, invoice: Invoice) -> Invoice:
        """Add invoice header without committing (assigns the id)"""
        self.db.add(invoice)
        self.db.flush()
        return invoice

    def add_item(self, item: InvoiceItem) -> InvoiceItem:
        self.db.add(item)
        self.db.flush()
        return item

    def get_with_details(
        self, invoice_id: int, scope: Scope, user_id: Optional[int] = None
    ) -> Optional[Invoice]:
        """
        Get invoice with items, variants, products, user and tenant.

        Returns None if the invoice doesn't exist or lies outside the filters.
        """
        query = self._filtered(self._with_details(), scope, user_id=user_id)
        return query.filter(Invoice.id == invoice_id).first()

    def get_all(
        self,
        scope: Scope,
        user_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Invoice]:
        """Invoices newest first"""
        query = self._filtered(self._with_details(), scope, user_id, start_date, end_date)
        query = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).offset(offset)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(
        self,
        scope: Scope,
        user_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> int:
        return self._filtered(
            self.db.query(Invoice), scope, user_id, start_date, end_date
        ).count()

    def item_history(
        self, scope: Scope, variant_id: Optional[int] = None, limit: int = 50
    ) -> list[InvoiceItem]:
        """
        Sold invoice lines, newest first, as a stock movement history.

        Tenant filtering goes through the variant's denormalized tenant_id.
        """
        query = (
            self.db.query(InvoiceItem)
            .join(ProductVariant, InvoiceItem.variant_id == ProductVariant.id)
            .options(
                joinedload(InvoiceItem.variant).joinedload(ProductVariant.product),
                joinedload(InvoiceItem.invoice).joinedload(Invoice.user),
            )
        )
        query = apply_scope(query, ProductVariant.tenant_id, scope)
        if variant_id is not None:
            query = query.filter(InvoiceItem.variant_id == variant_id)
        return (
            query.order_by(InvoiceItem.created_at.desc(), InvoiceItem.id.desc())
            .limit(limit)
            .all()
        )
