from datetime import datetime
from decimal import Decimal
from sqlalchemy import Integer, Numeric, ForeignKey, String, DateTime, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING
from retail_pos.models.base import Base, utcnow

if TYPE_CHECKING:
    from retail_pos.models.user import User
    from retail_pos.models.tenant import Tenant
    from retail_pos.models.product import ProductVariant


class Invoice(Base):
    """
    A completed sale.

    Created in one transaction together with its items and the matching
    stock decrements; append-only afterwards. total_amount is always the
    sum of its items' total_price.
    """

    __tablename__ = "invoices"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), nullable=False)
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Relationships
    user: Mapped["User"] = relationship("User")
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="invoices")
    items: Mapped[list["InvoiceItem"]] = relationship(
        "InvoiceItem", back_populates="invoice", order_by="InvoiceItem.id"
    )

    __table_args__ = (
        Index("ix_invoices_tenant_created", "tenant_id", "created_at"),
    )


class InvoiceItem(Base):
    """
    One invoice line. unit_price is the price charged at sale time and is
    independent of the variant's current catalog price.
    """

    __tablename__ = "invoice_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invoice_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("invoices.id"), nullable=False, index=True
    )
    variant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("product_variants.id"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    # Relationships
    invoice: Mapped["Invoice"] = relationship("Invoice", back_populates="items")
    variant: Mapped["ProductVariant"] = relationship("ProductVariant", back_populates="invoice_items")
