from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, ForeignKey, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING
from retail_pos.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from retail_pos.models.tenant import Tenant
    from retail_pos.models.invoice import InvoiceItem


class Product(Base, TimestampMixin):
    """
    Catalog entry owned by a tenant.

    tenant_id is fixed at creation. Sellable units are its variants.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )

    # Relationships
    tenant: Mapped["Tenant"] = relationship("Tenant", back_populates="products")
    variants: Mapped[list["ProductVariant"]] = relationship(
        "ProductVariant", back_populates="product", order_by="ProductVariant.id", passive_deletes="all"
    )


class ProductVariant(Base, TimestampMixin):
    """
    A sellable SKU of a product, resolved by a globally unique barcode.

    tenant_id is a denormalized copy of the parent product's tenant so that
    stock queries can be tenant-filtered without a join. stock is mutated
    only by the inventory transaction engine and never goes negative.
    """

    __tablename__ = "product_variants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    barcode: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    weight: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=3), nullable=False, default=0)
    price: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("products.id"), nullable=False, index=True
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )

    # Relationships
    product: Mapped["Product"] = relationship("Product", back_populates="variants")
    invoice_items: Mapped[list["InvoiceItem"]] = relationship(
        "InvoiceItem", back_populates="variant", passive_deletes="all"
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<ProductVariant(id={self.id}, barcode='{self.barcode}', stock={self.stock})>"
