"""Stock reservation ledger."""

from datetime import datetime
from sqlalchemy import Integer, String, ForeignKey, DateTime, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING
from retail_pos.models.base import Base, utcnow

if TYPE_CHECKING:
    from retail_pos.models.product import ProductVariant


class StockReservation(Base):
    """
    A temporary hold on variant stock.

    A reservation counts against available stock while it is not released
    and its expires_at lies in the future. Expired rows simply stop counting.
    Several rows may share one reservation_key (one per reserved variant).
    """

    __tablename__ = "stock_reservations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    reservation_key: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    variant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("product_variants.id"), nullable=False
    )
    tenant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("tenants.id"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    released: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    variant: Mapped["ProductVariant"] = relationship("ProductVariant")

    __table_args__ = (
        Index("ix_stock_reservations_variant_active", "variant_id", "released", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<StockReservation(key='{self.reservation_key}', variant_id={self.variant_id}, "
            f"quantity={self.quantity})>"
        )
