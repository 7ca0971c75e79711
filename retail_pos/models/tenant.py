"""Tenant model for multi-tenant isolation."""

import uuid
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING

from retail_pos.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from retail_pos.models.user import User
    from retail_pos.models.product import Product
    from retail_pos.models.invoice import Invoice


class Tenant(Base, TimestampMixin):
    """
    A store: the unit of data partitioning.

    Owns users, products and invoices. Deleting a tenant that still has any
    of them is rejected; nothing cascades from here.
    """

    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    contact: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    users: Mapped[list["User"]] = relationship(
        "User", back_populates="tenant", passive_deletes="all"
    )
    products: Mapped[list["Product"]] = relationship(
        "Product", back_populates="tenant", passive_deletes="all"
    )
    invoices: Mapped[list["Invoice"]] = relationship(
        "Invoice", back_populates="tenant", passive_deletes="all"
    )

    def __repr__(self) -> str:
        return f"<Tenant(id={self.id}, name='{self.name}')>"
