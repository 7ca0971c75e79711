# Import all model classes so they're registered on Base.metadata
from retail_pos.models.base import Base
from retail_pos.models.tenant import Tenant
from retail_pos.models.user import User
from retail_pos.models.product import Product, ProductVariant
from retail_pos.models.invoice import Invoice, InvoiceItem
from retail_pos.models.reservation import StockReservation

__all__ = [
    "Base",
    "Tenant",
    "User",
    "Product",
    "ProductVariant",
    "Invoice",
    "InvoiceItem",
    "StockReservation",
]
