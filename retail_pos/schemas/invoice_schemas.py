from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel

from retail_pos.schemas.product_schemas import VariantWithProductResponse, TenantBrief


class InvoiceItemCreate(BaseModel):
    """One cart line; unit_price is the price charged, not the catalog price"""

    variant_id: int
    quantity: int
    unit_price: Decimal


class InvoiceCreate(BaseModel):
    """Schema for creating an invoice"""

    items: list[InvoiceItemCreate]
    tenant_id: Optional[str] = None


class InvoiceUser(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    email: str
    username: Optional[str]


class InvoiceItemResponse(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    variant_id: int
    quantity: int
    unit_price: float
    total_price: float
    created_at: datetime
    variant: VariantWithProductResponse


class InvoiceResponse(BaseModel):
    """Schema for invoice response (fully joined)"""

    model_config = {"from_attributes": True}

    id: int
    total_amount: float
    user_id: int
    tenant_id: str
    created_at: datetime
    items: list[InvoiceItemResponse]
    user: InvoiceUser
    tenant: TenantBrief


class InvoiceListResponse(BaseModel):
    invoices: list[InvoiceResponse]
    total: int
