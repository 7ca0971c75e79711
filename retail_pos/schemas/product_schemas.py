from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field


# Requests carry shape only; bounds are enforced by the catalog service so
# that every violated field is reported in one ValidationException.


class ProductCreate(BaseModel):
    """Schema for creating a product"""

    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    tenant_id: Optional[str] = Field(None, description="Required for admins; ignored for sellers")


class ProductUpdate(BaseModel):
    """Schema for updating a product (tenant is immutable)"""

    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None


class VariantCreate(BaseModel):
    """Schema for creating a product variant"""

    barcode: str
    weight: Decimal = Decimal("0")
    price: Decimal
    stock: int = 0
    product_id: int
    tenant_id: Optional[str] = None


class VariantUpdate(BaseModel):
    """Schema for updating variant catalog fields (stock has its own path)"""

    barcode: Optional[str] = None
    weight: Optional[Decimal] = None
    price: Optional[Decimal] = None


class VariantStockChange(BaseModel):
    stock_change: int = Field(..., description="Signed delta applied to stock")


class TenantBrief(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    name: str


class ProductBrief(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    name: str
    description: Optional[str]
    category: Optional[str]
    tenant_id: str


class VariantResponse(BaseModel):
    """Schema for variant response"""

    model_config = {"from_attributes": True}

    id: int
    barcode: str
    weight: float
    price: float
    stock: int
    product_id: int
    tenant_id: str
    created_at: datetime
    updated_at: datetime


class VariantWithProductResponse(VariantResponse):
    product: ProductBrief


class ProductResponse(BaseModel):
    """Schema for product response"""

    model_config = {"from_attributes": True}

    id: int
    name: str
    description: Optional[str]
    category: Optional[str]
    tenant_id: str
    tenant: TenantBrief
    variants: list[VariantResponse]
    created_at: datetime
    updated_at: datetime


class ProductListResponse(BaseModel):
    products: list[ProductResponse]
    total: int


class CategoryCount(BaseModel):
    category: Optional[str]
    count: int


class ProductValue(BaseModel):
    id: int
    name: str
    tenant_name: str
    total_value: float
    total_stock: int


class InventoryStatsResponse(BaseModel):
    total_products: int
    total_variants: int
    low_stock_count: int
    out_of_stock_count: int
    products_by_category: list[CategoryCount]
    top_products_by_value: list[ProductValue]
