from datetime import datetime
from enum import Enum as PyEnum
from typing import Optional
from pydantic import BaseModel, Field

from retail_pos.schemas.product_schemas import VariantWithProductResponse, ProductBrief


class MovementType(str, PyEnum):
    IN = "IN"
    OUT = "OUT"


class StockMovement(BaseModel):
    """A directional stock change; reason is free-text metadata"""

    variant_id: int
    quantity: int
    type: MovementType
    reason: str = ""


class BulkStockUpdate(BaseModel):
    """Absolute stock correction for one variant"""

    variant_id: int
    new_stock: int


class StockReservationRequest(BaseModel):
    variant_id: int
    quantity: int
    reservation_id: str = Field(..., description="Caller-supplied key shared by the rows of one hold")


class StockMovementBatch(BaseModel):
    movements: list[StockMovement]
    tenant_id: Optional[str] = None


class BulkStockUpdateBatch(BaseModel):
    updates: list[BulkStockUpdate]
    tenant_id: Optional[str] = None


class StockTransferRequest(BaseModel):
    from_variant_id: int
    to_variant_id: int
    quantity: int
    tenant_id: Optional[str] = None


class StockReservationBatch(BaseModel):
    reservations: list[StockReservationRequest]
    tenant_id: Optional[str] = None
    ttl_seconds: Optional[int] = None


class InventoryError(BaseModel):
    """One failed sub-item of a batch inventory operation"""

    kind: str
    message: str
    variant_id: Optional[int] = None
    available: Optional[int] = None
    requested: Optional[int] = None


class InventoryTransactionResult(BaseModel):
    """
    Uniform result of the batch inventory operations.

    success=False means the whole transaction was rolled back; errors lists
    every sub-item that failed validation.
    """

    success: bool
    affected_variant_ids: list[int] = Field(default_factory=list)
    errors: list[InventoryError] = Field(default_factory=list)


class LowStockVariantResponse(VariantWithProductResponse):
    pass


class StockHistoryVariant(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    barcode: str
    product: ProductBrief


class StockHistoryUser(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    email: str
    username: Optional[str]


class StockHistoryInvoice(BaseModel):
    model_config = {"from_attributes": True}

    id: int
    user: StockHistoryUser


class StockHistoryEntryResponse(BaseModel):
    """An invoice line viewed as an OUT movement"""

    model_config = {"from_attributes": True}

    id: int
    invoice_id: int
    variant_id: int
    quantity: int
    unit_price: float
    total_price: float
    created_at: datetime
    variant: StockHistoryVariant
    invoice: StockHistoryInvoice
