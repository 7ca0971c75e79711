from typing import Optional
from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from retail_pos.database import get_db
from retail_pos.dependencies import get_tenant_context, get_requested_scope
from retail_pos.models.tenant_context import TenantContext, Scope, scope_from_optional
from retail_pos.services.inventory_service import InventoryTransactionService
from retail_pos.schemas.inventory_schemas import (
    StockMovementBatch,
    BulkStockUpdateBatch,
    StockTransferRequest,
    StockReservationBatch,
    InventoryTransactionResult,
    LowStockVariantResponse,
    StockHistoryEntryResponse,
)

router = APIRouter()


def _respond(result: InventoryTransactionResult, response: Response) -> InventoryTransactionResult:
    # The whole batch rolled back; errors lists every failed item
    if not result.success:
        response.status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    return result


@router.post("/movements", response_model=InventoryTransactionResult)
def perform_stock_movements(
    batch: StockMovementBatch,
    response: Response,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Apply IN/OUT stock movements atomically.

    - All movements are validated before any is applied
    - Returns 422 with every failed movement if the batch is rejected
    """
    service = InventoryTransactionService(db)
    result = service.perform_stock_movements(
        batch.movements, context, scope_from_optional(batch.tenant_id)
    )
    return _respond(result, response)


@router.put("/bulk-stock", response_model=InventoryTransactionResult)
def perform_bulk_stock_update(
    batch: BulkStockUpdateBatch,
    response: Response,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Set absolute stock levels atomically (negative values are rejected)"""
    service = InventoryTransactionService(db)
    result = service.perform_bulk_stock_update(
        batch.updates, context, scope_from_optional(batch.tenant_id)
    )
    return _respond(result, response)


@router.post("/transfers", response_model=InventoryTransactionResult)
def transfer_stock(
    transfer: StockTransferRequest,
    response: Response,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = InventoryTransactionService(db)
    result = service.transfer_stock_between_variants(
        transfer.from_variant_id,
        transfer.to_variant_id,
        transfer.quantity,
        context,
        scope_from_optional(transfer.tenant_id),
    )
    return _respond(result, response)


@router.post("/reservations", response_model=InventoryTransactionResult)
def reserve_stock(
    batch: StockReservationBatch,
    response: Response,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Hold stock under a reservation id.

    - Held stock is unavailable to sales, OUT movements and transfers until
      released or expired (ttl_seconds, default from settings)
    """
    service = InventoryTransactionService(db)
    result = service.reserve_stock(
        batch.reservations,
        context,
        scope_from_optional(batch.tenant_id),
        ttl_seconds=batch.ttl_seconds,
    )
    return _respond(result, response)


@router.delete("/reservations/{reservation_id}", response_model=InventoryTransactionResult)
def release_reservation(
    reservation_id: str,
    response: Response,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = InventoryTransactionService(db)
    return _respond(service.release_reservation(reservation_id, context, scope), response)


@router.get("/low-stock", response_model=list[LowStockVariantResponse])
def get_low_stock_variants(
    threshold: Optional[int] = Query(None, ge=0, description="Stock at or below this level"),
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = InventoryTransactionService(db)
    return service.get_low_stock_variants(context, threshold=threshold, scope=scope)


@router.get("/history", response_model=list[StockHistoryEntryResponse])
def get_stock_movement_history(
    variant_id: Optional[int] = Query(None, description="Restrict to one variant"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max entries"),
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Sales history, newest first.

    Derived from invoice lines; manual movements and corrections are not listed.
    """
    service = InventoryTransactionService(db)
    return service.get_stock_movement_history(context, variant_id=variant_id, scope=scope, limit=limit)
