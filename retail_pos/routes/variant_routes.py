from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from retail_pos.database import get_db
from retail_pos.dependencies import get_tenant_context, get_requested_scope
from retail_pos.models.tenant_context import TenantContext, Scope
from retail_pos.services.variant_service import VariantService
from retail_pos.services.inventory_service import InventoryTransactionService
from retail_pos.schemas.product_schemas import (
    VariantCreate,
    VariantUpdate,
    VariantStockChange,
    VariantWithProductResponse,
)

router = APIRouter()


@router.post("", response_model=VariantWithProductResponse, status_code=status.HTTP_201_CREATED)
def create_variant(
    variant_data: VariantCreate,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Add a variant to a product.

    - Barcode must be unique across all tenants (409 otherwise)
    - The variant inherits the product's tenant
    """
    service = VariantService(db)
    return service.create_variant(variant_data, context)


@router.get("/barcode/{barcode}", response_model=VariantWithProductResponse)
def get_variant_by_barcode(
    barcode: str,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Resolve a scanned barcode (404 when missing or in another tenant)"""
    service = VariantService(db)
    return service.get_variant_by_barcode(barcode, context, scope)


@router.get("/{variant_id}", response_model=VariantWithProductResponse)
def get_variant(
    variant_id: int,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = VariantService(db)
    return service.get_variant(variant_id, context, scope)


@router.patch("/{variant_id}", response_model=VariantWithProductResponse)
def update_variant(
    variant_id: int,
    variant_update: VariantUpdate,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = VariantService(db)
    return service.update_variant(variant_id, variant_update, context, scope)


@router.delete("/{variant_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_variant(
    variant_id: int,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Delete a variant (409 if it appears on any invoice)"""
    service = VariantService(db)
    service.delete_variant(variant_id, context, scope)


@router.patch("/{variant_id}/stock", response_model=VariantWithProductResponse)
def adjust_variant_stock(
    variant_id: int,
    stock_change: VariantStockChange,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Apply a signed stock delta.

    - 422 if the result would drop below zero or into reserved stock
    """
    service = InventoryTransactionService(db)
    return service.adjust_variant_stock(variant_id, stock_change.stock_change, context, scope)
