from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from retail_pos.database import get_db
from retail_pos.dependencies import get_tenant_context, get_requested_scope
from retail_pos.models.tenant_context import TenantContext, Scope
from retail_pos.services.product_service import ProductService
from retail_pos.services.variant_service import VariantService
from retail_pos.schemas.product_schemas import (
    ProductCreate,
    ProductUpdate,
    ProductResponse,
    ProductListResponse,
    InventoryStatsResponse,
    VariantWithProductResponse,
)

router = APIRouter()


@router.get("", response_model=ProductListResponse)
def list_products(
    category: Optional[str] = Query(None, description="Filter by category"),
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    List products with their variants, newest first.

    - Sellers always see their own tenant only
    - Admins see every tenant unless tenant_id is given
    """
    service = ProductService(db)
    products, total = service.list_products(context, scope, category=category, limit=limit, offset=offset)
    return ProductListResponse(products=products, total=total)


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    product_data: ProductCreate,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Create a product.

    - Sellers create in their own tenant
    - Admins must pass tenant_id
    """
    service = ProductService(db)
    return service.create_product(product_data, context)


@router.get("/stats", response_model=InventoryStatsResponse)
def get_inventory_stats(
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Catalog summary: counts, stock alerts, categories and top products by stock value"""
    service = ProductService(db)
    return service.get_inventory_stats(context, scope)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: int,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = ProductService(db)
    return service.get_product(product_id, context, scope)


@router.patch("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: int,
    product_update: ProductUpdate,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """Update name, description or category; the owning tenant cannot change"""
    service = ProductService(db)
    return service.update_product(product_id, product_update, context, scope)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: int,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Delete a product and all of its variants.

    - Rejected with 409 if any variant has been sold
    """
    service = ProductService(db)
    service.delete_product(product_id, context, scope)


@router.get("/{product_id}/variants", response_model=list[VariantWithProductResponse])
def list_variants(
    product_id: int,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = VariantService(db)
    return service.list_variants(product_id, context, scope)
