from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from retail_pos.database import get_db
from retail_pos.dependencies import get_tenant_context, get_requested_scope
from retail_pos.models.tenant_context import TenantContext, Scope
from retail_pos.services.invoice_service import InvoiceService
from retail_pos.schemas.invoice_schemas import InvoiceCreate, InvoiceResponse, InvoiceListResponse

router = APIRouter()


@router.post("", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Create an invoice and decrement stock atomically.

    - unit_price is the price charged; the catalog price is not consulted
    - 404 for an unknown variant, 422 for insufficient stock
    - Admins must pass tenant_id
    """
    service = InvoiceService(db)
    return service.create_invoice(invoice_data, context)


@router.get("", response_model=InvoiceListResponse)
def list_invoices(
    user_id: Optional[int] = Query(None, description="Filter by seller (admins only)"),
    start_date: Optional[datetime] = Query(None, description="Created at or after"),
    end_date: Optional[datetime] = Query(None, description="Created at or before"),
    limit: int = Query(100, ge=1, le=1000, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    List invoices newest first.

    Sellers only see invoices they issued themselves.
    """
    service = InvoiceService(db)
    invoices = service.get_invoices(
        context, scope, user_id=user_id, start_date=start_date, end_date=end_date,
        limit=limit, offset=offset,
    )
    total = service.get_invoices_count(
        context, scope, user_id=user_id, start_date=start_date, end_date=end_date
    )
    return InvoiceListResponse(invoices=invoices, total=total)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: int,
    scope: Scope = Depends(get_requested_scope),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = InvoiceService(db)
    return service.get_invoice_by_id(invoice_id, context, scope)
