from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from retail_pos.database import get_db
from retail_pos.dependencies import get_tenant_context
from retail_pos.models.tenant_context import TenantContext
from retail_pos.services.tenant_service import TenantManagementService
from retail_pos.schemas.tenant_schemas import (
    TenantCreate,
    TenantUpdate,
    TenantResponse,
    TenantDetailResponse,
    TenantUserResponse,
    TenantAssignUserRequest,
    TenantUserRemoveResponse,
)

router = APIRouter()


@router.get("", response_model=list[TenantDetailResponse])
def list_tenants(
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    List all tenants with users and product/invoice counts.

    - **Requires ADMIN**
    """
    service = TenantManagementService(db)
    return service.list_tenants(context, limit=limit, offset=offset)


@router.post("", response_model=TenantResponse, status_code=status.HTTP_201_CREATED)
def create_tenant(
    tenant_data: TenantCreate,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Create a tenant.

    - **Requires ADMIN**
    - Tenant names are unique (409 otherwise)
    """
    service = TenantManagementService(db)
    return service.create_tenant(tenant_data, context)


@router.get("/{tenant_id}", response_model=TenantDetailResponse)
def get_tenant(
    tenant_id: str,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = TenantManagementService(db)
    return service.get_tenant(tenant_id, context)


@router.patch("/{tenant_id}", response_model=TenantResponse)
def update_tenant(
    tenant_id: str,
    tenant_update: TenantUpdate,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = TenantManagementService(db)
    return service.update_tenant(tenant_id, tenant_update, context)


@router.delete("/{tenant_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_tenant(
    tenant_id: str,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Delete a tenant.

    - **Requires ADMIN**
    - 409 while the tenant still has users, products or invoices
    """
    service = TenantManagementService(db)
    service.delete_tenant(tenant_id, context)


@router.get("/{tenant_id}/users", response_model=list[TenantUserResponse])
def list_tenant_users(
    tenant_id: str,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = TenantManagementService(db)
    return service.list_tenant_users(tenant_id, context)


@router.post("/{tenant_id}/users", response_model=TenantUserResponse)
def assign_user(
    tenant_id: str,
    assign_request: TenantAssignUserRequest,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    """
    Bind a seller to this tenant.

    - **Requires ADMIN**
    - Admin users cannot be bound to a tenant (400)
    """
    service = TenantManagementService(db)
    return service.assign_user_to_tenant(assign_request.user_id, tenant_id, context)


@router.delete("/{tenant_id}/users/{user_id}", response_model=TenantUserRemoveResponse)
def remove_user(
    tenant_id: str,
    user_id: int,
    context: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db),
):
    service = TenantManagementService(db)
    user = service.remove_user_from_tenant(tenant_id, user_id, context)
    return TenantUserRemoveResponse(
        message=f"User {user.email} removed from tenant",
        user=TenantUserResponse.model_validate(user),
    )
