from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from retail_pos.models.role import UserRole


class TenantCreate(BaseModel):
    """Create tenant (ADMIN only)"""

    name: str
    address: Optional[str] = None
    contact: Optional[str] = None


class TenantUpdate(BaseModel):
    """Update tenant details (ADMIN only)"""

    name: Optional[str] = None
    address: Optional[str] = None
    contact: Optional[str] = None


class TenantUserResponse(BaseModel):
    """User as seen from tenant management"""

    id: int
    email: str
    username: Optional[str]
    role: UserRole
    tenant_id: Optional[str]

    model_config = {"from_attributes": True}


class TenantResponse(BaseModel):
    """Tenant details response"""

    id: str
    name: str
    address: Optional[str]
    contact: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TenantDetailResponse(TenantResponse):
    """Tenant with users and dependent counts"""

    users: list[TenantUserResponse]
    user_count: int
    product_count: int
    invoice_count: int


class TenantAssignUserRequest(BaseModel):
    """Bind a seller to a tenant"""

    user_id: int = Field(..., description="User to assign")


class TenantUserRemoveResponse(BaseModel):
    """Response after removing a user from a tenant"""

    message: str
    user: TenantUserResponse
