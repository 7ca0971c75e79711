from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from retail_pos.core.access_guard import authorize_scope
from retail_pos.core.exceptions import NotFoundException, ValidationException
from retail_pos.models.invoice import Invoice
from retail_pos.models.tenant_context import TenantContext, Scope, UNSCOPED, scope_from_optional
from retail_pos.repositories.invoice_repository import InvoiceRepository
from retail_pos.schemas.invoice_schemas import InvoiceCreate
from retail_pos.services.inventory_service import InventoryTransactionService


class InvoiceService:
    """
    Service layer for invoices.

    Sellers only ever see invoices they created themselves; this narrowing
    is applied on top of the tenant scope.
    """

    def __init__(self, db: Session):
        self.db = db
        self.invoice_repo = InvoiceRepository(db)
        self.inventory = InventoryTransactionService(db)

    @staticmethod
    def _user_filter(context: TenantContext, user_id: Optional[int]) -> Optional[int]:
        if context.is_seller():
            return context.user_id
        return user_id

    @staticmethod
    def _check_date_range(start_date: Optional[datetime], end_date: Optional[datetime]) -> None:
        if start_date and end_date and start_date > end_date:
            raise ValidationException("start_date must be before end_date")

    def create_invoice(self, invoice_data: InvoiceCreate, context: TenantContext) -> Invoice:
        """
        Create an invoice and reduce stock in one transaction.

        Args:
            invoice_data: Cart lines and, for admins, the target tenant
            context: Tenant context of the seller (or admin) issuing it

        Returns:
            The committed invoice, fully joined
        """
        return self.inventory.create_invoice_with_stock_reduction(
            invoice_data.items, context, scope_from_optional(invoice_data.tenant_id)
        )

    def get_invoices(
        self,
        context: TenantContext,
        scope: Scope = UNSCOPED,
        user_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Invoice]:
        """
        List invoices newest first.

        Admins may filter by any user; a seller's user filter is always
        their own id.
        """
        effective = authorize_scope(context, scope)
        self._check_date_range(start_date, end_date)
        return self.invoice_repo.get_all(
            effective,
            user_id=self._user_filter(context, user_id),
            start_date=start_date,
            end_date=end_date,
            limit=limit,
            offset=offset,
        )

    def get_invoices_count(
        self,
        context: TenantContext,
        scope: Scope = UNSCOPED,
        user_id: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> int:
        effective = authorize_scope(context, scope)
        self._check_date_range(start_date, end_date)
        return self.invoice_repo.count(
            effective,
            user_id=self._user_filter(context, user_id),
            start_date=start_date,
            end_date=end_date,
        )

    def get_invoice_by_id(
        self, invoice_id: int, context: TenantContext, scope: Scope = UNSCOPED
    ) -> Invoice:
        """
        Raises:
            NotFoundException: Missing, in another tenant, or (for sellers) issued by someone else
        """
        effective = authorize_scope(context, scope)
        invoice = self.invoice_repo.get_with_details(
            invoice_id, effective, user_id=self._user_filter(context, None)
        )
        if not invoice:
            raise NotFoundException("Invoice not found or access denied")
        return invoice
