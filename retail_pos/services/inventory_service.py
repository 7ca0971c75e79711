"""
Inventory transaction engine.

Every stock mutation runs as read-validate-apply inside one atomic unit:
variants are re-read with row locks inside the transaction, every check is
made against those fresh values, and decrements are applied as conditional
UPDATEs so stock can never go negative even where the store ignores row
locks. Batch operations report failures as data in an
InventoryTransactionResult; invoice creation and single-variant adjustments
raise typed exceptions.
"""

import logging
import time
from collections.abc import Callable
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import TypeVar

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from retail_pos.config import settings
from retail_pos.core.access_guard import authorize_scope, require_tenant_scope
from retail_pos.core.exceptions import (
    NotFoundException,
    VariantNotFoundException,
    InsufficientStockException,
    InternalException,
)
from retail_pos.core.validation import FieldValidator
from retail_pos.database import atomic
from retail_pos.models.base import utcnow
from retail_pos.models.invoice import Invoice, InvoiceItem
from retail_pos.models.product import ProductVariant
from retail_pos.models.reservation import StockReservation
from retail_pos.models.tenant_context import TenantContext, Scope, UNSCOPED
from retail_pos.repositories.invoice_repository import InvoiceRepository
from retail_pos.repositories.reservation_repository import ReservationRepository
from retail_pos.repositories.variant_repository import VariantRepository
from retail_pos.schemas.inventory_schemas import (
    MovementType,
    StockMovement,
    BulkStockUpdate,
    StockReservationRequest,
    InventoryError,
    InventoryTransactionResult,
)
from retail_pos.schemas.invoice_schemas import InvoiceItemCreate

logger = logging.getLogger(__name__)

T = TypeVar("T")

CENTS = Decimal("0.01")
RETRY_BACKOFF_SECONDS = 0.05


def to_money(value) -> Decimal:
    """Quantize a currency amount to cents"""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


class _BatchRejected(Exception):
    """Aborts a batch transaction; carries every collected sub-item error"""

    def __init__(self, errors: list[InventoryError]):
        self.errors = errors
        super().__init__(f"{len(errors)} inventory error(s)")


def _not_found(variant_id: int) -> InventoryError:
    return InventoryError(
        kind="VariantNotFoundOrDenied",
        message=f"Product variant {variant_id} not found or access denied",
        variant_id=variant_id,
    )


def _insufficient(variant_id: int, available: int, requested: int) -> InventoryError:
    return InventoryError(
        kind="InsufficientStock",
        message=(
            f"Insufficient stock for variant {variant_id}. "
            f"Available: {available}, Requested: {requested}"
        ),
        variant_id=variant_id,
        available=available,
        requested=requested,
    )


def _unique(ids: list[int]) -> list[int]:
    return list(dict.fromkeys(ids))


class InventoryTransactionService:
    """The only component allowed to write ProductVariant.stock"""

    def __init__(self, db: Session):
        self.db = db
        self.variant_repo = VariantRepository(db)
        self.invoice_repo = InvoiceRepository(db)
        self.reservation_repo = ReservationRepository(db)

    # Transaction plumbing

    def _transact(self, operation: str, work: Callable[[], T]) -> T:
        """
        Run `work` in one atomic unit, retrying transient lock failures.

        Each attempt re-runs the whole read-validate-apply sequence.
        Attempts are bounded by STOCK_TX_MAX_ATTEMPTS (1 means no retry).
        """
        attempts = max(1, settings.STOCK_TX_MAX_ATTEMPTS)
        attempt = 1
        while True:
            try:
                with atomic(self.db):
                    return work()
            except OperationalError:
                if attempt >= attempts:
                    raise
                logger.warning(
                    "%s hit a transient storage failure (attempt %d of %d), retrying",
                    operation,
                    attempt,
                    attempts,
                )
                time.sleep(RETRY_BACKOFF_SECONDS * (2 ** (attempt - 1)))
                attempt += 1

    def _run_batch(self, operation: str, work: Callable[[], list[int]]) -> InventoryTransactionResult:
        try:
            affected = self._transact(operation, work)
        except _BatchRejected as exc:
            logger.warning("%s rolled back with %d error(s)", operation, len(exc.errors))
            return InventoryTransactionResult(success=False, errors=exc.errors)
        except SQLAlchemyError:
            logger.exception("%s failed unexpectedly", operation)
            return InventoryTransactionResult(
                success=False,
                errors=[InventoryError(kind="Internal", message="Internal server error")],
            )

        logger.info("%s committed for variants %s", operation, affected)
        return InventoryTransactionResult(success=True, affected_variant_ids=affected)

    def _available(self, variants: dict[int, ProductVariant]) -> dict[int, int]:
        """Stock minus active reservations for freshly locked variants"""
        reserved = self.reservation_repo.reserved_quantities(list(variants), utcnow())
        return {
            variant_id: variant.stock - reserved.get(variant_id, 0)
            for variant_id, variant in variants.items()
        }

    # Batch operations

    def perform_stock_movements(
        self,
        movements: list[StockMovement],
        context: TenantContext,
        scope: Scope = UNSCOPED,
    ) -> InventoryTransactionResult:
        """
        Apply IN/OUT movements as one all-or-nothing batch.

        Every movement is validated before any is applied; repeated variant
        ids are checked against a running projection of the stock.

        Raises:
            ValidationException: Empty batch or non-positive quantities
            ForbiddenException: Access guard denial
        """
        validator = FieldValidator()
        if not movements:
            validator.add("movements cannot be empty")
        for index, movement in enumerate(movements):
            validator.integer(f"movements[{index}].quantity", movement.quantity)
            validator.positive(f"movements[{index}].quantity", movement.quantity)
        validator.raise_if_invalid()

        effective = authorize_scope(context, scope)

        def work() -> list[int]:
            variants = self.variant_repo.lock_many([m.variant_id for m in movements], effective)
            projected = self._available(variants)

            errors = []
            for movement in movements:
                if movement.variant_id not in variants:
                    errors.append(_not_found(movement.variant_id))
                    continue
                if movement.type == MovementType.OUT:
                    available = projected[movement.variant_id]
                    if movement.quantity > available:
                        errors.append(
                            _insufficient(movement.variant_id, max(available, 0), movement.quantity)
                        )
                        continue
                    projected[movement.variant_id] -= movement.quantity
                else:
                    projected[movement.variant_id] += movement.quantity
            if errors:
                raise _BatchRejected(errors)

            for movement in movements:
                if movement.type == MovementType.IN:
                    self.variant_repo.increment_stock(movement.variant_id, movement.quantity)
                elif not self.variant_repo.decrement_stock(movement.variant_id, movement.quantity):
                    raise _BatchRejected([
                        _insufficient(
                            movement.variant_id,
                            self.variant_repo.current_stock(movement.variant_id),
                            movement.quantity,
                        )
                    ])
            return _unique([m.variant_id for m in movements])

        return self._run_batch("Stock movements", work)

    def perform_bulk_stock_update(
        self,
        updates: list[BulkStockUpdate],
        context: TenantContext,
        scope: Scope = UNSCOPED,
    ) -> InventoryTransactionResult:
        """
        Set absolute stock levels as one all-or-nothing batch.

        This is an authoritative correction: active reservations do not
        block it. Negative targets are reported per item, never clamped.
        """
        validator = FieldValidator()
        if not updates:
            validator.add("updates cannot be empty")
        for index, update in enumerate(updates):
            validator.integer(f"updates[{index}].new_stock", update.new_stock)
        validator.raise_if_invalid()

        effective = authorize_scope(context, scope)

        def work() -> list[int]:
            variants = self.variant_repo.lock_many([u.variant_id for u in updates], effective)

            errors = []
            for update in updates:
                if update.variant_id not in variants:
                    errors.append(_not_found(update.variant_id))
                elif update.new_stock < 0:
                    errors.append(
                        InventoryError(
                            kind="InvalidStockValue",
                            message=f"Stock cannot be negative for variant {update.variant_id}",
                            variant_id=update.variant_id,
                            requested=update.new_stock,
                        )
                    )
            if errors:
                raise _BatchRejected(errors)

            for update in updates:
                self.variant_repo.set_stock(update.variant_id, update.new_stock)
            return _unique([u.variant_id for u in updates])

        return self._run_batch("Bulk stock update", work)

    def transfer_stock_between_variants(
        self,
        from_variant_id: int,
        to_variant_id: int,
        quantity: int,
        context: TenantContext,
        scope: Scope = UNSCOPED,
    ) -> InventoryTransactionResult:
        """Move stock from one variant to another; both sides or neither"""
        validator = FieldValidator()
        validator.integer("quantity", quantity)
        validator.positive("quantity", quantity)
        if from_variant_id == to_variant_id:
            validator.add("from_variant_id and to_variant_id must differ")
        validator.raise_if_invalid()

        effective = authorize_scope(context, scope)

        def work() -> list[int]:
            variants = self.variant_repo.lock_many([from_variant_id, to_variant_id], effective)

            errors = [_not_found(vid) for vid in (from_variant_id, to_variant_id) if vid not in variants]
            if from_variant_id in variants:
                available = self._available({from_variant_id: variants[from_variant_id]})[from_variant_id]
                if quantity > available:
                    errors.append(_insufficient(from_variant_id, max(available, 0), quantity))
            if errors:
                raise _BatchRejected(errors)

            if not self.variant_repo.decrement_stock(from_variant_id, quantity):
                raise _BatchRejected([
                    _insufficient(from_variant_id, self.variant_repo.current_stock(from_variant_id), quantity)
                ])
            self.variant_repo.increment_stock(to_variant_id, quantity)
            return [from_variant_id, to_variant_id]

        return self._run_batch("Stock transfer", work)

    def reserve_stock(
        self,
        reservations: list[StockReservationRequest],
        context: TenantContext,
        scope: Scope = UNSCOPED,
        ttl_seconds: int | None = None,
    ) -> InventoryTransactionResult:
        """
        Hold stock for later sale.

        A reservation withholds its quantity from every other consumer until
        it is released or expires.
        """
        ttl = settings.RESERVATION_TTL_SECONDS if ttl_seconds is None else ttl_seconds

        validator = FieldValidator()
        if not reservations:
            validator.add("reservations cannot be empty")
        for index, reservation in enumerate(reservations):
            validator.integer(f"reservations[{index}].quantity", reservation.quantity)
            validator.positive(f"reservations[{index}].quantity", reservation.quantity)
            validator.required_text(f"reservations[{index}].reservation_id", reservation.reservation_id, 100)
        validator.integer("ttl_seconds", ttl)
        validator.positive("ttl_seconds", ttl)
        validator.raise_if_invalid()

        effective = authorize_scope(context, scope)

        def work() -> list[int]:
            variants = self.variant_repo.lock_many([r.variant_id for r in reservations], effective)
            projected = self._available(variants)

            errors = []
            for reservation in reservations:
                if reservation.variant_id not in variants:
                    errors.append(_not_found(reservation.variant_id))
                    continue
                available = projected[reservation.variant_id]
                if reservation.quantity > available:
                    errors.append(
                        _insufficient(reservation.variant_id, max(available, 0), reservation.quantity)
                    )
                    continue
                projected[reservation.variant_id] -= reservation.quantity
            if errors:
                raise _BatchRejected(errors)

            now = utcnow()
            for reservation in reservations:
                self.reservation_repo.create(
                    StockReservation(
                        reservation_key=reservation.reservation_id.strip(),
                        variant_id=reservation.variant_id,
                        tenant_id=variants[reservation.variant_id].tenant_id,
                        quantity=reservation.quantity,
                        created_at=now,
                        expires_at=now + timedelta(seconds=ttl),
                    )
                )
            return _unique([r.variant_id for r in reservations])

        return self._run_batch("Stock reservation", work)

    def release_reservation(
        self,
        reservation_key: str,
        context: TenantContext,
        scope: Scope = UNSCOPED,
    ) -> InventoryTransactionResult:
        """Release every active hold recorded under a reservation key"""
        validator = FieldValidator()
        validator.required_text("reservation_id", reservation_key, 100)
        validator.raise_if_invalid()

        effective = authorize_scope(context, scope)

        def work() -> list[int]:
            active = self.reservation_repo.get_active_by_key(reservation_key.strip(), effective, utcnow())
            if not active:
                raise _BatchRejected([
                    InventoryError(
                        kind="ReservationNotFound",
                        message=f"No active reservation '{reservation_key}'",
                    )
                ])
            self.reservation_repo.release(active)
            return _unique([reservation.variant_id for reservation in active])

        return self._run_batch("Reservation release", work)

    # Typed-error operations

    def create_invoice_with_stock_reduction(
        self,
        items: list[InvoiceItemCreate],
        context: TenantContext,
        scope: Scope = UNSCOPED,
    ) -> Invoice:
        """
        Create an invoice, its items and the stock decrements as one unit.

        The invoice lands in the caller's effective tenant (sellers: their
        own; admins: the tenant they name). Fails fast on the first missing
        variant or shortfall. Totals use the caller-supplied unit prices.

        Returns:
            The committed invoice with items, variants, products, user and tenant

        Raises:
            ValidationException: Empty cart, bad quantities or prices, or no tenant named
            VariantNotFoundException: A variant is missing from the tenant
            InsufficientStockException: A line exceeds available stock
            InternalException: Unexpected storage failure
        """
        validator = FieldValidator()
        if not items:
            validator.add("Invoice must contain at least one item")
        for index, item in enumerate(items):
            validator.integer(f"items[{index}].quantity", item.quantity)
            validator.positive(f"items[{index}].quantity", item.quantity)
            validator.positive(
                f"items[{index}].unit_price",
                to_money(item.unit_price) if item.unit_price is not None else None,
            )
        validator.raise_if_invalid()

        tenant_scope = require_tenant_scope(context, scope)

        def work() -> int:
            variants = self.variant_repo.lock_many([item.variant_id for item in items], tenant_scope)
            projected = self._available(variants)

            for item in items:
                if item.variant_id not in variants:
                    raise VariantNotFoundException(item.variant_id)
                available = projected[item.variant_id]
                if item.quantity > available:
                    raise InsufficientStockException(item.variant_id, max(available, 0), item.quantity)
                projected[item.variant_id] -= item.quantity

            unit_prices = [to_money(item.unit_price) for item in items]
            line_totals = [unit_price * item.quantity for unit_price, item in zip(unit_prices, items)]
            invoice = self.invoice_repo.create(
                Invoice(
                    total_amount=sum(line_totals, Decimal("0.00")),
                    user_id=context.user_id,
                    tenant_id=tenant_scope.tenant_id,
                    created_at=utcnow(),
                )
            )

            for item, unit_price, line_total in zip(items, unit_prices, line_totals):
                self.invoice_repo.add_item(
                    InvoiceItem(
                        invoice_id=invoice.id,
                        variant_id=item.variant_id,
                        quantity=item.quantity,
                        unit_price=unit_price,
                        total_price=line_total,
                        created_at=invoice.created_at,
                    )
                )
                if not self.variant_repo.decrement_stock(item.variant_id, item.quantity):
                    raise InsufficientStockException(
                        item.variant_id,
                        self.variant_repo.current_stock(item.variant_id),
                        item.quantity,
                    )
            return invoice.id

        try:
            invoice_id = self._transact("Invoice creation", work)
        except SQLAlchemyError as exc:
            logger.exception("Invoice creation failed unexpectedly")
            raise InternalException("Failed to create invoice") from exc

        invoice = self.invoice_repo.get_with_details(invoice_id, tenant_scope)
        logger.info(
            "Created invoice %s in tenant %s (total %s)",
            invoice.id,
            invoice.tenant_id,
            invoice.total_amount,
        )
        return invoice

    def adjust_variant_stock(
        self,
        variant_id: int,
        stock_change: int,
        context: TenantContext,
        scope: Scope = UNSCOPED,
    ) -> ProductVariant:
        """
        Apply a signed stock delta to one variant.

        Raises:
            NotFoundException: If variant doesn't exist or belongs to another tenant
            InsufficientStockException: If the result would drop below reserved stock or zero
        """
        validator = FieldValidator()
        validator.integer("stock_change", stock_change)
        validator.raise_if_invalid()

        effective = authorize_scope(context, scope)

        def work() -> None:
            variant = self.variant_repo.lock_one(variant_id, effective)
            if not variant:
                raise NotFoundException("Product variant not found or access denied")

            if stock_change >= 0:
                self.variant_repo.increment_stock(variant_id, stock_change)
                return

            requested = -stock_change
            available = self._available({variant_id: variant})[variant_id]
            if requested > available:
                raise InsufficientStockException(variant_id, max(available, 0), requested)
            if not self.variant_repo.decrement_stock(variant_id, requested):
                raise InsufficientStockException(
                    variant_id, self.variant_repo.current_stock(variant_id), requested
                )

        try:
            self._transact("Stock adjustment", work)
        except SQLAlchemyError as exc:
            logger.exception("Stock adjustment failed unexpectedly")
            raise InternalException("Failed to adjust stock") from exc

        logger.info("Adjusted stock of variant %s by %+d", variant_id, stock_change)
        return self.variant_repo.get(variant_id, effective)

    # Reads

    def get_low_stock_variants(
        self,
        context: TenantContext,
        threshold: int | None = None,
        scope: Scope = UNSCOPED,
    ) -> list[ProductVariant]:
        """Variants with stock <= threshold (default LOW_STOCK_THRESHOLD)"""
        threshold = settings.LOW_STOCK_THRESHOLD if threshold is None else threshold

        validator = FieldValidator()
        validator.integer("threshold", threshold)
        validator.non_negative("threshold", threshold)
        validator.raise_if_invalid()

        effective = authorize_scope(context, scope)
        return self.variant_repo.low_stock(threshold, effective)

    def get_stock_movement_history(
        self,
        context: TenantContext,
        variant_id: int | None = None,
        scope: Scope = UNSCOPED,
        limit: int | None = None,
    ) -> list[InvoiceItem]:
        """
        Sales history, newest first, reconstructed from invoice items.

        Movements and corrections made outside invoices do not appear here.
        """
        limit = settings.STOCK_HISTORY_LIMIT if limit is None else limit

        validator = FieldValidator()
        validator.integer("limit", limit)
        validator.positive("limit", limit)
        validator.raise_if_invalid()

        effective = authorize_scope(context, scope)
        return self.invoice_repo.item_history(effective, variant_id=variant_id, limit=limit)
