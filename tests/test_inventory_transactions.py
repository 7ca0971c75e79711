import threading
import pytest
from datetime import timedelta
from decimal import Decimal

from retail_pos.core.exceptions import (
    NotFoundException,
    VariantNotFoundException,
    InsufficientStockException,
    ValidationException,
    CrossTenantAccessDeniedException,
)
from retail_pos.database import create_db_engine, build_session_factory
from retail_pos.models import Base, Tenant, User, Product, ProductVariant, Invoice, InvoiceItem, StockReservation
from retail_pos.models.base import utcnow
from retail_pos.models.role import UserRole
from retail_pos.models.tenant_context import TenantContext, ScopedTo
from retail_pos.schemas.inventory_schemas import StockMovement, BulkStockUpdate, StockReservationRequest
from retail_pos.schemas.invoice_schemas import InvoiceItemCreate
from retail_pos.services.inventory_service import InventoryTransactionService
from tests.conftest import stock_of


def out(variant_id, quantity):
    return StockMovement(variant_id=variant_id, quantity=quantity, type="OUT", reason="sale")


def into(variant_id, quantity):
    return StockMovement(variant_id=variant_id, quantity=quantity, type="IN", reason="delivery")


def line(variant_id, quantity, unit_price="10.00"):
    return InvoiceItemCreate(variant_id=variant_id, quantity=quantity, unit_price=Decimal(unit_price))


class TestStockMovements:
    """Tests for perform_stock_movements"""

    def test_in_and_out_applied(self, db_session, seller_a_context, variant_a1, variant_a2):
        result = InventoryTransactionService(db_session).perform_stock_movements(
            [out(variant_a1.id, 4), into(variant_a2.id, 7)], seller_a_context
        )
        assert result.success
        assert result.affected_variant_ids == [variant_a1.id, variant_a2.id]
        assert stock_of(db_session, variant_a1.id) == 6
        assert stock_of(db_session, variant_a2.id) == 12

    def test_invalid_movement_rolls_back_whole_batch(self, db_session, seller_a_context, variant_a1, variant_a2):
        """One bad movement means no movement is applied"""
        result = InventoryTransactionService(db_session).perform_stock_movements(
            [into(variant_a1.id, 5), out(variant_a2.id, 6)], seller_a_context
        )
        assert not result.success
        assert result.affected_variant_ids == []
        assert stock_of(db_session, variant_a1.id) == 10
        assert stock_of(db_session, variant_a2.id) == 5

    def test_errors_collected_for_every_item(self, db_session, seller_a_context, variant_a1, variant_a2):
        result = InventoryTransactionService(db_session).perform_stock_movements(
            [out(variant_a1.id, 11), out(99999, 1), out(variant_a2.id, 6)], seller_a_context
        )
        assert not result.success
        kinds = [(e.kind, e.variant_id) for e in result.errors]
        assert kinds == [
            ("InsufficientStock", variant_a1.id),
            ("VariantNotFoundOrDenied", 99999),
            ("InsufficientStock", variant_a2.id),
        ]
        assert result.errors[0].available == 10
        assert result.errors[0].requested == 11

    def test_other_tenant_variant_reported_as_not_found(self, db_session, seller_a_context, variant_b1):
        result = InventoryTransactionService(db_session).perform_stock_movements(
            [out(variant_b1.id, 1)], seller_a_context
        )
        assert not result.success
        assert result.errors[0].kind == "VariantNotFoundOrDenied"
        assert stock_of(db_session, variant_b1.id) == 20

    def test_repeated_variant_cannot_overdraw(self, db_session, seller_a_context, variant_a2):
        """Two OUT lines for one variant are checked against a running projection"""
        result = InventoryTransactionService(db_session).perform_stock_movements(
            [out(variant_a2.id, 3), out(variant_a2.id, 3)], seller_a_context
        )
        assert not result.success
        assert result.errors[0].available == 2
        assert stock_of(db_session, variant_a2.id) == 5

    def test_in_before_out_counts(self, db_session, seller_a_context, variant_a2):
        result = InventoryTransactionService(db_session).perform_stock_movements(
            [into(variant_a2.id, 5), out(variant_a2.id, 8)], seller_a_context
        )
        assert result.success
        assert result.affected_variant_ids == [variant_a2.id]
        assert stock_of(db_session, variant_a2.id) == 2

    def test_non_positive_quantity_rejected_up_front(self, db_session, seller_a_context, variant_a1):
        with pytest.raises(ValidationException) as exc_info:
            InventoryTransactionService(db_session).perform_stock_movements(
                [out(variant_a1.id, 0), into(variant_a1.id, -2)], seller_a_context
            )
        assert len(exc_info.value.errors) == 2

    def test_empty_batch_rejected(self, db_session, seller_a_context):
        with pytest.raises(ValidationException):
            InventoryTransactionService(db_session).perform_stock_movements([], seller_a_context)

    def test_cross_tenant_scope_denied(self, db_session, seller_a_context, tenant_b, variant_b1):
        with pytest.raises(CrossTenantAccessDeniedException):
            InventoryTransactionService(db_session).perform_stock_movements(
                [out(variant_b1.id, 1)], seller_a_context, ScopedTo(tenant_b.id)
            )


class TestBulkStockUpdate:
    """Tests for perform_bulk_stock_update"""

    def test_sets_exact_values(self, db_session, admin_context, variant_a1, variant_b1):
        result = InventoryTransactionService(db_session).perform_bulk_stock_update(
            [
                BulkStockUpdate(variant_id=variant_a1.id, new_stock=42),
                BulkStockUpdate(variant_id=variant_b1.id, new_stock=0),
            ],
            admin_context,
        )
        assert result.success
        assert stock_of(db_session, variant_a1.id) == 42
        assert stock_of(db_session, variant_b1.id) == 0

    def test_negative_target_rejected_not_clamped(self, db_session, seller_a_context, variant_a1, variant_a2):
        result = InventoryTransactionService(db_session).perform_bulk_stock_update(
            [
                BulkStockUpdate(variant_id=variant_a1.id, new_stock=3),
                BulkStockUpdate(variant_id=variant_a2.id, new_stock=-1),
            ],
            seller_a_context,
        )
        assert not result.success
        assert [e.kind for e in result.errors] == ["InvalidStockValue"]
        assert stock_of(db_session, variant_a1.id) == 10
        assert stock_of(db_session, variant_a2.id) == 5

    def test_not_blocked_by_reservations(self, db_session, seller_a_context, variant_a1):
        service = InventoryTransactionService(db_session)
        service.reserve_stock(
            [StockReservationRequest(variant_id=variant_a1.id, quantity=8, reservation_id="cart-1")],
            seller_a_context,
        )
        result = service.perform_bulk_stock_update(
            [BulkStockUpdate(variant_id=variant_a1.id, new_stock=2)], seller_a_context
        )
        assert result.success
        assert stock_of(db_session, variant_a1.id) == 2


class TestTransfers:
    """Tests for transfer_stock_between_variants"""

    def test_transfer_moves_stock(self, db_session, seller_a_context, variant_a1, variant_a2):
        result = InventoryTransactionService(db_session).transfer_stock_between_variants(
            variant_a1.id, variant_a2.id, 3, seller_a_context
        )
        assert result.success
        assert result.affected_variant_ids == [variant_a1.id, variant_a2.id]
        assert stock_of(db_session, variant_a1.id) == 7
        assert stock_of(db_session, variant_a2.id) == 8

    def test_missing_destination_leaves_source_untouched(self, db_session, seller_a_context, variant_a1):
        result = InventoryTransactionService(db_session).transfer_stock_between_variants(
            variant_a1.id, 99999, 3, seller_a_context
        )
        assert not result.success
        assert [e.variant_id for e in result.errors] == [99999]
        assert stock_of(db_session, variant_a1.id) == 10

    def test_insufficient_source(self, db_session, seller_a_context, variant_a1, variant_a2):
        result = InventoryTransactionService(db_session).transfer_stock_between_variants(
            variant_a2.id, variant_a1.id, 6, seller_a_context
        )
        assert not result.success
        assert result.errors[0].kind == "InsufficientStock"
        assert stock_of(db_session, variant_a1.id) == 10
        assert stock_of(db_session, variant_a2.id) == 5

    def test_cannot_transfer_into_other_tenant(self, db_session, seller_a_context, variant_a1, variant_b1):
        result = InventoryTransactionService(db_session).transfer_stock_between_variants(
            variant_a1.id, variant_b1.id, 1, seller_a_context
        )
        assert not result.success
        assert stock_of(db_session, variant_b1.id) == 20

    def test_same_variant_rejected(self, db_session, seller_a_context, variant_a1):
        with pytest.raises(ValidationException):
            InventoryTransactionService(db_session).transfer_stock_between_variants(
                variant_a1.id, variant_a1.id, 1, seller_a_context
            )


class TestReservations:
    """Tests for the reservation ledger"""

    def test_reservation_withholds_stock_from_sales(self, db_session, seller_a_context, variant_a1):
        service = InventoryTransactionService(db_session)
        result = service.reserve_stock(
            [StockReservationRequest(variant_id=variant_a1.id, quantity=7, reservation_id="cart-1")],
            seller_a_context,
        )
        assert result.success
        # Stock itself is unchanged; availability is not
        assert stock_of(db_session, variant_a1.id) == 10

        with pytest.raises(InsufficientStockException) as exc_info:
            service.create_invoice_with_stock_reduction([line(variant_a1.id, 4)], seller_a_context)
        assert exc_info.value.available == 3

        movement = service.perform_stock_movements([out(variant_a1.id, 4)], seller_a_context)
        assert not movement.success

    def test_reservation_beyond_availability_fails(self, db_session, seller_a_context, variant_a1):
        service = InventoryTransactionService(db_session)
        service.reserve_stock(
            [StockReservationRequest(variant_id=variant_a1.id, quantity=6, reservation_id="cart-1")],
            seller_a_context,
        )
        result = service.reserve_stock(
            [StockReservationRequest(variant_id=variant_a1.id, quantity=5, reservation_id="cart-2")],
            seller_a_context,
        )
        assert not result.success
        assert result.errors[0].available == 4
        assert db_session.query(StockReservation).count() == 1

    def test_release_frees_stock(self, db_session, seller_a_context, variant_a1, variant_a2):
        service = InventoryTransactionService(db_session)
        service.reserve_stock(
            [
                StockReservationRequest(variant_id=variant_a1.id, quantity=10, reservation_id="cart-1"),
                StockReservationRequest(variant_id=variant_a2.id, quantity=5, reservation_id="cart-1"),
            ],
            seller_a_context,
        )
        released = service.release_reservation("cart-1", seller_a_context)
        assert released.success
        assert sorted(released.affected_variant_ids) == sorted([variant_a1.id, variant_a2.id])

        invoice = service.create_invoice_with_stock_reduction([line(variant_a1.id, 10)], seller_a_context)
        assert invoice.total_amount == Decimal("100.00")

    def test_release_unknown_key(self, db_session, seller_a_context):
        result = InventoryTransactionService(db_session).release_reservation("nope", seller_a_context)
        assert not result.success
        assert result.errors[0].kind == "ReservationNotFound"

    def test_release_is_tenant_scoped(self, db_session, seller_a_context, seller_b_context, variant_a1):
        service = InventoryTransactionService(db_session)
        service.reserve_stock(
            [StockReservationRequest(variant_id=variant_a1.id, quantity=2, reservation_id="cart-1")],
            seller_a_context,
        )
        assert not service.release_reservation("cart-1", seller_b_context).success
        assert service.release_reservation("cart-1", seller_a_context).success

    def test_expired_reservation_stops_counting(self, db_session, seller_a_context, variant_a1):
        service = InventoryTransactionService(db_session)
        service.reserve_stock(
            [StockReservationRequest(variant_id=variant_a1.id, quantity=10, reservation_id="cart-1")],
            seller_a_context,
        )
        reservation = db_session.query(StockReservation).one()
        reservation.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        result = service.perform_stock_movements([out(variant_a1.id, 10)], seller_a_context)
        assert result.success

    def test_ttl_must_be_positive(self, db_session, seller_a_context, variant_a1):
        with pytest.raises(ValidationException):
            InventoryTransactionService(db_session).reserve_stock(
                [StockReservationRequest(variant_id=variant_a1.id, quantity=1, reservation_id="cart-1")],
                seller_a_context,
                ttl_seconds=0,
            )


class TestInvoiceWithStockReduction:
    """Tests for create_invoice_with_stock_reduction"""

    def test_round_trip(self, db_session, seller_a_context, seller_a, variant_a1):
        invoice = InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
            [line(variant_a1.id, 2, "10.00")], seller_a_context
        )
        assert invoice.total_amount == Decimal("20.00")
        assert len(invoice.items) == 1
        assert invoice.items[0].total_price == Decimal("20.00")
        assert invoice.user.id == seller_a.id
        assert invoice.tenant.name == "Store A"
        assert invoice.items[0].variant.product.name == "T-Shirt"
        assert stock_of(db_session, variant_a1.id) == 8

    def test_insufficient_stock(self, db_session, seller_a_context, variant_a2):
        with pytest.raises(InsufficientStockException) as exc_info:
            InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
                [line(variant_a2.id, 10)], seller_a_context
            )
        assert exc_info.value.available == 5
        assert exc_info.value.requested == 10
        assert stock_of(db_session, variant_a2.id) == 5
        assert db_session.query(Invoice).count() == 0

    def test_fails_fast_on_first_missing_variant(self, db_session, seller_a_context, variant_a1, variant_b1):
        with pytest.raises(VariantNotFoundException) as exc_info:
            InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
                [line(variant_b1.id, 1), line(variant_a1.id, 1)], seller_a_context
            )
        assert exc_info.value.variant_id == variant_b1.id
        assert stock_of(db_session, variant_a1.id) == 10

    def test_unit_price_is_snapshotted(self, db_session, seller_a_context, variant_a1):
        """The charged price is used, not the catalog price"""
        invoice = InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
            [line(variant_a1.id, 3, "7.335"), line(variant_a1.id, 1, "1.00")], seller_a_context
        )
        assert invoice.items[0].unit_price == Decimal("7.34")
        assert invoice.items[0].total_price == Decimal("22.02")
        assert invoice.total_amount == Decimal("23.02")
        assert [item.variant_id for item in invoice.items] == [variant_a1.id, variant_a1.id]
        assert stock_of(db_session, variant_a1.id) == 6

    def test_repeated_lines_checked_together(self, db_session, seller_a_context, variant_a2):
        with pytest.raises(InsufficientStockException):
            InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
                [line(variant_a2.id, 3), line(variant_a2.id, 3)], seller_a_context
            )
        assert stock_of(db_session, variant_a2.id) == 5

    def test_admin_must_name_tenant(self, db_session, admin_context, variant_a1):
        with pytest.raises(ValidationException):
            InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
                [line(variant_a1.id, 1)], admin_context
            )

    def test_admin_sells_in_named_tenant(self, db_session, admin_context, tenant_a, variant_a1):
        invoice = InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
            [line(variant_a1.id, 1)], admin_context, ScopedTo(tenant_a.id)
        )
        assert invoice.tenant_id == tenant_a.id

    def test_all_line_violations_reported(self, db_session, seller_a_context, variant_a1):
        with pytest.raises(ValidationException) as exc_info:
            InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
                [line(variant_a1.id, 0, "0.00")], seller_a_context
            )
        assert len(exc_info.value.errors) == 2

    def test_price_rounding_to_zero_rejected(self, db_session, seller_a_context, variant_a1):
        """A price under half a cent is zero once charged"""
        with pytest.raises(ValidationException) as exc_info:
            InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
                [line(variant_a1.id, 1, "0.004")], seller_a_context
            )
        assert exc_info.value.errors == ["items[0].unit_price must be greater than 0"]
        assert stock_of(db_session, variant_a1.id) == 10
        assert db_session.query(Invoice).count() == 0

    def test_half_cent_price_rounds_up(self, db_session, seller_a_context, variant_a1):
        invoice = InventoryTransactionService(db_session).create_invoice_with_stock_reduction(
            [line(variant_a1.id, 2, "0.005")], seller_a_context
        )
        assert invoice.items[0].unit_price == Decimal("0.01")
        assert invoice.total_amount == Decimal("0.02")


class TestAdjustAndReads:
    """Tests for single-variant adjustment, low stock and history"""

    def test_adjust_up_and_down(self, db_session, seller_a_context, variant_a1):
        service = InventoryTransactionService(db_session)
        assert service.adjust_variant_stock(variant_a1.id, 5, seller_a_context).stock == 15
        assert service.adjust_variant_stock(variant_a1.id, -15, seller_a_context).stock == 0

    def test_adjust_below_zero_rejected(self, db_session, seller_a_context, variant_a1):
        with pytest.raises(InsufficientStockException) as exc_info:
            InventoryTransactionService(db_session).adjust_variant_stock(variant_a1.id, -11, seller_a_context)
        assert exc_info.value.available == 10
        assert stock_of(db_session, variant_a1.id) == 10

    def test_adjust_other_tenant_not_found(self, db_session, seller_b_context, variant_a1):
        with pytest.raises(NotFoundException):
            InventoryTransactionService(db_session).adjust_variant_stock(variant_a1.id, 1, seller_b_context)

    def test_low_stock_threshold_inclusive(self, db_session, seller_a_context, variant_a1, variant_a2, variant_b1):
        variants = InventoryTransactionService(db_session).get_low_stock_variants(seller_a_context, threshold=5)
        assert [v.id for v in variants] == [variant_a2.id]

    def test_low_stock_admin_unscoped(self, db_session, admin_context, variant_a1, variant_a2, variant_b1):
        variants = InventoryTransactionService(db_session).get_low_stock_variants(admin_context, threshold=20)
        assert [v.id for v in variants] == [variant_a2.id, variant_a1.id, variant_b1.id]

    def test_history_newest_first_and_scoped(self, db_session, seller_a_context, seller_b_context, variant_a1, variant_a2, variant_b1):
        service = InventoryTransactionService(db_session)
        service.create_invoice_with_stock_reduction([line(variant_a1.id, 1)], seller_a_context)
        service.create_invoice_with_stock_reduction([line(variant_a2.id, 2)], seller_a_context)
        service.create_invoice_with_stock_reduction([line(variant_b1.id, 1)], seller_b_context)

        history = service.get_stock_movement_history(seller_a_context)
        assert [entry.variant_id for entry in history] == [variant_a2.id, variant_a1.id]

        only_a1 = service.get_stock_movement_history(seller_a_context, variant_id=variant_a1.id)
        assert [entry.quantity for entry in only_a1] == [1]

        assert len(service.get_stock_movement_history(seller_a_context, limit=1)) == 1


def seed_race_store(tmp_path, sellers=2):
    """File-backed store with one variant of 5 units, shared across threads"""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'race.db'}", echo=False)
    Base.metadata.create_all(bind=engine)
    session_factory = build_session_factory(engine)

    with session_factory() as db:
        tenant = Tenant(name="Race Store")
        db.add(tenant)
        db.flush()
        users = [
            User(email=f"racer{i}@pos.test", role=UserRole.SELLER, tenant_id=tenant.id)
            for i in range(sellers)
        ]
        product = Product(name="Limited", tenant_id=tenant.id)
        db.add_all(users + [product])
        db.flush()
        variant = ProductVariant(
            barcode="LIMITED-1", price=Decimal("5.00"), stock=5,
            product_id=product.id, tenant_id=tenant.id,
        )
        db.add(variant)
        db.commit()
        contexts = [TenantContext.from_identity(u.id, u.role, tenant.id) for u in users]
        variant_id = variant.id

    return engine, session_factory, contexts, variant_id


def run_together(*targets):
    """Start every target at the same barrier and wait for all of them"""
    barrier = threading.Barrier(len(targets))
    outcomes = []
    lock = threading.Lock()

    def runner(target):
        barrier.wait()
        outcome = target()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=runner, args=(target,)) for target in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)
    return sorted(outcomes)


class TestConcurrentSales:
    """Operations racing for the same stock never drive it negative"""

    def test_only_one_of_two_competing_invoices_succeeds(self, tmp_path):
        engine, session_factory, contexts, variant_id = seed_race_store(tmp_path)

        def sell(context):
            def target():
                db = session_factory()
                try:
                    InventoryTransactionService(db).create_invoice_with_stock_reduction(
                        [line(variant_id, 3, "5.00")], context
                    )
                    return "sold"
                except InsufficientStockException:
                    return "insufficient"
                finally:
                    db.close()
            return target

        assert run_together(*(sell(context) for context in contexts)) == ["insufficient", "sold"]
        with session_factory() as db:
            assert db.get(ProductVariant, variant_id).stock == 2
            assert db.query(Invoice).count() == 1
            assert db.query(InvoiceItem).count() == 1
        engine.dispose()

    def test_out_movement_racing_an_invoice(self, tmp_path):
        """Exactly one of an OUT movement and a sale wins the last units"""
        engine, session_factory, contexts, variant_id = seed_race_store(tmp_path)

        def move_out():
            db = session_factory()
            try:
                result = InventoryTransactionService(db).perform_stock_movements(
                    [out(variant_id, 3)], contexts[0]
                )
            finally:
                db.close()
            if result.success:
                return "moved"
            assert [error.kind for error in result.errors] == ["InsufficientStock"]
            return "insufficient"

        def sell():
            db = session_factory()
            try:
                InventoryTransactionService(db).create_invoice_with_stock_reduction(
                    [line(variant_id, 3, "5.00")], contexts[1]
                )
                return "sold"
            except InsufficientStockException:
                return "insufficient"
            finally:
                db.close()

        outcomes = run_together(move_out, sell)
        assert outcomes in (["insufficient", "sold"], ["insufficient", "moved"])
        with session_factory() as db:
            assert db.get(ProductVariant, variant_id).stock == 2
            assert db.query(Invoice).count() == (1 if "sold" in outcomes else 0)
        engine.dispose()
