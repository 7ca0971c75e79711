from datetime import datetime
from sqlalchemy import func
from sqlalchemy.orm import Session

from retail_pos.core.access_guard import apply_scope
from retail_pos.models.reservation import StockReservation
from retail_pos.models.tenant_context import Scope


class ReservationRepository:
    """Repository for the stock reservation ledger"""

    def __init__(self, db: Session):
        self.db = db

    def _active(self, now: datetime):
        return self.db.query(StockReservation).filter(
            StockReservation.released.is_(False),
            StockReservation.expires_at > now,
        )

    def reserved_quantities(self, variant_ids: list[int], now: datetime) -> dict[int, int]:
        """
        Quantity held by active reservations per variant.

        Variants without active reservations are absent from the result.
        """
        if not variant_ids:
            return {}
        rows = (
            self.db.query(StockReservation.variant_id, func.sum(StockReservation.quantity))
            .filter(
                StockReservation.variant_id.in_(sorted(set(variant_ids))),
                StockReservation.released.is_(False),
                StockReservation.expires_at > now,
            )
            .group_by(StockReservation.variant_id)
            .all()
        )
        return {variant_id: int(quantity) for variant_id, quantity in rows}

    def get_active_by_key(self, reservation_key: str, scope: Scope, now: datetime) -> list[StockReservation]:
        query = self._active(now).filter(StockReservation.reservation_key == reservation_key)
        query = apply_scope(query, StockReservation.tenant_id, scope)
        return query.order_by(StockReservation.id).with_for_update().all()

    def create(self, reservation: StockReservation) -> StockReservation:
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def release(self, reservations: list[StockReservation]) -> None:
        for reservation in reservations:
            reservation.released = True
        self.db.flush()

    def delete_for_variants(self, variant_ids: list[int]) -> None:
        if not variant_ids:
            return
        self.db.query(StockReservation).filter(
            StockReservation.variant_id.in_(variant_ids)
        ).delete(synchronize_session=False)
        self.db.flush()
