"""Repository layer for purchases."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from bingo_engine.models.purchase import PaymentStatus, Purchase
from bingo_engine.models.settlement import Settlement


class PurchaseRepository:
    def get_by_id(self, session: Session, purchase_id: int) -> Purchase | None:
        # Bulk status updates bypass the identity map; always re-read the row.
        return session.get(Purchase, purchase_id, populate_existing=True)

    def paid_without_settlement(self, session: Session, limit: int = 200) -> list[int]:
        """Ids of paid purchases the settlement sweep still has to process."""

        settled = select(Settlement.purchase_id)
        stmt = (
            select(Purchase.id)
            .where(Purchase.payment_status == PaymentStatus.PAID, Purchase.id.not_in(settled))
            .order_by(Purchase.id.asc())
            .limit(limit)
        )
        return [int(i) for i in session.scalars(stmt).all()]

    def settlement_for(self, session: Session, purchase_id: int) -> Settlement | None:
        return session.scalars(select(Settlement).where(Settlement.purchase_id == purchase_id)).first()

