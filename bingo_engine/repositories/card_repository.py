"""Repository layer for cards."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from bingo_engine.models.card import Card


class CardRepository:
    def get_by_code(self, session: Session, code: str) -> Card | None:
        return session.scalars(select(Card).where(Card.code == code)).first()

    def for_purchase(self, session: Session, purchase_id: int) -> Sequence[Card]:
        stmt = (
            select(Card)
            .where(Card.purchase_id == purchase_id)
            .order_by(Card.id.asc())
            .execution_options(populate_existing=True)
        )
        return list(session.scalars(stmt).all())

