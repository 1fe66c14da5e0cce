"""Repository layer for rounds and their draws."""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from bingo_engine.models.draw import Draw
from bingo_engine.models.round import Round, RoundStatus, RoundType
from bingo_engine.models.winner import Winner


class RoundRepository:
    """Queries over rounds. Writes that change status live in RoundService."""

    def get_by_id(self, session: Session, round_id: int) -> Round | None:
        return session.get(Round, round_id)

    def next_number(self, session: Session) -> int:
        last = session.scalar(select(func.max(Round.number)))
        return int(last or 0) + 1

    def next_scheduled(self, session: Session, round_type: RoundType) -> Round | None:
        stmt = (
            select(Round)
            .where(Round.type == round_type, Round.status == RoundStatus.SCHEDULED)
            .order_by(Round.starts_at.asc())
            .limit(1)
        )
        return session.scalars(stmt).first()

    def list_active(self, session: Session, limit: int = 20) -> Sequence[Round]:
        stmt = (
            select(Round)
            .where(Round.status.in_([RoundStatus.SCHEDULED, RoundStatus.SELLING, RoundStatus.DRAWING]))
            .order_by(Round.starts_at.asc())
            .limit(limit)
        )
        return list(session.scalars(stmt).all())

    def current_selling(self, session: Session) -> Round | None:
        stmt = (
            select(Round)
            .where(Round.status == RoundStatus.SELLING)
            .order_by(Round.starts_at.asc())
            .limit(1)
        )
        return session.scalars(stmt).first()

    def live(self, session: Session) -> Round | None:
        stmt = (
            select(Round)
            .where(Round.status == RoundStatus.DRAWING)
            .order_by(desc(Round.drawing_started_at))
            .limit(1)
        )
        return session.scalars(stmt).first()

    def history(self, session: Session, page: int = 1, limit: int = 20) -> tuple[int, Sequence[Round]]:
        total = int(
            session.scalar(select(func.count()).select_from(Round).where(Round.status == RoundStatus.FINISHED)) or 0
        )
        stmt = (
            select(Round)
            .where(Round.status == RoundStatus.FINISHED)
            .order_by(desc(Round.finished_at))
            .limit(limit)
            .offset((max(1, page) - 1) * limit)
        )
        return total, list(session.scalars(stmt).all())

    def ids_with_status(self, session: Session, status: RoundStatus) -> list[int]:
        stmt = select(Round.id).where(Round.status == status).order_by(Round.id.asc())
        return [int(i) for i in session.scalars(stmt).all()]

    def draws(self, session: Session, round_id: int) -> Sequence[Draw]:
        stmt = select(Draw).where(Draw.round_id == round_id).order_by(Draw.position.asc())
        return list(session.scalars(stmt).all())

    def draw_count(self, session: Session, round_id: int) -> int:
        return int(session.scalar(select(func.count()).select_from(Draw).where(Draw.round_id == round_id)) or 0)

    def has_winner(self, session: Session, round_id: int) -> bool:
        return session.scalar(select(Winner.id).where(Winner.round_id == round_id).limit(1)) is not None
