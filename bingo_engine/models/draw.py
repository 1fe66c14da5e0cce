"""One number revealed during a round's drawing phase."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, SmallInteger, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bingo_engine.models.base import Base


class Draw(Base):
    """A drawn number and its 1-based position within the round."""

    __tablename__ = "draws"
    __table_args__ = (
        UniqueConstraint("round_id", "position", name="uq_draw_round_position"),
        UniqueConstraint("round_id", "number", name="uq_draw_round_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(ForeignKey("rounds.id", ondelete="CASCADE"), index=True)
    number: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 1..75
    position: Mapped[int] = mapped_column(SmallInteger, nullable=False)  # 1..75
    drawn_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
