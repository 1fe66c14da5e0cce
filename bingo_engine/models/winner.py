"""Winner ORM model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, SmallInteger, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from bingo_engine.models.base import Base


class WinnerStatus(str, Enum):
    PENDING = "pending"
    CLAIMED = "claimed"


class Winner(Base):
    """A card that completed a winning pattern in a round."""

    __tablename__ = "winners"
    __table_args__ = (UniqueConstraint("round_id", "card_id", name="uq_winner_round_card"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    round_id: Mapped[int] = mapped_column(ForeignKey("rounds.id"), nullable=False, index=True)
    card_id: Mapped[int] = mapped_column(ForeignKey("cards.id"), nullable=False)
    pattern_matched: Mapped[str] = mapped_column(String(32), nullable=False)
    prize_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    status: Mapped[WinnerStatus] = mapped_column(
        SAEnum(WinnerStatus, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=WinnerStatus.PENDING,
    )
    tiebreaker_number: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    tiebreaker_difference: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    claimed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
