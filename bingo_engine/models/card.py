"""Bingo card ORM model.

`numbers` holds the 24 values of the 5x5 grid in row-major order, skipping the
free centre cell.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from bingo_engine.models.base import Base


class CardStatus(str, Enum):
    AVAILABLE = "available"
    SOLD = "sold"


class Card(Base):
    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    round_id: Mapped[int] = mapped_column(ForeignKey("rounds.id"), nullable=False, index=True)
    purchase_id: Mapped[int | None] = mapped_column(ForeignKey("purchases.id"), nullable=True, index=True)
    numbers: Mapped[list[int]] = mapped_column(JSON, nullable=False)
    status: Mapped[CardStatus] = mapped_column(
        SAEnum(CardStatus, native_enum=False, length=16, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CardStatus.AVAILABLE,
    )
    is_winner: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    declared_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
