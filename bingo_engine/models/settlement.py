"""Settlement ledger row.

Exactly one row per settled purchase; its presence is what makes settling the
same purchase twice a no-op.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column

from bingo_engine.models.base import Base


class Settlement(Base):
    __tablename__ = "settlements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    purchase_id: Mapped[int] = mapped_column(ForeignKey("purchases.id"), unique=True, nullable=False)
    round_id: Mapped[int] = mapped_column(ForeignKey("rounds.id"), nullable=False, index=True)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)
    prize_amount: Mapped[Decimal] = mapped_column(nullable=False)
    charity_amount: Mapped[Decimal] = mapped_column(nullable=False)
    platform_amount: Mapped[Decimal] = mapped_column(nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(nullable=False)
    establishment_commission: Mapped[Decimal] = mapped_column(nullable=False)
    manager_commission: Mapped[Decimal] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
