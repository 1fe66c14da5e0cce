"""Round ORM model.

One timed instance of the game. Status follows
scheduled -> selling -> drawing -> finished, with cancelled reachable from any
non-terminal status. `is_selling` is tracked separately so a round can stay in
`selling` status after its sale window closed while it waits for the draw.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from bingo_engine.models.base import Base


class RoundType(str, Enum):
    REGULAR = "regular"
    SPECIAL = "special"


class RoundStatus(str, Enum):
    SCHEDULED = "scheduled"
    SELLING = "selling"
    DRAWING = "drawing"
    FINISHED = "finished"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (RoundStatus.FINISHED, RoundStatus.CANCELLED)


def _values(enum_cls: type[Enum]) -> list[str]:
    return [m.value for m in enum_cls]


class Round(Base):
    __tablename__ = "rounds"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    number: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    type: Mapped[RoundType] = mapped_column(
        SAEnum(RoundType, native_enum=False, length=16, values_callable=_values),
        nullable=False,
        index=True,
    )
    status: Mapped[RoundStatus] = mapped_column(
        SAEnum(RoundStatus, native_enum=False, length=16, values_callable=_values),
        nullable=False,
        default=RoundStatus.SCHEDULED,
        index=True,
    )
    is_selling: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    selling_ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    drawing_started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    card_price: Mapped[Decimal] = mapped_column(nullable=False)
    max_cards: Mapped[int] = mapped_column(Integer, nullable=False)
    cards_sold: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_sales: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    prize_pool: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    charity_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    platform_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    commission_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    drawn_numbers: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    establishment_id: Mapped[int | None] = mapped_column(ForeignKey("establishments.id"), nullable=True)
    manager_id: Mapped[int | None] = mapped_column(ForeignKey("managers.id"), nullable=True)
    charity_id: Mapped[int | None] = mapped_column(ForeignKey("charities.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    def __repr__(self) -> str:
        return f"<Round #{self.number} {self.type.value} {self.status.value}>"
