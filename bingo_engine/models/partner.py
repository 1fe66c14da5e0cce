"""Parties that receive a share of each sale."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from bingo_engine.models.base import Base


class Manager(Base):
    __tablename__ = "managers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    # Percentage of the commission pool, not of the sale.
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_commission: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))


class Establishment(Base):
    __tablename__ = "establishments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    manager_id: Mapped[int | None] = mapped_column(ForeignKey("managers.id"), nullable=True)
    commission_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    balance: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_commission: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))


class Charity(Base):
    __tablename__ = "charities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    total_received: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
