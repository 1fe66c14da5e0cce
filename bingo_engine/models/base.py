"""SQLAlchemy declarative base."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Numeric
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base for ORM models."""

    type_annotation_map = {
        Decimal: Numeric(12, 2),
    }
