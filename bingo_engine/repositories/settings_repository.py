"""Repository layer for operator-editable settings (key -> JSON value)."""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from bingo_engine.errors import ConfigurationError
from bingo_engine.models.round import RoundType
from bingo_engine.models.setting import Setting
from bingo_engine.services.win_checker import DEFAULT_PATTERNS
from bingo_engine.utils.clock import utcnow

# Fallbacks used only when the key is absent.
DEFAULT_ROUND_CONFIG: dict[str, dict[str, Any]] = {
    RoundType.REGULAR.value: {"selling_minutes": 7, "closed_minutes": 3, "card_price": 5},
    RoundType.SPECIAL.value: {"selling_minutes": 57, "closed_minutes": 3, "card_price": 10},
}
DEFAULT_MAX_CARDS = 10000
DEFAULT_TIEBREAK_POLICY = "division"


@dataclass(frozen=True)
class RoundTypeConfig:
    selling_minutes: int
    closed_minutes: int
    card_price: Decimal
    max_cards: int


@dataclass(frozen=True)
class SplitConfig:
    """Percentages (0-100) of each sale. Not required to add up to 100."""

    prize_percentage: Decimal
    charity_percentage: Decimal
    platform_percentage: Decimal
    commission_percentage: Decimal


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


class SettingsRepository:
    """Read/write operations for settings."""

    def get(self, session: Session, key: str, default: Any | None = None) -> Any:
        row = session.get(Setting, key)
        if row is None or row.value is None:
            return default

        value = row.value
        # Older rows were written as JSON text inside the JSON column.
        if isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError:
                return value
        return value

    def get_many(self, session: Session, keys: Iterable[str]) -> dict[str, Any]:
        stmt = select(Setting).where(Setting.key.in_(list(keys)))
        return {row.key: row.value for row in session.scalars(stmt).all()}

    def set(self, session: Session, key: str, value: Any) -> Setting:
        row = session.get(Setting, key)
        if row is None:
            row = Setting(key=key, value=value, updated_at=utcnow())
            session.add(row)
        else:
            row.value = value
            row.updated_at = utcnow()
        session.flush()
        return row

    def round_config(self, session: Session, round_type: RoundType) -> RoundTypeConfig:
        raw = self.get(session, "round_config") or DEFAULT_ROUND_CONFIG
        section = raw.get(round_type.value) or DEFAULT_ROUND_CONFIG[round_type.value]

        price = section.get("card_price")
        if price is None:
            legacy_key = "card_price_regular" if round_type is RoundType.REGULAR else "card_price_special"
            price = self.get(session, legacy_key, DEFAULT_ROUND_CONFIG[round_type.value]["card_price"])

        max_cards = raw.get("max_cards_per_round") or self.get(session, "max_cards_per_round") or DEFAULT_MAX_CARDS

        try:
            return RoundTypeConfig(
                selling_minutes=int(section["selling_minutes"]),
                closed_minutes=int(section["closed_minutes"]),
                card_price=_decimal(price),
                max_cards=int(max_cards),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(
                message=f"Invalid round_config for {round_type.value}",
                details={"round_config": section},
            ) from exc

    def split_config(self, session: Session) -> SplitConfig:
        raw = self.get(session, "split_config")
        if not raw:
            raise ConfigurationError(message="split_config is not set")

        try:
            return SplitConfig(
                prize_percentage=_decimal(raw["prize_percentage"]),
                charity_percentage=_decimal(raw["charity_percentage"]),
                platform_percentage=_decimal(raw["platform_percentage"]),
                commission_percentage=_decimal(raw["commission_percentage"]),
            )
        except (KeyError, ArithmeticError) as exc:
            raise ConfigurationError(message="Invalid split_config", details={"split_config": raw}) from exc

    def winning_patterns(self, session: Session) -> list[str]:
        patterns = self.get(session, "winning_patterns")
        if not patterns:
            return list(DEFAULT_PATTERNS)
        return [str(p) for p in patterns]

    def tiebreak_policy(self, session: Session) -> str:
        return str(self.get(session, "tiebreak_policy", DEFAULT_TIEBREAK_POLICY))

    def whatsapp_config(self, session: Session) -> dict[str, Any]:
        return dict(self.get(session, "whatsapp_config") or {})
