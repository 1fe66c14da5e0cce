"""Bingo card generation.

A card is a 5x5 grid with columns S(1-15), O(16-30), R(31-45), T(46-60) and
E(61-75). The centre cell is free, so the R column contributes only four
numbers and a card stores 24 numbers in row-major order.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable, Sequence
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from bingo_engine.models.card import Card, CardStatus
from bingo_engine.utils.clock import utcnow
from bingo_engine.utils.codes import generate_card_code

logger = logging.getLogger(__name__)

COLUMNS = ("S", "O", "R", "T", "E")

# (column, lowest, highest, how many numbers the column holds)
COLUMN_RANGES: tuple[tuple[str, int, int, int], ...] = (
    ("S", 1, 15, 5),
    ("O", 16, 30, 5),
    ("R", 31, 45, 4),
    ("T", 46, 60, 5),
    ("E", 61, 75, 5),
)

CARD_SIZE = 24
FREE = "FREE"


def generate_numbers(rng: random.Random | None = None) -> list[int]:
    """Draw a fresh 24-number card layout."""

    rng = rng or random.Random()
    s, o, r, t, e = (sorted(rng.sample(range(lo, hi + 1), count)) for _, lo, hi, count in COLUMN_RANGES)

    return [
        s[0], o[0], r[0], t[0], e[0],
        s[1], o[1], r[1], t[1], e[1],
        s[2], o[2], t[2], e[2],
        s[3], o[3], r[2], t[3], e[3],
        s[4], o[4], r[3], t[4], e[4],
    ]


def to_grid(numbers: Sequence[int]) -> dict[str, list[int | str]]:
    """Map the stored array onto named columns, top to bottom."""

    if len(numbers) != CARD_SIZE:
        raise ValueError(f"A card has {CARD_SIZE} numbers, got {len(numbers)}")

    n = [int(x) for x in numbers]
    return {
        "S": [n[0], n[5], n[10], n[14], n[19]],
        "O": [n[1], n[6], n[11], n[15], n[20]],
        "R": [n[2], n[7], FREE, n[16], n[21]],
        "T": [n[3], n[8], n[12], n[17], n[22]],
        "E": [n[4], n[9], n[13], n[18], n[23]],
    }


def to_array(grid: dict[str, Sequence[int | str]]) -> list[int]:
    """Inverse of `to_grid`."""

    s, o, r, t, e = (grid[c] for c in COLUMNS)
    return [
        int(v)
        for v in (
            s[0], o[0], r[0], t[0], e[0],
            s[1], o[1], r[1], t[1], e[1],
            s[2], o[2], t[2], e[2],
            s[3], o[3], r[3], t[3], e[3],
            s[4], o[4], r[4], t[4], e[4],
        )
    ]


class CardGenerator:
    """Create and persist cards with unique codes."""

    def __init__(
        self,
        rng: random.Random | None = None,
        code_factory: Callable[[], str] = generate_card_code,
    ) -> None:
        self._rng = rng or random.Random()
        self._code_factory = code_factory

    def _unique_code(self, session: Session) -> str:
        code = self._code_factory()
        while session.scalar(select(Card.id).where(Card.code == code)) is not None:
            logger.warning("Card code collision detected, regenerating: %s", code)
            code = self._code_factory()
        return code

    def generate_card(
        self,
        session: Session,
        round_id: int,
        purchase_id: int | None = None,
        now: datetime | None = None,
    ) -> Card:
        card = Card(
            code=self._unique_code(session),
            round_id=round_id,
            purchase_id=purchase_id,
            numbers=generate_numbers(self._rng),
            status=CardStatus.AVAILABLE,
            is_winner=False,
            created_at=now or utcnow(),
        )
        session.add(card)
        session.flush()  # assign PK, surface constraint errors for this card
        return card

    def generate_cards(
        self,
        session: Session,
        round_id: int,
        count: int,
        purchase_id: int | None = None,
        now: datetime | None = None,
    ) -> list[Card]:
        """Issue `count` independent cards; two cards may share numbers by chance."""

        return [self.generate_card(session, round_id, purchase_id=purchase_id, now=now) for _ in range(int(count))]
