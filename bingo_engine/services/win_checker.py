"""Win detection over a card's numbers and a round's drawn numbers.

Pure functions: no session, no I/O. Positions index the 24-number card array
(row-major 5x5 grid with the centre cell left out). Position 12 is treated as
the free cell and always counts as marked.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from types import MappingProxyType
from typing import Protocol

logger = logging.getLogger(__name__)

FREE_CELL_POSITION = 12

Variation = tuple[int, ...]

PATTERNS: Mapping[str, tuple[Variation, ...]] = MappingProxyType(
    {
        "line_horizontal": (
            (0, 1, 2, 3, 4),
            (5, 6, 7, 8, 9),
            (10, 11, 13, 14),
            (15, 16, 17, 18, 19),
            (20, 21, 22, 23),
        ),
        "line_vertical": (
            (0, 5, 10, 15, 20),
            (1, 6, 11, 16, 21),
            (2, 7, 17, 22),
            (3, 8, 13, 18, 23),
            (4, 9, 14, 19),
        ),
        "diagonal": (
            (0, 6, 18),
            (4, 8, 16),
        ),
        "full_card": (
            (0, 1, 2, 3, 4, 5, 6, 7, 8, 9, 10, 11, 13, 14, 15, 16, 17, 18, 19, 20, 21, 22, 23),
        ),
        "format_x": (
            (0, 6, 8, 4, 18, 16),
        ),
        "format_l": (
            (0, 5, 10, 15, 20, 21, 22, 23),
            (4, 9, 14, 19, 20, 21, 22, 23),
        ),
        "format_t": (
            (0, 1, 2, 3, 4, 8, 13, 18, 23),
            (20, 21, 22, 23, 7, 2),
        ),
        "four_corners": (
            (0, 4, 20, 23),
        ),
    }
)

DEFAULT_PATTERNS: tuple[str, ...] = ("line_horizontal", "line_vertical", "diagonal", "full_card")


class NumberedCard(Protocol):
    id: int
    code: str
    numbers: Sequence[int]


@dataclass(frozen=True)
class WinResult:
    won: bool
    pattern: str | None = None
    variation: Variation | None = None


@dataclass(frozen=True)
class CardWin:
    card_id: int
    card_code: str
    numbers: tuple[int, ...]
    pattern: str
    variation: Variation


@dataclass(frozen=True)
class PedraResult:
    """Outcome of the numeric-proximity ("pedra") tie-break."""

    winner: CardWin
    tiebreaker_number: int
    closest_number: int
    difference: int


def check_win(
    card_numbers: Sequence[int],
    drawn_numbers: Iterable[int],
    active_patterns: Iterable[str] = DEFAULT_PATTERNS,
) -> WinResult:
    """Return the first satisfied variation.

    Patterns are scanned in the caller's order, then variations in table order;
    that order is the priority policy when a card completes several shapes at
    once. Unknown pattern names are skipped.
    """

    drawn = {int(n) for n in drawn_numbers}

    for name in active_patterns:
        variations = PATTERNS.get(name)
        if variations is None:
            logger.warning("Pattern %s not found", name)
            continue

        for positions in variations:
            if all(pos == FREE_CELL_POSITION or int(card_numbers[pos]) in drawn for pos in positions):
                return WinResult(won=True, pattern=name, variation=positions)

    return WinResult(won=False)


def check_multiple_cards(
    cards: Iterable[NumberedCard],
    drawn_numbers: Iterable[int],
    active_patterns: Iterable[str] = DEFAULT_PATTERNS,
) -> list[CardWin]:
    """Check every card, keeping only winners in input order."""

    drawn = [int(n) for n in drawn_numbers]
    patterns = list(active_patterns)
    winners: list[CardWin] = []

    for card in cards:
        result = check_win(card.numbers, drawn, patterns)
        if result.won:
            winners.append(
                CardWin(
                    card_id=card.id,
                    card_code=card.code,
                    numbers=tuple(int(n) for n in card.numbers),
                    pattern=str(result.pattern),
                    variation=result.variation or (),
                )
            )

    return winners


def tiebreaker_distance(card_number: int, tiebreaker: int) -> int:
    return abs(int(card_number) - int(tiebreaker))


def resolve_tiebreaker_pedra(winners: Sequence[CardWin], tiebreaker_number: int) -> PedraResult | None:
    """Pick the card holding the number closest to the tiebreaker.

    Ties on distance keep the earlier card.
    """

    best: PedraResult | None = None

    for winner in winners:
        distances = [tiebreaker_distance(n, tiebreaker_number) for n in winner.numbers]
        if not distances:
            continue
        min_distance = min(distances)
        if best is None or min_distance < best.difference:
            best = PedraResult(
                winner=winner,
                tiebreaker_number=int(tiebreaker_number),
                closest_number=winner.numbers[distances.index(min_distance)],
                difference=min_distance,
            )

    return best


def resolve_tiebreaker_division(winners: Sequence[CardWin], total_prize: Decimal) -> list[tuple[CardWin, Decimal]]:
    """Split the prize evenly, rounding each share down to the cent."""

    if not winners:
        return []

    share = (Decimal(total_prize) / len(winners)).quantize(Decimal("0.01"), rounding=ROUND_DOWN)
    return [(winner, share) for winner in winners]


def validate_patterns(patterns: Iterable[str]) -> bool:
    return all(p in PATTERNS for p in patterns)
