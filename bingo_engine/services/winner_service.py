"""Victory checks, declarations and tie resolution."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bingo_engine.db import transaction
from bingo_engine.errors import NotFoundError, PreconditionError, ValidationError
from bingo_engine.models.card import Card
from bingo_engine.models.purchase import PaymentStatus, Purchase
from bingo_engine.models.round import Round, RoundStatus
from bingo_engine.models.winner import Winner, WinnerStatus
from bingo_engine.repositories.card_repository import CardRepository
from bingo_engine.repositories.settings_repository import SettingsRepository
from bingo_engine.services.round_service import HIGHEST_NUMBER, LOWEST_NUMBER
from bingo_engine.services.win_checker import (
    CardWin,
    WinResult,
    check_win,
    resolve_tiebreaker_division,
    resolve_tiebreaker_pedra,
    tiebreaker_distance,
)
from bingo_engine.utils.clock import utcnow

logger = logging.getLogger(__name__)

TIEBREAK_POLICIES = ("pedra", "division")


@dataclass(frozen=True)
class CardCheck:
    card_code: str
    round_id: int
    round_status: RoundStatus
    drawn_count: int
    result: WinResult


@dataclass(frozen=True)
class Declaration:
    card_code: str
    already_declared: bool
    pattern: str | None
    prize_amount: Decimal | None
    winner_id: int | None = None


@dataclass(frozen=True)
class TieResolution:
    round_id: int
    policy: str
    winners: list[Winner]
    tiebreaker_number: int | None = None


class WinnerService:
    def __init__(
        self,
        settings: SettingsRepository | None = None,
        cards: CardRepository | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._settings = settings or SettingsRepository()
        self._cards = cards or CardRepository()
        self._rng = rng or random.Random()

    def _card(self, session: Session, code: str) -> Card:
        card = self._cards.get_by_code(session, code)
        if card is None:
            raise NotFoundError(message=f"Card {code} not found")
        return card

    def check_card(self, session: Session, code: str) -> CardCheck:
        card = self._card(session, code)
        round_ = session.get(Round, card.round_id)
        if round_ is None:
            raise NotFoundError(message=f"Round {card.round_id} not found")

        drawn = list(round_.drawn_numbers or [])
        result = check_win(card.numbers, drawn, self._settings.winning_patterns(session)) if drawn else WinResult(won=False)
        return CardCheck(
            card_code=card.code,
            round_id=round_.id,
            round_status=round_.status,
            drawn_count=len(drawn),
            result=result,
        )

    def declare_victory(self, session: Session, code: str, now: datetime | None = None) -> Declaration:
        now = now or utcnow()

        with transaction(session):
            card = self._card(session, code)
            purchase = session.get(Purchase, card.purchase_id) if card.purchase_id else None
            if purchase is None or purchase.payment_status is not PaymentStatus.PAID:
                raise PreconditionError(message="Purchase for this card is not paid", details={"code": code})

            round_ = session.get(Round, card.round_id, populate_existing=True)
            if round_ is None or round_.status is not RoundStatus.DRAWING:
                raise PreconditionError(message="Round is not drawing", details={"code": code})

            result = check_win(card.numbers, round_.drawn_numbers or [], self._settings.winning_patterns(session))
            if not result.won:
                raise PreconditionError(message="Card has not completed a winning pattern", details={"code": code})

            # is_winner flips once; losing this update means someone declared first.
            flipped = session.execute(
                update(Card)
                .where(Card.id == card.id, Card.is_winner.is_(False))
                .values(is_winner=True, declared_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if flipped != 1:
                return Declaration(card_code=card.code, already_declared=True, pattern=result.pattern, prize_amount=None)

            winner = Winner(
                round_id=round_.id,
                card_id=card.id,
                pattern_matched=str(result.pattern),
                prize_amount=round_.prize_pool,
                status=WinnerStatus.PENDING,
                created_at=now,
            )
            session.add(winner)
            session.flush()

        logger.info("Card %s declared winner of round #%s (%s)", card.code, round_.number, result.pattern)
        return Declaration(
            card_code=card.code,
            already_declared=False,
            pattern=result.pattern,
            prize_amount=winner.prize_amount,
            winner_id=winner.id,
        )

    def resolve_ties(
        self,
        session: Session,
        round_id: int,
        policy: str | None = None,
        tiebreaker_number: int | None = None,
    ) -> TieResolution:
        """Apply the tie-break policy to the round's pending winners.

        `pedra` gives the whole pool to the card holding the number closest to
        the tiebreaker; `division` splits it evenly.
        """

        with transaction(session):
            round_ = session.get(Round, round_id, populate_existing=True)
            if round_ is None:
                raise NotFoundError(message=f"Round {round_id} not found")

            policy = (policy or self._settings.tiebreak_policy(session)).lower()
            if policy not in TIEBREAK_POLICIES:
                raise ValidationError(message=f"Unknown tiebreak policy: {policy}")

            rows = session.execute(
                select(Winner, Card)
                .join(Card, Card.id == Winner.card_id)
                .where(Winner.round_id == round_id, Winner.status == WinnerStatus.PENDING)
                .order_by(Winner.id.asc())
            ).all()
            if not rows:
                raise PreconditionError(message="Round has no pending winners", details={"round_id": round_id})

            winners = [winner for winner, _ in rows]
            entries = [
                CardWin(
                    card_id=card.id,
                    card_code=card.code,
                    numbers=tuple(int(n) for n in card.numbers),
                    pattern=winner.pattern_matched,
                    variation=(),
                )
                for winner, card in rows
            ]
            pool = Decimal(round_.prize_pool)

            if policy == "pedra":
                if tiebreaker_number is None:
                    tiebreaker_number = self._rng.randint(LOWEST_NUMBER, HIGHEST_NUMBER)
                if not LOWEST_NUMBER <= int(tiebreaker_number) <= HIGHEST_NUMBER:
                    raise ValidationError(message="tiebreaker_number must be between 1 and 75")

                picked = resolve_tiebreaker_pedra(entries, int(tiebreaker_number))
                for winner, entry in zip(winners, entries):
                    winner.tiebreaker_number = int(tiebreaker_number)
                    winner.tiebreaker_difference = min(tiebreaker_distance(n, tiebreaker_number) for n in entry.numbers)
                    winner.prize_amount = pool if picked and entry.card_id == picked.winner.card_id else Decimal("0")
            else:
                shares = resolve_tiebreaker_division(entries, pool)
                for winner, (_, share) in zip(winners, shares):
                    winner.prize_amount = share
            session.flush()

        logger.info("Round %s ties resolved by %s among %s winner(s)", round_id, policy, len(winners))
        return TieResolution(round_id=round_id, policy=policy, winners=winners, tiebreaker_number=tiebreaker_number)

    def claim(self, session: Session, winner_id: int, now: datetime | None = None) -> Winner:
        now = now or utcnow()
        with transaction(session):
            winner = session.get(Winner, winner_id)
            if winner is None:
                raise NotFoundError(message=f"Winner {winner_id} not found")
            claimed = session.execute(
                update(Winner)
                .where(Winner.id == winner_id, Winner.status == WinnerStatus.PENDING)
                .values(status=WinnerStatus.CLAIMED, claimed_at=now)
                .execution_options(synchronize_session=False)
            ).rowcount
            if claimed != 1:
                raise PreconditionError(message="Prize already claimed", details={"winner_id": winner_id})

        logger.info("Winner %s claimed prize", winner_id)
        return session.get(Winner, winner_id, populate_existing=True)  # type: ignore[return-value]
