"""Round lifecycle and draw engine.

Every status change is a guarded update (``... WHERE status = <expected>``).
The affected row count is the only signal that a transition took effect, so
concurrent scheduler ticks and operator actions collapse into at most one
effective transition without explicit locks.

Outcomes:
  - ``TransitionResult(applied=True)``: this call moved the round.
  - ``TransitionResult(applied=False)``: someone else got there first (no-op).
  - ``PreconditionError``: a direct call on a round whose status forbids it.
  - anything else (SQLAlchemy errors): fatal, transaction rolled back.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from bingo_engine.db import transaction
from bingo_engine.errors import NotFoundError, PreconditionError
from bingo_engine.models.draw import Draw
from bingo_engine.models.purchase import PaymentStatus, Purchase
from bingo_engine.models.round import TERMINAL_STATUSES, Round, RoundStatus, RoundType
from bingo_engine.repositories.round_repository import RoundRepository
from bingo_engine.repositories.settings_repository import SettingsRepository
from bingo_engine.services.notifier import NEW_ROUND_CHANNEL, MemoryNotifier, Notifier, numbers_channel, status_channel
from bingo_engine.utils.clock import add_minutes, utcnow

logger = logging.getLogger(__name__)

LOWEST_NUMBER = 1
HIGHEST_NUMBER = 75
DRAW_CEILING = HIGHEST_NUMBER

# A round holding this many numbers before a draw step is finished once that
# step lands, unless someone already won.
AUTO_FINISH_THRESHOLD = DRAW_CEILING - 1

# Special rounds are rarer and longer, so they are planned further ahead.
CREATION_LOOKAHEAD_MINUTES = {
    RoundType.REGULAR: 5,
    RoundType.SPECIAL: 30,
}

ALLOWED_TRANSITIONS: dict[RoundStatus, frozenset[RoundStatus]] = {
    RoundStatus.SCHEDULED: frozenset({RoundStatus.SELLING, RoundStatus.CANCELLED}),
    RoundStatus.SELLING: frozenset({RoundStatus.DRAWING, RoundStatus.FINISHED, RoundStatus.CANCELLED}),
    RoundStatus.DRAWING: frozenset({RoundStatus.FINISHED, RoundStatus.CANCELLED}),
    **{status: frozenset() for status in TERMINAL_STATUSES},
}

CANCEL_REFUND_REASON = "round cancelled"


@dataclass(frozen=True)
class TransitionResult:
    round_id: int
    applied: bool
    status: RoundStatus
    is_selling: bool
    refunded_purchases: int = 0


@dataclass(frozen=True)
class DrawResult:
    round_id: int
    number: int
    position: int
    total: int


@dataclass
class SweepResult:
    """Round numbers moved by one status sweep."""

    selling_started: list[int] = field(default_factory=list)
    selling_closed: list[int] = field(default_factory=list)
    drawing_started: list[int] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.selling_started) + len(self.selling_closed) + len(self.drawing_started)


def round_summary(round_: Round) -> dict[str, Any]:
    return {
        "id": round_.id,
        "number": round_.number,
        "type": round_.type.value,
        "status": round_.status.value,
        "is_selling": bool(round_.is_selling),
        "card_price": round_.card_price,
        "max_cards": round_.max_cards,
        "starts_at": round_.starts_at,
        "selling_ends_at": round_.selling_ends_at,
        "ends_at": round_.ends_at,
    }


class RoundService:
    """Creates rounds, moves them through their lifecycle and draws numbers."""

    def __init__(
        self,
        notifier: Notifier | None = None,
        rng: random.Random | None = None,
        repository: RoundRepository | None = None,
        settings: SettingsRepository | None = None,
    ) -> None:
        self._notifier = notifier or MemoryNotifier()
        self._rng = rng or random.Random()
        self._repo = repository or RoundRepository()
        self._settings = settings or SettingsRepository()

    # ------------------------------------------------------------------ helpers

    def _publish_status(self, round_id: int, status: RoundStatus, now: datetime, **extra: Any) -> None:
        payload: dict[str, Any] = {"status": status.value, "timestamp": now}
        payload.update(extra)
        self._notifier.publish(status_channel(round_id), payload)

    @staticmethod
    def _compare_and_set(
        session: Session,
        round_id: int,
        expected: Iterable[RoundStatus],
        *conditions: Any,
        **values: Any,
    ) -> bool:
        stmt = (
            update(Round)
            .where(Round.id == round_id, Round.status.in_(list(expected)), *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount == 1

    def _load(self, session: Session, round_id: int) -> Round:
        round_ = session.get(Round, round_id, populate_existing=True)
        if round_ is None:
            raise NotFoundError(message=f"Round {round_id} not found")
        return round_

    @staticmethod
    def _require(round_: Round, target: RoundStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[round_.status]:
            raise PreconditionError(
                message=f"Round #{round_.number} cannot go from {round_.status.value} to {target.value}",
                details={"round_id": round_.id, "status": round_.status.value, "target": target.value},
            )

    def _result(self, session: Session, round_id: int, applied: bool, **extra: Any) -> TransitionResult:
        round_ = self._load(session, round_id)
        return TransitionResult(
            round_id=round_.id,
            applied=applied,
            status=round_.status,
            is_selling=bool(round_.is_selling),
            **extra,
        )

    # ----------------------------------------------------------------- creation

    def create_round(
        self,
        session: Session,
        round_type: RoundType = RoundType.REGULAR,
        now: datetime | None = None,
        establishment_id: int | None = None,
        manager_id: int | None = None,
        charity_id: int | None = None,
    ) -> Round:
        """Open the next round for sale immediately."""

        now = now or utcnow()

        with transaction(session):
            config = self._settings.round_config(session, round_type)
            selling_ends_at = add_minutes(now, config.selling_minutes)

            round_ = Round(
                number=self._repo.next_number(session),
                type=round_type,
                status=RoundStatus.SELLING,
                is_selling=True,
                starts_at=now,
                selling_ends_at=selling_ends_at,
                ends_at=add_minutes(selling_ends_at, config.closed_minutes),
                card_price=config.card_price,
                max_cards=config.max_cards,
                drawn_numbers=[],
                establishment_id=establishment_id,
                manager_id=manager_id,
                charity_id=charity_id,
                created_at=now,
            )
            session.add(round_)
            session.flush()

        logger.info(
            "Round #%s created (%s) - selling %smin, closed %smin",
            round_.number,
            round_type.value,
            config.selling_minutes,
            config.closed_minutes,
        )
        self._notifier.publish(NEW_ROUND_CHANNEL, round_summary(round_))
        return round_

    def check_and_create_rounds(self, session: Session, now: datetime | None = None) -> list[Round]:
        """Create a round of each type that has nothing scheduled soon enough."""

        now = now or utcnow()
        created: list[Round] = []

        for round_type in (RoundType.REGULAR, RoundType.SPECIAL):
            upcoming = self._repo.next_scheduled(session, round_type)
            horizon = add_minutes(now, CREATION_LOOKAHEAD_MINUTES[round_type])
            if upcoming is None or upcoming.starts_at < horizon:
                created.append(self.create_round(session, round_type, now=now))

        return created

    # -------------------------------------------------------- direct transitions

    def start_selling(self, session: Session, round_id: int, now: datetime | None = None) -> TransitionResult:
        now = now or utcnow()
        with transaction(session):
            self._require(self._load(session, round_id), RoundStatus.SELLING)
            applied = self._compare_and_set(
                session, round_id, [RoundStatus.SCHEDULED], status=RoundStatus.SELLING, is_selling=True
            )
            result = self._result(session, round_id, applied)

        if applied:
            logger.info("Round %s selling started", round_id)
            self._publish_status(round_id, RoundStatus.SELLING, now, is_selling=True)
        return result

    def close_selling(self, session: Session, round_id: int, now: datetime | None = None) -> TransitionResult:
        """Stop accepting purchases; the round stays in `selling` until the draw."""

        now = now or utcnow()
        with transaction(session):
            round_ = self._load(session, round_id)
            if round_.status is not RoundStatus.SELLING:
                raise PreconditionError(
                    message=f"Round #{round_.number} is not selling",
                    details={"round_id": round_id, "status": round_.status.value},
                )
            applied = self._compare_and_set(
                session, round_id, [RoundStatus.SELLING], Round.is_selling.is_(True), is_selling=False
            )
            result = self._result(session, round_id, applied)

        if applied:
            logger.info("Round %s selling closed (waiting period)", round_id)
            self._publish_status(round_id, RoundStatus.SELLING, now, is_selling=False)
        return result

    def start_drawing(self, session: Session, round_id: int, now: datetime | None = None) -> TransitionResult:
        """Operator shortcut: start the draw without waiting for `ends_at`."""

        now = now or utcnow()
        with transaction(session):
            self._require(self._load(session, round_id), RoundStatus.DRAWING)
            applied = self._compare_and_set(
                session,
                round_id,
                [RoundStatus.SELLING],
                status=RoundStatus.DRAWING,
                is_selling=False,
                drawing_started_at=now,
            )
            result = self._result(session, round_id, applied)

        if applied:
            logger.info("Round %s drawing started", round_id)
            self._publish_status(round_id, RoundStatus.DRAWING, now)
        return result

    def finish_round(self, session: Session, round_id: int, now: datetime | None = None) -> TransitionResult:
        now = now or utcnow()
        with transaction(session):
            self._require(self._load(session, round_id), RoundStatus.FINISHED)
            applied = self._compare_and_set(
                session,
                round_id,
                [RoundStatus.SELLING, RoundStatus.DRAWING],
                status=RoundStatus.FINISHED,
                is_selling=False,
                finished_at=now,
            )
            result = self._result(session, round_id, applied)

        if applied:
            logger.info("Round %s finished", round_id)
            self._publish_status(round_id, RoundStatus.FINISHED, now)
        return result

    def cancel_round(self, session: Session, round_id: int, now: datetime | None = None) -> TransitionResult:
        """Cancel the round and mark its paid purchases refunded, atomically.

        Only the purchase status is reversed here; returning money through the
        payment provider is handled outside the engine.
        """

        now = now or utcnow()
        refunded = 0
        with transaction(session):
            self._require(self._load(session, round_id), RoundStatus.CANCELLED)
            applied = self._compare_and_set(
                session,
                round_id,
                [RoundStatus.SCHEDULED, RoundStatus.SELLING, RoundStatus.DRAWING],
                status=RoundStatus.CANCELLED,
                is_selling=False,
                cancelled_at=now,
            )
            if applied:
                refunded = session.execute(
                    update(Purchase)
                    .where(Purchase.round_id == round_id, Purchase.payment_status == PaymentStatus.PAID)
                    .values(payment_status=PaymentStatus.REFUNDED, refunded_at=now, refund_reason=CANCEL_REFUND_REASON)
                    .execution_options(synchronize_session=False)
                ).rowcount
            result = self._result(session, round_id, applied, refunded_purchases=int(refunded or 0))

        if applied:
            logger.info("Round %s cancelled (%s purchases refunded)", round_id, refunded)
            self._publish_status(round_id, RoundStatus.CANCELLED, now)
        return result

    # -------------------------------------------------------------------- draws

    def draw_next_number(self, session: Session, round_id: int, now: datetime | None = None) -> DrawResult:
        """Draw one number for a round in `drawing` status.

        Rejection sampling over 1..75 against the numbers already out. The
        ceiling is re-read inside the transaction, and the unique constraints on
        (round, position) and (round, number) stop a concurrent draw that read
        the same state.
        """

        now = now or utcnow()

        with transaction(session):
            round_ = self._load(session, round_id)
            if round_.status is not RoundStatus.DRAWING:
                raise PreconditionError(
                    message=f"Round #{round_.number} is not in drawing status",
                    details={"round_id": round_id, "status": round_.status.value},
                )

            drawn = [int(n) for n in (round_.drawn_numbers or [])]
            prior = max(len(drawn), self._repo.draw_count(session, round_id))
            if prior >= DRAW_CEILING:
                raise PreconditionError(
                    message="All numbers already drawn",
                    details={"round_id": round_id, "drawn": prior},
                )

            taken = set(drawn)
            number = self._rng.randint(LOWEST_NUMBER, HIGHEST_NUMBER)
            while number in taken:
                number = self._rng.randint(LOWEST_NUMBER, HIGHEST_NUMBER)

            position = prior + 1
            session.add(Draw(round_id=round_id, number=number, position=position, drawn_at=now))

            if not self._compare_and_set(
                session, round_id, [RoundStatus.DRAWING], drawn_numbers=[*drawn, number]
            ):
                raise PreconditionError(
                    message=f"Round #{round_.number} left drawing status",
                    details={"round_id": round_id},
                )
            session.flush()

        result = DrawResult(round_id=round_id, number=number, position=position, total=position)
        logger.info("Round %s drew number %s (%s/%s)", round_id, number, position, DRAW_CEILING)
        self._notifier.publish(
            numbers_channel(round_id),
            {"number": number, "position": position, "total": position},
        )
        return result

    # ------------------------------------------------------------------- sweeps

    def update_rounds_status(self, session: Session, now: datetime | None = None) -> SweepResult:
        """Advance rounds whose time has come. Lost races are skipped silently."""

        now = now or utcnow()
        result = SweepResult()

        with transaction(session):
            for round_id, number in session.execute(
                select(Round.id, Round.number).where(
                    Round.status == RoundStatus.SCHEDULED, Round.starts_at <= now
                )
            ).all():
                if self._compare_and_set(
                    session,
                    round_id,
                    [RoundStatus.SCHEDULED],
                    Round.starts_at <= now,
                    status=RoundStatus.SELLING,
                    is_selling=True,
                ):
                    result.selling_started.append(round_id)
                    logger.info("Round #%s selling started (auto)", number)

            for round_id, number in session.execute(
                select(Round.id, Round.number).where(
                    Round.status == RoundStatus.SELLING,
                    Round.is_selling.is_(True),
                    Round.selling_ends_at <= now,
                )
            ).all():
                if self._compare_and_set(
                    session,
                    round_id,
                    [RoundStatus.SELLING],
                    Round.is_selling.is_(True),
                    Round.selling_ends_at <= now,
                    is_selling=False,
                ):
                    result.selling_closed.append(round_id)
                    logger.info("Round #%s selling closed (auto) - waiting period", number)

            for round_id, number in session.execute(
                select(Round.id, Round.number).where(Round.status == RoundStatus.SELLING, Round.ends_at <= now)
            ).all():
                if self._compare_and_set(
                    session,
                    round_id,
                    [RoundStatus.SELLING],
                    Round.ends_at <= now,
                    status=RoundStatus.DRAWING,
                    is_selling=False,
                    drawing_started_at=now,
                ):
                    result.drawing_started.append(round_id)
                    logger.info("Round #%s drawing started (auto)", number)

        for round_id in result.selling_started:
            self._publish_status(round_id, RoundStatus.SELLING, now, is_selling=True)
        for round_id in result.selling_closed:
            self._publish_status(round_id, RoundStatus.SELLING, now, is_selling=False)
        for round_id in result.drawing_started:
            self._publish_status(round_id, RoundStatus.DRAWING, now)

        return result

    def finish_if_exhausted(
        self,
        session: Session,
        round_id: int,
        threshold: int = AUTO_FINISH_THRESHOLD,
        now: datetime | None = None,
    ) -> bool:
        """Finish a drawing round that ran out of numbers without a winner."""

        now = now or utcnow()
        with transaction(session):
            round_ = session.get(Round, round_id, populate_existing=True)
            if round_ is None or round_.status is not RoundStatus.DRAWING:
                return False
            if len(round_.drawn_numbers or []) < threshold or self._repo.has_winner(session, round_id):
                return False
            applied = self._compare_and_set(
                session,
                round_id,
                [RoundStatus.DRAWING],
                status=RoundStatus.FINISHED,
                finished_at=now,
            )

        if applied:
            logger.info("Round #%s auto-finished (no winner)", round_.number)
            self._publish_status(round_id, RoundStatus.FINISHED, now)
        return applied

    def auto_finish_rounds(self, session: Session, now: datetime | None = None) -> list[int]:
        """Finish every drawing round holding all 75 numbers and no winner."""

        finished: list[int] = []
        for round_id in self._repo.ids_with_status(session, RoundStatus.DRAWING):
            if self.finish_if_exhausted(session, round_id, threshold=DRAW_CEILING, now=now):
                finished.append(round_id)
        return finished

    def drawable_rounds(self, session: Session) -> list[tuple[int, int]]:
        """(round id, numbers drawn so far) for rounds the draw job should advance."""

        stmt = select(Round.id, Round.drawn_numbers).where(Round.status == RoundStatus.DRAWING).order_by(Round.id)
        return [
            (int(round_id), len(drawn or []))
            for round_id, drawn in session.execute(stmt).all()
            if len(drawn or []) < DRAW_CEILING
        ]

    def seconds_until(self, round_: Round, now: datetime | None = None) -> dict[str, float]:
        """Remaining time in each window, clamped at zero. Used by live displays."""

        now = now or utcnow()

        def _left(moment: datetime) -> float:
            return max(0.0, (moment - now) / timedelta(seconds=1))

        return {
            "selling": _left(round_.selling_ends_at),
            "drawing": _left(round_.ends_at),
        }
