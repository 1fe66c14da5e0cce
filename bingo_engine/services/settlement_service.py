"""Settlement of paid purchases.

Splits each sale into prize pool, charity, platform and commission, then
splits the commission again between establishment and manager by their own
rates. Everything is applied in one transaction together with a Settlement
row; that row is what makes a second settlement of the same purchase a no-op.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bingo_engine.db import transaction
from bingo_engine.errors import NotFoundError, PreconditionError
from bingo_engine.models.card import Card, CardStatus
from bingo_engine.models.partner import Charity, Establishment, Manager
from bingo_engine.models.purchase import PaymentStatus, Purchase
from bingo_engine.models.round import Round
from bingo_engine.models.settlement import Settlement
from bingo_engine.repositories.card_repository import CardRepository
from bingo_engine.repositories.purchase_repository import PurchaseRepository
from bingo_engine.repositories.settings_repository import SettingsRepository, SplitConfig
from bingo_engine.services.dispatcher import CardDispatcher
from bingo_engine.utils.clock import utcnow

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def _pct(amount: Decimal, percentage: Decimal | int | None) -> Decimal:
    return (Decimal(amount) * Decimal(percentage or 0) / HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class SplitAmounts:
    total: Decimal
    prize: Decimal
    charity: Decimal
    platform: Decimal
    commission: Decimal
    establishment_commission: Decimal
    manager_commission: Decimal


def compute_split(
    total: Decimal,
    split: SplitConfig,
    establishment_rate: Decimal | None,
    manager_rate: Decimal | None,
) -> SplitAmounts:
    """Two-stage split: commission rates apply to the commission pool, not the sale."""

    commission = _pct(total, split.commission_percentage)
    return SplitAmounts(
        total=Decimal(total),
        prize=_pct(total, split.prize_percentage),
        charity=_pct(total, split.charity_percentage),
        platform=_pct(total, split.platform_percentage),
        commission=commission,
        establishment_commission=_pct(commission, establishment_rate),
        manager_commission=_pct(commission, manager_rate),
    )


@dataclass(frozen=True)
class SettlementOutcome:
    purchase_id: int
    applied: bool
    amounts: SplitAmounts | None = None


class SettlementService:
    def __init__(
        self,
        dispatcher: CardDispatcher | None = None,
        settings: SettingsRepository | None = None,
        purchases: PurchaseRepository | None = None,
        cards: CardRepository | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._settings = settings or SettingsRepository()
        self._purchases = purchases or PurchaseRepository()
        self._cards = cards or CardRepository()

    def on_purchase_paid(self, session: Session, purchase_id: int, now: datetime | None = None) -> SettlementOutcome:
        now = now or utcnow()

        try:
            with transaction(session):
                if self._purchases.settlement_for(session, purchase_id) is not None:
                    logger.info("Purchase %s already settled, skipping", purchase_id)
                    return SettlementOutcome(purchase_id=purchase_id, applied=False)

                purchase = self._purchases.get_by_id(session, purchase_id)
                if purchase is None:
                    raise NotFoundError(message=f"Purchase {purchase_id} not found")
                if purchase.payment_status is not PaymentStatus.PAID:
                    raise PreconditionError(
                        message=f"Purchase {purchase_id} is not paid",
                        details={"payment_status": purchase.payment_status.value},
                    )

                amounts = self._apply(session, purchase, now)
        except IntegrityError:
            # A concurrent settlement inserted the ledger row first.
            if self._purchases.settlement_for(session, purchase_id) is not None:
                logger.info("Purchase %s settled concurrently, skipping", purchase_id)
                return SettlementOutcome(purchase_id=purchase_id, applied=False)
            raise

        logger.info(
            "Purchase %s settled: total=%s prize=%s charity=%s platform=%s commission=%s",
            purchase_id,
            amounts.total,
            amounts.prize,
            amounts.charity,
            amounts.platform,
            amounts.commission,
        )
        self._send_cards(session, purchase_id)
        return SettlementOutcome(purchase_id=purchase_id, applied=True, amounts=amounts)

    def _apply(self, session: Session, purchase: Purchase, now: datetime) -> SplitAmounts:
        round_ = session.get(Round, purchase.round_id)
        if round_ is None:
            raise NotFoundError(message=f"Round {purchase.round_id} not found")

        split = self._settings.split_config(session)

        establishment_id = round_.establishment_id or purchase.establishment_id
        establishment = session.get(Establishment, establishment_id) if establishment_id else None
        manager_id = round_.manager_id or (establishment.manager_id if establishment else None)
        manager = session.get(Manager, manager_id) if manager_id else None

        amounts = compute_split(
            purchase.total_amount,
            split,
            establishment.commission_rate if establishment else None,
            manager.commission_rate if manager else None,
        )

        session.add(
            Settlement(
                purchase_id=purchase.id,
                round_id=round_.id,
                total_amount=amounts.total,
                prize_amount=amounts.prize,
                charity_amount=amounts.charity,
                platform_amount=amounts.platform,
                commission_amount=amounts.commission,
                establishment_commission=amounts.establishment_commission,
                manager_commission=amounts.manager_commission,
                created_at=now,
            )
        )
        # Ledger row first: a concurrent settlement fails here, before any balance moves.
        session.flush()

        if establishment is not None:
            session.execute(
                update(Establishment)
                .where(Establishment.id == establishment.id)
                .values(
                    balance=Establishment.balance + amounts.establishment_commission,
                    total_commission=Establishment.total_commission + amounts.establishment_commission,
                )
            )
        if manager is not None:
            session.execute(
                update(Manager)
                .where(Manager.id == manager.id)
                .values(
                    balance=Manager.balance + amounts.manager_commission,
                    total_commission=Manager.total_commission + amounts.manager_commission,
                )
            )
        if round_.charity_id:
            session.execute(
                update(Charity)
                .where(Charity.id == round_.charity_id)
                .values(total_received=Charity.total_received + amounts.charity)
            )

        session.execute(
            update(Round)
            .where(Round.id == round_.id)
            .values(
                total_sales=Round.total_sales + amounts.total,
                prize_pool=Round.prize_pool + amounts.prize,
                charity_amount=Round.charity_amount + amounts.charity,
                platform_amount=Round.platform_amount + amounts.platform,
                commission_amount=Round.commission_amount + amounts.commission,
            )
        )
        session.execute(
            update(Card)
            .where(Card.purchase_id == purchase.id)
            .values(status=CardStatus.SOLD)
            .execution_options(synchronize_session=False)
        )
        return amounts

    def _send_cards(self, session: Session, purchase_id: int) -> None:
        """Queue card delivery. Runs after commit; never affects the settlement."""

        if self._dispatcher is None:
            return

        try:
            purchase = self._purchases.get_by_id(session, purchase_id)
            if purchase is None or not purchase.customer_phone:
                return
            round_ = session.get(Round, purchase.round_id)
            codes = [card.code for card in self._cards.for_purchase(session, purchase_id)]
            round_info = {
                "number": round_.number if round_ else None,
                "type": round_.type.value if round_ else None,
                "starts_at": round_.starts_at if round_ else None,
            }
            self._dispatcher.submit(purchase.customer_phone, codes, round_info)
        except Exception:
            logger.warning("Could not queue card delivery for purchase %s", purchase_id, exc_info=True)

    def settle_pending(self, session: Session, limit: int = 200) -> int:
        """Settle paid purchases that have no ledger row yet. Returns how many were applied."""

        applied = 0
        for purchase_id in self._purchases.paid_without_settlement(session, limit=limit):
            try:
                if self.on_purchase_paid(session, purchase_id).applied:
                    applied += 1
            except Exception:
                logger.exception("Settlement failed for purchase %s", purchase_id)
        return applied
