"""Purchases: card issuance and the payment-status feed."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from bingo_engine.db import transaction
from bingo_engine.errors import NotFoundError, PreconditionError, ValidationError
from bingo_engine.models.card import Card, CardStatus
from bingo_engine.models.purchase import PaymentMethod, PaymentStatus, Purchase
from bingo_engine.models.round import Round, RoundStatus
from bingo_engine.repositories.card_repository import CardRepository
from bingo_engine.repositories.purchase_repository import PurchaseRepository
from bingo_engine.services.card_generator import CardGenerator
from bingo_engine.services.settlement_service import SettlementOutcome, SettlementService
from bingo_engine.utils.clock import add_minutes, utcnow

logger = logging.getLogger(__name__)

# Statuses the feed may set directly. `paid` goes through confirm_payment and
# `refunded` through refund_purchase.
FEED_STATUSES = frozenset(
    {
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
        PaymentStatus.EXPIRED,
        PaymentStatus.REFUNDING,
        PaymentStatus.DISPUTED,
    }
)

# A late `paid` from the gateway still wins over these.
PAYABLE_STATUSES = (
    PaymentStatus.PENDING,
    PaymentStatus.EXPIRED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
)

CLEANUP_STATUSES = (PaymentStatus.CANCELLED, PaymentStatus.EXPIRED)
CLEANUP_AGE = timedelta(days=7)


@dataclass(frozen=True)
class Customer:
    name: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class PaymentConfirmation:
    purchase_id: int
    applied: bool
    settlement: SettlementOutcome | None = None


class PurchaseService:
    def __init__(
        self,
        settlement: SettlementService | None = None,
        card_generator: CardGenerator | None = None,
        payment_expiration_minutes: int = 2,
        purchases: PurchaseRepository | None = None,
        cards: CardRepository | None = None,
    ) -> None:
        self._settlement = settlement or SettlementService()
        self._generator = card_generator or CardGenerator()
        self._expiration = payment_expiration_minutes
        self._purchases = purchases or PurchaseRepository()
        self._cards = cards or CardRepository()

    def get(self, session: Session, purchase_id: int) -> Purchase:
        purchase = self._purchases.get_by_id(session, purchase_id)
        if purchase is None:
            raise NotFoundError(message=f"Purchase {purchase_id} not found")
        return purchase

    def cards_for(self, session: Session, purchase_id: int) -> list[Card]:
        return list(self._cards.for_purchase(session, purchase_id))

    def create_purchase(
        self,
        session: Session,
        round_id: int,
        quantity: int,
        customer: Customer | None = None,
        payment_method: PaymentMethod = PaymentMethod.PIX,
        establishment_id: int | None = None,
        now: datetime | None = None,
    ) -> tuple[Purchase, list[Card]]:
        """Reserve `quantity` cards on an open round and issue them to a pending purchase.

        Only PIX purchases get an `expires_at`; other methods wait for the feed.
        """

        now = now or utcnow()
        purchase, cards = self._issue(
            session, round_id, quantity, customer or Customer(), payment_method, establishment_id, now, paid=False
        )
        logger.info("Purchase %s created: %s card(s) for round %s", purchase.id, quantity, round_id)
        return purchase, cards

    def point_of_sale(
        self,
        session: Session,
        round_id: int,
        quantity: int,
        payment_method: PaymentMethod,
        establishment_id: int | None = None,
        customer: Customer | None = None,
        now: datetime | None = None,
    ) -> tuple[Purchase, list[Card], SettlementOutcome | None]:
        """Terminal sale. Cash and card are taken at the counter, so the purchase
        is created `paid` and settled at once; PIX behaves like `create_purchase`.
        """

        now = now or utcnow()
        paid = PaymentMethod(payment_method) is not PaymentMethod.PIX
        purchase, cards = self._issue(
            session, round_id, quantity, customer or Customer(), payment_method, establishment_id, now, paid=paid
        )
        logger.info(
            "POS sale %s: %s card(s) for round %s (%s)", purchase.id, quantity, round_id, purchase.payment_method.value
        )
        if not paid:
            return purchase, cards, None

        # A crash before this point leaves a paid purchase the settlement sweep picks up.
        outcome = self._settlement.on_purchase_paid(session, purchase.id, now=now)
        return self.get(session, purchase.id), self.cards_for(session, purchase.id), outcome

    def _issue(
        self,
        session: Session,
        round_id: int,
        quantity: int,
        customer: Customer,
        payment_method: PaymentMethod,
        establishment_id: int | None,
        now: datetime,
        paid: bool,
    ) -> tuple[Purchase, list[Card]]:
        quantity = int(quantity)
        if quantity < 1:
            raise ValidationError(message="quantity must be at least 1")
        payment_method = PaymentMethod(payment_method)

        with transaction(session):
            round_ = session.get(Round, round_id, populate_existing=True)
            if round_ is None:
                raise NotFoundError(message=f"Round {round_id} not found")
            if round_.status is not RoundStatus.SELLING or not round_.is_selling:
                raise PreconditionError(
                    message=f"Round #{round_.number} is not accepting purchases",
                    details={"status": round_.status.value, "is_selling": bool(round_.is_selling)},
                )

            # Guarded reservation: only succeeds while the round is still open and has room.
            reserved = session.execute(
                update(Round)
                .where(
                    Round.id == round_id,
                    Round.status == RoundStatus.SELLING,
                    Round.is_selling.is_(True),
                    Round.cards_sold + quantity <= Round.max_cards,
                )
                .values(cards_sold=Round.cards_sold + quantity)
                .execution_options(synchronize_session=False)
            ).rowcount
            if reserved != 1:
                raise PreconditionError(
                    message="Not enough cards left in this round",
                    details={"available": max(0, round_.max_cards - round_.cards_sold), "requested": quantity},
                )

            unit_price = Decimal(round_.card_price)
            purchase = Purchase(
                round_id=round_id,
                establishment_id=establishment_id or round_.establishment_id,
                quantity=quantity,
                unit_price=unit_price,
                total_amount=unit_price * quantity,
                payment_method=payment_method,
                payment_status=PaymentStatus.PAID if paid else PaymentStatus.PENDING,
                customer_name=customer.name,
                customer_email=customer.email,
                customer_phone=customer.phone,
                created_at=now,
                expires_at=(
                    add_minutes(now, self._expiration) if payment_method is PaymentMethod.PIX and not paid else None
                ),
                paid_at=now if paid else None,
            )
            session.add(purchase)
            session.flush()

            cards = self._generator.generate_cards(session, round_id, quantity, purchase_id=purchase.id, now=now)

        return purchase, cards

    def confirm_payment(self, session: Session, purchase_id: int, now: datetime | None = None) -> PaymentConfirmation:
        """Payment feed says `paid`. Safe to deliver more than once.

        The gateway has the last word: a payment that lands after the purchase
        expired, failed or was cancelled still moves it to `paid`.
        """

        now = now or utcnow()
        with transaction(session):
            purchase = self.get(session, purchase_id)
            previous = purchase.payment_status
            if previous is not PaymentStatus.PAID and previous not in PAYABLE_STATUSES:
                raise PreconditionError(
                    message=f"Purchase {purchase_id} cannot be marked paid",
                    details={"payment_status": previous.value},
                )
            applied = previous is not PaymentStatus.PAID and (
                session.execute(
                    update(Purchase)
                    .where(Purchase.id == purchase_id, Purchase.payment_status == previous)
                    .values(payment_status=PaymentStatus.PAID, paid_at=now)
                    .execution_options(synchronize_session=False)
                ).rowcount
                == 1
            )

        if applied and previous is PaymentStatus.PENDING:
            logger.info("Purchase %s paid", purchase_id)
        elif applied:
            logger.info("Purchase %s paid after being %s", purchase_id, previous.value)
        self.get(session, purchase_id)

        # Settlement is idempotent on its own, so a repeated confirmation that
        # finds the purchase already paid still lets a missed settlement through.
        outcome = self._settlement.on_purchase_paid(session, purchase_id, now=now)
        return PaymentConfirmation(purchase_id=purchase_id, applied=applied, settlement=outcome)

    def update_payment_status(
        self, session: Session, purchase_id: int, status: PaymentStatus | str, now: datetime | None = None
    ) -> bool:
        status = PaymentStatus(status)
        if status is PaymentStatus.PAID:
            return self.confirm_payment(session, purchase_id, now=now).applied
        if status not in FEED_STATUSES:
            raise ValidationError(message=f"Status {status.value} cannot be set from the payment feed")

        with transaction(session):
            purchase = self.get(session, purchase_id)
            if purchase.payment_status is status:
                return False
            applied = (
                session.execute(
                    update(Purchase)
                    .where(Purchase.id == purchase_id, Purchase.payment_status == purchase.payment_status)
                    .values(payment_status=status)
                    .execution_options(synchronize_session=False)
                ).rowcount
                == 1
            )

        if applied:
            logger.info("Purchase %s payment status -> %s", purchase_id, status.value)
            self.get(session, purchase_id)
        return applied

    def refund_purchase(
        self, session: Session, purchase_id: int, reason: str = "", now: datetime | None = None
    ) -> Purchase:
        """Mark a paid purchase refunded and put its cards back on sale."""

        now = now or utcnow()
        with transaction(session):
            purchase = self.get(session, purchase_id)
            if purchase.payment_status is not PaymentStatus.PAID:
                raise PreconditionError(
                    message="Only paid purchases can be refunded",
                    details={"payment_status": purchase.payment_status.value},
                )
            applied = session.execute(
                update(Purchase)
                .where(Purchase.id == purchase_id, Purchase.payment_status == PaymentStatus.PAID)
                .values(payment_status=PaymentStatus.REFUNDED, refunded_at=now, refund_reason=reason or None)
                .execution_options(synchronize_session=False)
            ).rowcount
            if applied != 1:
                raise PreconditionError(message=f"Purchase {purchase_id} changed while refunding")

            session.execute(
                update(Card)
                .where(Card.purchase_id == purchase_id)
                .values(status=CardStatus.AVAILABLE, purchase_id=None)
                .execution_options(synchronize_session=False)
            )

        logger.info("Purchase %s refunded: %s", purchase_id, reason or "-")
        return session.get(Purchase, purchase_id, populate_existing=True)  # type: ignore[return-value]

    def expire_pending_purchases(self, session: Session, now: datetime | None = None) -> int:
        now = now or utcnow()
        with transaction(session):
            expired = session.execute(
                update(Purchase)
                .where(
                    Purchase.payment_status == PaymentStatus.PENDING,
                    Purchase.payment_method == PaymentMethod.PIX,
                    Purchase.expires_at.is_not(None),
                    Purchase.expires_at < now,
                )
                .values(payment_status=PaymentStatus.EXPIRED)
                .execution_options(synchronize_session=False)
            ).rowcount

        if expired:
            logger.info("%s pending purchase(s) expired", expired)
        return int(expired or 0)

    def cleanup(self, session: Session, now: datetime | None = None) -> dict[str, Any]:
        """Delete old cancelled/expired purchases and the unsold cards issued to them."""

        cutoff = (now or utcnow()) - CLEANUP_AGE
        with transaction(session):
            ids = list(
                session.scalars(
                    select(Purchase.id).where(
                        Purchase.payment_status.in_(list(CLEANUP_STATUSES)), Purchase.created_at < cutoff
                    )
                ).all()
            )
            cards = 0
            if ids:
                cards = session.execute(
                    delete(Card)
                    .where(Card.purchase_id.in_(ids), Card.status == CardStatus.AVAILABLE, Card.is_winner.is_(False))
                    .execution_options(synchronize_session=False)
                ).rowcount
                # Anything still pointing at these purchases keeps its card, unlinked.
                session.execute(
                    update(Card)
                    .where(Card.purchase_id.in_(ids))
                    .values(purchase_id=None)
                    .execution_options(synchronize_session=False)
                )
                session.execute(
                    delete(Purchase).where(Purchase.id.in_(ids)).execution_options(synchronize_session=False)
                )

        if ids:
            logger.info("Cleanup removed %s purchase(s) and %s card(s)", len(ids), cards)
        return {"purchases": len(ids), "cards": int(cards or 0)}
