from datetime import timedelta
from decimal import Decimal

from sqlalchemy import func, select

from bingo_engine.errors import PreconditionError, ValidationError
from bingo_engine.models import (
    Card,
    CardStatus,
    Establishment,
    Manager,
    PaymentMethod,
    PaymentStatus,
    Purchase,
    Round,
)
from bingo_engine.services.card_generator import CardGenerator
from bingo_engine.services.purchase_service import Customer, PurchaseService
from bingo_engine.services.settlement_service import SettlementService
from tests.base import NOW, DBTestCase


class PurchaseServiceTestCase(DBTestCase):
    def setUp(self):
        super().setUp()
        self.service = PurchaseService(
            settlement=SettlementService(),
            card_generator=CardGenerator(rng=self.rng),
            payment_expiration_minutes=2,
        )
        self.round = self.make_round(max_cards=5)

    def _buy(self, quantity=2, now=NOW):
        return self.service.create_purchase(
            self.session,
            self.round.id,
            quantity,
            customer=Customer(name="Ana", phone="11999990000"),
            now=now,
        )

    def _card_count(self, purchase_id):
        return self.session.scalar(select(func.count()).select_from(Card).where(Card.purchase_id == purchase_id))

    def test_create_purchase_issues_cards_and_reserves_capacity(self):
        purchase, cards = self._buy(quantity=3)

        self.assertEqual(purchase.payment_status, PaymentStatus.PENDING)
        self.assertEqual(purchase.total_amount, Decimal("15.00"))
        self.assertEqual(purchase.expires_at, NOW + timedelta(minutes=2))
        self.assertEqual(len(cards), 3)
        self.assertTrue(all(c.purchase_id == purchase.id for c in cards))
        self.assertEqual(self.reload(Round, self.round.id).cards_sold, 3)

    def test_capacity_is_enforced(self):
        self._buy(quantity=4)
        with self.assertRaises(PreconditionError):
            self._buy(quantity=2)

        self.assertEqual(self.reload(Round, self.round.id).cards_sold, 4)
        self.assertEqual(self.session.scalar(select(func.count()).select_from(Purchase)), 1)

    def test_closed_round_refuses_purchases(self):
        self.round.is_selling = False
        self.session.commit()

        with self.assertRaises(PreconditionError):
            self._buy()

    def test_quantity_must_be_positive(self):
        with self.assertRaises(ValidationError):
            self._buy(quantity=0)

    def test_confirm_payment_settles_once(self):
        purchase, _ = self._buy(quantity=2)

        first = self.service.confirm_payment(self.session, purchase.id, now=NOW)
        second = self.service.confirm_payment(self.session, purchase.id, now=NOW)

        self.assertTrue(first.applied)
        self.assertTrue(first.settlement.applied)
        self.assertFalse(second.applied)
        self.assertFalse(second.settlement.applied)

        round_ = self.reload(Round, self.round.id)
        self.assertEqual(round_.total_sales, Decimal("10.00"))
        self.assertEqual(round_.prize_pool, Decimal("4.00"))
        self.assertEqual(self.reload(Purchase, purchase.id).paid_at, NOW)

    def test_late_payment_after_failure_is_accepted(self):
        purchase, _ = self._buy()
        self.assertTrue(self.service.update_payment_status(self.session, purchase.id, "failed"))
        self.assertFalse(self.service.update_payment_status(self.session, purchase.id, "failed"))

        confirmation = self.service.confirm_payment(self.session, purchase.id, now=NOW)

        self.assertTrue(confirmation.applied)
        self.assertTrue(confirmation.settlement.applied)

    def test_disputed_purchase_cannot_be_paid(self):
        purchase, _ = self._buy()
        self.service.update_payment_status(self.session, purchase.id, PaymentStatus.DISPUTED)

        with self.assertRaises(PreconditionError):
            self.service.confirm_payment(self.session, purchase.id)

    def test_feed_cannot_set_refunded_directly(self):
        purchase, _ = self._buy()
        with self.assertRaises(ValidationError):
            self.service.update_payment_status(self.session, purchase.id, PaymentStatus.REFUNDED)

    def test_refund_returns_cards_to_sale(self):
        purchase, cards = self._buy(quantity=2)
        self.service.confirm_payment(self.session, purchase.id, now=NOW)

        refunded = self.service.refund_purchase(self.session, purchase.id, reason="customer request", now=NOW)

        self.assertEqual(refunded.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(refunded.refund_reason, "customer request")
        for card in cards:
            card = self.reload(Card, card.id)
            self.assertEqual(card.status, CardStatus.AVAILABLE)
            self.assertIsNone(card.purchase_id)

    def test_only_paid_purchases_can_be_refunded(self):
        purchase, _ = self._buy()
        with self.assertRaises(PreconditionError):
            self.service.refund_purchase(self.session, purchase.id)

    def test_pending_purchases_expire(self):
        purchase, _ = self._buy()

        self.assertEqual(self.service.expire_pending_purchases(self.session, now=NOW + timedelta(minutes=1)), 0)
        self.assertEqual(self.service.expire_pending_purchases(self.session, now=NOW + timedelta(minutes=3)), 1)
        self.assertEqual(self.reload(Purchase, purchase.id).payment_status, PaymentStatus.EXPIRED)

    def test_payment_after_expiry_is_settled(self):
        purchase, cards = self._buy(quantity=2)
        self.service.expire_pending_purchases(self.session, now=NOW + timedelta(minutes=3))

        confirmation = self.service.confirm_payment(self.session, purchase.id, now=NOW + timedelta(minutes=4))

        self.assertTrue(confirmation.applied)
        self.assertTrue(confirmation.settlement.applied)
        self.assertEqual(self.reload(Purchase, purchase.id).payment_status, PaymentStatus.PAID)
        self.assertEqual(self.reload(Round, self.round.id).total_sales, Decimal("10.00"))
        for card in cards:
            self.assertEqual(self.reload(Card, card.id).status, CardStatus.SOLD)

    def test_feed_update_after_expiry_sees_current_status(self):
        purchase, _ = self._buy()
        self.assertEqual(purchase.payment_status, PaymentStatus.PENDING)
        self.service.expire_pending_purchases(self.session, now=NOW + timedelta(minutes=3))

        # Same session: the purchase object loaded above still says pending.
        self.assertTrue(self.service.update_payment_status(self.session, purchase.id, PaymentStatus.CANCELLED))
        self.assertEqual(self.service.get(self.session, purchase.id).payment_status, PaymentStatus.CANCELLED)

    def test_only_pix_purchases_expire(self):
        purchase, _ = self.service.create_purchase(
            self.session, self.round.id, 1, payment_method=PaymentMethod.CASH, now=NOW
        )

        self.assertIsNone(purchase.expires_at)
        self.assertEqual(self.service.expire_pending_purchases(self.session, now=NOW + timedelta(hours=1)), 0)
        self.assertEqual(self.reload(Purchase, purchase.id).payment_status, PaymentStatus.PENDING)

    def test_point_of_sale_cash_is_paid_and_settled_at_once(self):
        establishment, manager, _ = self.make_partners()

        purchase, cards, outcome = self.service.point_of_sale(
            self.session, self.round.id, 2, PaymentMethod.CASH, establishment_id=establishment.id, now=NOW
        )

        self.assertEqual(purchase.payment_status, PaymentStatus.PAID)
        self.assertEqual(purchase.paid_at, NOW)
        self.assertIsNone(purchase.expires_at)
        self.assertTrue(outcome.applied)
        self.assertEqual({card.status for card in cards}, {CardStatus.SOLD})
        self.assertEqual(self.reload(Establishment, establishment.id).balance, Decimal("0.60"))
        self.assertEqual(self.reload(Manager, manager.id).balance, Decimal("0.40"))

    def test_point_of_sale_pix_waits_for_payment(self):
        purchase, cards, outcome = self.service.point_of_sale(self.session, self.round.id, 1, PaymentMethod.PIX, now=NOW)

        self.assertIsNone(outcome)
        self.assertEqual(purchase.payment_status, PaymentStatus.PENDING)
        self.assertEqual(purchase.expires_at, NOW + timedelta(minutes=2))
        self.assertEqual(len(cards), 1)

    def test_cleanup_removes_old_expired_purchases_with_their_cards(self):
        old, _ = self._buy(quantity=1, now=NOW - timedelta(days=8))
        recent, _ = self._buy(quantity=1)
        self.service.expire_pending_purchases(self.session, now=NOW + timedelta(minutes=5))

        result = self.service.cleanup(self.session, now=NOW)

        self.assertEqual(result, {"purchases": 1, "cards": 1})
        self.assertIsNone(self.session.scalar(select(Purchase.id).where(Purchase.id == old.id)))
        self.assertIsNotNone(self.session.scalar(select(Purchase.id).where(Purchase.id == recent.id)))
        self.assertEqual(self._card_count(old.id), 0)
        self.assertEqual(self._card_count(recent.id), 1)
