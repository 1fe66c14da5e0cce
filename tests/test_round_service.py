from datetime import timedelta
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from bingo_engine.errors import PreconditionError
from bingo_engine.models import Card, Draw, PaymentStatus, Purchase, Round, RoundStatus, RoundType, Winner
from bingo_engine.repositories.round_repository import RoundRepository
from bingo_engine.services.notifier import NEW_ROUND_CHANNEL, numbers_channel, status_channel
from bingo_engine.services.round_service import DRAW_CEILING, RoundService
from bingo_engine.utils.clock import add_minutes
from tests.base import NOW, DBTestCase


class RoundServiceTestCase(DBTestCase):
    def setUp(self):
        super().setUp()
        self.service = RoundService(notifier=self.notifier, rng=self.rng)

    def test_successive_rounds_get_contiguous_numbers(self):
        rounds = [self.service.create_round(self.session, RoundType.REGULAR, now=NOW + timedelta(seconds=i)) for i in range(3)]

        self.assertEqual([r.number for r in rounds], [1, 2, 3])
        self.assertEqual(len(self.notifier.on(NEW_ROUND_CHANNEL)), 3)

    def test_created_round_opens_for_sale_with_config_windows(self):
        round_ = self.service.create_round(self.session, RoundType.REGULAR, now=NOW)

        self.assertEqual(round_.status, RoundStatus.SELLING)
        self.assertTrue(round_.is_selling)
        self.assertEqual(round_.selling_ends_at, add_minutes(NOW, 7))
        self.assertEqual(round_.ends_at, add_minutes(NOW, 10))
        self.assertEqual(round_.card_price, Decimal("5"))

    def test_round_config_setting_overrides_defaults(self):
        self.settings.set(
            self.session,
            "round_config",
            {"special": {"selling_minutes": 20, "closed_minutes": 5, "card_price": "12.50"}, "max_cards_per_round": 50},
        )
        self.session.commit()

        round_ = self.service.create_round(self.session, RoundType.SPECIAL, now=NOW)
        self.assertEqual(round_.ends_at, add_minutes(NOW, 25))
        self.assertEqual(round_.card_price, Decimal("12.50"))
        self.assertEqual(round_.max_cards, 50)

    def test_check_and_create_rounds_when_nothing_scheduled(self):
        created = self.service.check_and_create_rounds(self.session, now=NOW)
        self.assertEqual(sorted(r.type.value for r in created), ["regular", "special"])

    def test_check_and_create_rounds_skips_types_with_far_scheduled_round(self):
        self.make_round(status=RoundStatus.SCHEDULED, is_selling=False, starts_at=NOW + timedelta(hours=1))
        self.make_round(
            status=RoundStatus.SCHEDULED,
            is_selling=False,
            starts_at=NOW + timedelta(hours=2),
            type=RoundType.SPECIAL,
        )
        self.assertEqual(self.service.check_and_create_rounds(self.session, now=NOW), [])

    def test_check_and_create_rounds_when_scheduled_round_is_imminent(self):
        self.make_round(status=RoundStatus.SCHEDULED, is_selling=False, starts_at=NOW + timedelta(minutes=2))
        self.make_round(
            status=RoundStatus.SCHEDULED,
            is_selling=False,
            starts_at=NOW + timedelta(hours=2),
            type=RoundType.SPECIAL,
        )
        created = self.service.check_and_create_rounds(self.session, now=NOW)
        self.assertEqual([r.type for r in created], [RoundType.REGULAR])


class StatusSweepTestCase(DBTestCase):
    def setUp(self):
        super().setUp()
        self.service = RoundService(notifier=self.notifier, rng=self.rng)

    def test_scheduled_round_starts_selling_when_due(self):
        round_ = self.make_round(status=RoundStatus.SCHEDULED, is_selling=False, starts_at=NOW)

        before = self.service.update_rounds_status(self.session, now=NOW - timedelta(seconds=1))
        self.assertEqual(before.selling_started, [])

        result = self.service.update_rounds_status(self.session, now=NOW)
        self.assertEqual(result.selling_started, [round_.id])
        self.assertTrue(self.reload(Round, round_.id).is_selling)

    def test_selling_closes_then_draws_only_at_ends_at(self):
        round_ = self.make_round(starts_at=NOW)
        selling_ends_at = add_minutes(NOW, 7)
        ends_at = add_minutes(NOW, 10)

        closed = self.service.update_rounds_status(self.session, now=selling_ends_at)
        self.assertEqual(closed.selling_closed, [round_.id])
        refreshed = self.reload(Round, round_.id)
        self.assertEqual(refreshed.status, RoundStatus.SELLING)
        self.assertFalse(refreshed.is_selling)

        early = self.service.update_rounds_status(self.session, now=ends_at - timedelta(seconds=1))
        self.assertEqual(early.drawing_started, [])
        self.assertEqual(self.reload(Round, round_.id).status, RoundStatus.SELLING)

        on_time = self.service.update_rounds_status(self.session, now=ends_at)
        self.assertEqual(on_time.drawing_started, [round_.id])
        refreshed = self.reload(Round, round_.id)
        self.assertEqual(refreshed.status, RoundStatus.DRAWING)
        self.assertEqual(refreshed.drawing_started_at, ends_at)

        payloads = self.notifier.on(status_channel(round_.id))
        self.assertEqual([p["status"] for p in payloads], ["selling", "drawing"])
        self.assertFalse(payloads[0]["is_selling"])

    def test_repeated_sweep_is_a_no_op(self):
        self.make_round(starts_at=NOW)
        later = add_minutes(NOW, 11)

        first = self.service.update_rounds_status(self.session, now=later)
        second = self.service.update_rounds_status(self.session, now=later)

        self.assertEqual(len(first.drawing_started), 1)
        self.assertEqual(second.changed, 0)


class TransitionTestCase(DBTestCase):
    def setUp(self):
        super().setUp()
        self.service = RoundService(notifier=self.notifier, rng=self.rng)

    def test_scheduled_round_can_be_cancelled(self):
        round_ = self.make_round(status=RoundStatus.SCHEDULED, is_selling=False)
        result = self.service.cancel_round(self.session, round_.id, now=NOW)

        self.assertTrue(result.applied)
        self.assertEqual(result.status, RoundStatus.CANCELLED)
        self.assertEqual(self.reload(Round, round_.id).cancelled_at, NOW)

    def test_finished_round_rejects_every_transition(self):
        round_ = self.make_round()
        self.service.finish_round(self.session, round_.id, now=NOW)

        for action in (
            self.service.start_selling,
            self.service.close_selling,
            self.service.start_drawing,
            self.service.finish_round,
            self.service.cancel_round,
            self.service.draw_next_number,
        ):
            with self.subTest(action=action.__name__), self.assertRaises(PreconditionError):
                action(self.session, round_.id)

        self.assertEqual(self.reload(Round, round_.id).status, RoundStatus.FINISHED)

    def test_closing_selling_twice_is_a_no_op_not_an_error(self):
        round_ = self.make_round()

        first = self.service.close_selling(self.session, round_.id, now=NOW)
        second = self.service.close_selling(self.session, round_.id, now=NOW)

        self.assertTrue(first.applied)
        self.assertFalse(second.applied)
        self.assertFalse(second.is_selling)

    def test_start_drawing_requires_selling(self):
        round_ = self.make_round(status=RoundStatus.SCHEDULED, is_selling=False)
        with self.assertRaises(PreconditionError):
            self.service.start_drawing(self.session, round_.id)

    def test_cancel_refunds_paid_purchases_only_in_that_round(self):
        round_ = self.make_round()
        other = self.make_round()
        purchase = self.make_paid_purchase(round_, quantity=2)
        other_purchase = self.make_paid_purchase(other, quantity=1)
        other.total_sales = Decimal("5.00")
        self.session.commit()

        result = self.service.cancel_round(self.session, round_.id, now=NOW)

        self.assertEqual(result.refunded_purchases, 1)
        refunded = self.reload(Purchase, purchase.id)
        self.assertEqual(refunded.payment_status, PaymentStatus.REFUNDED)
        self.assertEqual(refunded.refunded_at, NOW)
        self.assertEqual(self.reload(Purchase, other_purchase.id).payment_status, PaymentStatus.PAID)
        self.assertEqual(self.reload(Round, other.id).total_sales, Decimal("5.00"))


class DrawTestCase(DBTestCase):
    def setUp(self):
        super().setUp()
        self.service = RoundService(notifier=self.notifier, rng=self.rng)
        self.round = self.make_round(status=RoundStatus.DRAWING, is_selling=False)

    def test_draws_are_gapless_unique_and_capped(self):
        for expected_position in range(1, DRAW_CEILING + 1):
            result = self.service.draw_next_number(self.session, self.round.id, now=NOW)
            self.assertEqual(result.position, expected_position)

        round_ = self.reload(Round, self.round.id)
        self.assertEqual(len(round_.drawn_numbers), DRAW_CEILING)
        self.assertEqual(sorted(round_.drawn_numbers), list(range(1, 76)))

        draws = RoundRepository().draws(self.session, self.round.id)
        self.assertEqual([d.position for d in draws], list(range(1, 76)))
        self.assertEqual([d.number for d in draws], round_.drawn_numbers)

        with self.assertRaises(PreconditionError):
            self.service.draw_next_number(self.session, self.round.id, now=NOW)
        self.assertEqual(RoundRepository().draw_count(self.session, self.round.id), DRAW_CEILING)

    def test_draw_publishes_number_position_total(self):
        result = self.service.draw_next_number(self.session, self.round.id, now=NOW)
        self.assertEqual(
            self.notifier.on(numbers_channel(self.round.id)),
            [{"number": result.number, "position": 1, "total": 1}],
        )

    def test_draw_rejected_outside_drawing(self):
        selling = self.make_round()
        with self.assertRaises(PreconditionError):
            self.service.draw_next_number(self.session, selling.id)
        self.assertEqual(RoundRepository().draw_count(self.session, selling.id), 0)

    def test_duplicate_position_is_refused_by_the_store(self):
        self.session.add(Draw(round_id=self.round.id, number=5, position=1, drawn_at=NOW))
        self.session.commit()
        self.session.add(Draw(round_id=self.round.id, number=6, position=1, drawn_at=NOW))
        with self.assertRaises(IntegrityError):
            self.session.commit()
        self.session.rollback()

    def test_exhausted_round_without_winner_finishes(self):
        round_ = self.make_round(status=RoundStatus.DRAWING, is_selling=False, drawn_numbers=list(range(1, 75)))
        self.service.draw_next_number(self.session, round_.id, now=NOW)

        self.assertTrue(self.service.finish_if_exhausted(self.session, round_.id, now=NOW))
        finished = self.reload(Round, round_.id)
        self.assertEqual(finished.status, RoundStatus.FINISHED)
        self.assertEqual(finished.drawn_numbers[-1], 75)

    def test_exhausted_round_with_winner_stays_drawing(self):
        round_ = self.make_round(status=RoundStatus.DRAWING, is_selling=False, drawn_numbers=list(range(1, 76)))
        purchase = self.make_paid_purchase(round_, quantity=1)
        card = self.session.query(Card).filter_by(purchase_id=purchase.id).one()
        self.session.add(
            Winner(
                round_id=round_.id,
                card_id=card.id,
                pattern_matched="full_card",
                prize_amount=Decimal("0"),
                created_at=NOW,
            )
        )
        self.session.commit()

        self.assertEqual(self.service.auto_finish_rounds(self.session, now=NOW), [])
        self.assertEqual(self.reload(Round, round_.id).status, RoundStatus.DRAWING)
