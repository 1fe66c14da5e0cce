import random
import unittest
from datetime import datetime
from decimal import Decimal

from bingo_engine.db import create_app_engine, create_session_factory
from bingo_engine.models import (
    Card,
    CardStatus,
    Charity,
    Establishment,
    Manager,
    PaymentMethod,
    PaymentStatus,
    Purchase,
    Round,
    RoundStatus,
    RoundType,
)
from bingo_engine.models.base import Base
from bingo_engine.repositories.settings_repository import SettingsRepository
from bingo_engine.services.notifier import MemoryNotifier
from bingo_engine.utils.clock import add_minutes

NOW = datetime(2026, 3, 14, 12, 0, 0)

SPLIT = {
    "prize_percentage": 40,
    "charity_percentage": 20,
    "platform_percentage": 30,
    "commission_percentage": 10,
}


class StubSender:
    """Records sends instead of calling a gateway."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[str, list[str], dict]] = []

    def send_cards(self, destination, card_codes, round_info):
        self.calls.append((destination, list(card_codes), dict(round_info)))
        if self.fail:
            raise RuntimeError("gateway down")


class DBTestCase(unittest.TestCase):
    def setUp(self):
        # In-memory SQLite for isolation
        self.engine = create_app_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = create_session_factory(self.engine)
        self.session = self.Session()

        self.notifier = MemoryNotifier()
        self.rng = random.Random(20260314)
        self.settings = SettingsRepository()
        self.settings.set(self.session, "split_config", SPLIT)
        self.session.commit()

    def tearDown(self):
        self.session.close()
        self.engine.dispose()

    def make_round(
        self,
        status=RoundStatus.SELLING,
        is_selling=True,
        number=None,
        starts_at=NOW,
        card_price="5.00",
        max_cards=100,
        **fields,
    ) -> Round:
        if number is None:
            number = (self.session.query(Round).count() or 0) + 1
        round_ = Round(
            number=number,
            type=fields.pop("type", RoundType.REGULAR),
            status=status,
            is_selling=is_selling,
            starts_at=starts_at,
            selling_ends_at=fields.pop("selling_ends_at", add_minutes(starts_at, 7)),
            ends_at=fields.pop("ends_at", add_minutes(starts_at, 10)),
            card_price=Decimal(card_price),
            max_cards=max_cards,
            drawn_numbers=fields.pop("drawn_numbers", []),
            created_at=starts_at,
            **fields,
        )
        self.session.add(round_)
        self.session.commit()
        return round_

    def make_partners(self, establishment_rate="60", manager_rate="40"):
        manager = Manager(name="Manager", commission_rate=Decimal(manager_rate), balance=Decimal("0"), total_commission=Decimal("0"))
        self.session.add(manager)
        self.session.flush()
        establishment = Establishment(
            name="Bar",
            manager_id=manager.id,
            commission_rate=Decimal(establishment_rate),
            balance=Decimal("0"),
            total_commission=Decimal("0"),
        )
        charity = Charity(name="Charity", total_received=Decimal("0"))
        self.session.add_all([establishment, charity])
        self.session.commit()
        return establishment, manager, charity

    def make_paid_purchase(self, round_: Round, quantity=2, numbers=None, phone="+55 11 99999-0000") -> Purchase:
        total = Decimal(round_.card_price) * quantity
        purchase = Purchase(
            round_id=round_.id,
            quantity=quantity,
            unit_price=Decimal(round_.card_price),
            total_amount=total,
            payment_method=PaymentMethod.PIX,
            payment_status=PaymentStatus.PAID,
            customer_phone=phone,
            created_at=NOW,
            paid_at=NOW,
        )
        self.session.add(purchase)
        self.session.flush()
        for i in range(quantity):
            self.session.add(
                Card(
                    code=f"SB-T{purchase.id:03d}{i:04d}",
                    round_id=round_.id,
                    purchase_id=purchase.id,
                    numbers=list(numbers) if numbers else list(range(1, 25)),
                    status=CardStatus.AVAILABLE,
                    is_winner=False,
                    created_at=NOW,
                )
            )
        self.session.commit()
        return purchase

    def reload(self, model, pk):
        return self.session.get(model, pk, populate_existing=True)
