"""Wires the services once per application."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any

from flask import current_app
from sqlalchemy.orm import Session, sessionmaker

from bingo_engine.services.card_generator import CardGenerator
from bingo_engine.services.dispatcher import CardDispatcher
from bingo_engine.services.notifier import Notifier, create_notifier
from bingo_engine.services.purchase_service import PurchaseService
from bingo_engine.services.round_service import RoundService
from bingo_engine.services.settlement_service import SettlementService
from bingo_engine.services.whatsapp_service import WhatsAppService, settings_config_loader
from bingo_engine.services.winner_service import WinnerService


@dataclass
class Services:
    notifier: Notifier
    dispatcher: CardDispatcher
    rounds: RoundService
    settlement: SettlementService
    purchases: PurchaseService
    winners: WinnerService


def build_services(
    config: Any,
    session_factory: sessionmaker[Session],
    notifier: Notifier | None = None,
    rng: random.Random | None = None,
    sender: Any | None = None,
) -> Services:
    """`notifier`, `rng` and `sender` override the configured collaborators."""

    rng = rng or random.SystemRandom()
    notifier = notifier or create_notifier(config["NOTIFIER_BACKEND"], config.get("REDIS_URL"))
    sender = sender or WhatsAppService(
        settings_config_loader(session_factory),
        timeout=float(config["WHATSAPP_TIMEOUT"]),
    )
    dispatcher = CardDispatcher(sender, max_workers=int(config["DISPATCH_WORKERS"]))
    settlement = SettlementService(dispatcher=dispatcher)

    return Services(
        notifier=notifier,
        dispatcher=dispatcher,
        rounds=RoundService(notifier=notifier, rng=rng),
        settlement=settlement,
        purchases=PurchaseService(
            settlement=settlement,
            card_generator=CardGenerator(rng=rng),
            payment_expiration_minutes=int(config["PAYMENT_EXPIRATION_MINUTES"]),
        ),
        winners=WinnerService(rng=rng),
    )


def get_services() -> Services:
    """Services of the running app."""

    return current_app.extensions["bingo"]
