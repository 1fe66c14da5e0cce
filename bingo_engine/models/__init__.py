"""ORM models."""

from bingo_engine.models.card import Card, CardStatus
from bingo_engine.models.draw import Draw
from bingo_engine.models.partner import Charity, Establishment, Manager
from bingo_engine.models.purchase import PaymentMethod, PaymentStatus, Purchase
from bingo_engine.models.round import TERMINAL_STATUSES, Round, RoundStatus, RoundType
from bingo_engine.models.setting import Setting
from bingo_engine.models.settlement import Settlement
from bingo_engine.models.winner import Winner, WinnerStatus

__all__ = [
    "Card",
    "CardStatus",
    "Charity",
    "Draw",
    "Establishment",
    "Manager",
    "PaymentMethod",
    "PaymentStatus",
    "Purchase",
    "Round",
    "RoundStatus",
    "RoundType",
    "Setting",
    "Settlement",
    "TERMINAL_STATUSES",
    "Winner",
    "WinnerStatus",
]
