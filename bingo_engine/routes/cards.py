"""Card routes (controllers). No business logic here."""

from __future__ import annotations

from flask import Blueprint

from bingo_engine.container import get_services
from bingo_engine.db import get_session
from bingo_engine.errors import NotFoundError
from bingo_engine.repositories.card_repository import CardRepository
from bingo_engine.schemas.card import CardCheckSchema, CardSchema, DeclarationSchema
from bingo_engine.utils.responses import ok

cards_bp = Blueprint("cards", __name__, url_prefix="/cards")

_card_schema = CardSchema()
_check_schema = CardCheckSchema()
_declaration_schema = DeclarationSchema()
_repo = CardRepository()


@cards_bp.get("/<code>")
def get_card(code: str):
    card = _repo.get_by_code(get_session(), code.upper())
    if card is None:
        raise NotFoundError(message=f"Card {code} not found")
    return ok(_card_schema.dump(card))


@cards_bp.get("/<code>/check")
def check_card(code: str):
    check = get_services().winners.check_card(get_session(), code.upper())
    return ok(_check_schema.dump(check))


@cards_bp.post("/<code>/declare-victory")
def declare_victory(code: str):
    declaration = get_services().winners.declare_victory(get_session(), code.upper())
    return ok(_declaration_schema.dump(declaration))
