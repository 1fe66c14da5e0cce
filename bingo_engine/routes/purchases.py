"""Purchase routes (controllers). No business logic here."""

from __future__ import annotations

from flask import Blueprint, request

from bingo_engine.container import get_services
from bingo_engine.db import get_session
from bingo_engine.schemas.card import CardSchema
from bingo_engine.schemas.purchase import (
    PaymentUpdateSchema,
    PosSaleSchema,
    PurchaseCreateSchema,
    PurchaseSchema,
    RefundSchema,
)
from bingo_engine.services.purchase_service import Customer
from bingo_engine.utils.responses import ok

purchases_bp = Blueprint("purchases", __name__, url_prefix="/purchases")

_purchase_schema = PurchaseSchema()
_cards_schema = CardSchema(many=True)
_create_schema = PurchaseCreateSchema()
_pos_schema = PosSaleSchema()
_payment_schema = PaymentUpdateSchema()
_refund_schema = RefundSchema()


def _with_cards(purchase, cards) -> dict:
    data = _purchase_schema.dump(purchase)
    data["cards"] = _cards_schema.dump(cards)
    return data


@purchases_bp.post("")
def create_purchase():
    data = _create_schema.load(request.get_json(silent=True) or {})
    purchase, cards = get_services().purchases.create_purchase(
        get_session(),
        round_id=data["round_id"],
        quantity=data["quantity"],
        customer=Customer(
            name=data["customer_name"],
            email=data["customer_email"],
            phone=data["customer_phone"],
        ),
        payment_method=data["payment_method"],
        establishment_id=data["establishment_id"],
    )
    return ok(_with_cards(purchase, cards), status_code=201)


@purchases_bp.post("/pos-sale")
def pos_sale():
    data = _pos_schema.load(request.get_json(silent=True) or {})
    purchase, cards, outcome = get_services().purchases.point_of_sale(
        get_session(),
        round_id=data["round_id"],
        quantity=data["quantity"],
        payment_method=data["payment_method"],
        establishment_id=data["establishment_id"],
        customer=Customer(
            name=data["customer_name"],
            email=data["customer_email"],
            phone=data["customer_phone"],
        ),
    )
    body = _with_cards(purchase, cards)
    body["settled"] = bool(outcome and outcome.applied)
    return ok(body, status_code=201)


@purchases_bp.get("/<int:purchase_id>")
def get_purchase(purchase_id: int):
    service = get_services().purchases
    session = get_session()
    purchase = service.get(session, purchase_id)
    return ok(_with_cards(purchase, service.cards_for(session, purchase_id)))


@purchases_bp.post("/<int:purchase_id>/payment")
def payment_feed(purchase_id: int):
    """Payment confirmation feed. Repeated deliveries are no-ops."""

    data = _payment_schema.load(request.get_json(silent=True) or {})
    service = get_services().purchases
    session = get_session()
    applied = service.update_payment_status(session, purchase_id, data["status"])
    return ok({"purchase": _purchase_schema.dump(service.get(session, purchase_id)), "applied": applied})


@purchases_bp.post("/<int:purchase_id>/refund")
def refund_purchase(purchase_id: int):
    data = _refund_schema.load(request.get_json(silent=True) or {})
    purchase = get_services().purchases.refund_purchase(get_session(), purchase_id, reason=data["reason"])
    return ok(_purchase_schema.dump(purchase))
