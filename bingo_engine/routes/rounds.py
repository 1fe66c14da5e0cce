"""Round routes (controllers). No business logic here."""

from __future__ import annotations

from flask import Blueprint, request

from bingo_engine.container import get_services
from bingo_engine.db import get_session
from bingo_engine.errors import NotFoundError
from bingo_engine.repositories.round_repository import RoundRepository
from bingo_engine.schemas.round import (
    DrawResultSchema,
    DrawSchema,
    ResolveTiesSchema,
    RoundCreateSchema,
    RoundSchema,
    TransitionSchema,
    WinnerSchema,
)
from bingo_engine.utils.responses import ok

rounds_bp = Blueprint("rounds", __name__, url_prefix="/rounds")

_round_schema = RoundSchema()
_rounds_schema = RoundSchema(many=True)
_draws_schema = DrawSchema(many=True)
_create_schema = RoundCreateSchema()
_ties_schema = ResolveTiesSchema()
_transition_schema = TransitionSchema()
_draw_result_schema = DrawResultSchema()
_winners_schema = WinnerSchema(many=True)
_repo = RoundRepository()


def _payload() -> dict:
    return request.get_json(silent=True) or {}


@rounds_bp.get("")
def list_rounds():
    """Active rounds, or finished history with ?history=1."""

    session = get_session()
    if request.args.get("history"):
        page = request.args.get("page", 1, type=int)
        limit = min(request.args.get("limit", 20, type=int), 100)
        total, rounds = _repo.history(session, page=page, limit=limit)
        return ok({"total": total, "page": page, "rounds": _rounds_schema.dump(rounds)})

    return ok(_rounds_schema.dump(_repo.list_active(session)))


@rounds_bp.get("/current")
def current_round():
    round_ = _repo.current_selling(get_session())
    if round_ is None:
        raise NotFoundError(message="No round on sale")
    return ok(_round_schema.dump(round_))


@rounds_bp.get("/live")
def live_round():
    session = get_session()
    round_ = _repo.live(session)
    if round_ is None:
        raise NotFoundError(message="No round drawing")
    data = _round_schema.dump(round_)
    data["remaining_seconds"] = get_services().rounds.seconds_until(round_)
    return ok(data)


@rounds_bp.get("/<int:round_id>")
def get_round(round_id: int):
    round_ = _repo.get_by_id(get_session(), round_id)
    if round_ is None:
        raise NotFoundError(message=f"Round {round_id} not found")
    return ok(_round_schema.dump(round_))


@rounds_bp.get("/<int:round_id>/numbers")
def round_numbers(round_id: int):
    session = get_session()
    if _repo.get_by_id(session, round_id) is None:
        raise NotFoundError(message=f"Round {round_id} not found")
    draws = _repo.draws(session, round_id)
    return ok({"round_id": round_id, "total": len(draws), "draws": _draws_schema.dump(draws)})


@rounds_bp.post("")
def create_round():
    data = _create_schema.load(_payload())
    round_ = get_services().rounds.create_round(
        get_session(),
        data["type"],
        establishment_id=data["establishment_id"],
        manager_id=data["manager_id"],
        charity_id=data["charity_id"],
    )
    return ok(_round_schema.dump(round_), status_code=201)


@rounds_bp.post("/<int:round_id>/start-drawing")
def start_drawing(round_id: int):
    result = get_services().rounds.start_drawing(get_session(), round_id)
    return ok(_transition_schema.dump(result))


@rounds_bp.post("/<int:round_id>/draw-number")
def draw_number(round_id: int):
    result = get_services().rounds.draw_next_number(get_session(), round_id)
    return ok(_draw_result_schema.dump(result))


@rounds_bp.post("/<int:round_id>/finish")
def finish_round(round_id: int):
    result = get_services().rounds.finish_round(get_session(), round_id)
    return ok(_transition_schema.dump(result))


@rounds_bp.post("/<int:round_id>/cancel")
def cancel_round(round_id: int):
    result = get_services().rounds.cancel_round(get_session(), round_id)
    return ok(_transition_schema.dump(result))


@rounds_bp.post("/<int:round_id>/resolve-ties")
def resolve_ties(round_id: int):
    data = _ties_schema.load(_payload())
    resolution = get_services().winners.resolve_ties(
        get_session(),
        round_id,
        policy=data["policy"],
        tiebreaker_number=data["tiebreaker_number"],
    )
    return ok(
        {
            "round_id": resolution.round_id,
            "policy": resolution.policy,
            "tiebreaker_number": resolution.tiebreaker_number,
            "winners": _winners_schema.dump(resolution.winners),
        }
    )


@rounds_bp.post("/winners/<int:winner_id>/claim")
def claim_prize(winner_id: int):
    winner = get_services().winners.claim(get_session(), winner_id)
    return ok(WinnerSchema().dump(winner))
