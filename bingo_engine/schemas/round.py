"""Schemas for rounds and draws."""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from bingo_engine.models.round import RoundStatus, RoundType


class RoundSchema(Schema):
    """Serialize Round."""

    id = fields.Int(required=True)
    number = fields.Int(required=True)
    type = fields.Enum(RoundType, by_value=True)
    status = fields.Enum(RoundStatus, by_value=True)
    is_selling = fields.Bool()

    starts_at = fields.DateTime()
    selling_ends_at = fields.DateTime()
    ends_at = fields.DateTime()
    drawing_started_at = fields.DateTime(allow_none=True)
    finished_at = fields.DateTime(allow_none=True)
    cancelled_at = fields.DateTime(allow_none=True)

    card_price = fields.Decimal(as_string=True)
    max_cards = fields.Int()
    cards_sold = fields.Int()
    total_sales = fields.Decimal(as_string=True)
    prize_pool = fields.Decimal(as_string=True)
    charity_amount = fields.Decimal(as_string=True)
    platform_amount = fields.Decimal(as_string=True)
    commission_amount = fields.Decimal(as_string=True)

    drawn_numbers = fields.List(fields.Int())
    establishment_id = fields.Int(allow_none=True)
    manager_id = fields.Int(allow_none=True)
    charity_id = fields.Int(allow_none=True)


class DrawSchema(Schema):
    number = fields.Int()
    position = fields.Int()
    drawn_at = fields.DateTime()


class RoundCreateSchema(Schema):
    """Validate create Round payload."""

    type = fields.Enum(RoundType, by_value=True, load_default=RoundType.REGULAR)
    establishment_id = fields.Int(load_default=None, allow_none=True)
    manager_id = fields.Int(load_default=None, allow_none=True)
    charity_id = fields.Int(load_default=None, allow_none=True)


class ResolveTiesSchema(Schema):
    policy = fields.String(load_default=None, allow_none=True, validate=validate.OneOf(["pedra", "division"]))
    tiebreaker_number = fields.Int(load_default=None, allow_none=True, validate=validate.Range(min=1, max=75))


class TransitionSchema(Schema):
    round_id = fields.Int()
    applied = fields.Bool()
    status = fields.Enum(RoundStatus, by_value=True)
    is_selling = fields.Bool()
    refunded_purchases = fields.Int()


class DrawResultSchema(Schema):
    round_id = fields.Int()
    number = fields.Int()
    position = fields.Int()
    total = fields.Int()


class WinnerSchema(Schema):
    id = fields.Int()
    round_id = fields.Int()
    card_id = fields.Int()
    pattern_matched = fields.Str()
    prize_amount = fields.Decimal(as_string=True)
    status = fields.Function(lambda w: w.status.value)
    tiebreaker_number = fields.Int(allow_none=True)
    tiebreaker_difference = fields.Int(allow_none=True)
    created_at = fields.DateTime()
    claimed_at = fields.DateTime(allow_none=True)
