"""Schemas for cards and victory checks."""

from __future__ import annotations

from marshmallow import Schema, fields

from bingo_engine.services.card_generator import to_grid


class CardSchema(Schema):
    """Serialize Card, with the numbers also laid out by column."""

    id = fields.Int()
    code = fields.Str()
    round_id = fields.Int()
    numbers = fields.List(fields.Int())
    grid = fields.Function(lambda card: to_grid(card.numbers))
    status = fields.Function(lambda card: card.status.value)
    is_winner = fields.Bool()
    declared_at = fields.DateTime(allow_none=True)


class CardCheckSchema(Schema):
    card_code = fields.Str()
    round_id = fields.Int()
    round_status = fields.Function(lambda c: c.round_status.value)
    drawn_count = fields.Int()
    won = fields.Function(lambda c: c.result.won)
    pattern = fields.Function(lambda c: c.result.pattern)
    variation = fields.Function(lambda c: list(c.result.variation) if c.result.variation else None)


class DeclarationSchema(Schema):
    card_code = fields.Str()
    already_declared = fields.Bool()
    pattern = fields.Str(allow_none=True)
    prize_amount = fields.Decimal(as_string=True, allow_none=True)
    winner_id = fields.Int(allow_none=True)
