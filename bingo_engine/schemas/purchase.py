"""Schemas for purchases and the payment feed."""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from bingo_engine.models.purchase import PaymentMethod, PaymentStatus


class PurchaseCreateSchema(Schema):
    round_id = fields.Int(required=True)
    quantity = fields.Int(required=True, validate=validate.Range(min=1, max=100))
    payment_method = fields.Enum(PaymentMethod, by_value=True, load_default=PaymentMethod.PIX)
    establishment_id = fields.Int(load_default=None, allow_none=True)

    customer_name = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=200))
    customer_email = fields.Email(load_default=None, allow_none=True)
    customer_phone = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=32))


class PurchaseSchema(Schema):
    id = fields.Int()
    round_id = fields.Int()
    establishment_id = fields.Int(allow_none=True)
    quantity = fields.Int()
    unit_price = fields.Decimal(as_string=True)
    total_amount = fields.Decimal(as_string=True)
    payment_method = fields.Enum(PaymentMethod, by_value=True)
    payment_status = fields.Enum(PaymentStatus, by_value=True)
    customer_name = fields.Str(allow_none=True)
    created_at = fields.DateTime()
    expires_at = fields.DateTime(allow_none=True)
    paid_at = fields.DateTime(allow_none=True)
    refunded_at = fields.DateTime(allow_none=True)
    refund_reason = fields.Str(allow_none=True)


class PaymentUpdateSchema(Schema):
    """Payment feed payload."""

    status = fields.Enum(PaymentStatus, by_value=True, required=True)


class RefundSchema(Schema):
    reason = fields.Str(load_default="", validate=validate.Length(max=500))


class PosSaleSchema(PurchaseCreateSchema):
    """Terminal sale; the payment method is always stated at the counter."""

    payment_method = fields.Enum(PaymentMethod, by_value=True, required=True)
