"""
schemas/payment_schema.py — Marshmallow schemas for payment endpoints.

Callback bodies are gateway-defined, so their schemas only require the
fields the adapters read and let everything else through (unknown=INCLUDE).
Authenticating a callback is the adapter's job, not the schema's.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import INCLUDE, Schema, fields, validate

from triobuy.app.errors import ErrorCode
from triobuy.app.models.payment import PaymentProvider

PROVIDERS = [p.value for p in PaymentProvider]


class InitPaymentSchema(Schema):
    """POST /payments/init"""

    group_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="group_id must be a positive integer."),
    )
    # The message is the error code itself; the global handler maps it back.
    provider = fields.Str(
        required=True,
        validate=validate.OneOf(PROVIDERS, error=ErrorCode.INVALID_PROVIDER),
    )


class PaymeCallbackSchema(Schema):
    """POST /payments/callback/payme — JSON-RPC request from Payme."""

    class Meta:
        unknown = INCLUDE

    id = fields.Raw(load_default=None)
    method = fields.Str(required=True)
    params = fields.Dict(load_default=dict)


class ClickCallbackSchema(Schema):
    """POST /payments/callback/click — SHOP API Prepare/Complete request."""

    class Meta:
        unknown = INCLUDE

    click_trans_id = fields.Raw(required=True)
    service_id = fields.Raw(required=True)
    merchant_trans_id = fields.Raw(required=True)
    merchant_prepare_id = fields.Raw(load_default="")
    amount = fields.Raw(required=True)
    action = fields.Int(required=True, validate=validate.OneOf([0, 1]))
    error = fields.Int(load_default=0)
    sign_time = fields.Raw(required=True)
    sign_string = fields.Str(required=True)


CALLBACK_SCHEMAS = {
    PaymentProvider.PAYME: PaymeCallbackSchema,
    PaymentProvider.CLICK: ClickCallbackSchema,
}
