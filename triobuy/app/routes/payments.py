"""
routes/payments.py — Payment route handlers.

Endpoints (base url_prefix=/api/v1/payments):
  POST   /payments/init                 → 201  start a gateway transaction
  POST   /payments/callback/:provider   → 200  gateway-reported outcome

Callbacks are authenticated by the provider's adapter, not by JWT.
A redelivered or stale callback answers 200 with applied=false; gateways
treat anything else as a reason to retry.
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.extensions import db
from triobuy.app.gateways.registry import build_gateway
from triobuy.app.middleware.auth_middleware import require_auth
from triobuy.app.models.payment import PaymentProvider
from triobuy.app.schemas.payment_schema import CALLBACK_SCHEMAS, InitPaymentSchema
from triobuy.app.services import payment_service

payments_bp = Blueprint("payments", __name__)


def _parse_provider(raw: str) -> PaymentProvider:
    try:
        return PaymentProvider(raw)
    except ValueError:
        raise AppError(
            ErrorCode.INVALID_PROVIDER,
            f"Unknown payment provider {raw!r}.",
            400,
            field="provider",
        )


@payments_bp.route("/init", methods=["POST"])
@require_auth
def init_payment():
    """POST /payments/init — Create the caller's gateway transaction for a group."""
    data = InitPaymentSchema().load(request.get_json(force=True) or {})
    provider = PaymentProvider(data["provider"])
    result = payment_service.initiate_payment(
        group_id=data["group_id"],
        user_id=g.user_id,
        provider=provider,
        gateway=build_gateway(provider, current_app.config),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@payments_bp.route("/callback/<string:provider>", methods=["POST"])
def gateway_callback(provider: str):
    """POST /payments/callback/:provider — Apply a payment outcome. (Gateway auth.)"""
    provider_enum = _parse_provider(provider)

    # Payme posts JSON-RPC; Click posts a form.
    payload = request.get_json(silent=True)
    if payload is None:
        payload = request.form.to_dict()
    data = CALLBACK_SCHEMAS[provider_enum]().load(payload)

    outcome = build_gateway(provider_enum, current_app.config).parse_callback(
        data, request.headers,
    )
    if outcome is None:
        return jsonify({"data": {"applied": False}, "warnings": []}), 200

    result = payment_service.apply_callback(
        new_status=outcome.status,
        session=db.session,
        transaction_id=outcome.transaction_id,
        payment_id=outcome.payment_id,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
