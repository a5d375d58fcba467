"""
gateways/click.py — Click adapter.

Initiation: POST {CLICK_API_URL}/invoice/create with the merchant secret in the
`Auth` header; the returned invoice_id is the transaction reference.

Callbacks (Click SHOP API) name our payment in merchant_trans_id and are
signed with
    md5(click_trans_id + service_id + secret + merchant_trans_id
        [+ merchant_prepare_id] + amount + action + sign_time)
where merchant_prepare_id takes part only in Complete (action = 1).
A Complete with error = 0 means paid; Prepare and failed Completes carry no
outcome.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Mapping

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.gateways.base import (
    CallbackOutcome,
    GatewayTransaction,
    PaymentGateway,
    invalid_callback_signature,
    upstream_failure,
)
from triobuy.app.models.payment import Payment, PaymentProvider, PaymentStatus

ACTION_PREPARE = 0
ACTION_COMPLETE = 1


def callback_signature(payload: Mapping, secret: str) -> str:
    action = int(payload["action"])
    parts = [
        str(payload["click_trans_id"]),
        str(payload["service_id"]),
        secret,
        str(payload["merchant_trans_id"]),
    ]
    if action == ACTION_COMPLETE:
        parts.append(str(payload["merchant_prepare_id"]))
    parts += [str(payload["amount"]), str(action), str(payload["sign_time"])]
    return hashlib.md5("".join(parts).encode("utf-8")).hexdigest()


class ClickGateway(PaymentGateway):
    provider = PaymentProvider.CLICK

    def create_transaction(self, payment: Payment) -> GatewayTransaction:
        body = self._post_json(
            f"{self.config['CLICK_API_URL']}/invoice/create",
            {
                "service_id": self.config["CLICK_SERVICE_ID"],
                "merchant_trans_id": payment.id,
                "amount": str(payment.amount),
                "return_url": self.config.get("CLICK_RETURN_URL", ""),
            },
            headers={"Auth": self.config["CLICK_SECRET"]},
        )

        invoice_id = body.get("invoice_id")
        if not invoice_id:
            raise upstream_failure(
                self.provider,
                f"invoice/create returned no invoice_id ({body.get('error_note', 'no note')})",
            )

        transaction_id = str(invoice_id)
        return GatewayTransaction(
            transaction_id=transaction_id,
            payment_url=f"{self.config['CLICK_PAY_URL']}/{transaction_id}",
        )

    def parse_callback(self, payload: dict, headers: Mapping) -> CallbackOutcome | None:
        secret = self.config.get("CLICK_SECRET") or ""
        provided = str(payload.get("sign_string") or "")
        try:
            expected = callback_signature(payload, secret)
        except (KeyError, TypeError, ValueError):
            raise invalid_callback_signature(self.provider)

        if not secret or not hmac.compare_digest(
                expected.encode("ascii"), provided.lower().encode("utf-8"),
        ):
            raise invalid_callback_signature(self.provider)

        if str(payload["service_id"]) != str(self.config.get("CLICK_SERVICE_ID")):
            raise invalid_callback_signature(self.provider)

        if int(payload["action"]) != ACTION_COMPLETE or int(payload.get("error", 0)) != 0:
            return None

        try:
            payment_id = int(payload["merchant_trans_id"])
        except (TypeError, ValueError):
            raise AppError(
                ErrorCode.INVALID_FIELD,
                "merchant_trans_id must be a payment id.",
                400,
                field="merchant_trans_id",
            )
        return CallbackOutcome(status=PaymentStatus.PAID, payment_id=payment_id)
