"""
gateways/payme.py — Payme (Paycom) JSON-RPC adapter.

Initiation: CheckPerformTransaction must answer result.allow, then
CreateTransaction returns result.transaction. Amounts are sent in tiyin.
Merchant calls use HTTP Basic auth (merchant id, key).

Callbacks: Payme authenticates itself with
    Authorization: Basic base64("Paycom:<PAYME_KEY>")
Only PerformTransaction carries an outcome (paid); every other method is
acknowledged without touching the ledger.
"""

from __future__ import annotations

import base64
import hmac
import time
from collections.abc import Mapping
from decimal import Decimal

from triobuy.app.gateways.base import (
    CallbackOutcome,
    GatewayTransaction,
    PaymentGateway,
    invalid_callback_signature,
    upstream_failure,
)
from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.payment import Payment, PaymentProvider, PaymentStatus

_CALLBACK_LOGIN = "Paycom"


def to_tiyin(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class PaymeGateway(PaymentGateway):
    provider = PaymentProvider.PAYME

    def _rpc(self, method: str, params: dict) -> dict:
        body = self._post_json(
            self.config["PAYME_API_URL"],
            {"id": int(time.time() * 1000), "method": method, "params": params},
            auth=(self.config["PAYME_MERCHANT_ID"], self.config["PAYME_KEY"]),
        )
        if body.get("error"):
            raise upstream_failure(self.provider, f"{method} rejected: {body['error']}")

        result = body.get("result")
        if not isinstance(result, dict):
            raise upstream_failure(self.provider, f"{method} returned no result")
        return result

    def create_transaction(self, payment: Payment) -> GatewayTransaction:
        params = {
            "amount": to_tiyin(payment.amount),
            "account": {"order_id": payment.id},
        }

        check = self._rpc("CheckPerformTransaction", params)
        if not check.get("allow"):
            raise upstream_failure(self.provider, "transaction not allowed")

        created = self._rpc(
            "CreateTransaction",
            {**params, "time": int(time.time() * 1000)},
        )
        transaction = created.get("transaction")
        if not transaction:
            raise upstream_failure(self.provider, "CreateTransaction returned no id")

        transaction_id = str(transaction)
        return GatewayTransaction(
            transaction_id=transaction_id,
            payment_url=f"{self.config['PAYME_CHECKOUT_URL']}/{transaction_id}",
        )

    def _expected_authorization(self) -> str:
        credentials = f"{_CALLBACK_LOGIN}:{self.config['PAYME_KEY']}".encode("utf-8")
        return "Basic " + base64.b64encode(credentials).decode("ascii")

    def parse_callback(self, payload: dict, headers: Mapping) -> CallbackOutcome | None:
        provided = headers.get("Authorization") or ""
        if not self.config.get("PAYME_KEY") or not hmac.compare_digest(
                provided.encode("utf-8"),
                self._expected_authorization().encode("utf-8"),
        ):
            raise invalid_callback_signature(self.provider)

        if payload.get("method") != "PerformTransaction":
            return None

        transaction_id = (payload.get("params") or {}).get("id")
        if not transaction_id:
            raise AppError(
                ErrorCode.MISSING_FIELD,
                "PerformTransaction callback has no params.id.",
                400,
                field="params.id",
            )
        return CallbackOutcome(status=PaymentStatus.PAID, transaction_id=str(transaction_id))
