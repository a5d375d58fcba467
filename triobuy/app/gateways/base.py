"""
gateways/base.py — Shared plumbing for payment gateway adapters.

An adapter does two things:
  create_transaction(payment)       → GatewayTransaction (remote id + pay URL)
  parse_callback(payload, headers)  → CallbackOutcome, or None for callbacks
                                      that carry no payment outcome

Transport problems, non-2xx answers and unexpected bodies all surface as
AppError(GATEWAY_ERROR, 502); nothing is retried here. The asynchronous
callback is the only path by which a payment becomes paid.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass

import httpx

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.payment import Payment, PaymentProvider, PaymentStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayTransaction:
    transaction_id: str
    payment_url: str


@dataclass(frozen=True)
class CallbackOutcome:
    """
    A gateway-reported payment outcome. Gateways identify the payment either
    by their own transaction reference or by our payment id.
    """
    status: PaymentStatus
    transaction_id: str | None = None
    payment_id: int | None = None


def upstream_failure(provider: PaymentProvider, message: str) -> AppError:
    return AppError(
        ErrorCode.GATEWAY_ERROR,
        f"{provider.value} gateway error: {message}",
        502,
    )


def invalid_callback_signature(provider: PaymentProvider) -> AppError:
    return AppError(
        ErrorCode.CALLBACK_SIGNATURE_INVALID,
        f"The {provider.value} callback could not be authenticated.",
        401,
    )


class PaymentGateway:
    provider: PaymentProvider

    def __init__(
            self,
            config: Mapping,
            transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self.timeout = float(config.get("GATEWAY_TIMEOUT_SECONDS", 15))
        self._transport = transport

    def create_transaction(self, payment: Payment) -> GatewayTransaction:
        raise NotImplementedError

    def parse_callback(self, payload: dict, headers: Mapping) -> CallbackOutcome | None:
        raise NotImplementedError

    def _post_json(self, url: str, payload: dict, **kwargs) -> dict:
        """POSTs JSON and returns the decoded object body."""
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(url, json=payload, **kwargs)
                response.raise_for_status()
                body = response.json()

        except httpx.TimeoutException as e:
            logger.warning("%s request timed out after %ss: %s", self.provider.value, self.timeout, e)
            raise upstream_failure(self.provider, "request timed out") from e

        except httpx.HTTPStatusError as e:
            logger.warning(
                "%s API error: %s - %s",
                self.provider.value, e.response.status_code, e.response.text,
            )
            raise upstream_failure(
                self.provider, f"HTTP {e.response.status_code}",
            ) from e

        except httpx.HTTPError as e:
            logger.warning("%s request failed: %s", self.provider.value, e)
            raise upstream_failure(self.provider, "request failed") from e

        except ValueError as e:
            raise upstream_failure(self.provider, "response is not JSON") from e

        if not isinstance(body, dict):
            raise upstream_failure(self.provider, "unexpected response shape")
        return body
