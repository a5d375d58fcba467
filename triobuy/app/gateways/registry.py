"""
gateways/registry.py — Maps a provider tag to its adapter class.
"""

from __future__ import annotations

from collections.abc import Mapping

import httpx

from triobuy.app.gateways.base import PaymentGateway
from triobuy.app.gateways.click import ClickGateway
from triobuy.app.gateways.payme import PaymeGateway
from triobuy.app.models.payment import PaymentProvider

_GATEWAYS: dict[PaymentProvider, type[PaymentGateway]] = {
    PaymentProvider.PAYME: PaymeGateway,
    PaymentProvider.CLICK: ClickGateway,
}


def build_gateway(
        provider: PaymentProvider,
        config: Mapping,
        transport: httpx.BaseTransport | None = None,
) -> PaymentGateway:
    return _GATEWAYS[provider](config, transport=transport)
