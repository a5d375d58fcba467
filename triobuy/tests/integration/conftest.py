"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against in-memory SQLite (TestingConfig) unless
    TEST_DATABASE_URL points at a real database.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Gateways never leave the process: init_payment() swaps build_gateway for
    one whose httpx client runs on an httpx.MockTransport.

Helper functions (not fixtures) are provided for common operations:
  - make_init_data(tg_id, ...)        → signed Telegram init-data string
  - authenticate(client, tg_id, ...)  → {"user": {...}, "access_token": "..."}
  - auth_headers(token)               → {"Authorization": "Bearer <token>"}
  - seed_product(app, ...)            → product id
  - participate(client, token, ...)   → HTTP response
  - init_payment(client, token, ...)  → HTTP response
  - payme_paid(client, tx)            → HTTP response (PerformTransaction callback)
  - click_paid(client, payment_id)    → HTTP response (Complete callback)

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import base64
import json
from decimal import Decimal
from unittest.mock import patch
from urllib.parse import quote

import httpx
import pytest

from triobuy.app import create_app
from triobuy.app.extensions import db as _db
from triobuy.app.gateways.click import ClickGateway, callback_signature
from triobuy.app.gateways.payme import PaymeGateway
from triobuy.app.models.payment import PaymentProvider
from triobuy.app.models.product import Product
from triobuy.app.services.identity_service import compute_signature
from triobuy.config import TestingConfig

BOT_TOKEN = TestingConfig.TELEGRAM_BOT_TOKEN


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test
    session, creates all tables, and drops them at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        from sqlalchemy import text
        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM payments"))
            conn.execute(text("DELETE FROM group_members"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM products"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def product_id(app):
    """A single active product priced 150000.00, discounted to 120000.00."""
    return seed_product(app)


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_init_data(
    tg_id: int,
    first_name: str = "Test",
    username: str | None = None,
    language_code: str | None = None,
    bot_token: str = BOT_TOKEN,
) -> str:
    """Builds an init-data string signed the way Telegram signs it."""
    user = {"id": tg_id, "first_name": first_name}
    if username is not None:
        user["username"] = username
    if language_code is not None:
        user["language_code"] = language_code

    raw = "&".join([
        "query_id=AAHdF6IQAAAAAN0XohDhrOrc",
        f"user={quote(json.dumps(user, separators=(',', ':')))}",
        "auth_date=1760000000",
    ])
    return f"{raw}&hash={compute_signature(raw, bot_token)}"


def authenticate(client, tg_id: int, **claims) -> dict:
    """
    Logs a Telegram user in and returns the response data dict.
    Returns: {"user": {...}, "access_token": "..."}
    """
    resp = client.post(
        "/api/v1/auth/telegram",
        json={"init_data": make_init_data(tg_id, **claims)},
    )
    assert resp.status_code == 200, f"authenticate failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def seed_product(
    app,
    name: str = "Wireless Earbuds",
    price: str = "150000.00",
    discounted_price: str = "120000.00",
    is_active: bool = True,
) -> int:
    with app.app_context():
        product = Product(
            name=name,
            price=Decimal(price),
            discounted_price=Decimal(discounted_price),
            is_active=is_active,
        )
        _db.session.add(product)
        _db.session.commit()
        return product.id


def participate(client, token: str, ref_code: str | None = None, product_id: int | None = None):
    """POST /groups/participate. Returns the HTTP response."""
    payload: dict = {}
    if ref_code is not None:
        payload["ref_code"] = ref_code
    if product_id is not None:
        payload["product_id"] = product_id
    return client.post(
        "/api/v1/groups/participate",
        json=payload,
        headers=auth_headers(token),
    )


def start_group(client, token: str) -> tuple[int, list[str]]:
    """Starts a group and returns (group_id, the initiator's invite codes)."""
    resp = participate(client, token)
    assert resp.status_code == 201, f"start_group failed: {resp.get_json()}"
    group_id = resp.get_json()["data"]["group_id"]

    invites = client.get("/api/v1/groups/invites", headers=auth_headers(token)).get_json()["data"]
    return group_id, [i["code"] for i in invites if i["group_id"] == group_id]


def _payme_transport(transaction_id: str) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        method = json.loads(request.content)["method"]
        if method == "CheckPerformTransaction":
            return httpx.Response(200, json={"result": {"allow": True}})
        return httpx.Response(200, json={"result": {"transaction": transaction_id}})
    return httpx.MockTransport(handler)


def _click_transport(invoice_id: str) -> httpx.MockTransport:
    return httpx.MockTransport(
        lambda request: httpx.Response(200, json={"invoice_id": invoice_id})
    )


def init_payment(client, token: str, group_id: int, transaction_id: str, provider: str = "payme"):
    """
    POST /payments/init with the gateway's HTTP answered in-process.
    For Click, transaction_id becomes the invoice id.
    """
    def fake_build_gateway(provider_enum, config):
        if provider_enum is PaymentProvider.CLICK:
            return ClickGateway(config, transport=_click_transport(transaction_id))
        return PaymeGateway(config, transport=_payme_transport(transaction_id))

    with patch("triobuy.app.routes.payments.build_gateway", side_effect=fake_build_gateway):
        return client.post(
            "/api/v1/payments/init",
            json={"group_id": group_id, "provider": provider},
            headers=auth_headers(token),
        )


def payme_auth_header(key: str = TestingConfig.PAYME_KEY) -> dict:
    token = base64.b64encode(f"Paycom:{key}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def payme_paid(client, transaction_id: str, key: str = TestingConfig.PAYME_KEY):
    """Delivers a Payme PerformTransaction callback. Returns the HTTP response."""
    return client.post(
        "/api/v1/payments/callback/payme",
        json={
            "id": 1,
            "method": "PerformTransaction",
            "params": {"id": transaction_id},
        },
        headers=payme_auth_header(key),
    )


def click_form(payment_id: int, action: int = 1, error: int = 0, amount: str = "120000.00") -> dict:
    """A signed Click SHOP API form for our payment id."""
    form = {
        "click_trans_id": "998877",
        "service_id": TestingConfig.CLICK_SERVICE_ID,
        "click_paydoc_id": "112233",
        "merchant_trans_id": str(payment_id),
        "merchant_prepare_id": "5",
        "amount": amount,
        "action": str(action),
        "error": str(error),
        "error_note": "Success",
        "sign_time": "2026-10-19 12:00:00",
    }
    form["sign_string"] = callback_signature(form, TestingConfig.CLICK_SECRET)
    return form


def click_paid(client, payment_id: int):
    """Delivers a Click Complete callback. Returns the HTTP response."""
    return client.post("/api/v1/payments/callback/click", data=click_form(payment_id))
