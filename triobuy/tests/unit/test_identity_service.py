"""
Unit tests for Telegram init-data verification. Pure functions, no app.
"""

from __future__ import annotations

import json
from urllib.parse import quote

import pytest

from triobuy.app.services.identity_service import (
    InitDataVerifier,
    build_check_string,
    compute_signature,
)

BOT_TOKEN = "123456:UNIT-TEST-TOKEN"


def _signed(user: dict | None = None, extra: str = "auth_date=1760000000") -> str:
    fields = [extra]
    if user is not None:
        fields.append(f"user={quote(json.dumps(user, separators=(',', ':')))}")
    raw = "&".join(fields)
    return f"{raw}&hash={compute_signature(raw, BOT_TOKEN)}"


def test_check_string_drops_hash_and_sorts_fields():
    raw = "user=%7B%7D&hash=abc&auth_date=1&query_id=Q"
    assert build_check_string(raw) == "auth_date=1\nquery_id=Q\nuser=%7B%7D"


def test_check_string_ignores_field_order():
    assert build_check_string("b=2&a=1") == build_check_string("a=1&b=2")


def test_valid_payload_verifies():
    verifier = InitDataVerifier(BOT_TOKEN)
    assert verifier.verify(_signed({"id": 42, "first_name": "Ali"})) is True


def test_every_single_character_mutation_fails():
    verifier = InitDataVerifier(BOT_TOKEN)
    payload = _signed({"id": 42, "first_name": "Ali"})
    hash_at = payload.index("&hash=")

    for i in range(hash_at):
        char = payload[i]
        if char in "&=":
            continue
        replacement = "x" if char != "x" else "y"
        mutated = payload[:i] + replacement + payload[i + 1:]
        assert verifier.verify(mutated) is False, f"mutation at {i} accepted"


def test_mutated_hash_fails():
    verifier = InitDataVerifier(BOT_TOKEN)
    payload = _signed({"id": 42})
    flipped = payload[:-1] + ("a" if payload[-1] != "a" else "b")
    assert verifier.verify(flipped) is False


def test_uppercase_hash_fails():
    verifier = InitDataVerifier(BOT_TOKEN)
    payload = _signed({"id": 42})
    head, digest = payload.rsplit("=", 1)
    assert digest.upper() != digest
    assert verifier.verify(f"{head}={digest.upper()}") is False


def test_other_bot_token_fails():
    assert InitDataVerifier("654321:OTHER").verify(_signed({"id": 42})) is False


@pytest.mark.parametrize("raw", ["", "auth_date=1", "auth_date=1&hash=", None, 123])
def test_malformed_input_is_rejected_without_raising(raw):
    assert InitDataVerifier(BOT_TOKEN).verify(raw) is False


def test_non_ascii_hash_is_rejected_without_raising():
    payload = _signed({"id": 42})
    head, _ = payload.rsplit("=", 1)
    assert InitDataVerifier(BOT_TOKEN).verify(f"{head}=ñ") is False


def test_empty_bot_token_rejects_everything():
    assert InitDataVerifier("").verify(_signed({"id": 42})) is False


def test_extract_user_decodes_claims():
    claims = {"id": 42, "first_name": "Ali", "language_code": "uz"}
    assert InitDataVerifier.extract_user(_signed(claims)) == claims


def test_extract_user_without_user_field_returns_none():
    assert InitDataVerifier.extract_user(_signed(None)) is None


def test_extract_user_with_non_object_returns_none():
    raw = "user=%5B1%2C2%5D&auth_date=1"
    assert InitDataVerifier.extract_user(raw) is None


def test_extract_user_without_id_returns_none():
    assert InitDataVerifier.extract_user(_signed({"first_name": "Ali"})) is None
