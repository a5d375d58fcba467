"""
services/identity_service.py — Telegram Mini App init-data verification.

The Mini App hands the backend a query-string payload ("initData") signed by
Telegram with a key derived from the bot token:

    secret_key = HMAC_SHA256(key="WebAppData", msg=bot_token)
    hash       = hex(HMAC_SHA256(key=secret_key, msg=check_string))

check_string is every `key=value` field except `hash`, sorted by its raw
string form and joined with "\\n".

Layer rules:
  - No Flask imports, no DB access. The verifier is pure: it reads nothing but
    the bot token it was constructed with.
  - verify() answers True/False and never raises for malformed input.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from urllib.parse import unquote

_DOMAIN_LABEL = b"WebAppData"
_HASH_FIELD = "hash"
_USER_FIELD = "user"


def _split_fields(raw: str) -> list[str]:
    return [part for part in raw.split("&") if part]


def _field_value(fields: list[str], name: str) -> str | None:
    prefix = f"{name}="
    for part in fields:
        if part.startswith(prefix):
            return part[len(prefix):]
    return None


def build_check_string(raw: str) -> str:
    """Canonical form of the payload that the signature covers."""
    prefix = f"{_HASH_FIELD}="
    fields = [part for part in _split_fields(raw) if not part.startswith(prefix)]
    return "\n".join(sorted(fields))


def compute_signature(raw: str, bot_token: str) -> str:
    """Hex signature Telegram would attach to `raw` for this bot token."""
    secret_key = hmac.new(_DOMAIN_LABEL, bot_token.encode("utf-8"), hashlib.sha256).digest()
    return hmac.new(
        secret_key,
        build_check_string(raw).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


class InitDataVerifier:
    """
    Verifies signed init data against one bot token.

    The token is passed in explicitly (from app config at the route boundary)
    so tests can build verifiers for arbitrary secrets.
    """

    def __init__(self, bot_token: str) -> None:
        self._bot_token = bot_token

    def verify(self, raw: str) -> bool:
        if not isinstance(raw, str) or not raw or not self._bot_token:
            return False

        provided = _field_value(_split_fields(raw), _HASH_FIELD)
        if not provided:
            return False

        expected = compute_signature(raw, self._bot_token)
        # Compared as bytes: compare_digest rejects non-ASCII str operands.
        return hmac.compare_digest(expected.encode("ascii"), provided.encode("utf-8"))

    @staticmethod
    def extract_user(raw: str) -> dict | None:
        """
        Returns the decoded `user` claims, or None when the field is absent
        or not a JSON object. Call only after verify() returned True.
        """
        encoded = _field_value(_split_fields(raw), _USER_FIELD)
        if encoded is None:
            return None
        try:
            claims = json.loads(unquote(encoded))
        except ValueError:
            return None
        if not isinstance(claims, dict) or "id" not in claims:
            return None
        return claims
