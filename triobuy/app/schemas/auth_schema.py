"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Only the shape of the body is checked here. Whether the init data is
authentic is decided by identity_service (INIT_DATA_INVALID, 401).

IMPORTANT: All schemas inherit from marshmallow.Schema directly.
           Do NOT use ma.Schema — it requires an active Flask app context
           and breaks unit tests. See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class TelegramAuthSchema(Schema):
    """
    POST /auth/telegram

    init_data is the raw, still URL-encoded Telegram.WebApp.initData string.
    It must reach the verifier byte-for-byte, so it is not trimmed.
    """

    init_data = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=4096),
    )
