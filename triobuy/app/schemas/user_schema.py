"""
schemas/user_schema.py — Marshmallow schemas for user profile endpoints.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from triobuy.app.errors import ErrorCode
from triobuy.app.models.user import SUPPORTED_LANGUAGES


class LanguageSchema(Schema):
    """PATCH /users/me/language"""

    lang = fields.Str(
        required=True,
        validate=validate.OneOf(SUPPORTED_LANGUAGES, error=ErrorCode.INVALID_LANGUAGE),
    )
