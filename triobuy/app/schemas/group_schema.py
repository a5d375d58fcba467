"""
schemas/group_schema.py — Marshmallow schemas for group endpoints.

Validation responsibility:
  - This file: field types and code format.
  - services/invite_service.py: INVITE_CODE_NOT_FOUND, INVITE_CODE_REDEEMED,
    GROUP_CLOSED, GROUP_FULL (all require a DB lookup).
  - services/catalog_service.py: PRODUCT_NOT_FOUND.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, pre_load, validate

# Deep links carry the code as "ref_<code>" (startapp=ref_<code>).
REF_PREFIX = "ref_"


class ParticipateSchema(Schema):
    """
    POST /groups/participate

    ref_code present → join that code's group.
    ref_code absent  → start a new group (optionally for product_id).
    """

    ref_code = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Regexp(
            r"^[0-9a-f]{1,32}$",
            error="ref_code must be a hexadecimal invite code.",
        ),
    )
    product_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="product_id must be a positive integer."),
    )

    @pre_load
    def strip_ref_prefix(self, data, **kwargs):
        code = data.get("ref_code") if isinstance(data, dict) else None
        if isinstance(code, str):
            code = code.strip()
            if code.startswith(REF_PREFIX):
                code = code[len(REF_PREFIX):]
            data = {**data, "ref_code": code.lower() or None}
        return data
