"""
routes/users.py — User profile route handlers.

Endpoints (base url_prefix=/api/v1/users):
  PATCH  /users/me/language   → 200
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from triobuy.app.extensions import db
from triobuy.app.middleware.auth_middleware import require_auth
from triobuy.app.schemas.user_schema import LanguageSchema
from triobuy.app.services import auth_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/me/language", methods=["PATCH"])
@require_auth
def update_language():
    """PATCH /users/me/language — Store the caller's locale (en, ru, uz)."""
    data = LanguageSchema().load(request.get_json(force=True) or {})
    result = auth_service.update_language(
        user_id=g.user_id,
        language=data["lang"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
