"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries. No bare SQL.
AppError propagates to the global error handler in app/__init__.py — routes
never catch it.

Endpoints (base url_prefix=/api/v1/auth):
  POST   /auth/telegram  → 200
  GET    /auth/me        → 200
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from triobuy.app.extensions import db
from triobuy.app.middleware.auth_middleware import require_auth
from triobuy.app.schemas.auth_schema import TelegramAuthSchema
from triobuy.app.services import auth_service
from triobuy.app.services.identity_service import InitDataVerifier

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/telegram", methods=["POST"])
def telegram():
    """POST /auth/telegram — Verify Mini App init data; return an access token."""
    data = TelegramAuthSchema().load(request.get_json(force=True) or {})
    result = auth_service.authenticate_telegram(
        init_data=data["init_data"],
        verifier=InitDataVerifier(current_app.config["TELEGRAM_BOT_TOKEN"]),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
