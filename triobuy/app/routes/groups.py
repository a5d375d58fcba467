"""
routes/groups.py — Group route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups/participate   → 201  start a group, or join one via ref_code
  GET    /groups               → 200  list caller's groups
  GET    /groups/invites       → 200  caller's invite codes and links
  GET    /groups/:id           → 200  status, time left, members
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from triobuy.app.extensions import db
from triobuy.app.middleware.auth_middleware import require_auth
from triobuy.app.schemas.group_schema import ParticipateSchema
from triobuy.app.services import group_service, invite_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/participate", methods=["POST"])
@require_auth
def participate():
    """POST /groups/participate — Join via ref_code, otherwise start a new group."""
    data = ParticipateSchema().load(request.get_json(silent=True) or {})
    result = group_service.participate(
        user_id=g.user_id,
        session=db.session,
        ref_code=data["ref_code"],
        product_id=data["product_id"],
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups — List all groups the authenticated user holds a seat in."""
    result = group_service.list_groups_for(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/invites", methods=["GET"])
@require_auth
def list_invites():
    """GET /groups/invites — The caller's invite codes as shareable links."""
    result = invite_service.list_codes_for(
        user_id=g.user_id,
        link_base=current_app.config["INVITE_LINK_BASE"],
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — Status, seconds left and members; participants only."""
    result = group_service.get_status(
        group_id=group_id,
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
