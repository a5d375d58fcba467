"""
services/auth_service.py — Authentication business logic.

Responsibilities:
  - Exchange verified Telegram init data for a session (JWT access token)
  - Upsert the User row from the init-data `user` claims
  - Profile reads and the locale preference

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - current_app.config is read ONLY for the JWT secret and expiry.

Token design:
  - Access token: JWT, HS256, sub = Telegram user id (str).
  - No refresh token. The Mini App always holds fresh init data, so an
    expired session is renewed by calling POST /auth/telegram again.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

import jwt
from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.user import SUPPORTED_LANGUAGES, User
from triobuy.app.services.identity_service import InitDataVerifier

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _create_access_token(user_id: int) -> str:
    """
    Creates a signed JWT access token.
    Payload: sub (Telegram id as str), iat, exp, jti.
    """
    now = datetime.now(timezone.utc)
    expiry = now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": expiry,
        # Guarantees each issued token is unique even if generated in the same second.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "tg_id": user.tg_id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "language": user.language,
    }


def _apply_claims(user: User, claims: dict) -> None:
    user.username = claims.get("username")
    user.first_name = claims.get("first_name") or ""
    user.last_name = claims.get("last_name")


def upsert_user(claims: dict, session: Session) -> User:
    """
    Creates the user or overwrites its display attributes.

    A first login racing another first login for the same id loses the INSERT
    on the primary key; the savepoint is rolled back and the winner's row is
    updated instead.
    """
    tg_id = int(claims["id"])

    user = session.get(User, tg_id)
    if user is None:
        user = User(tg_id=tg_id)
        language = claims.get("language_code")
        if language in SUPPORTED_LANGUAGES:
            user.language = language
        _apply_claims(user, claims)
        try:
            with session.begin_nested():
                session.add(user)
        except IntegrityError:
            user = session.get(User, tg_id)
            if user is None:
                raise
            _apply_claims(user, claims)
    else:
        _apply_claims(user, claims)

    session.flush()
    return user


# ── Public service functions ───────────────────────────────────────────────

def authenticate_telegram(
        init_data: str,
        verifier: InitDataVerifier,
        session: Session,
) -> dict:
    """
    Verifies init data, upserts the user and issues an access token.

    Raises:
      AppError(INIT_DATA_INVALID, 401) — bad signature or no usable user claim.
        Both cases use the same code; nothing about the payload is echoed back.

    Returns: {"user": {...}, "access_token": "..."}
    """
    claims = verifier.extract_user(init_data) if verifier.verify(init_data) else None

    if claims is None:
        logger.warning("Rejected init data (signature or user claim invalid)")
        raise AppError(
            ErrorCode.INIT_DATA_INVALID,
            "The Telegram init data is invalid.",
            401,
        )

    try:
        user = upsert_user(claims, session)
    except (TypeError, ValueError):
        raise AppError(
            ErrorCode.INIT_DATA_INVALID,
            "The Telegram init data is invalid.",
            401,
        )

    return {
        "user": _build_user_dict(user),
        "access_token": _create_access_token(user.tg_id),
    }


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — the id in the JWT no longer exists.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return _build_user_dict(user)


def update_language(user_id: int, language: str, session: Session) -> dict:
    """
    Stores the caller's locale preference.

    Raises:
      AppError(INVALID_LANGUAGE, 400) — not one of SUPPORTED_LANGUAGES
      AppError(USER_NOT_FOUND, 404)
    """
    if language not in SUPPORTED_LANGUAGES:
        raise AppError(
            ErrorCode.INVALID_LANGUAGE,
            f"Language must be one of: {', '.join(SUPPORTED_LANGUAGES)}.",
            400,
            field="lang",
        )

    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )

    user.language = language
    session.flush()
    return _build_user_dict(user)
