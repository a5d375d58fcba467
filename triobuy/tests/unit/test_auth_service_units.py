"""
Unit tests for auth_service branches. DB-free; token minting is patched so
no Flask app context is needed.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.user import User
from triobuy.app.services import auth_service


def _verifier(valid: bool, claims: dict | None) -> MagicMock:
    verifier = MagicMock()
    verifier.verify.return_value = valid
    verifier.extract_user.return_value = claims
    return verifier


def test_authenticate_rejects_bad_signature_without_reading_claims():
    verifier = _verifier(False, {"id": 1})
    with pytest.raises(AppError) as exc_info:
        auth_service.authenticate_telegram("raw", verifier, MagicMock())

    assert exc_info.value.code == ErrorCode.INIT_DATA_INVALID
    assert exc_info.value.http_status == 401
    verifier.extract_user.assert_not_called()


def test_authenticate_rejects_payload_without_user_claim():
    with pytest.raises(AppError) as exc_info:
        auth_service.authenticate_telegram("raw", _verifier(True, None), MagicMock())
    assert exc_info.value.code == ErrorCode.INIT_DATA_INVALID


def test_authenticate_rejects_non_numeric_id():
    session = MagicMock()
    with pytest.raises(AppError) as exc_info:
        auth_service.authenticate_telegram("raw", _verifier(True, {"id": "abc"}), session)
    assert exc_info.value.code == ErrorCode.INIT_DATA_INVALID
    session.add.assert_not_called()


def test_authenticate_returns_user_and_token():
    session = MagicMock()
    session.get.return_value = None

    with patch.object(auth_service, "_create_access_token", return_value="jwt") as mint:
        result = auth_service.authenticate_telegram(
            "raw", _verifier(True, {"id": 77, "first_name": "Ali", "language_code": "uz"}), session,
        )

    mint.assert_called_once_with(77)
    assert result["access_token"] == "jwt"
    assert result["user"]["tg_id"] == 77
    assert result["user"]["language"] == "uz"


def test_upsert_existing_user_overwrites_names_only():
    existing = User(tg_id=77, first_name="Old", username="old", language="ru")
    session = MagicMock()
    session.get.return_value = existing

    user = auth_service.upsert_user(
        {"id": 77, "first_name": "New", "username": "new", "language_code": "en"}, session,
    )

    assert user is existing
    assert (user.first_name, user.username, user.language) == ("New", "new", "ru")
    session.add.assert_not_called()


def test_upsert_losing_insert_race_updates_winner_row():
    winner = User(tg_id=77, first_name="Winner", language="en")
    session = MagicMock()
    session.get.side_effect = [None, winner]
    session.begin_nested.return_value.__exit__.side_effect = IntegrityError("INSERT", {}, Exception())

    user = auth_service.upsert_user({"id": 77, "first_name": "Late"}, session)

    assert user is winner
    assert user.first_name == "Late"


def test_update_language_rejects_unsupported():
    session = MagicMock()
    with pytest.raises(AppError) as exc_info:
        auth_service.update_language(77, "de", session)
    assert exc_info.value.code == ErrorCode.INVALID_LANGUAGE
    assert exc_info.value.field == "lang"
    session.get.assert_not_called()


def test_update_language_for_missing_user_raises_404():
    session = MagicMock()
    session.get.return_value = None
    with pytest.raises(AppError) as exc_info:
        auth_service.update_language(77, "ru", session)
    assert exc_info.value.code == ErrorCode.USER_NOT_FOUND


def test_get_current_user_serialises_profile():
    session = MagicMock()
    session.get.return_value = SimpleNamespace(
        tg_id=77, username="ali", first_name="Ali", last_name=None, language="uz",
    )
    assert auth_service.get_current_user(77, session) == {
        "tg_id": 77,
        "username": "ali",
        "first_name": "Ali",
        "last_name": None,
        "language": "uz",
    }
