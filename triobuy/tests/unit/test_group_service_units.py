"""
Unit tests for group_service.evaluate() and the status helpers.

These tests run DB-free with a mocked session; the clock is patched.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.group import GroupStatus
from triobuy.app.services import group_service

START = datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
_CLOCK = "triobuy.app.services.clock.utcnow"


def _group(status=GroupStatus.FORMING, start=START):
    return SimpleNamespace(
        id=5,
        initiator_tg_id=100,
        product_id=1,
        status=status,
        start_time=start,
        closed_at=None,
    )


def _session(group, paid: int, rowcount: int = 1) -> MagicMock:
    lock = MagicMock()
    lock.scalar_one_or_none.return_value = group
    count = MagicMock()
    count.scalar_one.return_value = paid
    write = MagicMock()
    write.rowcount = rowcount

    session = MagicMock()
    session.execute.side_effect = [lock, count, write]
    return session


def test_get_group_or_404_raises_when_group_missing():
    session = MagicMock()
    session.get.return_value = None

    with pytest.raises(AppError) as exc_info:
        group_service._get_group_or_404(group_id=404, session=session)

    assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND
    assert exc_info.value.http_status == 404


@pytest.mark.parametrize("status", [GroupStatus.COMPLETED, GroupStatus.FAILED])
def test_evaluate_terminal_group_is_a_no_op(status):
    session = _session(_group(status), paid=3)

    assert group_service.evaluate(5, session) is status
    assert session.execute.call_count == 1  # lock only, no write


def test_evaluate_completes_with_three_paid_participants():
    session = _session(_group(), paid=3)
    with patch(_CLOCK, return_value=START + timedelta(hours=1)):
        assert group_service.evaluate(5, session) is GroupStatus.COMPLETED
    assert session.execute.call_count == 3


def test_evaluate_completion_wins_over_deadline():
    session = _session(_group(), paid=3)
    with patch(_CLOCK, return_value=START + timedelta(hours=30)):
        assert group_service.evaluate(5, session) is GroupStatus.COMPLETED


def test_evaluate_fails_after_deadline():
    session = _session(_group(), paid=2)
    with patch(_CLOCK, return_value=START + timedelta(hours=24, seconds=1)):
        assert group_service.evaluate(5, session) is GroupStatus.FAILED


def test_evaluate_at_exact_deadline_still_forming():
    session = _session(_group(), paid=2)
    with patch(_CLOCK, return_value=START + timedelta(hours=24)):
        assert group_service.evaluate(5, session) is GroupStatus.FORMING
    assert session.execute.call_count == 2  # no write


def test_evaluate_is_idempotent_without_changes():
    group = _group()
    with patch(_CLOCK, return_value=START + timedelta(hours=2)):
        first = group_service.evaluate(5, _session(group, paid=1))
        second = group_service.evaluate(5, _session(group, paid=1))
    assert first is second is GroupStatus.FORMING


def test_evaluate_losing_the_race_reports_winner_status():
    group = _group()
    session = _session(group, paid=3, rowcount=0)

    def concurrent_winner(obj):
        obj.status = GroupStatus.FAILED

    session.refresh.side_effect = concurrent_winner

    with patch(_CLOCK, return_value=START + timedelta(hours=1)):
        assert group_service.evaluate(5, session) is GroupStatus.FAILED


def test_evaluate_missing_group_raises_404():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None
    with pytest.raises(AppError) as exc_info:
        group_service.evaluate(5, session)
    assert exc_info.value.code == ErrorCode.GROUP_NOT_FOUND


def test_time_left_counts_down_and_floors_at_zero():
    group = _group()
    assert group_service._time_left_seconds(group, START) == 24 * 3600
    assert group_service._time_left_seconds(group, START + timedelta(hours=23)) == 3600
    assert group_service._time_left_seconds(group, START + timedelta(days=3)) == 0


def test_deadline_treats_naive_start_as_utc():
    naive = _group(start=START.replace(tzinfo=None))
    assert group_service.deadline_of(naive) == START + timedelta(hours=24)


def test_build_group_dict_serialises_times():
    result = group_service._build_group_dict(_group())
    assert result == {
        "id": 5,
        "initiator_tg_id": 100,
        "product_id": 1,
        "status": "forming",
        "start_time": START.isoformat(),
        "deadline": (START + timedelta(hours=24)).isoformat(),
        "closed_at": None,
    }


def test_participate_without_code_creates_group():
    group = _group()
    with patch.object(group_service, "create_group", return_value=group) as create, \
            patch.object(group_service, "join_group") as join:
        result = group_service.participate(100, MagicMock(), ref_code=None, product_id=2)

    create.assert_called_once()
    assert create.call_args.kwargs["product_id"] == 2
    join.assert_not_called()
    assert result["group_id"] == 5
    assert result["joined"] is False


def test_participate_with_code_joins_group():
    group = _group()
    with patch.object(group_service, "join_group", return_value=group) as join, \
            patch.object(group_service, "create_group") as create:
        result = group_service.participate(300, MagicMock(), ref_code="abc123")

    join.assert_called_once()
    create.assert_not_called()
    assert result["joined"] is True


def test_expire_overdue_groups_reports_only_failures():
    session = MagicMock()
    session.execute.return_value.scalars.return_value.all.return_value = [1, 2, 3]
    outcomes = {1: GroupStatus.FAILED, 2: GroupStatus.COMPLETED, 3: GroupStatus.FAILED}

    with patch.object(group_service, "evaluate", side_effect=lambda gid, s: outcomes[gid]):
        assert group_service.expire_overdue_groups(session) == [1, 3]
