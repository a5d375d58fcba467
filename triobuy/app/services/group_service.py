"""
services/group_service.py — Group lifecycle: create, join, evaluate, status.

State machine (models/group.py):
  forming → completed   exactly GROUP_SIZE distinct participants have paid
  forming → failed      deadline (start_time + GROUP_WINDOW) passed first
Terminal states are sticky: evaluate() on a terminal group is a no-op.

Race safety of evaluate():
  1. The group row is locked (SELECT … FOR UPDATE) so the paid count and the
     status write come from one snapshot per group.
  2. The write itself is a compare-and-set on status = 'forming'. Where row
     locks are unavailable (SQLite) a concurrent evaluator that loses the
     race updates zero rows and reports the winner's status.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.group import (
    GROUP_SIZE,
    GROUP_WINDOW,
    INVITES_PER_GROUP,
    Group,
    GroupStatus,
)
from triobuy.app.models.group_member import GroupMember
from triobuy.app.services import catalog_service, clock, invite_service, payment_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _lock_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group with its row locked, or raises GROUP_NOT_FOUND (404)."""
    group = session.execute(
        select(Group).where(Group.id == group_id).with_for_update()
    ).scalar_one_or_none()
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _paid_participant_count(group_id: int, session: Session) -> int:
    """
    Distinct users with a paid seat. The initiator's code-bearing rows are all
    flagged together, so counting rows would count the initiator up to three
    times.
    """
    stmt = (
        select(func.count(func.distinct(GroupMember.user_tg_id)))
        .where(GroupMember.group_id == group_id, GroupMember.paid.is_(True))
    )
    return session.execute(stmt).scalar_one()


def deadline_of(group: Group) -> datetime:
    return clock.as_utc(group.start_time) + GROUP_WINDOW


def _time_left_seconds(group: Group, now: datetime) -> int:
    remaining = (deadline_of(group) - now).total_seconds()
    return max(0, int(remaining))


def _build_group_dict(group: Group) -> dict:
    """Serialises a Group to a plain dict."""
    closed_at = clock.as_utc(group.closed_at).isoformat() if group.closed_at else None
    return {
        "id": group.id,
        "initiator_tg_id": group.initiator_tg_id,
        "product_id": group.product_id,
        "status": group.status.value,
        "start_time": clock.as_utc(group.start_time).isoformat(),
        "deadline": deadline_of(group).isoformat(),
        "closed_at": closed_at,
    }


def _build_member_dict(member: GroupMember, viewer_id: int) -> dict:
    # Unredeemed codes are bearer tokens; only their holder sees them.
    own = member.user_tg_id == viewer_id
    return {
        "user_tg_id": member.user_tg_id,
        "invite_code": member.invite_code if own else None,
        "redeemed": member.redeemed_by_tg_id is not None,
        "paid": member.paid,
    }


# ── Public service functions ───────────────────────────────────────────────

def create_group(initiator_id: int, session: Session, product_id: int | None = None) -> Group:
    """
    Starts a new group for initiator_id.

    Issues INVITES_PER_GROUP invite codes to the initiator and opens the
    initiator's pending payment at the product's discounted price.

    Raises:
      AppError(PRODUCT_NOT_FOUND, 404)
    """
    product = catalog_service.get_product(product_id, session)

    group = Group(
        initiator_tg_id=initiator_id,
        product_id=product.id,
        status=GroupStatus.FORMING,
        start_time=clock.utcnow(),
    )
    session.add(group)
    session.flush()  # populate group.id before issuing codes

    invite_service.issue_codes(group.id, initiator_id, INVITES_PER_GROUP, session)
    payment_service.open_payment(group.id, initiator_id, product.discounted_price, session)

    logger.info("Group created: group=%s initiator=%s", group.id, initiator_id)
    return group


def join_group(code: str, user_id: int, session: Session) -> Group:
    """
    Redeems `code` for user_id and opens their pending payment.

    Raises: everything invite_service.redeem() raises.
    """
    group_id = invite_service.redeem(code, user_id, session)
    group = _get_group_or_404(group_id, session)

    payment_service.open_payment(group.id, user_id, group.product.discounted_price, session)
    return group


def participate(
        user_id: int,
        session: Session,
        ref_code: str | None = None,
        product_id: int | None = None,
) -> dict:
    """
    Joins the group behind ref_code, or creates a new one when there is none.

    Returns: {"group_id", "status", "start_time", "deadline", "joined"}
    """
    if ref_code:
        group = join_group(ref_code, user_id, session)
    else:
        group = create_group(user_id, session, product_id=product_id)

    return {
        "group_id": group.id,
        "status": group.status.value,
        "start_time": clock.as_utc(group.start_time).isoformat(),
        "deadline": deadline_of(group).isoformat(),
        "joined": bool(ref_code),
    }


def evaluate(group_id: int, session: Session) -> GroupStatus:
    """
    Recomputes the group's status from its members' paid flags and the clock.

    Idempotent: with no intervening change, repeated calls return the same
    status and write nothing.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)

    Returns: the status after evaluation.
    """
    group = _lock_group_or_404(group_id, session)
    if group.status.is_terminal:
        return group.status

    now = clock.utcnow()
    paid = _paid_participant_count(group_id, session)

    if paid == GROUP_SIZE:
        target = GroupStatus.COMPLETED
    elif now > deadline_of(group):
        target = GroupStatus.FAILED
    else:
        return group.status

    result = session.execute(
        update(Group)
        .where(Group.id == group_id, Group.status == GroupStatus.FORMING)
        .values(status=target, closed_at=now)
    )
    if result.rowcount != 1:
        session.refresh(group)
        return group.status

    logger.info("Group %s: group=%s paid=%s", target.value, group_id, paid)
    return target


def get_status(group_id: int, user_id: int, session: Session) -> dict:
    """
    Returns the group, the seconds left until its deadline and its members,
    as seen by participant user_id.

    Raises:
      AppError(GROUP_NOT_FOUND, 404) — no such group, or user_id holds no
        seat in it. Outsiders cannot tell the two apart.
    """
    group = _get_group_or_404(group_id, session)
    if user_id not in invite_service.participant_ids(group_id, session):
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )

    members = session.execute(
        select(GroupMember)
        .where(GroupMember.group_id == group_id)
        .order_by(GroupMember.id.asc())
    ).scalars().all()

    return {
        "group": _build_group_dict(group),
        "time_left": _time_left_seconds(group, clock.utcnow()),
        "members": [_build_member_dict(m, user_id) for m in members],
    }


def list_groups_for(user_id: int, session: Session) -> list[dict]:
    """Returns every group the user holds a seat in, newest first."""
    stmt = (
        select(Group)
        .where(
            Group.id.in_(
                select(GroupMember.group_id).where(GroupMember.user_tg_id == user_id)
            )
        )
        .order_by(Group.id.desc())
    )
    return [_build_group_dict(g) for g in session.execute(stmt).scalars().all()]


def expire_overdue_groups(session: Session) -> list[int]:
    """
    Evaluates every forming group whose deadline has passed.

    Without this sweep a group that never receives another callback would
    stay forming forever. Returns the ids that moved to failed.
    """
    cutoff = clock.utcnow() - GROUP_WINDOW
    candidates = session.execute(
        select(Group.id)
        .where(Group.status == GroupStatus.FORMING, Group.start_time < cutoff)
        .order_by(Group.id.asc())
    ).scalars().all()

    failed = [gid for gid in candidates if evaluate(gid, session) is GroupStatus.FAILED]
    if failed:
        logger.info("Expired %d overdue group(s): %s", len(failed), failed)
    return failed
