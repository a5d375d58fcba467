"""
services/invite_service.py — Invite code issuance and redemption.

An invite code lives on a GroupMember row owned by the group's initiator.
Redeeming it adds the redeeming user to the same group.

Codes are single-use. Consumption is one compare-and-set UPDATE guarded by
`redeemed_by_tg_id IS NULL`, so of two simultaneous redemptions exactly one
updates the row and the other gets INVITE_CODE_REDEEMED. The group row is
locked first, which also serialises the capacity check per group.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
import secrets

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.group import GROUP_SIZE, Group
from triobuy.app.models.group_member import GroupMember
from triobuy.app.services import clock

logger = logging.getLogger(__name__)

# 8 random bytes → 16 hex chars; uniqueness is also enforced by the DB.
_CODE_BYTES = 8


# ── Private helpers ────────────────────────────────────────────────────────

def _new_code() -> str:
    return secrets.token_hex(_CODE_BYTES)


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


def participant_ids(group_id: int, session: Session) -> set[int]:
    """Distinct users holding a seat in the group (the initiator counts once)."""
    stmt = select(GroupMember.user_tg_id).where(GroupMember.group_id == group_id).distinct()
    return set(session.execute(stmt).scalars().all())


# ── Public service functions ───────────────────────────────────────────────

def issue_codes(group_id: int, owner_id: int, count: int, session: Session) -> list[str]:
    """
    Creates `count` code-bearing GroupMember rows for owner_id.

    Returns the issued codes in creation order.
    """
    codes = [_new_code() for _ in range(count)]
    for code in codes:
        session.add(GroupMember(group_id=group_id, user_tg_id=owner_id, invite_code=code))
    session.flush()
    return codes


def redeem(code: str, user_id: int, session: Session) -> int:
    """
    Consumes an invite code and seats user_id in its group.

    Raises:
      AppError(INVITE_CODE_NOT_FOUND, 404)  — no such code
      AppError(INVITE_CODE_REDEEMED, 409)   — code already consumed
      AppError(GROUP_CLOSED, 422)           — group is completed or failed
      AppError(DUPLICATE_PARTICIPANT, 409)  — user already in the group
      AppError(GROUP_FULL, 409)             — GROUP_SIZE seats already taken

    Returns: the bound group id.
    """
    holder = session.execute(
        select(GroupMember).where(GroupMember.invite_code == code)
    ).scalar_one_or_none()

    if holder is None:
        raise AppError(
            ErrorCode.INVITE_CODE_NOT_FOUND,
            "This invite code does not exist.",
            404,
            field="ref_code",
        )

    if holder.redeemed_by_tg_id is not None:
        raise AppError(
            ErrorCode.INVITE_CODE_REDEEMED,
            "This invite code has already been used.",
            409,
            field="ref_code",
        )

    group = _lock_group_or_404(holder.group_id, session)

    if group.status.is_terminal:
        raise AppError(
            ErrorCode.GROUP_CLOSED,
            f"Group {group.id} is already {group.status.value}.",
            422,
        )

    seated = participant_ids(group.id, session)
    if user_id in seated:
        raise AppError(
            ErrorCode.DUPLICATE_PARTICIPANT,
            f"User {user_id} is already a participant of group {group.id}.",
            409,
        )
    if len(seated) >= GROUP_SIZE:
        raise AppError(
            ErrorCode.GROUP_FULL,
            f"Group {group.id} already has {GROUP_SIZE} participants.",
            409,
        )

    consumed = session.execute(
        update(GroupMember)
        .where(
            GroupMember.id == holder.id,
            GroupMember.redeemed_by_tg_id.is_(None),
        )
        .values(redeemed_by_tg_id=user_id, redeemed_at=clock.utcnow())
    )
    if consumed.rowcount != 1:
        raise AppError(
            ErrorCode.INVITE_CODE_REDEEMED,
            "This invite code has already been used.",
            409,
            field="ref_code",
        )

    session.add(GroupMember(group_id=group.id, user_tg_id=user_id))
    session.flush()

    logger.info("Invite code redeemed: group=%s user=%s", group.id, user_id)
    return group.id


def list_codes_for(user_id: int, link_base: str, session: Session) -> list[dict]:
    """
    Returns every invite code the user holds, formatted as shareable links.

    Link format: f"{link_base}ref_{code}", e.g.
      https://t.me/<bot>?startapp=ref_<code>
    """
    stmt = (
        select(GroupMember)
        .where(
            GroupMember.user_tg_id == user_id,
            GroupMember.invite_code.is_not(None),
        )
        .order_by(GroupMember.group_id.desc(), GroupMember.id.asc())
    )
    holders = session.execute(stmt).scalars().all()

    return [
        {
            "code": h.invite_code,
            "group_id": h.group_id,
            "redeemed": h.redeemed_by_tg_id is not None,
            "link": f"{link_base}ref_{h.invite_code}",
        }
        for h in holders
    ]
