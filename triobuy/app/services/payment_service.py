"""
services/payment_service.py — Payment ledger: open, bind, apply outcomes.

Callback handling (apply_outcome) must tolerate at-least-once, reordered and
arbitrarily late delivery:
  - same status again        → no-op, applied=False (redelivery)
  - pending after paid       → ignored, applied=False (stale / out of order)
  - paid while pending       → mark payment + member seats paid, evaluate group
The pending → paid write is a compare-and-set on status, so two concurrent
deliveries of the same callback apply it once.

Lock order is payment row, then group row, then member rows. Redemption
locks the group before it consumes a code row, so the two never wait on
each other in opposite directions.

A payment can still arrive after its group failed. The money is recorded
(status = paid) but the group is terminal and evaluate() leaves it alone.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from triobuy.app.errors import AppError, ErrorCode
from triobuy.app.models.group import Group
from triobuy.app.models.group_member import GroupMember
from triobuy.app.models.payment import Payment, PaymentProvider, PaymentStatus
from triobuy.app.services import clock

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_payment_or_404(payment_id: int, session: Session) -> Payment:
    """Returns the Payment or raises PAYMENT_NOT_FOUND (404)."""
    payment = session.get(Payment, payment_id)
    if payment is None:
        raise AppError(
            ErrorCode.PAYMENT_NOT_FOUND,
            f"Payment {payment_id} does not exist.",
            404,
        )
    return payment


def _find_participant_payment(group_id: int, user_id: int, session: Session) -> Payment | None:
    return session.execute(
        select(Payment).where(
            Payment.group_id == group_id,
            Payment.user_tg_id == user_id,
        )
    ).scalar_one_or_none()


def _already_bound(payment_id: int) -> AppError:
    return AppError(
        ErrorCode.TRANSACTION_ALREADY_BOUND,
        f"Payment {payment_id} is already linked to a gateway transaction.",
        409,
    )


def _build_payment_dict(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "group_id": payment.group_id,
        "user_tg_id": payment.user_tg_id,
        "amount": str(payment.amount),  # Decimal → string, never a JS number
        "status": payment.status.value,
        "provider": payment.provider.value if payment.provider else None,
        "transaction_id": payment.transaction_id,
    }


def _lock_group(group_id: int, session: Session) -> Group:
    return session.execute(
        select(Group).where(Group.id == group_id).with_for_update()
    ).scalar_one()


def _unchanged(payment: Payment, session: Session) -> dict:
    group = session.get(Group, payment.group_id)
    return {
        "payment": _build_payment_dict(payment),
        "applied": False,
        "group_status": group.status.value,
    }


# ── Public service functions ───────────────────────────────────────────────

def open_payment(group_id: int, user_id: int, amount: Decimal, session: Session) -> Payment:
    """
    Creates the pending payment for a new participant.

    Raises:
      AppError(DUPLICATE_PARTICIPANT, 409) — a payment already exists for
        (group_id, user_id); also caught from the DB unique constraint when
        two joins race.
    """
    if _find_participant_payment(group_id, user_id, session) is not None:
        raise AppError(
            ErrorCode.DUPLICATE_PARTICIPANT,
            f"User {user_id} already has a payment in group {group_id}.",
            409,
        )

    payment = Payment(
        group_id=group_id,
        user_tg_id=user_id,
        amount=amount,
        status=PaymentStatus.PENDING,
    )
    try:
        with session.begin_nested():
            session.add(payment)
    except IntegrityError:
        raise AppError(
            ErrorCode.DUPLICATE_PARTICIPANT,
            f"User {user_id} already has a payment in group {group_id}.",
            409,
        )
    return payment


def bind_transaction(
        payment_id: int,
        transaction_id: str,
        provider: PaymentProvider,
        session: Session,
) -> Payment:
    """
    Links a gateway transaction to the payment. Happens once per payment.

    Raises:
      AppError(PAYMENT_NOT_FOUND, 404)
      AppError(TRANSACTION_ALREADY_BOUND, 409) — the payment already has a
        transaction, or transaction_id is already used by another payment.
    """
    payment = _get_payment_or_404(payment_id, session)
    if payment.transaction_id is not None:
        raise _already_bound(payment_id)

    try:
        with session.begin_nested():
            result = session.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.transaction_id.is_(None))
                .values(transaction_id=transaction_id, provider=provider)
            )
    except IntegrityError:
        raise _already_bound(payment_id)

    if result.rowcount != 1:
        raise _already_bound(payment_id)

    session.refresh(payment)
    logger.info(
        "Transaction bound: payment=%s provider=%s transaction=%s",
        payment_id, provider.value, transaction_id,
    )
    return payment


def apply_outcome(transaction_id: str, new_status: PaymentStatus, session: Session) -> dict:
    """
    Applies a gateway outcome for transaction_id. Safe to call repeatedly.

    Raises:
      AppError(TRANSACTION_NOT_FOUND, 404)

    Returns: {"payment": {...}, "applied": bool, "group_status": str}
      applied=False for redeliveries and stale outcomes.
    """
    from triobuy.app.services import group_service  # local import to avoid circular dep

    payment = session.execute(
        select(Payment).where(Payment.transaction_id == transaction_id).with_for_update()
    ).scalar_one_or_none()

    if payment is None:
        raise AppError(
            ErrorCode.TRANSACTION_NOT_FOUND,
            f"No payment is linked to transaction {transaction_id!r}.",
            404,
        )

    if payment.status is new_status:
        return _unchanged(payment, session)

    if new_status is not PaymentStatus.PAID:
        logger.info(
            "Ignoring stale outcome %s for paid payment %s",
            new_status.value, payment.id,
        )
        return _unchanged(payment, session)

    # Group before member rows, the same order invite_service.redeem() takes.
    group = _lock_group(payment.group_id, session)
    was_terminal = group.status.is_terminal

    result = session.execute(
        update(Payment)
        .where(Payment.id == payment.id, Payment.status == PaymentStatus.PENDING)
        .values(status=PaymentStatus.PAID, paid_at=clock.utcnow())
    )
    if result.rowcount != 1:
        # A concurrent delivery won the compare-and-set.
        session.refresh(payment)
        return _unchanged(payment, session)

    session.execute(
        update(GroupMember)
        .where(
            GroupMember.group_id == payment.group_id,
            GroupMember.user_tg_id == payment.user_tg_id,
        )
        .values(paid=True)
    )
    session.flush()

    status = group_service.evaluate(payment.group_id, session)

    if was_terminal:
        logger.warning(
            "Late payment for %s group: payment=%s group=%s",
            status.value, payment.id, payment.group_id,
        )
    logger.info("Payment paid: payment=%s group=%s", payment.id, payment.group_id)

    session.refresh(payment)
    return {
        "payment": _build_payment_dict(payment),
        "applied": True,
        "group_status": status.value,
    }


def transaction_for_payment(payment_id: int, session: Session) -> str:
    """
    Resolves the bound transaction for gateways whose callbacks name our
    payment id rather than their own transaction reference.

    Raises:
      AppError(PAYMENT_NOT_FOUND, 404)
      AppError(TRANSACTION_NOT_FOUND, 404) — payment never initiated.
    """
    payment = _get_payment_or_404(payment_id, session)
    if payment.transaction_id is None:
        raise AppError(
            ErrorCode.TRANSACTION_NOT_FOUND,
            f"Payment {payment_id} has no gateway transaction.",
            404,
        )
    return payment.transaction_id


def apply_callback(
        new_status: PaymentStatus,
        session: Session,
        transaction_id: str | None = None,
        payment_id: int | None = None,
) -> dict:
    """
    Applies a gateway-reported outcome identified either by the gateway's
    transaction reference or by our payment id.

    Raises: everything apply_outcome() and transaction_for_payment() raise.
    """
    if transaction_id is None:
        transaction_id = transaction_for_payment(payment_id, session)
    return apply_outcome(transaction_id, new_status, session)


def initiate_payment(
        group_id: int,
        user_id: int,
        provider: PaymentProvider,
        gateway,
        session: Session,
) -> dict:
    """
    Starts a remote transaction for the caller's payment in group_id and
    links it. The gateway call is not retried; its failures propagate as
    GATEWAY_ERROR (502) and leave the payment unbound.

    Args:
        gateway: a triobuy.app.gateways.PaymentGateway for `provider`.

    Raises:
      AppError(PAYMENT_NOT_FOUND, 404)         — caller is not a participant
      AppError(GROUP_CLOSED, 422)              — group completed or failed
      AppError(PAYMENT_ALREADY_PAID, 422)
      AppError(TRANSACTION_ALREADY_BOUND, 409) — already initiated
      AppError(GATEWAY_ERROR, 502)

    Returns: {"payment_id", "provider", "transaction_id", "payment_url"}
    """
    payment = _find_participant_payment(group_id, user_id, session)
    if payment is None:
        raise AppError(
            ErrorCode.PAYMENT_NOT_FOUND,
            f"You have no payment in group {group_id}.",
            404,
        )

    group = session.get(Group, group_id)
    if group.status.is_terminal:
        raise AppError(
            ErrorCode.GROUP_CLOSED,
            f"Group {group_id} is already {group.status.value}.",
            422,
        )
    if payment.status is PaymentStatus.PAID:
        raise AppError(
            ErrorCode.PAYMENT_ALREADY_PAID,
            f"Payment {payment.id} has already been paid.",
            422,
        )
    if payment.transaction_id is not None:
        raise _already_bound(payment.id)

    remote = gateway.create_transaction(payment)
    bind_transaction(payment.id, remote.transaction_id, provider, session)

    return {
        "payment_id": payment.id,
        "provider": provider.value,
        "transaction_id": remote.transaction_id,
        "payment_url": remote.payment_url,
    }
