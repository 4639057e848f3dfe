# Overview: Member credit balances; the only writer of Member.remaining_credits.

"""
Credit Ledger

INVARIANTS:
- remaining_credits is written only through this module.
- Every write appends a CreditTransaction carrying the signed movement and
  the resulting balance, inside the caller's transaction.
- Balances never go below zero.
- DEBIT and REFUND are keyed by (event_id, participant_key); applying the same
  key twice raises AlreadyApplied instead of moving credits again.
- A DEBIT not matched by an explicit REFUND is permanent (credit burned).

These functions never commit and never retry; the booking and package
workflows own the transaction boundary.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Member, CreditTransaction
from ..models.ledger import CREDIT_GRANT, CREDIT_DEBIT, CREDIT_REFUND, CREDIT_ADJUST
from ..errors import (
    AlreadyApplied,
    ConsistencyError,
    InsufficientCredit,
    NotFoundError,
    ValidationError,
)
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


def _load_member(member_id: int) -> Member:
    member = lock_for_update(db.session.query(Member).filter_by(id=member_id)).first()
    if not member:
        raise NotFoundError(f"Member {member_id} not found")
    return member


def _require_amount(amount, *, allow_zero: bool = False) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError("Credit amount must be an integer")
    if amount < 0 or (amount == 0 and not allow_zero):
        raise ValidationError("Credit amount must be positive")
    return amount


def _booking_key_used(transaction_type: str, event_id: int, participant_key: str) -> bool:
    return db.session.query(CreditTransaction.id).filter_by(
        transaction_type=transaction_type,
        event_id=event_id,
        participant_key=participant_key,
    ).first() is not None


def _apply(
    member: Member,
    credits: int,
    transaction_type: str,
    *,
    package_id: int | None = None,
    event_id: int | None = None,
    participant_key: str | None = None,
    actor_id: str | None = None,
    reason: str | None = None,
) -> CreditTransaction:
    new_balance = member.remaining_credits + credits
    if new_balance < 0:
        raise ConsistencyError(
            f"Member {member.id} credit balance would become {new_balance}"
        )

    member.remaining_credits = new_balance
    entry = CreditTransaction(
        member_id=member.id,
        transaction_type=transaction_type,
        credits=credits,
        balance_after=new_balance,
        package_id=package_id,
        event_id=event_id,
        participant_key=participant_key,
        actor_id=actor_id,
        reason=reason,
    )
    db.session.add(entry)
    db.session.flush()
    logger.info(
        "Credit %s member=%s credits=%+d balance=%d",
        transaction_type, member.id, credits, new_balance,
    )
    return entry


def grant(
    member_id: int,
    amount: int,
    *,
    package_id: int | None = None,
    actor_id: str | None = None,
    reason: str | None = None,
) -> CreditTransaction:
    """Add credits admitted by an approved package."""
    amount = _require_amount(amount, allow_zero=True)
    member = _load_member(member_id)
    return _apply(
        member, amount, CREDIT_GRANT,
        package_id=package_id, actor_id=actor_id, reason=reason,
    )


def debit(
    member_id: int,
    amount: int = 1,
    *,
    event_id: int,
    participant_key: str,
    actor_id: str | None = None,
) -> CreditTransaction:
    """
    Take credits for a booked participant.

    Raises:
        AlreadyApplied: this (event_id, participant_key) was already debited
        InsufficientCredit: balance is lower than amount
    """
    amount = _require_amount(amount)
    member = _load_member(member_id)

    if _booking_key_used(CREDIT_DEBIT, event_id, participant_key):
        raise AlreadyApplied(
            f"Participant {participant_key} was already charged for event {event_id}"
        )
    if member.remaining_credits < amount:
        raise InsufficientCredit(
            f"Member {member.id} has {member.remaining_credits} credit(s), {amount} required"
        )

    return _apply(
        member, -amount, CREDIT_DEBIT,
        event_id=event_id, participant_key=participant_key, actor_id=actor_id,
        reason="Session booked",
    )


def refund(
    member_id: int,
    amount: int = 1,
    *,
    event_id: int,
    participant_key: str,
    actor_id: str | None = None,
) -> CreditTransaction:
    """
    Return credits for a removed booking.

    Raises:
        AlreadyApplied: this (event_id, participant_key) was already refunded
    """
    amount = _require_amount(amount)
    member = _load_member(member_id)

    if _booking_key_used(CREDIT_REFUND, event_id, participant_key):
        raise AlreadyApplied(
            f"Participant {participant_key} was already refunded for event {event_id}"
        )

    return _apply(
        member, amount, CREDIT_REFUND,
        event_id=event_id, participant_key=participant_key, actor_id=actor_id,
        reason="Booking removed with refund",
    )


def adjust(
    member_id: int,
    new_balance: int,
    *,
    package_id: int | None = None,
    actor_id: str | None = None,
    reason: str | None = None,
) -> CreditTransaction | None:
    """
    Reset a balance after a package edit or delete.

    Returns None when the balance is already at new_balance.
    """
    new_balance = _require_amount(new_balance, allow_zero=True)
    member = _load_member(member_id)
    delta = new_balance - member.remaining_credits
    if delta == 0:
        return None
    return _apply(
        member, delta, CREDIT_ADJUST,
        package_id=package_id, actor_id=actor_id, reason=reason,
    )


def get_balance(member_id: int) -> int:
    member = db.session.query(Member).filter_by(id=member_id).first()
    if not member:
        raise NotFoundError(f"Member {member_id} not found")
    return member.remaining_credits


def get_credit_history(member_id: int, limit: int | None = None) -> list[CreditTransaction]:
    query = (
        db.session.query(CreditTransaction)
        .filter_by(member_id=member_id)
        .order_by(CreditTransaction.id.desc())
    )
    if limit:
        query = query.limit(limit)
    return query.all()
