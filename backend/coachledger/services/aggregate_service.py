# Overview: Service-layer operations for coach aggregates; the single writer of coach running totals.

"""
Aggregate Reconciler

Every write that admits, edits or removes an APPROVED package's commission
split calls reconcile() with the signed delta, inside the same transaction
as the package write. Nothing else touches Coach.company_cut_total_cents.

INVARIANT:
    coach.company_cut_total_cents ==
        sum(split(p).company_cut_cents for p in APPROVED packages of coach)

A delta that would drive a total below zero means the aggregate has drifted;
ConsistencyError aborts the enclosing transaction instead of writing it.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Coach, Member, Package, AggregateAdjustment
from ..models.coaching import APPROVAL_APPROVED
from ..errors import ConsistencyError, NotFoundError
from . import commission_service
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


REASON_APPROVE = "APPROVE"
REASON_EDIT = "EDIT"
REASON_DELETE = "DELETE"
REASON_REBUILD = "REBUILD"


def _load_coach(coach_id: int) -> Coach:
    coach = lock_for_update(db.session.query(Coach).filter_by(id=coach_id)).first()
    if not coach:
        raise NotFoundError(f"Coach {coach_id} not found")
    return coach


def reconcile(
    coach_id: int,
    delta_cents: int,
    *,
    reason: str,
    package_id: int | None = None,
    member_id: int | None = None,
) -> Coach:
    """
    Apply a signed commission delta to a coach total.

    Does not commit. A zero delta is a no-op and writes no audit row.
    """
    coach = _load_coach(coach_id)
    if delta_cents == 0:
        return coach

    new_total = coach.company_cut_total_cents + delta_cents
    if new_total < 0:
        raise ConsistencyError(
            f"Coach {coach_id} commission total would become {new_total} "
            f"(delta {delta_cents}, reason {reason})"
        )

    coach.company_cut_total_cents = new_total
    db.session.add(AggregateAdjustment(
        coach_id=coach_id,
        delta_cents=delta_cents,
        total_after_cents=new_total,
        reason=reason,
        package_id=package_id,
        member_id=member_id,
    ))
    db.session.flush()
    logger.info(
        "Reconciled coach=%s delta=%+d total=%d reason=%s package=%s",
        coach_id, delta_cents, new_total, reason, package_id,
    )
    return coach


def _adjust_counter(coach_id: int, attr: str, delta: int) -> Coach:
    coach = _load_coach(coach_id)
    if delta == 0:
        return coach
    new_value = getattr(coach, attr) + delta
    if new_value < 0:
        raise ConsistencyError(f"Coach {coach_id} {attr} would become {new_value}")
    setattr(coach, attr, new_value)
    db.session.flush()
    return coach


def adjust_member_count(coach_id: int, delta: int) -> Coach:
    return _adjust_counter(coach_id, "active_member_count", delta)


def adjust_sessions_delivered(coach_id: int, delta: int) -> Coach:
    return _adjust_counter(coach_id, "total_sessions_delivered", delta)


def package_company_cut(package: Package) -> int:
    rule = commission_service.rule_from_fields(package.commission_type, package.commission_value)
    return commission_service.company_cut(package.price_cents, rule, package.session_count)


def compute_commission_total(coach_id: int) -> int:
    """Recompute the commission total from APPROVED packages."""
    packages = db.session.query(Package).filter_by(
        coach_id=coach_id, approval_status=APPROVAL_APPROVED
    ).all()
    return sum(package_company_cut(p) for p in packages)


def verify_coach_aggregate(coach_id: int) -> dict:
    """Compare stored aggregates with the facts they summarize."""
    coach = db.session.query(Coach).filter_by(id=coach_id).first()
    if not coach:
        raise NotFoundError(f"Coach {coach_id} not found")

    computed_total = compute_commission_total(coach_id)
    member_count = db.session.query(Member).filter_by(coach_id=coach_id).count()

    return {
        "coach_id": coach_id,
        "stored_company_cut_total_cents": coach.company_cut_total_cents,
        "computed_company_cut_total_cents": computed_total,
        "drift_cents": coach.company_cut_total_cents - computed_total,
        "stored_active_member_count": coach.active_member_count,
        "computed_active_member_count": member_count,
        "consistent": (
            coach.company_cut_total_cents == computed_total
            and coach.active_member_count == member_count
        ),
    }


def rebuild_coach_aggregate(coach_id: int) -> dict:
    """
    Repair drift by reconciling the stored totals onto the recomputed ones.

    The correction goes through reconcile() so it is audited like any delta.
    """
    def _op():
        coach = _load_coach(coach_id)
        computed_total = compute_commission_total(coach_id)
        member_count = db.session.query(Member).filter_by(coach_id=coach_id).count()

        drift = computed_total - coach.company_cut_total_cents
        if drift:
            logger.warning("Rebuilding coach=%s commission total, drift=%+d", coach_id, drift)
            reconcile(coach_id, drift, reason=REASON_REBUILD)
        adjust_member_count(coach_id, member_count - coach.active_member_count)

        db.session.commit()
        return verify_coach_aggregate(coach_id)

    return run_with_retry(_op)
