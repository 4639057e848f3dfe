# Overview: Service-layer operations for packages; the approval workflow over credits and commissions.

"""
Package Approval Workflow

STATES: PENDING -> APPROVED (terminal, admin action). Rejecting a package
is deleting it; there is no REJECTED state and no way back to PENDING.

WHEN MONEY COUNTS:
- Admin creates a package: it is APPROVED on creation; credits are granted
  and the company cut is reconciled into the coach total in the same
  transaction.
- Coach creates a package: it stays PENDING with no credit, window or
  aggregate effect until an admin approves it.
- Edits and deletes of APPROVED packages push signed deltas through
  aggregate_service.reconcile(); PENDING packages never touch either ledger.

CURRENT PACKAGE:
- Member.current_package_id points at the APPROVED package with the highest
  sequence number and is updated in the same transaction as the write that
  changes it. The member's active window mirrors that package.
"""

from __future__ import annotations

import logging
from datetime import date

from ..extensions import db
from ..models import Coach, Member, Package
from ..models.coaching import (
    APPROVAL_APPROVED,
    APPROVAL_PENDING,
    PAYMENT_PAID,
    PAYMENT_STATUSES,
)
from ..models.scheduling import EventParticipant
from ..errors import (
    AlreadyApproved,
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from ..permissions import VALID_ROLES, is_admin, require_admin
from ..time_utils import package_end_date, parse_date, today, utcnow
from . import aggregate_service, commission_service, credit_service
from .commission_service import CommissionRule
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


EDITABLE_FIELDS = {
    "price_cents",
    "session_count",
    "duration_days",
    "start_date",
    "rule",
    "payment_status",
}

MAX_SESSION_COUNT = 10_000
MAX_DURATION_DAYS = 3_660


# =============================================================================
# VALIDATION
# =============================================================================

def _require_int(value, field: str, *, minimum: int, maximum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < minimum:
        if minimum == 0:
            raise ValidationError(f"{field} cannot be negative")
        raise ValidationError(f"{field} must be at least {minimum}")
    if maximum is not None and value > maximum:
        raise ValidationError(f"{field} exceeds the maximum of {maximum}")
    return value


def _validate_terms(
    price_cents,
    session_count,
    duration_days,
    rule: CommissionRule | None,
    payment_status,
) -> CommissionRule:
    _require_int(price_cents, "price_cents", minimum=0)
    _require_int(session_count, "session_count", minimum=1, maximum=MAX_SESSION_COUNT)
    _require_int(duration_days, "duration_days", minimum=1, maximum=MAX_DURATION_DAYS)
    if payment_status not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status: {payment_status}. Must be one of {list(PAYMENT_STATUSES)}")
    rule = commission_service.validate_rule(rule)
    # Surfaces rule/price errors before any write
    commission_service.split(price_cents, rule, session_count)
    return rule


def _validate_role(actor_role: str | None) -> None:
    if actor_role not in VALID_ROLES:
        raise PermissionDenied(f"Unknown actor role: {actor_role}")


# =============================================================================
# LOOKUPS
# =============================================================================

def _load_member(coach_id: int, member_id: int) -> Member:
    member = lock_for_update(db.session.query(Member).filter_by(id=member_id)).first()
    if not member or member.coach_id != coach_id:
        raise NotFoundError(f"Member {member_id} not found for coach {coach_id}")
    return member


def _load_package(member: Member, package_id: int) -> Package:
    package = db.session.query(Package).filter_by(id=package_id, member_id=member.id).first()
    if not package:
        raise NotFoundError(f"Package {package_id} not found for member {member.id}")
    return package


def _rule_of(package: Package) -> CommissionRule:
    return commission_service.rule_from_fields(package.commission_type, package.commission_value)


def _latest_approved(member_id: int) -> Package | None:
    return (
        db.session.query(Package)
        .filter_by(member_id=member_id, approval_status=APPROVAL_APPROVED)
        .order_by(Package.sequence_number.desc())
        .first()
    )


def _point_at(member: Member, package: Package | None) -> None:
    if package is None:
        member.current_package_id = None
        member.package_start_date = None
        member.package_end_date = None
    else:
        member.current_package_id = package.id
        member.package_start_date = package.start_date
        member.package_end_date = package.end_date


# =============================================================================
# CREATION
# =============================================================================

def _add_package_locked(
    member: Member,
    *,
    price_cents: int,
    session_count: int,
    duration_days: int,
    rule: CommissionRule,
    start_date: date,
    payment_status: str,
    actor_role: str,
    actor_id: str | None,
) -> Package:
    commission_type, commission_value = commission_service.rule_to_fields(rule)

    sequence = member.next_package_sequence
    member.next_package_sequence = sequence + 1
    member.total_packages_count += 1

    package = Package(
        member_id=member.id,
        coach_id=member.coach_id,
        sequence_number=sequence,
        price_cents=price_cents,
        session_count=session_count,
        duration_days=duration_days,
        start_date=start_date,
        end_date=package_end_date(start_date, duration_days),
        commission_type=commission_type,
        commission_value=commission_value,
        approval_status=APPROVAL_PENDING,
        payment_status=payment_status,
        created_by_role=actor_role,
    )
    db.session.add(package)
    db.session.flush()

    if is_admin(actor_role):
        _admit_locked(member, package, actor_id=actor_id)
    else:
        logger.info("Package %s for member %s awaiting approval", package.id, member.id)
    return package


def _admit_locked(member: Member, package: Package, *, actor_id: str | None) -> None:
    """PENDING -> APPROVED: grant credits, move the window, count the commission."""
    package.approval_status = APPROVAL_APPROVED
    package.approved_at = utcnow()
    db.session.flush()

    credit_service.grant(
        member.id,
        package.session_count,
        package_id=package.id,
        actor_id=actor_id,
        reason=f"Package #{package.sequence_number} approved",
    )

    current = _latest_approved(member.id)
    if current is not None and current.id == package.id:
        _point_at(member, package)

    aggregate_service.reconcile(
        member.coach_id,
        aggregate_service.package_company_cut(package),
        reason=aggregate_service.REASON_APPROVE,
        package_id=package.id,
        member_id=member.id,
    )
    logger.info("Package %s approved for member %s", package.id, member.id)


def create_package(
    coach_id: int,
    member_id: int,
    *,
    price_cents: int,
    session_count: int,
    duration_days: int,
    rule: CommissionRule | None = None,
    actor_role: str,
    actor_id: str | None = None,
    start_date: date | str | None = None,
    payment_status: str = PAYMENT_PAID,
) -> Package:
    """
    Sell a package to an existing member.

    Admin-created packages are APPROVED immediately; coach-created packages
    wait in PENDING.

    Raises:
        ValidationError: invalid price, counts, rule or dates
        NotFoundError: member not found under this coach
    """
    _validate_role(actor_role)
    rule = _validate_terms(price_cents, session_count, duration_days, rule, payment_status)
    start = parse_date(start_date, "start_date") if start_date is not None else today()

    def _op():
        member = _load_member(coach_id, member_id)
        package = _add_package_locked(
            member,
            price_cents=price_cents,
            session_count=session_count,
            duration_days=duration_days,
            rule=rule,
            start_date=start,
            payment_status=payment_status,
            actor_role=actor_role,
            actor_id=actor_id,
        )
        db.session.commit()
        return package

    return run_with_retry(_op)


def register_member(
    coach_id: int,
    *,
    name: str,
    price_cents: int,
    session_count: int,
    duration_days: int,
    rule: CommissionRule | None = None,
    actor_role: str,
    actor_id: str | None = None,
    phone: str | None = None,
    email: str | None = None,
    start_date: date | str | None = None,
    payment_status: str = PAYMENT_PAID,
) -> tuple[Member, Package]:
    """Register a new client together with their first package."""
    _validate_role(actor_role)
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    rule = _validate_terms(price_cents, session_count, duration_days, rule, payment_status)
    start = parse_date(start_date, "start_date") if start_date is not None else today()

    def _op():
        coach = lock_for_update(db.session.query(Coach).filter_by(id=coach_id)).first()
        if not coach:
            raise NotFoundError(f"Coach {coach_id} not found")
        if not coach.is_active:
            raise ConflictError(f"Coach {coach_id} is not active")

        member = Member(
            coach_id=coach_id,
            name=name.strip(),
            phone=phone,
            email=email,
            remaining_credits=0,
            total_packages_count=0,
            next_package_sequence=1,
        )
        db.session.add(member)
        db.session.flush()
        aggregate_service.adjust_member_count(coach_id, 1)

        package = _add_package_locked(
            member,
            price_cents=price_cents,
            session_count=session_count,
            duration_days=duration_days,
            rule=rule,
            start_date=start,
            payment_status=payment_status,
            actor_role=actor_role,
            actor_id=actor_id,
        )
        db.session.commit()
        return member, package

    return run_with_retry(_op)


# =============================================================================
# APPROVAL
# =============================================================================

def approve_package(
    coach_id: int,
    member_id: int,
    package_id: int,
    *,
    actor_role: str,
    actor_id: str | None = None,
) -> Package:
    """
    Admit a PENDING package into the ledger and the coach aggregate.

    Raises:
        PermissionDenied: actor is not an admin
        AlreadyApproved: package is already APPROVED
    """
    require_admin(actor_role, "approve packages")

    def _op():
        member = _load_member(coach_id, member_id)
        package = _load_package(member, package_id)
        if package.approval_status == APPROVAL_APPROVED:
            raise AlreadyApproved(f"Package {package_id} is already approved")

        _admit_locked(member, package, actor_id=actor_id)
        db.session.commit()
        return package

    return run_with_retry(_op)


# =============================================================================
# EDIT
# =============================================================================

def _normalize_changes(changes: dict) -> dict:
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields not editable: {sorted(unknown)}")
    normalized = dict(changes)
    if "start_date" in normalized:
        normalized["start_date"] = parse_date(normalized["start_date"], "start_date")
    if "rule" in normalized:
        normalized["rule"] = commission_service.validate_rule(normalized["rule"])
    return normalized


def edit_package(
    coach_id: int,
    member_id: int,
    package_id: int,
    changes: dict,
    *,
    actor_role: str,
    actor_id: str | None = None,
) -> Package:
    """
    Change the terms of a package.

    For an APPROVED package (admin-only) the commission difference is
    reconciled and the member balance becomes
    max(0, new_sessions - (old_sessions - remaining)).
    """
    _validate_role(actor_role)
    changes = _normalize_changes(changes or {})

    def _op():
        member = _load_member(coach_id, member_id)
        package = _load_package(member, package_id)
        if package.is_approved and not is_admin(actor_role):
            raise PermissionDenied("Only an admin may edit an approved package")

        old_rule = _rule_of(package)
        old_sessions = package.session_count
        old_cut = commission_service.company_cut(package.price_cents, old_rule, old_sessions)

        price_cents = changes.get("price_cents", package.price_cents)
        session_count = changes.get("session_count", package.session_count)
        duration_days = changes.get("duration_days", package.duration_days)
        start = changes.get("start_date", package.start_date)
        payment_status = changes.get("payment_status", package.payment_status)
        rule = changes.get("rule", old_rule)
        rule = _validate_terms(price_cents, session_count, duration_days, rule, payment_status)

        commission_type, commission_value = commission_service.rule_to_fields(rule)
        package.price_cents = price_cents
        package.session_count = session_count
        package.duration_days = duration_days
        package.start_date = start
        package.end_date = package_end_date(start, duration_days)
        package.payment_status = payment_status
        package.commission_type = commission_type
        package.commission_value = commission_value
        db.session.flush()

        if package.is_approved:
            new_cut = commission_service.company_cut(price_cents, rule, session_count)
            aggregate_service.reconcile(
                coach_id,
                new_cut - old_cut,
                reason=aggregate_service.REASON_EDIT,
                package_id=package.id,
                member_id=member.id,
            )

            consumed = old_sessions - member.remaining_credits
            new_remaining = max(0, session_count - consumed)
            credit_service.adjust(
                member.id,
                new_remaining,
                package_id=package.id,
                actor_id=actor_id,
                reason=f"Package #{package.sequence_number} edited",
            )

            if member.current_package_id == package.id:
                _point_at(member, package)

        db.session.commit()
        logger.info("Package %s edited (%s)", package.id, ", ".join(sorted(changes)))
        return package

    return run_with_retry(_op)


# =============================================================================
# DELETE
# =============================================================================

def _remove_member_locked(member: Member) -> None:
    """Cascade removal once a member has no packages left."""
    bookings = db.session.query(EventParticipant).filter_by(member_id=member.id).all()
    for participant in bookings:
        db.session.delete(participant)
    aggregate_service.adjust_member_count(member.coach_id, -1)
    db.session.delete(member)
    db.session.flush()
    logger.info("Member %s removed with their last package", member.id)


def delete_package(
    coach_id: int,
    member_id: int,
    package_id: int,
    *,
    actor_role: str,
    actor_id: str | None = None,
) -> dict:
    """
    Delete (or reject) a package.

    APPROVED packages (admin-only) have their company cut reconciled out.
    Deleting the member's last package deletes the member. Deleting the
    current package falls back to the next most recent APPROVED one.

    Returns:
        {"package_id", "member_id", "member_deleted", "current_package_id"}
    """
    _validate_role(actor_role)

    def _op():
        member = _load_member(coach_id, member_id)
        package = _load_package(member, package_id)
        if package.is_approved and not is_admin(actor_role):
            raise PermissionDenied("Only an admin may delete an approved package")

        was_current = member.current_package_id == package.id
        if package.is_approved:
            aggregate_service.reconcile(
                coach_id,
                -aggregate_service.package_company_cut(package),
                reason=aggregate_service.REASON_DELETE,
                package_id=package.id,
                member_id=member.id,
            )

        member.total_packages_count -= 1
        member.packages.remove(package)
        db.session.flush()

        result = {
            "package_id": package_id,
            "member_id": member_id,
            "member_deleted": False,
            "current_package_id": member.current_package_id,
        }

        if not member.packages:
            _remove_member_locked(member)
            result["member_deleted"] = True
            result["current_package_id"] = None
        elif was_current:
            fallback = _latest_approved(member.id)
            _point_at(member, fallback)
            credit_service.adjust(
                member.id,
                fallback.session_count if fallback else 0,
                package_id=fallback.id if fallback else None,
                actor_id=actor_id,
                reason=f"Package #{package.sequence_number} deleted",
            )
            result["current_package_id"] = member.current_package_id

        db.session.commit()
        logger.info("Package %s deleted (member_deleted=%s)", package_id, result["member_deleted"])
        return result

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def package_summary(package: Package) -> dict:
    rule = _rule_of(package)
    data = package.to_dict()
    data["commission"] = commission_service.rule_to_dict(rule)
    data["split"] = commission_service.split(package.price_cents, rule, package.session_count).to_dict()
    return data


def get_package_history(coach_id: int, member_id: int) -> list[Package]:
    member = db.session.query(Member).filter_by(id=member_id, coach_id=coach_id).first()
    if not member:
        raise NotFoundError(f"Member {member_id} not found for coach {coach_id}")
    return (
        db.session.query(Package)
        .filter_by(member_id=member_id)
        .order_by(Package.sequence_number.desc())
        .all()
    )


def list_pending_approvals(coach_id: int | None = None) -> list[dict]:
    """Admin approval queue, oldest first."""
    query = (
        db.session.query(Package, Member, Coach)
        .join(Member, Package.member_id == Member.id)
        .join(Coach, Package.coach_id == Coach.id)
        .filter(Package.approval_status == APPROVAL_PENDING)
    )
    if coach_id is not None:
        query = query.filter(Package.coach_id == coach_id)

    approvals = []
    for package, member, coach in query.order_by(Package.id).all():
        item = package_summary(package)
        item["member_name"] = member.name
        item["coach_name"] = coach.name
        approvals.append(item)
    return approvals
