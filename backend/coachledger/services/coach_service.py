# Overview: Service-layer operations for coaches and their member rosters.

from __future__ import annotations

import logging

from ..extensions import db
from ..models import Coach, Member
from ..errors import ConflictError, NotFoundError, ValidationError
from . import credit_service, package_service
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


DEFAULT_BRANCH = "Main"


def create_coach(name: str, branch: str | None = None) -> Coach:
    """Create a coach with all aggregates starting at zero."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")

    def _op():
        coach = Coach(
            name=name.strip(),
            branch=(branch or DEFAULT_BRANCH).strip() or DEFAULT_BRANCH,
            is_active=True,
            company_cut_total_cents=0,
            active_member_count=0,
            total_sessions_delivered=0,
        )
        db.session.add(coach)
        db.session.commit()
        logger.info("Created coach %s (%s)", coach.id, coach.name)
        return coach

    return run_with_retry(_op)


def list_coaches(branch: str | None = None, include_inactive: bool = False) -> list[Coach]:
    query = db.session.query(Coach)
    if branch:
        query = query.filter_by(branch=branch)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(Coach.name).all()


def get_coach(coach_id: int) -> Coach:
    coach = db.session.query(Coach).filter_by(id=coach_id).first()
    if not coach:
        raise NotFoundError(f"Coach {coach_id} not found")
    return coach


def delete_coach(coach_id: int) -> Coach:
    """
    Deactivate a coach.

    Refused while the coach still has members or an outstanding commission
    total; members must be moved or removed first.
    """
    def _op():
        coach = lock_for_update(db.session.query(Coach).filter_by(id=coach_id)).first()
        if not coach:
            raise NotFoundError(f"Coach {coach_id} not found")
        if coach.company_cut_total_cents > 0:
            raise ConflictError(
                f"Coach {coach_id} still carries {coach.company_cut_total_cents} cents of commission"
            )
        if coach.active_member_count > 0:
            raise ConflictError(f"Coach {coach_id} still has {coach.active_member_count} member(s)")

        coach.is_active = False
        db.session.commit()
        logger.info("Deactivated coach %s", coach_id)
        return coach

    return run_with_retry(_op)


def list_members(coach_id: int) -> list[Member]:
    get_coach(coach_id)
    return db.session.query(Member).filter_by(coach_id=coach_id).order_by(Member.name).all()


def get_member(coach_id: int, member_id: int) -> Member:
    member = db.session.query(Member).filter_by(id=member_id, coach_id=coach_id).first()
    if not member:
        raise NotFoundError(f"Member {member_id} not found for coach {coach_id}")
    return member


def member_details(coach_id: int, member_id: int, history_limit: int = 50) -> dict:
    """Member profile with package history and recent credit movements."""
    member = get_member(coach_id, member_id)
    return {
        "member": member.to_dict(),
        "packages": [
            package_service.package_summary(p)
            for p in package_service.get_package_history(coach_id, member_id)
        ],
        "credit_history": [
            t.to_dict() for t in credit_service.get_credit_history(member_id, limit=history_limit)
        ],
    }
