# Overview: Actor roles and the coach-vs-admin gating rules.

from __future__ import annotations

from .errors import PermissionDenied


ROLE_ADMIN = "admin"
ROLE_COACH = "coach"

VALID_ROLES = [ROLE_ADMIN, ROLE_COACH]


def is_admin(actor_role: str | None) -> bool:
    return actor_role == ROLE_ADMIN


def require_admin(actor_role: str | None, action: str) -> None:
    if not is_admin(actor_role):
        raise PermissionDenied(f"Only an admin may {action}")


def can_access_coach(actor_role: str | None, actor_id: str | None, coach_id: int) -> bool:
    """Admins see every coach; a coach sees only their own records."""
    if is_admin(actor_role):
        return True
    if actor_role == ROLE_COACH and actor_id is not None:
        return str(actor_id) == str(coach_id)
    return False
