# Overview: Request actor and role decorators for API routes.

"""
Actor identity comes from the external auth layer in two headers:

- X-Actor-Role: "admin" or "coach"
- X-Actor-Id: the actor's id (for coaches, their coach id)

Routes rely on g.actor_role / g.actor_id; services receive them explicitly.
"""

from functools import wraps
from flask import request, jsonify, g

from .errors import (
    ConflictError,
    ConsistencyError,
    NotFoundError,
    PermissionDenied,
    ValidationError,
)
from .permissions import VALID_ROLES, can_access_coach, is_admin


SERVICE_ERRORS = (ValidationError, NotFoundError, PermissionDenied, ConflictError, ConsistencyError)


def error_response(exc: Exception):
    """Map a service exception to a JSON error response."""
    if isinstance(exc, ValidationError):
        status = 400
    elif isinstance(exc, PermissionDenied):
        status = 403
    elif isinstance(exc, NotFoundError):
        status = 404
    elif isinstance(exc, ConflictError):
        status = 409
    else:
        status = 500
    return jsonify({"error": str(exc), "code": getattr(exc, "code", "ERROR")}), status


def _has_actor() -> bool:
    return hasattr(g, "actor_role")


def require_actor(f):
    """
    Establish the calling actor.

    Returns 401 if the role header is missing or not a known role, or if a
    coach does not identify themselves.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        role = (request.headers.get("X-Actor-Role") or "").strip().lower()
        actor_id = (request.headers.get("X-Actor-Id") or "").strip() or None

        if role not in VALID_ROLES:
            return jsonify({"error": "Authentication required"}), 401
        if not is_admin(role) and actor_id is None:
            return jsonify({"error": "Coach actors must send X-Actor-Id"}), 401

        g.actor_role = role
        g.actor_id = actor_id
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require the admin role. Must follow @require_actor."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _has_actor():
            return jsonify({"error": "Authentication required"}), 401
        if not is_admin(g.actor_role):
            return jsonify({
                "error": "Permission denied",
                "code": PermissionDenied.code,
                "message": "Admin role required",
            }), 403
        return f(*args, **kwargs)

    return decorated_function


def require_coach_scope(f):
    """
    Restrict coach actors to their own coach_id route parameter.
    Must follow @require_actor.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _has_actor():
            return jsonify({"error": "Authentication required"}), 401
        coach_id = kwargs.get("coach_id")
        if coach_id is not None and not can_access_coach(g.actor_role, g.actor_id, coach_id):
            return jsonify({
                "error": "Permission denied",
                "code": PermissionDenied.code,
                "message": "Coaches may only access their own records",
            }), 403
        return f(*args, **kwargs)

    return decorated_function
