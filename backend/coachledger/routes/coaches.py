# Overview: Flask API routes for coaches and their members; parses input and returns JSON responses.

"""
Coach & Member API Routes

- Coaches are created and deleted by admins; deletion is refused while the
  coach still carries members or commission.
- Members are registered together with their first package. Who registers
  decides whether that package starts PENDING (coach) or APPROVED (admin).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import (
    SERVICE_ERRORS,
    error_response,
    require_actor,
    require_admin,
    require_coach_scope,
)
from ..permissions import is_admin
from ..services import aggregate_service, coach_service, commission_service, package_service
from ..validation import (
    optional_str,
    require_int,
    require_json_object,
    require_price_cents,
)


coaches_bp = Blueprint("coaches", __name__, url_prefix="/api/coaches")


# =============================================================================
# COACHES
# =============================================================================

@coaches_bp.post("")
@require_actor
@require_admin
def create_coach_route():
    """
    Request body:
    {
        "name": "Deniz",
        "branch": "Kadikoy"  (optional)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        coach = coach_service.create_coach(
            name=data.get("name"),
            branch=optional_str(data, "branch", max_length=64),
        )
        return jsonify({"coach": coach.to_dict()}), 201

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create coach")
        return jsonify({"error": "Internal server error"}), 500


@coaches_bp.get("")
@require_actor
def list_coaches_route():
    """Admins see every coach; a coach sees only themselves."""
    try:
        coaches = coach_service.list_coaches(branch=request.args.get("branch"))
        if not is_admin(g.actor_role):
            coaches = [c for c in coaches if str(c.id) == str(g.actor_id)]
        return jsonify({"coaches": [c.to_dict() for c in coaches]}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list coaches")
        return jsonify({"error": "Internal server error"}), 500


@coaches_bp.get("/<int:coach_id>")
@require_actor
@require_coach_scope
def get_coach_route(coach_id: int):
    try:
        coach = coach_service.get_coach(coach_id)
        return jsonify({"coach": coach.to_dict()}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get coach")
        return jsonify({"error": "Internal server error"}), 500


@coaches_bp.delete("/<int:coach_id>")
@require_actor
@require_admin
def delete_coach_route(coach_id: int):
    try:
        coach = coach_service.delete_coach(coach_id)
        return jsonify({"coach": coach.to_dict()}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete coach")
        return jsonify({"error": "Internal server error"}), 500


@coaches_bp.get("/<int:coach_id>/aggregate/verify")
@require_actor
@require_admin
def verify_aggregate_route(coach_id: int):
    """
    Compare the stored commission total with the sum over APPROVED packages.

    Returns:
        200: report, "consistent" false when drift was found
        404: coach not found
    """
    try:
        report = aggregate_service.verify_coach_aggregate(coach_id)
        return jsonify(report), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify coach aggregate")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# MEMBERS
# =============================================================================

@coaches_bp.post("/<int:coach_id>/members")
@require_actor
@require_coach_scope
def register_member_route(coach_id: int):
    """
    Register a member with their first package.

    Request body:
    {
        "name": "Mert",
        "phone": "555 0101",  (optional)
        "email": "mert@example.com",  (optional)
        "price_cents": 500000,
        "session_count": 10,
        "duration_days": 30,
        "start_date": "2026-03-01",  (optional, defaults to today)
        "payment_status": "PAID",  (optional)
        "commission": {"type": "PERCENT_OF_PRICE", "percent": 40}  (optional)
    }

    Returns:
        201: member and package
        400: invalid input
        403: coach addressing another coach
        404: coach not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        member, package = package_service.register_member(
            coach_id,
            name=data.get("name"),
            phone=optional_str(data, "phone", max_length=32),
            email=optional_str(data, "email"),
            price_cents=require_price_cents(data),
            session_count=require_int(data, "session_count"),
            duration_days=require_int(data, "duration_days"),
            start_date=data.get("start_date"),
            payment_status=data.get("payment_status", "PAID"),
            rule=commission_service.parse_rule(data.get("commission")),
            actor_role=g.actor_role,
            actor_id=g.actor_id,
        )
        return jsonify({
            "member": member.to_dict(),
            "package": package_service.package_summary(package),
        }), 201

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register member")
        return jsonify({"error": "Internal server error"}), 500


@coaches_bp.get("/<int:coach_id>/members")
@require_actor
@require_coach_scope
def list_members_route(coach_id: int):
    try:
        members = coach_service.list_members(coach_id)
        return jsonify({"members": [m.to_dict() for m in members]}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list members")
        return jsonify({"error": "Internal server error"}), 500


@coaches_bp.get("/<int:coach_id>/members/<int:member_id>")
@require_actor
@require_coach_scope
def member_details_route(coach_id: int, member_id: int):
    """Member profile, package history (newest first) and credit movements."""
    try:
        return jsonify(coach_service.member_details(coach_id, member_id)), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get member details")
        return jsonify({"error": "Internal server error"}), 500
