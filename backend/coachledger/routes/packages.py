# Overview: Flask API routes for packages and the approval queue; parses input and returns JSON responses.

"""
Package API Routes

APPROVAL:
- A package created by a coach waits in PENDING until an admin approves it.
- Only admins approve, and only admins edit or delete APPROVED packages.
- Deleting a PENDING package is how a request is rejected.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import (
    SERVICE_ERRORS,
    error_response,
    require_actor,
    require_admin,
    require_coach_scope,
)
from ..errors import ValidationError
from ..services import commission_service, package_service
from ..validation import (
    MAX_PRICE_CENTS,
    coerce_int,
    optional_int,
    require_int,
    require_json_object,
    require_price_cents,
)


packages_bp = Blueprint(
    "packages", __name__, url_prefix="/api/coaches/<int:coach_id>/members/<int:member_id>/packages"
)
approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")


def _edit_changes(data: dict) -> dict:
    """Translate an edit payload into package_service field changes."""
    changes = {}
    for field in ("session_count", "duration_days"):
        if field in data:
            changes[field] = coerce_int(data[field], field)
    if "price_cents" in data:
        changes["price_cents"] = coerce_int(data["price_cents"], "price_cents")
        if changes["price_cents"] > MAX_PRICE_CENTS:
            raise ValidationError(f"price_cents exceeds the maximum of {MAX_PRICE_CENTS}")
    if "start_date" in data:
        changes["start_date"] = data["start_date"]
    if "payment_status" in data:
        changes["payment_status"] = data["payment_status"]
    if "commission" in data:
        changes["rule"] = commission_service.parse_rule(data["commission"])

    unknown = set(data) - {"price_cents", "session_count", "duration_days", "start_date", "payment_status", "commission"}
    if unknown:
        raise ValidationError(f"Fields not editable: {sorted(unknown)}")
    if not changes:
        raise ValidationError("No changes supplied")
    return changes


# =============================================================================
# PACKAGE LIFECYCLE
# =============================================================================

@packages_bp.post("")
@require_actor
@require_coach_scope
def create_package_route(coach_id: int, member_id: int):
    """
    Sell a new package to an existing member.

    Request body:
    {
        "price_cents": 500000,
        "session_count": 10,
        "duration_days": 30,
        "start_date": "2026-03-01",  (optional)
        "payment_status": "PAID",  (optional)
        "commission": {"type": "FLAT_PER_SESSION", "amount_cents": 2000}  (optional)
    }

    Returns:
        201: package (APPROVED for admins, PENDING for coaches)
        400: invalid input
        404: member not found under this coach
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        package = package_service.create_package(
            coach_id,
            member_id,
            price_cents=require_price_cents(data),
            session_count=require_int(data, "session_count"),
            duration_days=require_int(data, "duration_days"),
            start_date=data.get("start_date"),
            payment_status=data.get("payment_status", "PAID"),
            rule=commission_service.parse_rule(data.get("commission")),
            actor_role=g.actor_role,
            actor_id=g.actor_id,
        )
        return jsonify({"package": package_service.package_summary(package)}), 201

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create package")
        return jsonify({"error": "Internal server error"}), 500


@packages_bp.patch("/<int:package_id>")
@require_actor
@require_coach_scope
def edit_package_route(coach_id: int, member_id: int, package_id: int):
    """
    Edit package terms. Any subset of the create fields may be sent.

    Returns:
        200: updated package
        403: coach editing an APPROVED package
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        package = package_service.edit_package(
            coach_id,
            member_id,
            package_id,
            _edit_changes(data),
            actor_role=g.actor_role,
            actor_id=g.actor_id,
        )
        return jsonify({"package": package_service.package_summary(package)}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to edit package")
        return jsonify({"error": "Internal server error"}), 500


@packages_bp.delete("/<int:package_id>")
@require_actor
@require_coach_scope
def delete_package_route(coach_id: int, member_id: int, package_id: int):
    """
    Delete a package. Removing the member's last package removes the member.

    Returns:
        200: {"package_id", "member_id", "member_deleted", "current_package_id"}
        403: coach deleting an APPROVED package
    """
    try:
        result = package_service.delete_package(
            coach_id,
            member_id,
            package_id,
            actor_role=g.actor_role,
            actor_id=g.actor_id,
        )
        return jsonify(result), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete package")
        return jsonify({"error": "Internal server error"}), 500


@packages_bp.post("/<int:package_id>/approve")
@require_actor
@require_admin
def approve_package_route(coach_id: int, member_id: int, package_id: int):
    """
    Approve a PENDING package.

    Returns:
        200: approved package
        409: already approved
    """
    try:
        package = package_service.approve_package(
            coach_id,
            member_id,
            package_id,
            actor_role=g.actor_role,
            actor_id=g.actor_id,
        )
        return jsonify({"package": package_service.package_summary(package)}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to approve package")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# APPROVAL QUEUE
# =============================================================================

@approvals_bp.get("")
@require_actor
@require_admin
def list_approvals_route():
    """Pending packages across all coaches, or one coach with ?coach_id=."""
    try:
        coach_id = optional_int(request.args, "coach_id")
        approvals = package_service.list_pending_approvals(coach_id=coach_id)
        return jsonify({"approvals": approvals, "count": len(approvals)}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list pending approvals")
        return jsonify({"error": "Internal server error"}), 500
