# Overview: Flask API routes for events and participants; parses input and returns JSON responses.

"""
Event & Booking API Routes

- PERSONAL events carry exactly one member; GROUP events carry up to quota
  members and guests.
- Booking a member debits one credit; removal and cancellation require an
  explicit ?refund=true|false.
- participant_id and request_id are caller-supplied idempotency keys;
  replays answer 409 ALREADY_APPLIED instead of charging twice.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import (
    SERVICE_ERRORS,
    error_response,
    require_actor,
    require_coach_scope,
)
from ..errors import ValidationError
from ..services import booking_service
from ..time_utils import today
from ..validation import optional_int, optional_str, parse_bool_arg, require_json_object


events_bp = Blueprint("events", __name__, url_prefix="/api/coaches/<int:coach_id>")


def _participants(data: dict) -> list:
    raw = data.get("participants") or []
    if not isinstance(raw, list):
        raise ValidationError("participants must be a list")
    return [booking_service.parse_participant(item) for item in raw]


# =============================================================================
# EVENT LIFECYCLE
# =============================================================================

@events_bp.post("/events")
@require_actor
@require_coach_scope
def book_event_route(coach_id: int):
    """
    Book an event.

    Request body:
    {
        "kind": "GROUP",
        "date": "2026-03-02",
        "start_time": "18:00",
        "end_time": "19:00",
        "quota": 8,  (GROUP only)
        "title": "Mobility",  (optional)
        "request_id": "c1f0...",  (optional idempotency key)
        "participants": [
            {"type": "MEMBER", "member_id": 3},
            {"type": "GUEST", "name": "Ayse", "contact": "555 0101"}
        ]
    }

    Returns:
        201: event with participants
        400: invalid input
        409: QUOTA_FULL, DUPLICATE_PARTICIPANT, INSUFFICIENT_CREDIT,
             PACKAGE_EXPIRED or ALREADY_APPLIED
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        event = booking_service.book_event(
            coach_id,
            kind=data.get("kind"),
            event_date=data.get("date"),
            start_time=data.get("start_time"),
            end_time=data.get("end_time"),
            quota=optional_int(data, "quota"),
            title=optional_str(data, "title", max_length=120),
            request_id=optional_str(data, "request_id", max_length=64),
            participants=_participants(data),
            actor_id=g.actor_id,
        )
        return jsonify({"event": event.to_dict()}), 201

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to book event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.get("/events")
@require_actor
@require_coach_scope
def list_events_route(coach_id: int):
    """Events of one day (?date=YYYY-MM-DD, defaults to today), by start time."""
    try:
        day = request.args.get("date") or today()
        events = booking_service.list_events_for_day(coach_id, day)
        return jsonify({"events": [e.to_dict() for e in events]}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list events")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.get("/events/<int:event_id>")
@require_actor
@require_coach_scope
def get_event_route(coach_id: int, event_id: int):
    try:
        event = booking_service.get_event(coach_id, event_id)
        return jsonify({"event": event.to_dict()}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.get("/schedule/week")
@require_actor
@require_coach_scope
def week_schedule_route(coach_id: int):
    """Monday-to-Sunday appointment summary for the week containing ?date=."""
    try:
        base = request.args.get("date") or today()
        return jsonify({"days": booking_service.get_week_schedule(coach_id, base)}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build week schedule")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.post("/events/<int:event_id>/complete")
@require_actor
@require_coach_scope
def complete_event_route(coach_id: int, event_id: int):
    try:
        event = booking_service.complete_event(coach_id, event_id)
        return jsonify({"event": event.to_dict()}), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete event")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.delete("/events/<int:event_id>")
@require_actor
@require_coach_scope
def cancel_event_route(coach_id: int, event_id: int):
    """
    Cancel an event.

    Query params:
        refund: true|false (required)
    """
    try:
        refund = parse_bool_arg(request.args.get("refund"), "refund")
        result = booking_service.cancel_event(coach_id, event_id, refund=refund, actor_id=g.actor_id)
        return jsonify(result), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel event")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PARTICIPANTS
# =============================================================================

@events_bp.post("/events/<int:event_id>/participants")
@require_actor
@require_coach_scope
def add_participant_route(coach_id: int, event_id: int):
    """
    Request body: one participant, as in the booking payload.

    Returns:
        201: the new participant and the updated event
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        participant = booking_service.add_participant(
            coach_id,
            event_id,
            booking_service.parse_participant(data),
            actor_id=g.actor_id,
        )
        event = booking_service.get_event(coach_id, event_id)
        return jsonify({
            "participant": participant.to_dict(),
            "event": event.to_dict(),
        }), 201

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add participant")
        return jsonify({"error": "Internal server error"}), 500


@events_bp.delete("/events/<int:event_id>/participants/<participant_id>")
@require_actor
@require_coach_scope
def remove_participant_route(coach_id: int, event_id: int, participant_id: str):
    """
    Query params:
        refund: true|false (required)
    """
    try:
        refund = parse_bool_arg(request.args.get("refund"), "refund")
        result = booking_service.remove_participant(
            coach_id,
            event_id,
            participant_id,
            refund=refund,
            actor_id=g.actor_id,
        )
        return jsonify(result), 200

    except SERVICE_ERRORS as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove participant")
        return jsonify({"error": "Internal server error"}), 500
