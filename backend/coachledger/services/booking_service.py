# Overview: Service-layer operations for scheduled events; books and cancels against quota and member credits.

"""
Booking Engine

LIFECYCLE: created -> participants added/removed -> cancelled (row deleted).
Completion is optional bookkeeping for the coach's delivered-session counter.

RULES:
- PERSONAL events have quota 1 and exactly one MEMBER participant, whose
  credit is debited in the same transaction that creates the event.
- len(participants) <= quota after every call.
- A MEMBER participant is appended only after its debit succeeds; GUEST
  participants never touch a ledger.
- Removing a participant or cancelling an event takes an explicit refund
  decision. refund=False leaves the credit burned.
- Every participant mutation is recorded in booking_operations, keyed by
  (event_id, participant_key, ADD|REMOVE); replays raise AlreadyApplied.
- An empty GROUP event stays a valid, bookable slot.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, time
from typing import Union

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Coach, Event, EventParticipant, BookingOperation, Member
from ..models.scheduling import (
    EVENT_GROUP,
    EVENT_KINDS,
    EVENT_PERSONAL,
    OPERATION_ADD,
    OPERATION_REMOVE,
    PARTICIPANT_GUEST,
    PARTICIPANT_MEMBER,
)
from ..errors import (
    AlreadyApplied,
    ConflictError,
    DuplicateParticipant,
    NotFoundError,
    PackageExpired,
    QuotaFull,
    ValidationError,
)
from ..time_utils import parse_date, parse_time, today, utcnow, week_days
from . import aggregate_service, credit_service
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


CREDITS_PER_BOOKING = 1
MAX_KEY_LENGTH = 64


# =============================================================================
# PARTICIPANT VARIANTS
# =============================================================================

@dataclass(frozen=True)
class MemberParticipant:
    member_id: int
    participant_key: str | None = None


@dataclass(frozen=True)
class GuestParticipant:
    name: str
    contact: str | None = None
    participant_key: str | None = None


Participant = Union[MemberParticipant, GuestParticipant]


def parse_participant(payload) -> Participant:
    """
    Parse API input into a participant.

    {"type": "MEMBER", "member_id": 3, "participant_id": "optional-key"}
    {"type": "GUEST", "name": "Ayse", "contact": "555 0101"}
    """
    if not isinstance(payload, dict):
        raise ValidationError("participant must be an object")
    kind = str(payload.get("type", PARTICIPANT_MEMBER)).strip().upper()
    key = payload.get("participant_id")
    if kind == PARTICIPANT_MEMBER:
        member_id = payload.get("member_id")
        if isinstance(member_id, bool) or not isinstance(member_id, int):
            raise ValidationError("member_id must be an integer")
        return MemberParticipant(member_id=member_id, participant_key=key)
    if kind == PARTICIPANT_GUEST:
        return GuestParticipant(name=payload.get("name"), contact=payload.get("contact"), participant_key=key)
    raise ValidationError(f"Invalid participant type: {kind}")


def _validate_key(key, field: str) -> None:
    if key is not None and (not isinstance(key, str) or not key.strip() or len(key) > MAX_KEY_LENGTH):
        raise ValidationError(f"{field} must be a non-empty string of at most {MAX_KEY_LENGTH} characters")


def _validate_participant(participant: Participant) -> None:
    _validate_key(participant.participant_key, "participant_id")
    if isinstance(participant, MemberParticipant):
        if isinstance(participant.member_id, bool) or not isinstance(participant.member_id, int):
            raise ValidationError("member_id must be an integer")
        return
    if isinstance(participant, GuestParticipant):
        if not isinstance(participant.name, str) or not participant.name.strip():
            raise ValidationError("Guest participants need a name")
        return
    raise ValidationError(f"Unknown participant: {participant!r}")


def _key_for(participant: Participant) -> str:
    if participant.participant_key:
        return participant.participant_key.strip()
    return uuid.uuid4().hex


# =============================================================================
# LOOKUPS
# =============================================================================

def _load_event(coach_id: int, event_id: int) -> Event:
    event = lock_for_update(db.session.query(Event).filter_by(id=event_id)).first()
    if not event or event.coach_id != coach_id:
        raise NotFoundError(f"Event {event_id} not found for coach {coach_id}")
    return event


def _load_member(coach_id: int, member_id: int) -> Member:
    member = db.session.query(Member).filter_by(id=member_id).first()
    if not member or member.coach_id != coach_id:
        raise NotFoundError(f"Member {member_id} not found for coach {coach_id}")
    return member


def _operation_applied(event_id: int, participant_key: str, operation: str) -> bool:
    return db.session.query(BookingOperation.id).filter_by(
        event_id=event_id,
        participant_key=participant_key,
        operation=operation,
    ).first() is not None


def _touch(event: Event) -> None:
    # Forces an UPDATE so the version column catches concurrent participant writes
    event.updated_at = utcnow()


def _check_package_window(member: Member, event_date: date) -> None:
    if not current_app.config.get("BOOKING_ENFORCE_PACKAGE_WINDOW", True):
        return
    if member.package_end_date is None:
        raise PackageExpired(f"Member {member.id} has no approved package")
    if event_date > member.package_end_date:
        raise PackageExpired(
            f"Member {member.id} package ended on {member.package_end_date.isoformat()}"
        )


def _already_applied_on_conflict(op, what: str):
    """Report a unique-key clash from any flush or the commit as AlreadyApplied."""
    def _run():
        try:
            return op()
        except IntegrityError:
            db.session.rollback()
            raise AlreadyApplied(f"{what} was already applied")
    return _run


# =============================================================================
# PARTICIPANT MUTATION (caller holds the event lock)
# =============================================================================

def _append_locked(event: Event, participant: Participant, *, actor_id: str | None) -> EventParticipant:
    if event.kind == EVENT_PERSONAL and not isinstance(participant, MemberParticipant):
        raise ValidationError(f"Personal event {event.id} only takes member participants")
    key = _key_for(participant)

    if _operation_applied(event.id, key, OPERATION_ADD):
        raise AlreadyApplied(f"Participant {key} was already added to event {event.id}")
    if len(event.participants) >= event.quota:
        raise QuotaFull(f"Event {event.id} is full ({event.quota}/{event.quota})")

    entry = EventParticipant(
        event_id=event.id,
        participant_key=key,
        position=max((p.position for p in event.participants), default=-1) + 1,
    )

    if isinstance(participant, MemberParticipant):
        if any(p.member_id == participant.member_id for p in event.participants):
            raise DuplicateParticipant(
                f"Member {participant.member_id} is already booked on event {event.id}"
            )
        member = _load_member(event.coach_id, participant.member_id)
        _check_package_window(member, event.date)
        credit_service.debit(
            member.id,
            CREDITS_PER_BOOKING,
            event_id=event.id,
            participant_key=key,
            actor_id=actor_id,
        )
        entry.kind = PARTICIPANT_MEMBER
        entry.member_id = member.id
        entry.name = member.name
        entry.contact = member.phone
        entry.credits_charged = CREDITS_PER_BOOKING
    else:
        entry.kind = PARTICIPANT_GUEST
        entry.name = participant.name.strip()
        entry.contact = participant.contact
        entry.credits_charged = 0

    event.participants.append(entry)
    db.session.add(BookingOperation(event_id=event.id, participant_key=key, operation=OPERATION_ADD))
    _touch(event)
    db.session.flush()
    return entry


def _release_locked(event: Event, entry: EventParticipant, *, refund: bool, actor_id: str | None) -> bool:
    """Returns True when credits went back to the member."""
    refunded = False
    if entry.is_member and entry.member_id is not None and refund and entry.credits_charged:
        credit_service.refund(
            entry.member_id,
            entry.credits_charged,
            event_id=event.id,
            participant_key=entry.participant_key,
            actor_id=actor_id,
        )
        refunded = True
    return refunded


# =============================================================================
# OPERATIONS
# =============================================================================

def book_event(
    coach_id: int,
    *,
    kind: str,
    event_date: date | str,
    start_time: time | str,
    end_time: time | str,
    participants: list[Participant] | None = None,
    quota: int | None = None,
    title: str | None = None,
    request_id: str | None = None,
    actor_id: str | None = None,
) -> Event:
    """
    Create an event and debit every MEMBER participant in one transaction.

    Raises:
        ValidationError: bad kind, dates, times, quota, request_id or participant list
        QuotaFull: more initial participants than quota
        DuplicateParticipant: the same member listed twice
        InsufficientCredit / PackageExpired: a member cannot be booked
        AlreadyApplied: request_id already produced an event
    """
    kind = str(kind or "").strip().upper()
    if kind not in EVENT_KINDS:
        raise ValidationError(f"Invalid event kind: {kind}. Must be one of {list(EVENT_KINDS)}")
    on_date = parse_date(event_date, "date")
    start = parse_time(start_time, "start_time")
    end = parse_time(end_time, "end_time")
    if end <= start:
        raise ValidationError("end_time must be after start_time")
    _validate_key(request_id, "request_id")

    participants = list(participants or [])
    for participant in participants:
        _validate_participant(participant)

    if kind == EVENT_PERSONAL:
        quota = 1
        if len(participants) != 1 or not isinstance(participants[0], MemberParticipant):
            raise ValidationError("A personal event needs exactly one member participant")
    else:
        if isinstance(quota, bool) or not isinstance(quota, int) or quota < 1:
            raise ValidationError("quota must be an integer of at least 1")
        if len(participants) > quota:
            raise QuotaFull(f"{len(participants)} participants exceed quota {quota}")

    member_ids = [p.member_id for p in participants if isinstance(p, MemberParticipant)]
    if len(member_ids) != len(set(member_ids)):
        raise DuplicateParticipant("The same member is listed more than once")
    keys = [p.participant_key for p in participants if p.participant_key]
    if len(keys) != len(set(keys)):
        raise ValidationError("participant_id values must be unique within an event")

    def _op():
        coach = db.session.query(Coach).filter_by(id=coach_id).first()
        if not coach:
            raise NotFoundError(f"Coach {coach_id} not found")
        if not coach.is_active:
            raise ConflictError(f"Coach {coach_id} is not active")

        if request_id is not None:
            existing = db.session.query(Event.id).filter_by(coach_id=coach_id, request_id=request_id).first()
            if existing:
                raise AlreadyApplied(f"Booking request {request_id} already created event {existing.id}")

        event = Event(
            coach_id=coach_id,
            kind=kind,
            title=title,
            date=on_date,
            start_time=start,
            end_time=end,
            quota=quota,
            request_id=request_id,
        )
        db.session.add(event)
        db.session.flush()

        for participant in participants:
            _append_locked(event, participant, actor_id=actor_id)

        db.session.commit()
        logger.info(
            "Booked %s event %s for coach %s with %d participant(s)",
            kind, event.id, coach_id, len(participants),
        )
        return event

    return run_with_retry(_already_applied_on_conflict(_op, f"Booking request {request_id}"))


def add_participant(
    coach_id: int,
    event_id: int,
    participant: Participant,
    *,
    actor_id: str | None = None,
) -> EventParticipant:
    """
    Add one participant to an existing event.

    Raises:
        ValidationError: a guest on a personal event
        AlreadyApplied: this participant_id was already added to the event
        QuotaFull: event is at quota
        DuplicateParticipant: member already booked on this event
        InsufficientCredit / PackageExpired: member cannot be booked
    """
    _validate_participant(participant)

    def _op():
        event = _load_event(coach_id, event_id)
        entry = _append_locked(event, participant, actor_id=actor_id)
        db.session.commit()
        logger.info("Added %s participant %s to event %s", entry.kind, entry.participant_key, event_id)
        return entry

    return run_with_retry(_already_applied_on_conflict(_op, f"Adding participant to event {event_id}"))


def remove_participant(
    coach_id: int,
    event_id: int,
    participant_key: str,
    *,
    refund: bool,
    actor_id: str | None = None,
) -> dict:
    """
    Remove one participant.

    refund has no default: True returns the member's credit, False burns it.

    Raises:
        AlreadyApplied: this participant was already removed
        NotFoundError: no such participant on the event
    """
    if not isinstance(refund, bool):
        raise ValidationError("refund must be explicitly true or false")

    def _op():
        event = _load_event(coach_id, event_id)
        if _operation_applied(event.id, participant_key, OPERATION_REMOVE):
            raise AlreadyApplied(f"Participant {participant_key} was already removed from event {event_id}")

        entry = next((p for p in event.participants if p.participant_key == participant_key), None)
        if entry is None:
            raise NotFoundError(f"Participant {participant_key} not found on event {event_id}")

        member_id = entry.member_id
        refunded = _release_locked(event, entry, refund=refund, actor_id=actor_id)
        event.participants.remove(entry)
        db.session.add(BookingOperation(
            event_id=event.id,
            participant_key=participant_key,
            operation=OPERATION_REMOVE,
            refunded=refunded,
        ))
        _touch(event)
        db.session.commit()

        logger.info(
            "Removed participant %s from event %s (refunded=%s)",
            participant_key, event_id, refunded,
        )
        return {
            "event": event.to_dict(),
            "participant_id": participant_key,
            "member_id": member_id,
            "refunded": refunded,
        }

    return run_with_retry(_already_applied_on_conflict(_op, f"Removing participant {participant_key}"))


def cancel_event(
    coach_id: int,
    event_id: int,
    *,
    refund: bool,
    actor_id: str | None = None,
) -> dict:
    """
    Cancel an event, applying the refund decision to every MEMBER participant.

    The event row and its participants are deleted.
    """
    if not isinstance(refund, bool):
        raise ValidationError("refund must be explicitly true or false")

    def _op():
        event = _load_event(coach_id, event_id)

        refunded_members = []
        burned_members = []
        for entry in list(event.participants):
            if not entry.is_member:
                continue
            if _release_locked(event, entry, refund=refund, actor_id=actor_id):
                refunded_members.append(entry.member_id)
            else:
                burned_members.append(entry.member_id)

        if event.is_completed:
            aggregate_service.adjust_sessions_delivered(coach_id, -1)

        db.session.delete(event)
        db.session.commit()

        logger.info(
            "Cancelled event %s (refunded=%s, burned=%s)",
            event_id, refunded_members, burned_members,
        )
        return {
            "event_id": event_id,
            "refunded_member_ids": refunded_members,
            "burned_member_ids": burned_members,
        }

    return run_with_retry(_op)


def complete_event(coach_id: int, event_id: int) -> Event:
    """Mark an event delivered and count it once on the coach."""
    def _op():
        event = _load_event(coach_id, event_id)
        if event.is_completed:
            raise AlreadyApplied(f"Event {event_id} is already completed")
        event.is_completed = True
        event.completed_at = utcnow()
        aggregate_service.adjust_sessions_delivered(coach_id, 1)
        db.session.commit()
        return event

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_event(coach_id: int, event_id: int) -> Event:
    event = db.session.query(Event).filter_by(id=event_id, coach_id=coach_id).first()
    if not event:
        raise NotFoundError(f"Event {event_id} not found for coach {coach_id}")
    return event


def list_events_for_day(coach_id: int, day: date | str) -> list[Event]:
    day = parse_date(day, "date")
    return (
        db.session.query(Event)
        .filter_by(coach_id=coach_id, date=day)
        .order_by(Event.start_time, Event.id)
        .all()
    )


def _appointment_label(event: Event) -> str:
    if event.kind == EVENT_GROUP:
        return f"{event.title or 'Group'} ({len(event.participants)}/{event.quota})"
    if event.participants:
        return event.participants[0].name or event.title or "Personal"
    return event.title or "Personal"


def get_week_schedule(coach_id: int, base_date: date | str) -> list[dict]:
    """Monday-to-Sunday summary of a coach's events around base_date."""
    days = week_days(parse_date(base_date, "date"))
    events = (
        db.session.query(Event)
        .filter(Event.coach_id == coach_id, Event.date >= days[0], Event.date <= days[-1])
        .order_by(Event.date, Event.start_time)
        .all()
    )

    by_day: dict[date, list[dict]] = {d: [] for d in days}
    for event in events:
        by_day[event.date].append({
            "event_id": event.id,
            "time": event.start_time.strftime("%H:%M"),
            "label": _appointment_label(event),
            "kind": event.kind,
        })

    current = today()
    return [
        {
            "date": d.isoformat(),
            "weekday": d.strftime("%a"),
            "is_today": d == current,
            "appointments": by_day[d],
        }
        for d in days
    ]
