from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, iso_date, hhmm


EVENT_PERSONAL = "PERSONAL"
EVENT_GROUP = "GROUP"
EVENT_KINDS = (EVENT_PERSONAL, EVENT_GROUP)

PARTICIPANT_MEMBER = "MEMBER"
PARTICIPANT_GUEST = "GUEST"

OPERATION_ADD = "ADD"
OPERATION_REMOVE = "REMOVE"


class Event(db.Model):
    """
    A scheduled session slot owned by a coach.

    len(participants) <= quota at all times. PERSONAL events have quota 1.
    Cancelling deletes the row; an empty GROUP event stays bookable.
    """
    __tablename__ = "events"
    __table_args__ = (
        db.UniqueConstraint("coach_id", "request_id", name="uq_events_coach_request"),
        db.Index("ix_events_coach_date", "coach_id", "date"),
        db.CheckConstraint("quota >= 1", name="ck_events_quota_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    coach_id = db.Column(db.Integer, db.ForeignKey("coaches.id"), nullable=False, index=True)
    kind = db.Column(db.String(16), nullable=False)
    title = db.Column(db.String(160), nullable=True)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)
    quota = db.Column(db.Integer, nullable=False, default=1)
    request_id = db.Column(db.String(64), nullable=True)

    is_completed = db.Column(db.Boolean, nullable=False, default=False)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    participants = db.relationship(
        "EventParticipant",
        backref="event",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="EventParticipant.position",
    )
    operations = db.relationship(
        "BookingOperation",
        backref="event",
        lazy=True,
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Event id={self.id} kind={self.kind} {len(self.participants)}/{self.quota}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coach_id": self.coach_id,
            "kind": self.kind,
            "title": self.title,
            "date": iso_date(self.date),
            "start_time": hhmm(self.start_time),
            "end_time": hhmm(self.end_time),
            "quota": self.quota,
            "request_id": self.request_id,
            "is_completed": self.is_completed,
            "completed_at": to_utc_z(self.completed_at),
            "participants": [p.to_dict() for p in self.participants],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class EventParticipant(db.Model):
    """
    MEMBER participants hold one debited credit for as long as they are
    booked; GUEST participants never touch a ledger.
    """
    __tablename__ = "event_participants"
    __table_args__ = (
        db.UniqueConstraint("event_id", "participant_key", name="uq_event_participants_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    participant_key = db.Column(db.String(64), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    kind = db.Column(db.String(16), nullable=False)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=True, index=True)
    name = db.Column(db.String(160), nullable=True)
    contact = db.Column(db.String(64), nullable=True)
    credits_charged = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def is_member(self) -> bool:
        return self.kind == PARTICIPANT_MEMBER

    def to_dict(self) -> dict:
        return {
            "participant_id": self.participant_key,
            "kind": self.kind,
            "member_id": self.member_id,
            "name": self.name,
            "contact": self.contact,
            "credits_charged": self.credits_charged,
        }


class BookingOperation(db.Model):
    """
    Idempotency record for participant mutations.

    One row per applied (event, participant_key, ADD|REMOVE); a replay of the
    same request finds the row and is rejected with AlreadyApplied.
    """
    __tablename__ = "booking_operations"
    __table_args__ = (
        db.UniqueConstraint("event_id", "participant_key", "operation", name="uq_booking_operations_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("events.id"), nullable=False, index=True)
    participant_key = db.Column(db.String(64), nullable=False)
    operation = db.Column(db.String(16), nullable=False)
    refunded = db.Column(db.Boolean, nullable=True)
    applied_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_id": self.event_id,
            "participant_id": self.participant_key,
            "operation": self.operation,
            "refunded": self.refunded,
            "applied_at": to_utc_z(self.applied_at),
        }
