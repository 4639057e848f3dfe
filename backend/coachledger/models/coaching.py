from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, iso_date


APPROVAL_PENDING = "PENDING"
APPROVAL_APPROVED = "APPROVED"
APPROVAL_STATUSES = (APPROVAL_PENDING, APPROVAL_APPROVED)

PAYMENT_PAID = "PAID"
PAYMENT_PENDING = "PENDING"
PAYMENT_STATUSES = (PAYMENT_PAID, PAYMENT_PENDING)


class Coach(db.Model):
    """
    A coach and the denormalized running totals attached to them.

    company_cut_total_cents is only ever changed through
    aggregate_service.reconcile(); it must equal the company cut summed over
    every APPROVED package of this coach's members.
    """
    __tablename__ = "coaches"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    branch = db.Column(db.String(120), nullable=False, default="Main", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Denormalized aggregates
    company_cut_total_cents = db.Column(db.Integer, nullable=False, default=0)
    active_member_count = db.Column(db.Integer, nullable=False, default=0)
    total_sessions_delivered = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Coach id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "branch": self.branch,
            "is_active": self.is_active,
            "company_cut_total_cents": self.company_cut_total_cents,
            "active_member_count": self.active_member_count,
            "total_sessions_delivered": self.total_sessions_delivered,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Member(db.Model):
    """
    One client of a coach.

    remaining_credits is the credit ledger balance and is only written by
    credit_service. current_package_id points at the APPROVED package with
    the highest sequence number (NULL until one exists).
    """
    __tablename__ = "members"
    __table_args__ = (
        db.CheckConstraint("remaining_credits >= 0", name="ck_members_credits_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    coach_id = db.Column(db.Integer, db.ForeignKey("coaches.id"), nullable=False, index=True)
    name = db.Column(db.String(160), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)

    remaining_credits = db.Column(db.Integer, nullable=False, default=0)
    package_start_date = db.Column(db.Date, nullable=True)
    package_end_date = db.Column(db.Date, nullable=True)
    current_package_id = db.Column(db.Integer, nullable=True)
    total_packages_count = db.Column(db.Integer, nullable=False, default=0)
    next_package_sequence = db.Column(db.Integer, nullable=False, default=1)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    coach = db.relationship("Coach", backref=db.backref("members", lazy=True))
    packages = db.relationship(
        "Package",
        backref="member",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Package.sequence_number",
    )
    credit_transactions = db.relationship(
        "CreditTransaction",
        backref="member",
        lazy=True,
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Member id={self.id} coach_id={self.coach_id} credits={self.remaining_credits}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coach_id": self.coach_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "remaining_credits": self.remaining_credits,
            "package_start_date": iso_date(self.package_start_date),
            "package_end_date": iso_date(self.package_end_date),
            "current_package_id": self.current_package_id,
            "total_packages_count": self.total_packages_count,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Package(db.Model):
    """
    One sale of a bundle of sessions to a member.

    LIFECYCLE: PENDING -> APPROVED (terminal). Rejection is deletion.
    Only APPROVED packages have granted credits or contributed to the
    coach's commission total.
    """
    __tablename__ = "packages"
    __table_args__ = (
        db.UniqueConstraint("member_id", "sequence_number", name="uq_packages_member_sequence"),
        db.Index("ix_packages_approval_status", "approval_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)
    coach_id = db.Column(db.Integer, db.ForeignKey("coaches.id"), nullable=False, index=True)
    sequence_number = db.Column(db.Integer, nullable=False)

    price_cents = db.Column(db.Integer, nullable=False)
    session_count = db.Column(db.Integer, nullable=False)
    duration_days = db.Column(db.Integer, nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)

    # NONE | FLAT_PER_SESSION (cents per session) | PERCENT_OF_PRICE (basis points)
    commission_type = db.Column(db.String(24), nullable=False, default="NONE")
    commission_value = db.Column(db.Integer, nullable=False, default=0)

    approval_status = db.Column(db.String(16), nullable=False, default=APPROVAL_PENDING)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PAID)

    created_by_role = db.Column(db.String(16), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Package id={self.id} member_id={self.member_id} status={self.approval_status}>"

    @property
    def is_approved(self) -> bool:
        return self.approval_status == APPROVAL_APPROVED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "coach_id": self.coach_id,
            "sequence_number": self.sequence_number,
            "price_cents": self.price_cents,
            "session_count": self.session_count,
            "duration_days": self.duration_days,
            "start_date": iso_date(self.start_date),
            "end_date": iso_date(self.end_date),
            "commission_type": self.commission_type,
            "commission_value": self.commission_value,
            "approval_status": self.approval_status,
            "payment_status": self.payment_status,
            "created_by_role": self.created_by_role,
            "approved_at": to_utc_z(self.approved_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AggregateAdjustment(db.Model):
    """
    Append-only audit of every delta applied to a coach aggregate.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "aggregate_adjustments"
    __table_args__ = (
        db.Index("ix_aggregate_adjustments_coach_occurred", "coach_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    coach_id = db.Column(db.Integer, db.ForeignKey("coaches.id"), nullable=False, index=True)
    delta_cents = db.Column(db.Integer, nullable=False)
    total_after_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False)  # APPROVE, EDIT, DELETE, REBUILD
    package_id = db.Column(db.Integer, nullable=True)
    member_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "coach_id": self.coach_id,
            "delta_cents": self.delta_cents,
            "total_after_cents": self.total_after_cents,
            "reason": self.reason,
            "package_id": self.package_id,
            "member_id": self.member_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
