from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


CREDIT_GRANT = "GRANT"
CREDIT_DEBIT = "DEBIT"
CREDIT_REFUND = "REFUND"
CREDIT_ADJUST = "ADJUST"


class CreditTransaction(db.Model):
    """
    Append-only ledger of member credit movements.

    TRANSACTION TYPES:
    - GRANT: Credits admitted by an approved package
    - DEBIT: Credit held by a booked MEMBER participant
    - REFUND: Credit returned when a booking is removed with refund
    - ADJUST: Balance reset by a package edit or delete

    DEBIT and REFUND rows are keyed by (event_id, participant_key) so the
    same booking can never be charged or refunded twice.
    """
    __tablename__ = "credit_transactions"
    __table_args__ = (
        db.UniqueConstraint(
            "transaction_type", "event_id", "participant_key",
            name="uq_credit_transactions_booking_key",
        ),
        db.Index("ix_credit_transactions_member_occurred", "member_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    member_id = db.Column(db.Integer, db.ForeignKey("members.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(16), nullable=False, index=True)
    credits = db.Column(db.Integer, nullable=False)  # Positive for grant/refund, negative for debit
    balance_after = db.Column(db.Integer, nullable=False)

    package_id = db.Column(db.Integer, nullable=True)
    event_id = db.Column(db.Integer, nullable=True)
    participant_key = db.Column(db.String(64), nullable=True)

    actor_id = db.Column(db.String(64), nullable=True)
    reason = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "member_id": self.member_id,
            "transaction_type": self.transaction_type,
            "credits": self.credits,
            "balance_after": self.balance_after,
            "package_id": self.package_id,
            "event_id": self.event_id,
            "participant_id": self.participant_key,
            "actor_id": self.actor_id,
            "reason": self.reason,
            "occurred_at": to_utc_z(self.occurred_at),
        }
