"""
Credit ledger tests.

Verifies:
- Grants add to the balance and are journaled
- Debit followed by refund restores the balance
- Debits never take a balance below zero
- A booking key is charged and refunded at most once
"""

import random

import pytest

from coachledger.errors import AlreadyApplied, InsufficientCredit, NotFoundError, ValidationError
from coachledger.extensions import db
from coachledger.models.ledger import CREDIT_ADJUST, CREDIT_DEBIT, CREDIT_GRANT, CREDIT_REFUND
from coachledger.services import credit_service


@pytest.fixture
def member(make_member):
    member, _ = make_member(session_count=5)
    return member


# =============================================================================
# GRANT / DEBIT / REFUND
# =============================================================================


class TestBalanceMovements:

    def test_approved_package_grant_is_journaled(self, member):
        history = credit_service.get_credit_history(member.id)
        assert [t.transaction_type for t in history] == [CREDIT_GRANT]
        assert history[0].credits == 5
        assert history[0].balance_after == 5

    def test_grant_is_additive(self, member):
        credit_service.grant(member.id, 3)
        db.session.commit()
        assert credit_service.get_balance(member.id) == 8

    @pytest.mark.parametrize("amount", [1, 2, 5])
    def test_debit_then_refund_restores_balance(self, member, amount):
        credit_service.debit(member.id, amount, event_id=1, participant_key="k1")
        db.session.commit()
        assert credit_service.get_balance(member.id) == 5 - amount

        credit_service.refund(member.id, amount, event_id=1, participant_key="k1")
        db.session.commit()
        assert credit_service.get_balance(member.id) == 5

    def test_debit_beyond_balance_raises_insufficient_credit(self, member):
        with pytest.raises(InsufficientCredit):
            credit_service.debit(member.id, 6, event_id=1, participant_key="k1")
        db.session.rollback()
        assert credit_service.get_balance(member.id) == 5

    def test_adjust_sets_absolute_balance(self, member):
        entry = credit_service.adjust(member.id, 2, reason="edited")
        db.session.commit()
        assert entry.transaction_type == CREDIT_ADJUST
        assert entry.credits == -3
        assert credit_service.get_balance(member.id) == 2

    def test_adjust_to_same_balance_writes_nothing(self, member):
        assert credit_service.adjust(member.id, 5) is None
        assert len(credit_service.get_credit_history(member.id)) == 1

    def test_history_is_newest_first(self, member):
        credit_service.debit(member.id, 1, event_id=7, participant_key="a")
        credit_service.refund(member.id, 1, event_id=7, participant_key="a")
        db.session.commit()
        types = [t.transaction_type for t in credit_service.get_credit_history(member.id)]
        assert types == [CREDIT_REFUND, CREDIT_DEBIT, CREDIT_GRANT]
        assert len(credit_service.get_credit_history(member.id, limit=2)) == 2


# =============================================================================
# IDEMPOTENCY
# =============================================================================


class TestBookingKeys:

    def test_same_key_cannot_be_debited_twice(self, member):
        credit_service.debit(member.id, 1, event_id=1, participant_key="k1")
        db.session.commit()
        with pytest.raises(AlreadyApplied):
            credit_service.debit(member.id, 1, event_id=1, participant_key="k1")
        db.session.rollback()
        assert credit_service.get_balance(member.id) == 4

    def test_same_key_cannot_be_refunded_twice(self, member):
        credit_service.debit(member.id, 1, event_id=1, participant_key="k1")
        credit_service.refund(member.id, 1, event_id=1, participant_key="k1")
        db.session.commit()
        with pytest.raises(AlreadyApplied):
            credit_service.refund(member.id, 1, event_id=1, participant_key="k1")
        db.session.rollback()
        assert credit_service.get_balance(member.id) == 5

    def test_same_key_on_another_event_is_independent(self, member):
        credit_service.debit(member.id, 1, event_id=1, participant_key="k1")
        credit_service.debit(member.id, 1, event_id=2, participant_key="k1")
        db.session.commit()
        assert credit_service.get_balance(member.id) == 3


# =============================================================================
# VALIDATION
# =============================================================================


class TestValidation:

    @pytest.mark.parametrize("amount", [0, -1, 1.5, True])
    def test_debit_rejects_non_positive_or_non_integer(self, member, amount):
        with pytest.raises(ValidationError):
            credit_service.debit(member.id, amount, event_id=1, participant_key="k1")

    def test_unknown_member(self, db_session):
        with pytest.raises(NotFoundError):
            credit_service.grant(999, 1)


# =============================================================================
# NON-NEGATIVE BALANCES
# =============================================================================


class TestNonNegativeBalance:

    @pytest.mark.parametrize("seed", range(5))
    def test_random_valid_sequences_never_go_negative(self, member, seed):
        rng = random.Random(seed)
        outstanding = []
        next_event = 1

        for _ in range(60):
            balance = credit_service.get_balance(member.id)
            action = rng.choice(["grant", "debit", "refund"])

            if action == "grant":
                credit_service.grant(member.id, rng.randint(0, 3))
            elif action == "debit" and balance > 0:
                amount = rng.randint(1, balance)
                credit_service.debit(member.id, amount, event_id=next_event, participant_key="p")
                outstanding.append((next_event, amount))
                next_event += 1
            elif action == "refund" and outstanding:
                event_id, amount = outstanding.pop(rng.randrange(len(outstanding)))
                credit_service.refund(member.id, amount, event_id=event_id, participant_key="p")
            db.session.commit()

            assert credit_service.get_balance(member.id) >= 0
