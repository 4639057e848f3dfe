"""
Commission split tests.

Verifies:
- Percent and flat-per-session splits on the reference packages
- Company cut + coach cut == price for every percent rule
- Zero-valued and missing rules leave the whole price to the coach
- Invalid prices, counts and rules are rejected
"""

import random

import pytest

from coachledger.errors import ValidationError
from coachledger.services import commission_service
from coachledger.services.commission_service import (
    MAX_AMOUNT_CENTS,
    FlatPerSession,
    NoCommission,
    PercentOfPrice,
)


# =============================================================================
# REFERENCE SPLITS
# =============================================================================


class TestReferenceSplits:

    def test_percent_of_price(self):
        result = commission_service.split(1000, PercentOfPrice(4000), 10)
        assert result.company_cut_cents == 400
        assert result.coach_cut_cents == 600

    def test_flat_per_session(self):
        result = commission_service.split(1000, FlatPerSession(20), 10)
        assert result.company_cut_cents == 200
        assert result.coach_cut_cents == 800

    def test_flat_commission_larger_than_price_clamps_coach_cut(self):
        result = commission_service.split(100, FlatPerSession(50), 10)
        assert result.company_cut_cents == 500
        assert result.coach_cut_cents == 0

    def test_percent_rounds_half_up(self):
        # 12.5% of 1 cent rounds down, 50% of 1 cent rounds up
        assert commission_service.company_cut(1, PercentOfPrice(1250), 1) == 0
        assert commission_service.company_cut(1, PercentOfPrice(5000), 1) == 1

    @pytest.mark.parametrize("rule", [None, NoCommission(), FlatPerSession(0), PercentOfPrice(0)])
    def test_no_commission_gives_coach_everything(self, rule):
        result = commission_service.split(1000, rule, 10)
        assert result.company_cut_cents == 0
        assert result.coach_cut_cents == 1000

    def test_full_percent_gives_company_everything(self):
        result = commission_service.split(999, PercentOfPrice(10000), 3)
        assert result.company_cut_cents == 999
        assert result.coach_cut_cents == 0


# =============================================================================
# CONSERVATION
# =============================================================================


class TestConservation:

    @pytest.mark.parametrize("seed", range(5))
    def test_percent_split_conserves_price(self, seed):
        rng = random.Random(seed)
        for _ in range(200):
            price = rng.randint(0, 10_000_000)
            bps = rng.randint(0, 10_000)
            sessions = rng.randint(0, 100)
            result = commission_service.split(price, PercentOfPrice(bps), sessions)
            assert result.company_cut_cents + result.coach_cut_cents == price
            assert result.company_cut_cents >= 0
            assert result.coach_cut_cents >= 0


# =============================================================================
# VALIDATION
# =============================================================================


class TestValidation:

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            commission_service.split(-1, NoCommission(), 10)

    def test_negative_session_count_rejected(self):
        with pytest.raises(ValidationError):
            commission_service.split(1000, NoCommission(), -1)

    def test_negative_flat_amount_rejected(self):
        with pytest.raises(ValidationError):
            commission_service.split(1000, FlatPerSession(-5), 10)

    @pytest.mark.parametrize("bps", [-1, 10_001])
    def test_percent_out_of_range_rejected(self, bps):
        with pytest.raises(ValidationError):
            commission_service.split(1000, PercentOfPrice(bps), 10)

    def test_non_integer_price_rejected(self):
        with pytest.raises(ValidationError):
            commission_service.split(10.5, NoCommission(), 10)

    def test_flat_amount_above_maximum_rejected(self):
        with pytest.raises(ValidationError):
            commission_service.validate_rule(FlatPerSession(MAX_AMOUNT_CENTS + 1))
        with pytest.raises(ValidationError):
            commission_service.split(1000, FlatPerSession(10 ** 19), 10)

    def test_flat_company_cut_above_maximum_rejected(self):
        # Each factor is in range, the product is not
        with pytest.raises(ValidationError):
            commission_service.split(1000, FlatPerSession(MAX_AMOUNT_CENTS), 2)

    def test_flat_company_cut_at_maximum_accepted(self):
        result = commission_service.split(1000, FlatPerSession(MAX_AMOUNT_CENTS), 1)
        assert result.company_cut_cents == MAX_AMOUNT_CENTS
        assert result.coach_cut_cents == 0

    def test_price_above_maximum_rejected(self):
        with pytest.raises(ValidationError):
            commission_service.split(MAX_AMOUNT_CENTS + 1, NoCommission(), 10)


# =============================================================================
# PARSING
# =============================================================================


class TestParsing:

    def test_parse_percent_to_basis_points(self):
        assert commission_service.parse_percent(40) == 4000
        assert commission_service.parse_percent("12.5") == 1250
        assert commission_service.parse_percent(0.25) == 25

    def test_parse_percent_rejects_extra_precision(self):
        with pytest.raises(ValidationError):
            commission_service.parse_percent("12.345")

    @pytest.mark.parametrize("value", [None, True, "abc", "nan"])
    def test_parse_percent_rejects_non_numbers(self, value):
        with pytest.raises(ValidationError):
            commission_service.parse_percent(value)

    def test_parse_rule_shapes(self):
        assert commission_service.parse_rule(None) == NoCommission()
        assert commission_service.parse_rule({"type": "NONE"}) == NoCommission()
        assert commission_service.parse_rule(
            {"type": "FLAT_PER_SESSION", "amount_cents": 2000}
        ) == FlatPerSession(2000)
        assert commission_service.parse_rule(
            {"type": "percent_of_price", "percent": 40}
        ) == PercentOfPrice(4000)

    def test_parse_rule_rejects_unknown_type(self):
        with pytest.raises(ValidationError):
            commission_service.parse_rule({"type": "BONUS"})

    def test_parse_rule_rejects_percent_above_hundred(self):
        with pytest.raises(ValidationError):
            commission_service.parse_rule({"type": "PERCENT_OF_PRICE", "percent": 101})

    def test_parse_rule_rejects_oversized_flat_amount(self):
        with pytest.raises(ValidationError):
            commission_service.parse_rule({"type": "FLAT_PER_SESSION", "amount_cents": 10 ** 19})

    def test_stored_fields_rebuild_the_same_rule(self):
        for rule in (NoCommission(), FlatPerSession(2000), PercentOfPrice(4000)):
            assert commission_service.rule_from_fields(*commission_service.rule_to_fields(rule)) == rule

    def test_rule_to_dict_reports_percent(self):
        assert commission_service.rule_to_dict(PercentOfPrice(1250)) == {
            "type": "PERCENT_OF_PRICE",
            "percent": 12.5,
        }
