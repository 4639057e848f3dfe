# Overview: Pure commission split calculation; no state, no database access.

"""
Commission Calculator

Splits a package price into the company cut and the coach cut.

RULES (tagged variants):
- NoCommission: company 0, coach keeps the whole price
- FlatPerSession(amount_cents): company takes amount x sessions,
  coach = max(0, price - company)
- PercentOfPrice(percent_bps): company takes price x percent, rounded half-up
  to the cent; coach = price - company

CONSERVATION:
- PercentOfPrice: company + coach == price, always.
- FlatPerSession: company + coach == price only while company <= price.
  Above that the coach cut is clamped at zero and the company cut is
  reported as-is, so the pair sums to more than the price.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Union

from ..errors import ValidationError
from ..validation import MAX_PRICE_CENTS


COMMISSION_NONE = "NONE"
COMMISSION_FLAT_PER_SESSION = "FLAT_PER_SESSION"
COMMISSION_PERCENT_OF_PRICE = "PERCENT_OF_PRICE"

VALID_COMMISSION_TYPES = [
    COMMISSION_NONE,
    COMMISSION_FLAT_PER_SESSION,
    COMMISSION_PERCENT_OF_PRICE,
]

# 100% expressed in basis points
MAX_PERCENT_BPS = 10_000

# Upper bound for any stored cent amount, including the flat company cut
MAX_AMOUNT_CENTS = MAX_PRICE_CENTS


@dataclass(frozen=True)
class NoCommission:
    pass


@dataclass(frozen=True)
class FlatPerSession:
    amount_cents: int


@dataclass(frozen=True)
class PercentOfPrice:
    percent_bps: int


CommissionRule = Union[NoCommission, FlatPerSession, PercentOfPrice]


@dataclass(frozen=True)
class CommissionSplit:
    company_cut_cents: int
    coach_cut_cents: int

    def to_dict(self) -> dict:
        return {
            "company_cut_cents": self.company_cut_cents,
            "coach_cut_cents": self.coach_cut_cents,
        }


def _require_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    return value


def validate_rule(rule: CommissionRule | None) -> CommissionRule:
    if rule is None:
        return NoCommission()
    if isinstance(rule, NoCommission):
        return rule
    if isinstance(rule, FlatPerSession):
        if _require_int(rule.amount_cents, "amount_cents") < 0:
            raise ValidationError("Flat commission amount cannot be negative")
        if rule.amount_cents > MAX_AMOUNT_CENTS:
            raise ValidationError(f"Flat commission amount exceeds the maximum of {MAX_AMOUNT_CENTS}")
        return rule
    if isinstance(rule, PercentOfPrice):
        bps = _require_int(rule.percent_bps, "percent_bps")
        if bps < 0:
            raise ValidationError("Commission percent cannot be negative")
        if bps > MAX_PERCENT_BPS:
            raise ValidationError("Commission percent cannot exceed 100")
        return rule
    raise ValidationError(f"Unknown commission rule: {rule!r}")


def split(price_cents: int, rule: CommissionRule | None, session_count: int) -> CommissionSplit:
    """
    Compute (company cut, coach cut) for a package.

    Raises:
        ValidationError: negative or oversized price, negative session count,
            an invalid rule (amount outside 0..MAX_AMOUNT_CENTS, percent
            outside 0..100), or a flat company cut above MAX_AMOUNT_CENTS
    """
    if _require_int(price_cents, "price_cents") < 0:
        raise ValidationError("Price cannot be negative")
    if price_cents > MAX_AMOUNT_CENTS:
        raise ValidationError(f"Price exceeds the maximum of {MAX_AMOUNT_CENTS}")
    if _require_int(session_count, "session_count") < 0:
        raise ValidationError("Session count cannot be negative")
    rule = validate_rule(rule)

    if isinstance(rule, NoCommission):
        return CommissionSplit(0, price_cents)

    if isinstance(rule, FlatPerSession):
        if rule.amount_cents == 0:
            return CommissionSplit(0, price_cents)
        company = rule.amount_cents * session_count
        if company > MAX_AMOUNT_CENTS:
            raise ValidationError(
                f"Flat commission for {session_count} sessions exceeds the maximum of {MAX_AMOUNT_CENTS}"
            )
        return CommissionSplit(company, max(0, price_cents - company))

    if isinstance(rule, PercentOfPrice):
        if rule.percent_bps == 0:
            return CommissionSplit(0, price_cents)
        # Half-up rounding on non-negative integers
        company = (price_cents * rule.percent_bps + MAX_PERCENT_BPS // 2) // MAX_PERCENT_BPS
        return CommissionSplit(company, price_cents - company)

    raise ValidationError(f"Unknown commission rule: {rule!r}")


def company_cut(price_cents: int, rule: CommissionRule | None, session_count: int) -> int:
    return split(price_cents, rule, session_count).company_cut_cents


# =============================================================================
# STORAGE AND API MAPPING
# =============================================================================

def rule_from_fields(commission_type: str | None, commission_value: int | None) -> CommissionRule:
    """Rebuild a rule from the (type, value) columns stored on a package."""
    value = commission_value or 0
    if commission_type in (None, COMMISSION_NONE):
        return NoCommission()
    if commission_type == COMMISSION_FLAT_PER_SESSION:
        return FlatPerSession(value)
    if commission_type == COMMISSION_PERCENT_OF_PRICE:
        return PercentOfPrice(value)
    raise ValidationError(f"Invalid commission type: {commission_type}. Must be one of {VALID_COMMISSION_TYPES}")


def rule_to_fields(rule: CommissionRule | None) -> tuple[str, int]:
    rule = validate_rule(rule)
    if isinstance(rule, FlatPerSession):
        return COMMISSION_FLAT_PER_SESSION, rule.amount_cents
    if isinstance(rule, PercentOfPrice):
        return COMMISSION_PERCENT_OF_PRICE, rule.percent_bps
    return COMMISSION_NONE, 0


def parse_percent(value) -> int:
    """
    Convert a percent given as 40, 12.5 or "12.5" into basis points.

    At most two decimal places are accepted.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("percent must be a number")
    try:
        percent = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("percent must be a number")
    if not percent.is_finite():
        raise ValidationError("percent must be a number")
    bps = percent * 100
    if bps != bps.to_integral_value():
        raise ValidationError("percent allows at most two decimal places")
    return int(bps)


def parse_rule(payload) -> CommissionRule:
    """
    Parse API input into a rule.

    Accepted shapes:
        None / {"type": "NONE"}
        {"type": "FLAT_PER_SESSION", "amount_cents": 2000}
        {"type": "PERCENT_OF_PRICE", "percent": 40}
    """
    if payload is None:
        return NoCommission()
    if not isinstance(payload, dict):
        raise ValidationError("commission must be an object")

    rule_type = str(payload.get("type", COMMISSION_NONE)).strip().upper()
    if rule_type == COMMISSION_NONE:
        return NoCommission()
    if rule_type == COMMISSION_FLAT_PER_SESSION:
        return validate_rule(FlatPerSession(_require_int(payload.get("amount_cents"), "amount_cents")))
    if rule_type == COMMISSION_PERCENT_OF_PRICE:
        return validate_rule(PercentOfPrice(parse_percent(payload.get("percent"))))
    raise ValidationError(f"Invalid commission type: {rule_type}. Must be one of {VALID_COMMISSION_TYPES}")


def rule_to_dict(rule: CommissionRule | None) -> dict:
    rule = validate_rule(rule)
    if isinstance(rule, FlatPerSession):
        return {"type": COMMISSION_FLAT_PER_SESSION, "amount_cents": rule.amount_cents}
    if isinstance(rule, PercentOfPrice):
        return {"type": COMMISSION_PERCENT_OF_PRICE, "percent": rule.percent_bps / 100}
    return {"type": COMMISSION_NONE}
