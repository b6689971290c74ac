"""Stake/yield projections for display.

Never the source of truth for payouts: the reward distributor converts the
stored stake and yield percentage itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

_ZERO = Decimal(0)
_DAYS_PER_YEAR = Decimal(365)


@dataclass(frozen=True)
class YieldProjection:
    yield_amount: Decimal
    total_reward: Decimal
    daily_yield: Decimal
    apy: Decimal


ZERO_PROJECTION = YieldProjection(_ZERO, _ZERO, _ZERO, _ZERO)


def _to_decimal(value: object) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def calculate_yield(stake: object, yield_percentage: object, duration_days: object) -> YieldProjection:
    """Project reward, daily yield and APY for a stake.

    Degenerate input (non-numeric values, non-positive stake or duration)
    returns all zeros instead of raising.
    """
    stake_d = _to_decimal(stake)
    pct = _to_decimal(yield_percentage)
    duration = _to_decimal(duration_days)
    if stake_d is None or pct is None or duration is None:
        return ZERO_PROJECTION
    if stake_d <= 0 or duration <= 0 or duration != duration.to_integral_value():
        return ZERO_PROJECTION

    yield_amount = stake_d * pct / 100
    daily_yield = yield_amount / duration
    apy = daily_yield * _DAYS_PER_YEAR / stake_d * 100
    return YieldProjection(
        yield_amount=yield_amount,
        total_reward=stake_d + yield_amount,
        daily_yield=daily_yield,
        apy=apy,
    )


def potential_reward(stake: Decimal, yield_percentage: Decimal) -> Decimal:
    """Stake plus yield, as paid out on a successful completion."""
    return Decimal(stake) * (1 + Decimal(yield_percentage) / 100)


def yield_basis_points(yield_percentage: Decimal | float) -> int:
    """Percentage as integer basis points (5.25% -> 525)."""
    return int((Decimal(str(yield_percentage)) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))
