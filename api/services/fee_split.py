"""
Placement fee split.

Pure functions: no I/O, no clock, same inputs give the same split.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import NamedTuple, Union

from core.errors import InvalidInput
from database.models.recruiters import RecruiterTier

CENT = Decimal("0.01")

Number = Union[int, float, str, Decimal]


class FeeSplit(NamedTuple):
    fee_amount: Decimal
    recruiter_amount: Decimal
    platform_amount: Decimal
    recruiter_share_percentage: Decimal

    def as_dict(self) -> dict:
        return {
            "fee_amount": str(self.fee_amount),
            "recruiter_amount": str(self.recruiter_amount),
            "platform_amount": str(self.platform_amount),
            "recruiter_share_percentage": str(self.recruiter_share_percentage),
        }


def to_decimal(value: Number, field: str) -> Decimal:
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be a number", field=field)
    try:
        # str() keeps floats like 0.1 from dragging binary noise along
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInput(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise InvalidInput(f"{field} must be a finite number", field=field)
    return result


def round_money(amount: Decimal) -> Decimal:
    """Round half-up to the cent."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_share_percentage(recruiter_tier: Union[RecruiterTier, Number]) -> Decimal:
    """Recruiter share for a tier, or the share itself when given as a number."""
    if isinstance(recruiter_tier, RecruiterTier):
        return Decimal(recruiter_tier.share_percentage)
    if isinstance(recruiter_tier, str):
        tier = RecruiterTier.try_parse(recruiter_tier)
        if tier is not None:
            return Decimal(tier.share_percentage)
    share = to_decimal(recruiter_tier, "recruiter_tier")
    if share < 0 or share > 100:
        raise InvalidInput(
            "Recruiter share must be between 0 and 100",
            recruiter_share_percentage=str(share),
        )
    return share


def compute_split(
    salary: Number,
    fee_percentage: Number,
    recruiter_tier: Union[RecruiterTier, Number],
) -> FeeSplit:
    """
    Split a placement fee between recruiter and platform.

    fee = salary * fee_percentage / 100, rounded to the cent (half-up).
    recruiter = fee * share / 100, rounded the same way. The platform gets
    the remainder, so recruiter + platform == fee exactly.

    Args:
        salary: First-year salary, must be > 0
        fee_percentage: Job fee percentage in (0, 100]
        recruiter_tier: A RecruiterTier or a share percentage in [0, 100]

    Returns:
        FeeSplit

    Raises:
        InvalidInput: Any argument is out of range

    Example:
        compute_split(120000, 20, 75)
        -> fee 24000.00, recruiter 18000.00, platform 6000.00
    """
    salary_value = to_decimal(salary, "salary")
    if salary_value <= 0:
        raise InvalidInput("Salary must be greater than zero", salary=str(salary_value))

    fee_pct = to_decimal(fee_percentage, "fee_percentage")
    if fee_pct <= 0 or fee_pct > 100:
        raise InvalidInput(
            "Fee percentage must be greater than 0 and at most 100",
            fee_percentage=str(fee_pct),
        )

    share = resolve_share_percentage(recruiter_tier)

    fee_amount = round_money(salary_value * fee_pct / Decimal(100))
    recruiter_amount = round_money(fee_amount * share / Decimal(100))
    platform_amount = fee_amount - recruiter_amount

    return FeeSplit(
        fee_amount=fee_amount,
        recruiter_amount=recruiter_amount,
        platform_amount=platform_amount,
        recruiter_share_percentage=share,
    )
