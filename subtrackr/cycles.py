"""Billing-cycle arithmetic.

Every table below has an explicit default branch: an unrecognised cycle is
priced as already-monthly by ``to_monthly`` and as twelve charges a year by
``to_yearly``/``cycle_multiplier``. The monthly and yearly factors are
rounded independently, so ``to_monthly(x) * 12`` only approximates
``to_yearly(x)``.
"""

from __future__ import annotations

from typing import Union

from .models import BillingCycle

CycleLike = Union[BillingCycle, str]


def monthly_factor(cycle: CycleLike) -> float:
    match cycle:
        case BillingCycle.DAILY:
            return 30.44
        case BillingCycle.WEEKLY:
            return 4.33
        case BillingCycle.MONTHLY:
            return 1.0
        case BillingCycle.QUARTERLY:
            return 0.33
        case BillingCycle.YEARLY:
            return 0.083
        case _:
            return 1.0


def cycle_multiplier(cycle: CycleLike) -> int:
    """Number of charges per year for ``cycle``."""
    match cycle:
        case BillingCycle.DAILY:
            return 365
        case BillingCycle.WEEKLY:
            return 52
        case BillingCycle.MONTHLY:
            return 12
        case BillingCycle.QUARTERLY:
            return 4
        case BillingCycle.YEARLY:
            return 1
        case _:
            return 12


def cycle_days(cycle: CycleLike) -> int:
    """Days added to the next billing date on renewal."""
    match cycle:
        case BillingCycle.DAILY:
            return 1
        case BillingCycle.WEEKLY:
            return 7
        case BillingCycle.MONTHLY:
            return 30
        case BillingCycle.QUARTERLY:
            return 90
        case BillingCycle.YEARLY:
            return 365
        case _:
            return 30


def to_monthly(amount: float, cycle: CycleLike) -> float:
    return amount * monthly_factor(cycle)


def to_yearly(amount: float, cycle: CycleLike) -> float:
    return amount * cycle_multiplier(cycle)
