"""
calculator.py - Interest and Loan-to-Value Calculations

PURE FUNCTIONS - all inputs explicit, no ledger access, no hidden state.

Key Formulas (all values 1e18 fixed point):
    interest      = principal * rate * elapsed_seconds / (SCALE * SECONDS_PER_YEAR)
    total_debt    = borrowed_amount + interest(since borrow_time)
    value         = shares * price_per_share / SCALE
    ltv           = debt * SCALE / value
    min_collateral = (debt * SCALE / max_ltv) * SCALE / price_per_share

Every formula multiplies first and divides once (or once per scaling step),
so truncation happens at the end rather than between factors.

Interest is simple and recomputed from the account's last update time. Each
state-changing operation folds accrued interest into the principal and
resets the clock, which is observable protocol behaviour rather than true
compounding.
"""

from __future__ import annotations
from datetime import datetime, timedelta

from .core import (
    Account, ZeroCollateralValue,
    SCALE, SECONDS_PER_YEAR, FEE_DENOMINATOR,
)


_ONE_SECOND = timedelta(seconds=1)


def elapsed_seconds(since_time: datetime, now: datetime) -> int:
    """Whole seconds from since_time to now; zero if now precedes since_time."""
    if now <= since_time:
        return 0
    return (now - since_time) // _ONE_SECOND


def accrued_interest(rate: int, principal: int, since_time: datetime, now: datetime) -> int:
    """
    Simple interest on principal from since_time to now.

    Args:
        rate: Annual rate, 1e18 fixed point (0.10e18 = 10%/year)
        principal: Debt principal
        since_time: Start of accrual
        now: End of accrual

    Returns:
        Interest in debt-token base units (floored)

    Example:
        70e18 at 10% for 365 days -> 7e18
    """
    elapsed = elapsed_seconds(since_time, now)
    if elapsed == 0 or principal == 0 or rate == 0:
        return 0
    return principal * rate * elapsed // (SCALE * SECONDS_PER_YEAR)


def total_debt(account: Account, rate: int, now: datetime) -> int:
    """Principal plus interest accrued since the account's last update."""
    return account.borrowed_amount + accrued_interest(
        rate, account.borrowed_amount, account.borrow_time, now
    )


def collateral_value(shares: int, price_per_share: int) -> int:
    """Underlying-asset value of vault shares."""
    return shares * price_per_share // SCALE


def loan_to_value(
    requested_borrow: int,
    existing_debt: int,
    collateral_delta: int,
    existing_collateral: int,
    price_per_share: int,
) -> int:
    """
    Loan-to-value of a position after a requested change.

    Args:
        requested_borrow: New debt being added
        existing_debt: Debt including interest before the change
        collateral_delta: Shares being added (callers pass the already-reduced
            collateral with delta 0 for withdrawals)
        existing_collateral: Shares held before the change
        price_per_share: Vault share price

    Returns:
        Debt / collateral value, 1e18 fixed point (0.8e18 = 80%)

    Raises:
        ZeroCollateralValue: If there is debt but the collateral is worth nothing.
    """
    debt = requested_borrow + existing_debt
    if debt == 0:
        return 0
    value = collateral_value(existing_collateral + collateral_delta, price_per_share)
    if value == 0:
        raise ZeroCollateralValue(
            f"debt {debt} against zero-valued collateral "
            f"({existing_collateral + collateral_delta} shares @ {price_per_share})"
        )
    return debt * SCALE // value


def min_collateral(debt: int, max_ltv: int, price_per_share: int) -> int:
    """
    Shares needed to hold debt exactly at the LTV ceiling.

    Raises:
        ZeroCollateralValue: If the share price is zero while debt is owed.
        ValueError: If max_ltv is zero while debt is owed.
    """
    if debt == 0:
        return 0
    if max_ltv <= 0:
        raise ValueError(f"max_ltv must be positive, got {max_ltv}")
    if price_per_share == 0:
        raise ZeroCollateralValue("share price is zero")
    return (debt * SCALE // max_ltv) * SCALE // price_per_share


def max_borrow(existing_debt: int, collateral: int, price_per_share: int, max_ltv: int) -> int:
    """Additional debt that keeps the position at or below max_ltv."""
    ceiling = collateral_value(collateral, price_per_share) * max_ltv // SCALE
    return max(0, ceiling - existing_debt)


def borrow_fee(amount: int, fee_rate: int) -> int:
    """Fee withheld from a borrow; fee_rate is parts-per-thousand."""
    return amount * fee_rate // FEE_DENOMINATOR
