"""
Core types and constants for the collateralized debt ledger.

This module provides the foundational data structures and protocols:
1. Fixed-point constants: SCALE, SECONDS_PER_YEAR, FEE_DENOMINATOR, ...
2. Exceptions: LedgerError and the domain-specific error taxonomy
3. Immutable data structures: Account, PolicyCandidate, LedgerConfig,
   proposals, LedgerEvent, AccountInfo
4. Protocols: DebtLedgerView, CollateralVault, DebtToken, BorrowPolicy
5. Checked unsigned arithmetic helpers

All amounts, prices, rates and ratios are ``int`` values scaled by 1e18.
Python integers never overflow, so the 256-bit bound is checked explicitly
wherever a value is stored.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, localcontext
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable


# ============================================================================
# CONSTANTS
# ============================================================================

# Fixed-point scale: 1e18 represents 1.0 (prices, rates, LTV ratios, token amounts).
SCALE = 10 ** 18

# Interest is simple, accrued per second over a 365-day year.
SECONDS_PER_YEAR = 365 * 24 * 60 * 60

# Borrow fees are expressed in parts-per-thousand.
FEE_DENOMINATOR = 1000

# Hard ceiling on the borrow fee rate (50 / 1000 = 5%).
DEFAULT_MAX_BORROW_FEE_RATE = 50

# withdraw_all keeps back 0.1% of the computed withdrawable amount.
WITHDRAW_ALL_MARGIN = 1
WITHDRAW_ALL_MARGIN_DENOMINATOR = 1000

# Largest value an account field may hold.
MAX_UINT256 = 2 ** 256 - 1

# Default start of the logical clock and origin of event-id timestamps.
EPOCH = datetime(1970, 1, 1)

# Borrow time of an account that has never been touched; precedes any clock value.
NEVER = datetime.min

# Proposal time of an empty candidate slot.
FAR_FUTURE = datetime(9999, 1, 1)


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all debt ledger errors."""
    pass


class OverLtv(LedgerError):
    """Raised when an operation would push loan-to-value above the ceiling."""
    pass


class OverRepay(LedgerError):
    """Raised when a repayment exceeds the outstanding debt."""
    pass


class InsufficientLiquidity(LedgerError):
    """Raised when the debt token cannot issue the requested amount."""
    pass


class Underflow(LedgerError):
    """Raised when a balance or stored amount would drop below zero."""
    pass


class FixedPointOverflow(LedgerError):
    """Raised when a stored amount would not fit in 256 bits."""
    pass


class ZeroCollateralValue(LedgerError):
    """Raised when debt is measured against collateral worth nothing."""
    pass


class InvariantViolation(LedgerError):
    """Raised when a policy proposal breaks the ledger's monotonicity checks."""
    pass


class NoCandidate(LedgerError):
    """Raised when upgrading without a proposed policy implementation."""
    pass


class DelayNotElapsed(LedgerError):
    """Raised when upgrading before the approval delay has passed."""
    pass


class NotAuthorized(LedgerError):
    """Raised when a non-privileged caller invokes a governance operation."""
    pass


class AlreadyInitialized(LedgerError):
    """Raised when initialization is attempted a second time."""
    pass


class NotInitialized(LedgerError):
    """Raised when a user operation runs before the ledger is initialized."""
    pass


class FeeCapExceeded(LedgerError):
    """Raised when a nonzero borrow fee rate at or above the hard ceiling is requested."""
    pass


class ReentrantCall(LedgerError):
    """Raised when a state-changing call re-enters a ledger already in flight."""
    pass


# ============================================================================
# CHECKED ARITHMETIC
# ============================================================================

def require_amount(value: Any, name: str = "amount") -> int:
    """
    Validate a caller-supplied amount.

    Raises:
        ValueError: If value is not an int (bools rejected) or is negative.
        FixedPointOverflow: If value exceeds MAX_UINT256.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an int in base units, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {value}")
    if value > MAX_UINT256:
        raise FixedPointOverflow(f"{name} {value} exceeds 256 bits")
    return value


def checked_uint(value: int, name: str = "value") -> int:
    """
    Check that a computed value fits an unsigned 256-bit slot.

    Raises:
        Underflow: If value is negative.
        FixedPointOverflow: If value exceeds MAX_UINT256.
    """
    if value < 0:
        raise Underflow(f"{name} underflows: {value}")
    if value > MAX_UINT256:
        raise FixedPointOverflow(f"{name} overflows 256 bits: {value}")
    return value


def to_fixed(value: Any) -> int:
    """
    Convert a human-readable number to 1e18 fixed point.

    Strings and Decimals are converted exactly; fractional base units are
    truncated toward zero.

    Example:
        to_fixed("69.65") == 69_650_000_000_000_000_000
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    with localcontext() as ctx:
        ctx.prec = 100
        return int(value * SCALE)


def from_fixed(value: int) -> Decimal:
    """Convert a 1e18 fixed-point int back to a Decimal for display."""
    with localcontext() as ctx:
        ctx.prec = 100
        return Decimal(value) / Decimal(SCALE)


# ============================================================================
# ENUMS
# ============================================================================

class EventType(Enum):
    """Kind of operation recorded in the ledger's event log."""
    BORROW = "borrow"
    REPAY = "repay"
    WITHDRAW = "withdraw"
    FEE_CHARGED = "fee_charged"
    FEE_RATE_UPDATED = "fee_rate_updated"
    TREASURY_UPDATED = "treasury_updated"
    POLICY_PROPOSED = "policy_proposed"
    POLICY_ACTIVATED = "policy_activated"


# ============================================================================
# DATA MODEL
# ============================================================================

@dataclass(frozen=True, slots=True)
class Account:
    """
    Per-borrower debt and collateral record.

    Attributes:
        borrowed_amount: Debt principal; interest is recomputed on read.
        borrow_time: Time of the last state-changing operation.
        collateral_amount: Collateral shares held on the account's behalf.
    """
    borrowed_amount: int = 0
    borrow_time: datetime = NEVER
    collateral_amount: int = 0

    @property
    def is_empty(self) -> bool:
        return self.borrowed_amount == 0 and self.collateral_amount == 0


@dataclass(frozen=True, slots=True)
class PolicyCandidate:
    """A proposed, not-yet-active borrow policy awaiting the timelock."""
    implementation: Optional['BorrowPolicy'] = None
    proposed_time: datetime = FAR_FUTURE

    @property
    def is_empty(self) -> bool:
        return self.implementation is None


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    """
    Fee and timelock configuration of a ledger.

    approval_delay and max_borrow_fee_rate are fixed at construction.
    """
    approval_delay: timedelta
    max_borrow_fee_rate: int = DEFAULT_MAX_BORROW_FEE_RATE
    borrow_fee_rate: int = 0
    treasury: Optional[str] = None


@dataclass(frozen=True, slots=True)
class BorrowProposal:
    new_debt: int
    new_collateral: int
    new_time: datetime


@dataclass(frozen=True, slots=True)
class RepayProposal:
    new_debt: int
    new_time: datetime


@dataclass(frozen=True, slots=True)
class WithdrawProposal:
    new_collateral: int
    new_time: datetime


@dataclass(frozen=True, slots=True)
class AccountInfo:
    """Read-only summary of an account at the ledger's current time."""
    account: str
    borrowed_amount: int
    borrow_time: datetime
    collateral_amount: int
    total_debt: int
    loan_to_value: int
    max_borrow: int


@dataclass(frozen=True, slots=True)
class LedgerEvent:
    """
    Immutable audit record of a committed ledger operation.

    Attributes:
        event_type: Kind of operation
        actor: Account or governance identity that triggered it
        timestamp: Ledger time at commit
        amounts: Named integer amounts (fixed point) involved
        sequence_number: Monotonic within the ledger
        event_id: evt:{ledger_name}:{sequence:012d}:{timestamp_micros}
        ledger_name: Name of the ledger that emitted this
        detail: Optional non-numeric context (policy ids, accounts)
    """
    event_type: EventType
    actor: str
    timestamp: datetime
    amounts: Mapping[str, int]
    sequence_number: int
    event_id: str
    ledger_name: str
    detail: Mapping[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        w = 80
        bar = "─" * w

        def pad(text: str) -> str:
            if len(text) > w:
                return text[:w-3] + "..."
            return text + " " * (w - len(text))

        lines = [
            "",
            f"┌{bar}┐",
            f"│{pad(' Event: ' + self.event_type.value.upper() + '  ' + self.event_id)}│",
            f"├{bar}┤",
            f"│{pad('   actor     : ' + self.actor)}│",
            f"│{pad('   timestamp : ' + str(self.timestamp))}│",
        ]
        for name, amount in self.amounts.items():
            lines.append(f"│{pad(f'   {name:<10}: {from_fixed(amount)}')}│")
        for name, text in self.detail.items():
            lines.append(f"│{pad(f'   {name:<10}: {text}')}│")
        lines.append(f"└{bar}┘")
        return "\n".join(lines)


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class CollateralVault(Protocol):
    """
    Yield-bearing vault whose shares are posted as collateral.

    price_per_share, interest_rate and ltv_cap are 1e18 fixed point.
    """

    def price_per_share(self) -> int:
        ...

    def interest_rate(self) -> int:
        ...

    def ltv_cap(self) -> int:
        ...

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, caller: str, to: str, amount: int) -> None:
        ...

    def transfer_from(self, caller: str, source: str, to: str, amount: int) -> None:
        ...


@runtime_checkable
class DebtToken(Protocol):
    """
    Pegged debt token. Only allow-listed issuers may mint or burn.
    """

    def mint(self, caller: str, to: str, amount: int) -> None:
        ...

    def burn(self, caller: str, amount: int) -> None:
        ...

    def burn_from(self, caller: str, source: str, amount: int) -> None:
        """Destroy tokens the issuer previously minted to source."""
        ...

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, caller: str, to: str, amount: int) -> None:
        ...

    def transfer_from(self, caller: str, source: str, to: str, amount: int) -> None:
        ...

    def available_to_mint(self, issuer: str) -> int:
        """Amount the issuer may still mint under its ceiling."""
        ...


@runtime_checkable
class DebtLedgerView(Protocol):
    """
    Read-only interface to a debt ledger.

    Borrow policies receive the ledger through this protocol, so the policy
    can read the clock and collaborators but has no mutation methods in its
    type signature.
    """

    @property
    def name(self) -> str:
        ...

    @property
    def current_time(self) -> datetime:
        ...

    @property
    def debt_token(self) -> DebtToken:
        ...

    def get_account(self, account: str) -> Account:
        ...


@runtime_checkable
class BorrowPolicy(Protocol):
    """
    Swappable lending rules.

    Each operation returns a candidate next state or raises. Policies hold no
    mutable state; the ledger re-validates everything they return.
    """

    policy_id: str

    def max_ltv(self, vault: CollateralVault) -> int:
        """LTV ceiling the policy enforces against vault."""
        ...

    def propose_borrow(
        self,
        view: DebtLedgerView,
        amount: int,
        collateral_delta: int,
        current_collateral: int,
        vault: CollateralVault,
        existing_debt: int,
    ) -> BorrowProposal:
        ...

    def propose_repay(
        self,
        view: DebtLedgerView,
        amount: int,
        existing_debt: int,
    ) -> RepayProposal:
        ...

    def propose_withdraw(
        self,
        view: DebtLedgerView,
        withdraw_amount: int,
        vault: CollateralVault,
        current_collateral: int,
        existing_debt: int,
    ) -> WithdrawProposal:
        ...


# Snapshot of everything a ledger owns, used to prove failed calls mutate nothing.
LedgerSnapshot = Dict[str, Any]
