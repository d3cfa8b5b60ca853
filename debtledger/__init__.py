"""
debtledger - Collateralized Debt Ledger

Accounts post yield-bearing vault shares as collateral and borrow a pegged
debt token against them. Interest accrues linearly; a loan-to-value ceiling
is enforced on every state change; the lending rules live in a swappable
BorrowPolicy activated through a timelock.

Usage:
    from datetime import datetime, timedelta
    from debtledger import (
        DebtLedger, StandardBorrowPolicy, InMemoryVault, InMemoryDebtToken,
        SCALE, to_fixed,
    )

    vault = InMemoryVault("yvUSD", price_per_share=SCALE,
                          interest_rate=to_fixed("0.10"), ltv_cap=to_fixed("0.80"))
    token = InMemoryDebtToken("dUSD", owner="gov")
    ledger = DebtLedger("main", owner="gov", approval_delay=timedelta(days=2),
                        initial_time=datetime(2025, 1, 1))
    token.set_valid_issuer("gov", "main", to_fixed(1_000_000))
    ledger.initialize("gov", vault, token, StandardBorrowPolicy(),
                      treasury="treasury", borrow_fee_rate=5)

    vault.issue("alice", to_fixed(100))
    vault.approve("alice", "main", to_fixed(100))
    ledger.advance_time(datetime(2025, 1, 2))
    ledger.borrow("alice", to_fixed(70), collateral_delta=to_fixed(100))
"""

# Core types
from .core import (
    Account,
    AccountInfo,
    PolicyCandidate,
    LedgerConfig,
    LedgerEvent,
    EventType,
    BorrowProposal,
    RepayProposal,
    WithdrawProposal,
    DebtLedgerView,
    CollateralVault,
    DebtToken,
    BorrowPolicy,
    LedgerError,
    OverLtv,
    OverRepay,
    InsufficientLiquidity,
    Underflow,
    FixedPointOverflow,
    ZeroCollateralValue,
    InvariantViolation,
    NoCandidate,
    DelayNotElapsed,
    NotAuthorized,
    AlreadyInitialized,
    NotInitialized,
    FeeCapExceeded,
    ReentrantCall,
    SCALE,
    SECONDS_PER_YEAR,
    FEE_DENOMINATOR,
    DEFAULT_MAX_BORROW_FEE_RATE,
    MAX_UINT256,
    EPOCH,
    NEVER,
    FAR_FUTURE,
    checked_uint,
    require_amount,
    to_fixed,
    from_fixed,
)

# Interest & LTV calculator
from .calculator import (
    accrued_interest,
    total_debt,
    collateral_value,
    loan_to_value,
    min_collateral,
    max_borrow,
    borrow_fee,
)

# Borrow policy
from .policy import StandardBorrowPolicy

# Ledger
from .ledger import DebtLedger

# Collaborators
from .tokens import ShareBook, InMemoryVault, InMemoryDebtToken
