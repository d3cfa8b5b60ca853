"""
market.py - Shared setup for DebtLedger tests

build_market() wires a ledger to an in-memory vault and debt token the same
way every test needs: governance "gov", treasury "treasury", the ledger as a
valid issuer, and the concrete reference quotes (1:1 price, 80% cap,
10%/year rate, 0.5% fee).

Plain functions rather than fixtures so hypothesis tests can build a fresh
market per example.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta

from debtledger import (
    DebtLedger, InMemoryVault, InMemoryDebtToken, StandardBorrowPolicy,
    SCALE, to_fixed,
)


START = datetime(2025, 1, 1)
LEDGER = "main"
GOV = "gov"
TREASURY = "treasury"
APPROVAL_DELAY = timedelta(days=2)
ONE_SECOND = timedelta(seconds=1)


@dataclass
class Market:
    ledger: DebtLedger
    vault: InMemoryVault
    token: InMemoryDebtToken

    def fund_collateral(self, account: str, shares: int) -> None:
        """Give account vault shares and approve the ledger to take them."""
        self.vault.issue(account, shares)
        self.vault.approve(account, LEDGER, self.vault.balance_of(account))

    def fund_debt_tokens(self, account: str, amount: int) -> None:
        """Give account debt tokens outside the ledger and approve repayment."""
        self.token.issue(account, amount)
        self.approve_repay(account)

    def approve_repay(self, account: str) -> None:
        self.token.approve(account, LEDGER, self.token.balance_of(account))

    def tick(self, delta: timedelta = ONE_SECOND) -> None:
        self.ledger.advance_time(self.ledger.current_time + delta)


def build_market(
    price_per_share: int = SCALE,
    interest_rate: int = to_fixed("0.10"),
    ltv_cap: int = to_fixed("0.80"),
    borrow_fee_rate: int = 5,
    issuer_ceiling: int = to_fixed(1_000_000),
    policy=None,
    vault: InMemoryVault = None,
    token: InMemoryDebtToken = None,
) -> Market:
    """Create an initialized ledger one second after START."""
    vault = vault or InMemoryVault(
        "yvUSD", price_per_share=price_per_share,
        interest_rate=interest_rate, ltv_cap=ltv_cap,
    )
    token = token or InMemoryDebtToken("dUSD", owner=GOV)
    token.set_valid_issuer(GOV, LEDGER, issuer_ceiling)

    ledger = DebtLedger(LEDGER, owner=GOV, approval_delay=APPROVAL_DELAY,
                        initial_time=START, verbose=False)
    ledger.initialize(GOV, vault, token, policy or StandardBorrowPolicy(),
                      treasury=TREASURY, borrow_fee_rate=borrow_fee_rate)
    ledger.advance_time(START + ONE_SECOND)
    return Market(ledger=ledger, vault=vault, token=token)
