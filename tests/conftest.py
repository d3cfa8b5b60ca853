"""
conftest.py - Shared pytest fixtures for DebtLedger tests

Provides common fixtures used across unit, conformance and functional tests:
- An initialized market (ledger + vault + debt token) with reference quotes
- A market where alice has already posted collateral
- A market where alice holds an open 70-token loan against 100 shares
"""

import pytest

from debtledger import to_fixed
from tests.market import build_market


@pytest.fixture
def market():
    """Initialized ledger with 1:1 price, 80% cap, 10%/year, 0.5% fee."""
    return build_market()


@pytest.fixture
def funded_market(market):
    """Market where alice holds 1000 vault shares approved for the ledger."""
    market.fund_collateral("alice", to_fixed(1000))
    return market


@pytest.fixture
def open_loan(funded_market):
    """alice has borrowed 70 against 100 shares of collateral."""
    funded_market.ledger.borrow("alice", to_fixed(70), collateral_delta=to_fixed(100))
    return funded_market
