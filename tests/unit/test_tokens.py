"""
test_tokens.py - Unit tests for the in-memory vault and debt token

Tests:
- ShareBook transfers, allowances and failure atomicity
- InMemoryVault quotes
- InMemoryDebtToken issuer allow-list, ceilings and burn accounting
- Both satisfy the collaborator protocols
"""

import pytest

from debtledger import (
    ShareBook, InMemoryVault, InMemoryDebtToken,
    CollateralVault, DebtToken,
    NotAuthorized, Underflow,
    SCALE, to_fixed,
)


@pytest.fixture
def book():
    book = ShareBook("yvUSD")
    book.issue("alice", to_fixed(100))
    return book


@pytest.fixture
def token():
    token = InMemoryDebtToken("dUSD", owner="gov")
    token.set_valid_issuer("gov", "main", to_fixed(100))
    return token


class TestShareBook:
    """Tests for balances and allowances."""

    def test_issue(self, book):
        assert book.balance_of("alice") == to_fixed(100)
        assert book.total_supply() == to_fixed(100)
        assert book.balance_of("nobody") == 0

    def test_transfer(self, book):
        book.transfer("alice", "bob", to_fixed(30))
        assert book.balance_of("alice") == to_fixed(70)
        assert book.balance_of("bob") == to_fixed(30)
        assert book.total_supply() == to_fixed(100)

    def test_transfer_more_than_balance(self, book):
        with pytest.raises(Underflow):
            book.transfer("alice", "bob", to_fixed(101))
        assert book.balance_of("alice") == to_fixed(100)
        assert book.balance_of("bob") == 0

    def test_transfer_from_spends_allowance(self, book):
        book.approve("alice", "ledger", to_fixed(50))
        book.transfer_from("ledger", "alice", "ledger", to_fixed(20))

        assert book.balance_of("ledger") == to_fixed(20)
        assert book.allowance("alice", "ledger") == to_fixed(30)

    def test_transfer_from_over_allowance(self, book):
        book.approve("alice", "ledger", to_fixed(10))
        with pytest.raises(Underflow):
            book.transfer_from("ledger", "alice", "ledger", to_fixed(20))
        assert book.allowance("alice", "ledger") == to_fixed(10)
        assert book.balance_of("alice") == to_fixed(100)

    def test_transfer_from_over_balance_keeps_allowance(self, book):
        book.approve("alice", "ledger", to_fixed(500))
        with pytest.raises(Underflow):
            book.transfer_from("ledger", "alice", "ledger", to_fixed(200))
        assert book.allowance("alice", "ledger") == to_fixed(500)

    def test_transfer_from_self_needs_no_allowance(self, book):
        book.transfer_from("alice", "alice", "bob", to_fixed(5))
        assert book.balance_of("bob") == to_fixed(5)

    def test_negative_amount(self, book):
        with pytest.raises(ValueError):
            book.transfer("alice", "bob", -1)


class TestInMemoryVault:
    """Tests for vault quotes."""

    def test_defaults(self):
        vault = InMemoryVault("yvUSD")
        assert vault.price_per_share() == SCALE
        assert vault.interest_rate() == 0
        assert vault.ltv_cap() == 0

    def test_setters(self):
        vault = InMemoryVault("yvUSD")
        vault.set_price_per_share(to_fixed("1.05"))
        vault.set_interest_rate(to_fixed("0.04"))
        vault.set_ltv_cap(to_fixed("0.75"))
        assert vault.price_per_share() == to_fixed("1.05")
        assert vault.interest_rate() == to_fixed("0.04")
        assert vault.ltv_cap() == to_fixed("0.75")

    def test_negative_quote_rejected(self):
        with pytest.raises(ValueError):
            InMemoryVault("yvUSD", price_per_share=-1)

    def test_is_collateral_vault(self):
        assert isinstance(InMemoryVault("yvUSD"), CollateralVault)


class TestInMemoryDebtToken:
    """Tests for the issuer allow-list."""

    def test_mint_draws_down_ceiling(self, token):
        token.mint("main", "main", to_fixed(60))
        assert token.balance_of("main") == to_fixed(60)
        assert token.outstanding("main") == to_fixed(60)
        assert token.available_to_mint("main") == to_fixed(40)

    def test_mint_over_ceiling(self, token):
        with pytest.raises(Underflow):
            token.mint("main", "main", to_fixed(101))
        assert token.total_supply() == 0

    def test_only_issuers_mint(self, token):
        with pytest.raises(NotAuthorized):
            token.mint("mallory", "mallory", 1)
        assert token.available_to_mint("mallory") == 0

    def test_only_owner_manages_issuers(self, token):
        with pytest.raises(NotAuthorized):
            token.set_valid_issuer("mallory", "mallory", to_fixed(100))
        assert not token.is_valid_issuer("mallory")

    def test_zero_ceiling_removes_issuer(self, token):
        token.set_valid_issuer("gov", "main", 0)
        assert not token.is_valid_issuer("main")
        with pytest.raises(NotAuthorized):
            token.mint("main", "main", 1)

    def test_burn_frees_ceiling(self, token):
        token.mint("main", "main", to_fixed(60))
        token.burn("main", to_fixed(20))
        assert token.outstanding("main") == to_fixed(40)
        assert token.total_supply() == to_fixed(40)

    def test_burn_beyond_outstanding_floors_at_zero(self, token):
        token.mint("main", "main", to_fixed(70))
        token.issue("main", to_fixed(7))
        token.burn("main", to_fixed(77))
        assert token.outstanding("main") == 0
        assert token.total_supply() == 0
        assert token.available_to_mint("main") == to_fixed(100)

    def test_burn_more_than_balance(self, token):
        token.mint("main", "main", to_fixed(10))
        with pytest.raises(Underflow):
            token.burn("main", to_fixed(11))
        assert token.outstanding("main") == to_fixed(10)

    def test_burn_from_reverses_mint_to_holder(self, token):
        token.mint("main", "treasury", to_fixed(5))
        token.burn_from("main", "treasury", to_fixed(5))
        assert token.balance_of("treasury") == 0
        assert token.outstanding("main") == 0
        assert token.total_supply() == 0

    def test_only_issuers_burn_from(self, token):
        token.mint("main", "alice", to_fixed(5))
        with pytest.raises(NotAuthorized):
            token.burn_from("mallory", "alice", to_fixed(5))
        assert token.balance_of("alice") == to_fixed(5)

    def test_is_debt_token(self, token):
        assert isinstance(token, DebtToken)
