"""
tokens.py - In-Memory Collateral Vault and Debt Token

Reference implementations of the two external collaborators a DebtLedger
consumes. Both are plain share books (balances plus allowances); the vault
adds a quoted share price, interest rate and LTV cap, the debt token adds an
allow-list of issuers with per-issuer mint ceilings.

Each call either completes or raises before touching any balance.

Classes:
- ShareBook: balances, allowances, transfer / transfer_from / approve
- InMemoryVault: CollateralVault with settable quotes
- InMemoryDebtToken: DebtToken with governance-managed issuers
"""

from __future__ import annotations
from collections import defaultdict
from typing import Dict, Tuple

from .core import (
    NotAuthorized, Underflow,
    SCALE,
    checked_uint, require_amount,
)


class ShareBook:
    """
    Fungible balance book keyed by account identifier.

    Example:
        book = ShareBook("yvUSD")
        book.issue("alice", to_fixed(100))
        book.approve("alice", "ledger", to_fixed(100))
        book.transfer_from("ledger", "alice", "ledger", to_fixed(40))
    """

    def __init__(self, symbol: str):
        self.symbol = symbol
        self._balances: Dict[str, int] = defaultdict(int)
        self._allowances: Dict[Tuple[str, str], int] = defaultdict(int)
        self._total_supply = 0

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def total_supply(self) -> int:
        return self._total_supply

    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Let spender move up to amount of owner's balance."""
        self._allowances[(owner, spender)] = require_amount(amount)

    def transfer(self, caller: str, to: str, amount: int) -> None:
        """Move amount from caller's balance to to."""
        require_amount(amount)
        self._move(caller, to, amount)

    def transfer_from(self, caller: str, source: str, to: str, amount: int) -> None:
        """
        Move amount from source to to, spending caller's allowance.

        Raises:
            Underflow: If the allowance or source balance is insufficient.
        """
        require_amount(amount)
        if caller != source:
            allowed = self.allowance(source, caller)
            if allowed < amount:
                raise Underflow(
                    f"{self.symbol}: allowance {allowed} of {caller} over {source} < {amount}"
                )
            self._check_balance(source, amount)
            self._allowances[(source, caller)] = allowed - amount
        self._move(source, to, amount)

    def issue(self, to: str, amount: int) -> None:
        """Create amount out of nothing for to (funding helper)."""
        require_amount(amount)
        self._balances[to] = checked_uint(self._balances[to] + amount, f"{self.symbol} balance")
        self._total_supply = checked_uint(self._total_supply + amount, f"{self.symbol} supply")

    def _check_balance(self, account: str, amount: int) -> None:
        balance = self.balance_of(account)
        if balance < amount:
            raise Underflow(f"{self.symbol}: balance of {account} is {balance} < {amount}")

    def _move(self, source: str, to: str, amount: int) -> None:
        self._check_balance(source, amount)
        if amount == 0 or source == to:
            return
        self._balances[source] -= amount
        self._balances[to] += amount

    def __repr__(self) -> str:
        holders = sum(1 for b in self._balances.values() if b)
        return f"{type(self).__name__}({self.symbol}, supply={self._total_supply}, holders={holders})"


class InMemoryVault(ShareBook):
    """
    Yield-bearing vault whose shares serve as collateral.

    Args:
        symbol: Share symbol
        price_per_share: Underlying value of one share (1e18 = 1:1)
        interest_rate: Annual borrow rate charged against these shares (1e18 = 100%)
        ltv_cap: Maximum loan-to-value (0.8e18 = 80%)
    """

    def __init__(
        self,
        symbol: str,
        price_per_share: int = SCALE,
        interest_rate: int = 0,
        ltv_cap: int = 0,
    ):
        super().__init__(symbol)
        self._price_per_share = require_amount(price_per_share, "price_per_share")
        self._interest_rate = require_amount(interest_rate, "interest_rate")
        self._ltv_cap = require_amount(ltv_cap, "ltv_cap")

    def price_per_share(self) -> int:
        return self._price_per_share

    def interest_rate(self) -> int:
        return self._interest_rate

    def ltv_cap(self) -> int:
        return self._ltv_cap

    def set_price_per_share(self, price: int) -> None:
        self._price_per_share = require_amount(price, "price_per_share")

    def set_interest_rate(self, rate: int) -> None:
        self._interest_rate = require_amount(rate, "interest_rate")

    def set_ltv_cap(self, cap: int) -> None:
        self._ltv_cap = require_amount(cap, "ltv_cap")


class InMemoryDebtToken(ShareBook):
    """
    Pegged debt token with an owner-managed issuer allow-list.

    Each issuer has a ceiling on its outstanding issuance; mint draws it
    down and burn frees it up. A ceiling of zero removes the issuer.

    Example:
        token = InMemoryDebtToken("dUSD", owner="gov")
        token.set_valid_issuer("gov", "main_ledger", to_fixed(1_000_000))
    """

    def __init__(self, symbol: str, owner: str):
        super().__init__(symbol)
        self.owner = owner
        self._ceilings: Dict[str, int] = {}
        self._outstanding: Dict[str, int] = defaultdict(int)

    def set_valid_issuer(self, caller: str, issuer: str, ceiling: int) -> None:
        """
        Allow issuer to keep up to ceiling tokens outstanding.

        Raises:
            NotAuthorized: If caller is not the token owner.
        """
        if caller != self.owner:
            raise NotAuthorized(f"{caller} cannot manage issuers of {self.symbol}")
        require_amount(ceiling, "ceiling")
        if ceiling == 0:
            self._ceilings.pop(issuer, None)
        else:
            self._ceilings[issuer] = ceiling

    def is_valid_issuer(self, issuer: str) -> bool:
        return issuer in self._ceilings

    def outstanding(self, issuer: str) -> int:
        return self._outstanding.get(issuer, 0)

    def available_to_mint(self, issuer: str) -> int:
        if issuer not in self._ceilings:
            return 0
        return max(0, self._ceilings[issuer] - self.outstanding(issuer))

    def mint(self, caller: str, to: str, amount: int) -> None:
        """
        Issue amount new tokens to to.

        Raises:
            NotAuthorized: If caller is not an allow-listed issuer.
            Underflow: If amount exceeds the issuer's remaining ceiling.
        """
        self._require_issuer(caller)
        require_amount(amount)
        available = self.available_to_mint(caller)
        if amount > available:
            raise Underflow(f"{self.symbol}: {caller} can mint {available} < {amount}")
        self.issue(to, amount)
        self._outstanding[caller] += amount

    def burn(self, caller: str, amount: int) -> None:
        """
        Destroy amount tokens from caller's own balance.

        Burning beyond the caller's outstanding issuance (interest repaid on
        top of principal) floors the outstanding counter at zero.
        """
        self._require_issuer(caller)
        self._destroy(caller, caller, amount)

    def burn_from(self, caller: str, source: str, amount: int) -> None:
        """
        Destroy amount tokens held by source against caller's issuance.

        Lets an issuer reverse a mint it has just paid out, without an
        allowance from the recipient.
        """
        self._require_issuer(caller)
        self._destroy(caller, source, amount)

    def _destroy(self, issuer: str, source: str, amount: int) -> None:
        require_amount(amount)
        self._check_balance(source, amount)
        self._balances[source] -= amount
        self._total_supply -= amount
        self._outstanding[issuer] = max(0, self._outstanding[issuer] - amount)

    def _require_issuer(self, caller: str) -> None:
        if caller not in self._ceilings:
            raise NotAuthorized(f"{caller} is not a valid issuer of {self.symbol}")
