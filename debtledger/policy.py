"""
policy.py - Borrow Policies

A borrow policy decides what an account's next state should be for a
requested borrow, repay or withdraw, and rejects requests that break the
lending rules. It never mutates anything: the ledger commits the returned
proposal only after its own monotonicity checks pass.

Policies are swapped as a whole through the ledger's timelock. Variants differ
by configuration rather than subclassing:

    StandardBorrowPolicy()                 - LTV ceiling = vault.ltv_cap()
    StandardBorrowPolicy(ltv_buffer=b)     - LTV ceiling = vault.ltv_cap() - b

Error contract:
    propose_borrow   -> OverLtv, InsufficientLiquidity, ZeroCollateralValue
    propose_repay    -> OverRepay
    propose_withdraw -> Underflow, OverLtv, ZeroCollateralValue
"""

from __future__ import annotations

from .calculator import loan_to_value
from .core import (
    BorrowProposal, RepayProposal, WithdrawProposal,
    CollateralVault, DebtLedgerView,
    OverLtv, OverRepay, InsufficientLiquidity, Underflow,
    from_fixed,
)


class StandardBorrowPolicy:
    """
    Lending rules capped at the vault's LTV ceiling, less an optional buffer.

    Args:
        ltv_buffer: Subtracted from the vault's cap (1e18 fixed point;
                    0.05e18 turns an 80% cap into 75%)
        policy_id: Identifier recorded in policy events

    Example:
        policy = StandardBorrowPolicy()
        proposal = policy.propose_borrow(ledger, to_fixed(70), to_fixed(100),
                                         0, vault, 0)
    """

    def __init__(self, ltv_buffer: int = 0, policy_id: str = "standard-v1"):
        if ltv_buffer < 0:
            raise ValueError(f"ltv_buffer cannot be negative, got {ltv_buffer}")
        self.ltv_buffer = ltv_buffer
        self.policy_id = policy_id

    def max_ltv(self, vault: CollateralVault) -> int:
        """LTV ceiling this policy enforces."""
        return max(0, vault.ltv_cap() - self.ltv_buffer)

    def propose_borrow(
        self,
        view: DebtLedgerView,
        amount: int,
        collateral_delta: int,
        current_collateral: int,
        vault: CollateralVault,
        existing_debt: int,
    ) -> BorrowProposal:
        """
        Propose the account state after borrowing amount and adding collateral.

        Raises:
            OverLtv: If the resulting LTV exceeds max_ltv(vault).
            InsufficientLiquidity: If the debt token cannot issue amount.
        """
        ltv = loan_to_value(
            amount, existing_debt, collateral_delta, current_collateral,
            vault.price_per_share(),
        )
        cap = self.max_ltv(vault)
        if ltv > cap:
            raise OverLtv(
                f"borrow of {from_fixed(amount)} puts LTV at {from_fixed(ltv)} "
                f"> cap {from_fixed(cap)}"
            )

        available = view.debt_token.available_to_mint(view.name)
        if available < amount:
            raise InsufficientLiquidity(
                f"requested {from_fixed(amount)}, issuer can mint {from_fixed(available)}"
            )

        return BorrowProposal(
            new_debt=existing_debt + amount,
            new_collateral=current_collateral + collateral_delta,
            new_time=view.current_time,
        )

    def propose_repay(
        self,
        view: DebtLedgerView,
        amount: int,
        existing_debt: int,
    ) -> RepayProposal:
        """
        Propose the debt after repaying amount.

        Raises:
            OverRepay: If amount exceeds existing_debt.
        """
        if amount > existing_debt:
            raise OverRepay(
                f"repay of {from_fixed(amount)} exceeds debt {from_fixed(existing_debt)}"
            )
        return RepayProposal(
            new_debt=existing_debt - amount,
            new_time=view.current_time,
        )

    def propose_withdraw(
        self,
        view: DebtLedgerView,
        withdraw_amount: int,
        vault: CollateralVault,
        current_collateral: int,
        existing_debt: int,
    ) -> WithdrawProposal:
        """
        Propose the collateral after withdrawing withdraw_amount shares.

        The LTV is recomputed against the reduced collateral.

        Raises:
            Underflow: If withdraw_amount exceeds current_collateral.
            OverLtv: If the remaining collateral no longer covers the debt.
        """
        if withdraw_amount > current_collateral:
            raise Underflow(
                f"withdraw of {withdraw_amount} shares exceeds collateral {current_collateral}"
            )
        new_collateral = current_collateral - withdraw_amount

        ltv = loan_to_value(0, existing_debt, 0, new_collateral, vault.price_per_share())
        cap = self.max_ltv(vault)
        if ltv > cap:
            raise OverLtv(
                f"withdraw of {withdraw_amount} shares puts LTV at {from_fixed(ltv)} "
                f"> cap {from_fixed(cap)}"
            )

        return WithdrawProposal(
            new_collateral=new_collateral,
            new_time=view.current_time,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.policy_id})"

