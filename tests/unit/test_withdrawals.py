"""
test_withdrawals.py - Unit tests for withdraw and withdraw_all

Tests:
- Debt-free withdrawals return every share
- Withdrawals against an open loan respect the LTV ceiling
- Interest is folded into principal on withdraw
- withdraw_all margin and the nothing-to-withdraw case
"""

import pytest
from datetime import timedelta

from debtledger import (
    EventType, StandardBorrowPolicy,
    OverLtv, Underflow, ZeroCollateralValue,
    accrued_interest, loan_to_value, min_collateral, to_fixed,
)
from tests.market import build_market, START, LEDGER, ONE_SECOND


CAP = to_fixed("0.80")


class TestWithdraw:
    """Tests for partial withdrawals."""

    def test_debt_free_withdraw(self, funded_market):
        m = funded_market
        m.ledger.deposit("alice", to_fixed(100))
        m.tick()

        remaining = m.ledger.withdraw("alice", to_fixed(40))

        assert remaining == to_fixed(60)
        assert m.vault.balance_of("alice") == to_fixed(940)
        assert m.vault.balance_of(LEDGER) == to_fixed(60)

    def test_withdraw_within_cap(self, open_loan):
        m = open_loan
        m.tick()
        remaining = m.ledger.withdraw("alice", to_fixed(10))
        assert remaining == to_fixed(90)
        assert m.vault.balance_of("alice") == to_fixed(910)

    def test_withdraw_folds_interest(self, open_loan):
        m = open_loan
        m.tick(timedelta(days=365))
        m.ledger.withdraw("alice", to_fixed(1))

        account = m.ledger.get_account("alice")
        assert account.borrowed_amount == to_fixed(77)
        assert account.borrow_time == m.ledger.current_time
        assert account.collateral_amount == to_fixed(99)

    def test_withdraw_interest_one_second(self, open_loan):
        m = open_loan
        m.tick()
        m.ledger.withdraw("alice", to_fixed(1))
        expected = to_fixed(70) + accrued_interest(
            to_fixed("0.10"), to_fixed(70), START + ONE_SECOND, m.ledger.current_time
        )
        assert m.ledger.get_account("alice").borrowed_amount == expected

    def test_zero_withdraw_rejected(self, open_loan):
        m = open_loan
        m.tick(timedelta(days=365))
        before = m.ledger.snapshot()
        events = len(m.ledger.event_log)

        with pytest.raises(ValueError):
            m.ledger.withdraw("alice", 0)

        assert m.ledger.snapshot() == before
        assert m.ledger.get_account("alice").borrowed_amount == to_fixed(70)
        assert len(m.ledger.event_log) == events

    def test_withdraw_past_cap(self, open_loan):
        m = open_loan
        m.tick()
        before = m.ledger.snapshot()
        with pytest.raises(OverLtv):
            m.ledger.withdraw("alice", to_fixed(13))
        assert m.ledger.snapshot() == before
        assert m.vault.balance_of(LEDGER) == to_fixed(100)

    def test_withdraw_more_than_posted(self, open_loan):
        open_loan.tick()
        with pytest.raises(Underflow):
            open_loan.ledger.withdraw("alice", to_fixed(101))

    def test_withdraw_everything_with_debt(self, open_loan):
        open_loan.tick()
        with pytest.raises(ZeroCollateralValue):
            open_loan.ledger.withdraw("alice", to_fixed(100))

    def test_price_drop_blocks_withdraw(self, open_loan):
        m = open_loan
        m.vault.set_price_per_share(to_fixed("0.9"))
        m.tick()
        with pytest.raises(OverLtv):
            m.ledger.withdraw("alice", to_fixed(5))

    def test_withdraw_emits_event(self, funded_market):
        m = funded_market
        m.ledger.deposit("alice", to_fixed(100))
        m.tick()
        m.ledger.withdraw("alice", to_fixed(25))

        event = m.ledger.event_log[-1]
        assert event.event_type == EventType.WITHDRAW
        assert event.amounts == {'amount': to_fixed(25), 'collateral': to_fixed(75)}


class TestWithdrawAll:
    """Tests for withdraw_all."""

    def test_debt_free_withdraws_everything(self, funded_market):
        m = funded_market
        m.ledger.deposit("alice", to_fixed(100))
        m.tick()

        withdrawn = m.ledger.withdraw_all("alice")

        assert withdrawn == to_fixed(100)
        assert m.ledger.get_account("alice").collateral_amount == 0
        assert m.vault.balance_of("alice") == to_fixed(1000)

    def test_withdraws_surplus_less_margin(self, open_loan):
        m = open_loan
        m.tick()
        debt = m.ledger.total_debt("alice")
        surplus = to_fixed(100) - min_collateral(debt, CAP, to_fixed(1))
        expected = surplus * 999 // 1000

        withdrawn = m.ledger.withdraw_all("alice")

        assert withdrawn == expected
        assert m.ledger.get_account("alice").collateral_amount == to_fixed(100) - expected

    def test_leaves_position_under_cap(self, open_loan):
        m = open_loan
        m.tick()
        m.ledger.withdraw_all("alice")
        account = m.ledger.get_account("alice")
        ltv = loan_to_value(0, account.borrowed_amount, 0, account.collateral_amount, to_fixed(1))
        assert ltv < CAP
        assert ltv > to_fixed("0.799")

    def test_nothing_withdrawable_at_cap(self, funded_market):
        m = funded_market
        m.ledger.borrow("alice", to_fixed(80), collateral_delta=to_fixed(100))
        m.tick()
        with pytest.raises(Underflow):
            m.ledger.withdraw_all("alice")

    def test_untouched_account(self, market):
        with pytest.raises(Underflow):
            market.ledger.withdraw_all("nobody")

    def test_uses_policy_ceiling(self):
        """A buffered policy keeps more collateral locked."""
        m = build_market(policy=StandardBorrowPolicy(ltv_buffer=to_fixed("0.10")))
        m.fund_collateral("alice", to_fixed(1000))
        m.ledger.borrow("alice", to_fixed(70), collateral_delta=to_fixed(100))
        m.tick()
        with pytest.raises(Underflow):
            m.ledger.withdraw_all("alice")
