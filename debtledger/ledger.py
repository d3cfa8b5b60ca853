"""
ledger.py - Collateralized Debt Ledger

The DebtLedger is the only component that mutates account state. It owns the
account table, the fee configuration and the policy candidate slot, and it
delegates the "what should the new state be" decision to the active
BorrowPolicy.

Every borrow / repay / withdraw follows the same protocol:
    1. Read the account and its debt including interest
    2. Ask the active policy for a proposal (its errors propagate verbatim)
    3. Re-validate monotonicity independently of the policy
    4. Commit the new account state
    5. Move collateral shares and debt tokens
    6. Record a LedgerEvent

Steps 4-5 are all-or-nothing: if any fund movement fails, completed
movements are compensated in reverse order and the account is restored
before the error propagates.

All state-changing entry points run under a ledger-wide lock. A nested call
from the thread already inside the ledger (a collaborator calling back during
fund movement) raises ReentrantCall.
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple
import threading

from . import calculator
from .core import (
    # Types
    Account, AccountInfo, PolicyCandidate, LedgerConfig, LedgerEvent, EventType,
    BorrowPolicy, CollateralVault, DebtToken, LedgerSnapshot,
    # Constants
    EPOCH, FAR_FUTURE, DEFAULT_MAX_BORROW_FEE_RATE,
    WITHDRAW_ALL_MARGIN, WITHDRAW_ALL_MARGIN_DENOMINATOR,
    # Exceptions
    LedgerError, InvariantViolation, NoCandidate, DelayNotElapsed,
    NotAuthorized, AlreadyInitialized, NotInitialized, FeeCapExceeded,
    ReentrantCall, Underflow,
    # Helpers
    checked_uint, require_amount,
)


# A fund movement step: (apply, compensate). compensate is None for steps
# that only pay out of the ledger's own freshly received balance.
FundStep = Tuple[Callable[[], None], Optional[Callable[[], None]]]


class DebtLedger:
    """
    Collateralized debt ledger for a single vault and debt token.

    Accounts deposit vault shares as collateral and borrow the debt token
    against them. The ledger holds collateral in custody under its own name
    and is an allow-listed issuer of the debt token.

    Thread Safety:
        State-changing calls are mutually exclusive across threads.

    Example:
        ledger = DebtLedger("main", owner="gov", approval_delay=timedelta(days=2),
                            initial_time=datetime(2025, 1, 1))
        ledger.initialize("gov", vault, token, StandardBorrowPolicy(),
                          treasury="treasury", borrow_fee_rate=5)
        ledger.advance_time(datetime(2025, 1, 2))
        ledger.borrow("alice", to_fixed(70), collateral_delta=to_fixed(100))
    """

    def __init__(
        self,
        name: str,
        owner: str,
        approval_delay: timedelta,
        initial_time: Optional[datetime] = None,
        max_borrow_fee_rate: int = DEFAULT_MAX_BORROW_FEE_RATE,
        verbose: bool = True,
    ):
        """
        Create an uninitialized ledger.

        Args:
            name: Ledger identifier; also the custody and issuer account
            owner: Governance identity
            approval_delay: Minimum time between proposing and activating a policy
            initial_time: Starting logical time (default: 1970-01-01)
            max_borrow_fee_rate: Hard ceiling on the fee rate, parts-per-thousand
            verbose: Print committed events and rejections (default: True)
        """
        if not name or not name.strip():
            raise ValueError("ledger name cannot be empty")
        if not owner or not owner.strip():
            raise ValueError("owner cannot be empty")
        if approval_delay < timedelta(0):
            raise ValueError(f"approval_delay cannot be negative, got {approval_delay}")
        require_amount(max_borrow_fee_rate, "max_borrow_fee_rate")

        self._name = name
        self._owner = owner
        self._current_time: datetime = initial_time or EPOCH
        self.verbose = verbose

        self._config = LedgerConfig(
            approval_delay=approval_delay,
            max_borrow_fee_rate=max_borrow_fee_rate,
        )
        self._candidate = PolicyCandidate()
        self._policy: Optional[BorrowPolicy] = None
        self._vault: Optional[CollateralVault] = None
        self._debt_token: Optional[DebtToken] = None
        self._initialized = False

        self._accounts: Dict[str, Account] = {}
        self.event_log: List[LedgerEvent] = []
        self._next_sequence = 0

        self._lock = threading.Lock()
        self._lock_holder: Optional[int] = None

    # ========================================================================
    # DebtLedgerView PROTOCOL (read-only)
    # ========================================================================

    @property
    def name(self) -> str:
        return self._name

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    @property
    def debt_token(self) -> DebtToken:
        self._require_initialized()
        return self._debt_token

    def get_account(self, account: str) -> Account:
        """Return the account record (zero-valued if never touched)."""
        return self._accounts.get(account, Account())

    # ========================================================================
    # READ SIDE
    # ========================================================================

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def vault(self) -> CollateralVault:
        self._require_initialized()
        return self._vault

    @property
    def policy(self) -> Optional[BorrowPolicy]:
        """The active borrow policy."""
        return self._policy

    @property
    def candidate(self) -> PolicyCandidate:
        return self._candidate

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def approval_delay(self) -> timedelta:
        return self._config.approval_delay

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def accounts(self) -> Dict[str, Account]:
        """All account records that have been touched."""
        return dict(self._accounts)

    def total_debt(self, account: str) -> int:
        """Debt of account including interest accrued to the current time."""
        self._require_initialized()
        return calculator.total_debt(
            self.get_account(account), self._vault.interest_rate(), self._current_time
        )

    def account_info(self, account: str) -> AccountInfo:
        """
        Summarize an account at the current time.

        Returns:
            AccountInfo with stored fields, debt including interest, current
            LTV and the additional debt the active policy would allow.

        Raises:
            ZeroCollateralValue: If the account owes debt against worthless collateral.
        """
        self._require_initialized()
        record = self.get_account(account)
        debt = self.total_debt(account)
        price = self._vault.price_per_share()
        return AccountInfo(
            account=account,
            borrowed_amount=record.borrowed_amount,
            borrow_time=record.borrow_time,
            collateral_amount=record.collateral_amount,
            total_debt=debt,
            loan_to_value=calculator.loan_to_value(0, debt, 0, record.collateral_amount, price),
            max_borrow=calculator.max_borrow(
                debt, record.collateral_amount, price, self._policy.max_ltv(self._vault)
            ),
        )

    def snapshot(self) -> LedgerSnapshot:
        """
        Capture every piece of ledger-owned state.

        Two snapshots compare equal exactly when the ledger's accounts,
        configuration, candidate, active policy and event log are unchanged.
        """
        return {
            'accounts': dict(self._accounts),
            'config': self._config,
            'candidate': self._candidate,
            'policy': self._policy,
            'initialized': self._initialized,
            'events': tuple(e.event_id for e in self.event_log),
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time can only move forward.

        Raises:
            ValueError: If new_time is before the current time
        """
        if new_time < self._current_time:
            raise ValueError(
                f"Cannot move time backwards: {new_time} < {self._current_time}"
            )
        self._current_time = new_time

    # ========================================================================
    # GOVERNANCE
    # ========================================================================

    def initialize(
        self,
        caller: str,
        vault: CollateralVault,
        debt_token: DebtToken,
        policy: BorrowPolicy,
        treasury: str,
        borrow_fee_rate: int = 0,
    ) -> None:
        """
        Wire the ledger to its collaborators. One shot.

        Raises:
            NotAuthorized: If caller is not the owner.
            AlreadyInitialized: On any repeat attempt.
            FeeCapExceeded: If borrow_fee_rate is not below the hard ceiling.
        """
        with self._exclusive("initialize", caller):
            self._require_owner(caller)
            if self._initialized:
                raise AlreadyInitialized(f"ledger {self._name} is already initialized")
            if not isinstance(policy, BorrowPolicy):
                raise ValueError(f"{policy!r} does not implement BorrowPolicy")
            if not treasury or not treasury.strip():
                raise ValueError("treasury cannot be empty")
            self._check_fee_rate(borrow_fee_rate)

            self._vault = vault
            self._debt_token = debt_token
            self._policy = policy
            self._config = LedgerConfig(
                approval_delay=self._config.approval_delay,
                max_borrow_fee_rate=self._config.max_borrow_fee_rate,
                borrow_fee_rate=borrow_fee_rate,
                treasury=treasury,
            )
            self._initialized = True

    def propose_implementation(self, caller: str, policy: BorrowPolicy) -> None:
        """
        Propose a new borrow policy. Overwrites any unconsumed proposal.

        Raises:
            NotAuthorized: If caller is not the owner.
        """
        with self._exclusive("propose_implementation", caller):
            self._require_owner(caller)
            if not isinstance(policy, BorrowPolicy):
                raise ValueError(f"{policy!r} does not implement BorrowPolicy")
            self._candidate = PolicyCandidate(
                implementation=policy,
                proposed_time=self._current_time,
            )
            self._emit(
                EventType.POLICY_PROPOSED, caller, {},
                {'policy': policy.policy_id,
                 'activatable': str(self._current_time + self._config.approval_delay)},
            )

    def upgrade_implementation(self, caller: str) -> BorrowPolicy:
        """
        Activate the proposed policy once the approval delay has elapsed.

        The candidate slot is reset afterwards, so a stale candidate can never
        be activated twice without a fresh proposal.

        Returns:
            The newly active policy

        Raises:
            NotAuthorized: If caller is not the owner.
            NoCandidate: If nothing is proposed.
            DelayNotElapsed: If now < proposed_time + approval_delay.
        """
        with self._exclusive("upgrade_implementation", caller):
            self._require_owner(caller)
            candidate = self._candidate
            if candidate.is_empty:
                raise NoCandidate("no policy implementation has been proposed")
            activatable = candidate.proposed_time + self._config.approval_delay
            if self._current_time < activatable:
                raise DelayNotElapsed(
                    f"policy {candidate.implementation.policy_id} activatable at "
                    f"{activatable}, now {self._current_time}"
                )

            previous = self._policy
            self._policy = candidate.implementation
            self._candidate = PolicyCandidate(implementation=None, proposed_time=FAR_FUTURE)
            self._emit(
                EventType.POLICY_ACTIVATED, caller, {},
                {'policy': self._policy.policy_id,
                 'previous': previous.policy_id if previous is not None else "none"},
            )
            return self._policy

    def set_borrow_fee_rate(self, caller: str, rate: int) -> None:
        """
        Change the borrow fee rate (parts-per-thousand).

        Raises:
            NotAuthorized: If caller is not the owner.
            FeeCapExceeded: If rate is not below the hard ceiling.
        """
        with self._exclusive("set_borrow_fee_rate", caller):
            self._require_owner(caller)
            self._check_fee_rate(rate)
            old_rate = self._config.borrow_fee_rate
            self._config = LedgerConfig(
                approval_delay=self._config.approval_delay,
                max_borrow_fee_rate=self._config.max_borrow_fee_rate,
                borrow_fee_rate=rate,
                treasury=self._config.treasury,
            )
            self._emit(
                EventType.FEE_RATE_UPDATED, caller, {},
                {'old_rate': f"{old_rate}/1000", 'new_rate': f"{rate}/1000"},
            )

    def set_treasury(self, caller: str, treasury: str) -> None:
        """
        Redirect fee proceeds to a new treasury account.

        Raises:
            NotAuthorized: If caller is not the owner.
        """
        with self._exclusive("set_treasury", caller):
            self._require_owner(caller)
            if not treasury or not treasury.strip():
                raise ValueError("treasury cannot be empty")
            old_treasury = self._config.treasury
            self._config = LedgerConfig(
                approval_delay=self._config.approval_delay,
                max_borrow_fee_rate=self._config.max_borrow_fee_rate,
                borrow_fee_rate=self._config.borrow_fee_rate,
                treasury=treasury,
            )
            self._emit(
                EventType.TREASURY_UPDATED, caller, {},
                {'old': str(old_treasury), 'new': treasury},
            )

    # ========================================================================
    # ACCOUNT OPERATIONS
    # ========================================================================

    def borrow(self, caller: str, amount: int, collateral_delta: int = 0) -> int:
        """
        Post collateral_delta shares and borrow amount debt tokens.

        The borrow fee is withheld from amount and routed to the treasury;
        the caller receives the rest. The caller must have approved the
        ledger to move collateral_delta vault shares.

        Args:
            caller: Borrowing account
            amount: Debt tokens to borrow (may be 0 for a pure deposit)
            collateral_delta: Vault shares to add as collateral

        Returns:
            Debt tokens received by the caller (amount - fee)

        Raises:
            OverLtv, InsufficientLiquidity: From the policy.
            InvariantViolation: If the policy's proposal is not monotonic.
            ValueError: If both amount and collateral_delta are zero.
        """
        with self._exclusive("borrow", caller):
            self._require_initialized()
            require_amount(amount)
            require_amount(collateral_delta, "collateral_delta")
            if amount == 0 and collateral_delta == 0:
                raise ValueError("borrow needs a positive amount or collateral_delta")

            account = self.get_account(caller)
            existing_debt = self._debt_with_interest(account)

            proposal = self._policy.propose_borrow(
                self, amount, collateral_delta, account.collateral_amount,
                self._vault, existing_debt,
            )

            if not proposal.new_time > account.borrow_time:
                raise InvariantViolation(
                    f"borrow time {proposal.new_time} not after {account.borrow_time}"
                )
            if not proposal.new_collateral >= account.collateral_amount:
                raise InvariantViolation(
                    f"borrow would shrink collateral {account.collateral_amount} "
                    f"-> {proposal.new_collateral}"
                )
            if not proposal.new_debt >= existing_debt:
                raise InvariantViolation(
                    f"borrow would shrink debt {existing_debt} -> {proposal.new_debt}"
                )

            updated = Account(
                borrowed_amount=checked_uint(proposal.new_debt, "debt"),
                borrow_time=proposal.new_time,
                collateral_amount=checked_uint(proposal.new_collateral, "collateral"),
            )

            fee = calculator.borrow_fee(amount, self._config.borrow_fee_rate)
            received = amount - fee
            treasury = self._config.treasury
            custody = self._name
            # The fee is minted to the treasury ahead of the borrower's share.
            # Only the final mint to the borrower cannot be reversed.
            steps: List[FundStep] = []
            if collateral_delta:
                steps.append((
                    lambda: self._vault.transfer_from(custody, caller, custody, collateral_delta),
                    lambda: self._vault.transfer(custody, caller, collateral_delta),
                ))
            if fee:
                steps.append((
                    lambda: self._debt_token.mint(custody, treasury, fee),
                    lambda: self._debt_token.burn_from(custody, treasury, fee),
                ))
            if received:
                steps.append((lambda: self._debt_token.mint(custody, caller, received), None))

            self._commit(caller, account, updated, steps)

            self._emit(
                EventType.BORROW, caller,
                {'amount': amount, 'collateral': collateral_delta,
                 'received': received, 'debt': updated.borrowed_amount},
            )
            if fee:
                self._emit(
                    EventType.FEE_CHARGED, caller,
                    {'fee': fee, 'amount': amount},
                    {'treasury': treasury},
                )
            return received

    def deposit(self, caller: str, collateral_amount: int) -> None:
        """Post collateral without borrowing (a borrow of zero tokens)."""
        if collateral_amount == 0:
            raise ValueError("deposit needs a positive collateral_amount")
        self.borrow(caller, 0, collateral_delta=collateral_amount)

    def repay(self, caller: str, amount: int) -> int:
        """
        Repay amount debt tokens. Interest accrued so far is folded into
        the remaining principal.

        The caller must have approved the ledger to move amount debt tokens.

        Returns:
            Remaining debt

        Raises:
            OverRepay: From the policy, if amount exceeds the debt.
            InvariantViolation: If the proposal does not strictly reduce debt
                (including amount == 0).
        """
        with self._exclusive("repay", caller):
            return self._repay(caller, amount)

    def repay_all(self, caller: str) -> int:
        """
        Repay the caller's full debt including interest.

        Returns:
            Amount repaid
        """
        with self._exclusive("repay_all", caller):
            self._require_initialized()
            amount = self._debt_with_interest(self.get_account(caller))
            self._repay(caller, amount)
            return amount

    def withdraw(self, caller: str, amount: int) -> int:
        """
        Withdraw amount collateral shares back to the caller.

        Returns:
            Remaining collateral

        Raises:
            Underflow, OverLtv: From the policy.
            InvariantViolation: If the proposal is not monotonic.
            ValueError: If amount is zero.
        """
        with self._exclusive("withdraw", caller):
            return self._withdraw(caller, amount)

    def withdraw_all(self, caller: str) -> int:
        """
        Withdraw as much collateral as the LTV ceiling allows.

        The withdrawable amount is the collateral above the minimum that holds
        the debt at the policy's ceiling, less a 0.1% margin against rounding
        and price drift. Debt-free accounts withdraw everything.

        Returns:
            Shares withdrawn

        Raises:
            Underflow: If nothing can be withdrawn.
        """
        with self._exclusive("withdraw_all", caller):
            self._require_initialized()
            account = self.get_account(caller)
            debt = self._debt_with_interest(account)

            if debt == 0:
                amount = account.collateral_amount
            else:
                floor = calculator.min_collateral(
                    debt, self._policy.max_ltv(self._vault), self._vault.price_per_share()
                )
                surplus = max(0, account.collateral_amount - floor)
                amount = (
                    surplus * (WITHDRAW_ALL_MARGIN_DENOMINATOR - WITHDRAW_ALL_MARGIN)
                    // WITHDRAW_ALL_MARGIN_DENOMINATOR
                )

            if amount == 0:
                raise Underflow(f"{caller} has no withdrawable collateral")
            self._withdraw(caller, amount)
            return amount

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _repay(self, caller: str, amount: int) -> int:
        self._require_initialized()
        require_amount(amount)

        account = self.get_account(caller)
        existing_debt = self._debt_with_interest(account)

        proposal = self._policy.propose_repay(self, amount, existing_debt)

        if not proposal.new_debt < existing_debt:
            raise InvariantViolation(
                f"repay must reduce debt: {existing_debt} -> {proposal.new_debt}"
            )
        if not proposal.new_time > account.borrow_time:
            raise InvariantViolation(
                f"repay time {proposal.new_time} not after {account.borrow_time}"
            )

        updated = Account(
            borrowed_amount=checked_uint(proposal.new_debt, "debt"),
            borrow_time=proposal.new_time,
            collateral_amount=account.collateral_amount,
        )

        custody = self._name
        steps: List[FundStep] = [
            (lambda: self._debt_token.transfer_from(custody, caller, custody, amount),
             lambda: self._debt_token.transfer(custody, caller, amount)),
            (lambda: self._debt_token.burn(custody, amount), None),
        ]
        self._commit(caller, account, updated, steps)

        self._emit(
            EventType.REPAY, caller,
            {'amount': amount, 'debt': updated.borrowed_amount},
        )
        return updated.borrowed_amount

    def _withdraw(self, caller: str, amount: int) -> int:
        self._require_initialized()
        require_amount(amount)
        if amount == 0:
            raise ValueError("withdraw needs a positive amount")

        account = self.get_account(caller)
        existing_debt = self._debt_with_interest(account)

        proposal = self._policy.propose_withdraw(
            self, amount, self._vault, account.collateral_amount, existing_debt
        )

        if not proposal.new_time > account.borrow_time:
            raise InvariantViolation(
                f"withdraw time {proposal.new_time} not after {account.borrow_time}"
            )
        if not proposal.new_collateral <= account.collateral_amount:
            raise InvariantViolation(
                f"withdraw would grow collateral {account.collateral_amount} "
                f"-> {proposal.new_collateral}"
            )

        # Interest accrued up to now is folded into principal with the new time.
        updated = Account(
            borrowed_amount=checked_uint(existing_debt, "debt"),
            borrow_time=proposal.new_time,
            collateral_amount=checked_uint(proposal.new_collateral, "collateral"),
        )

        released = account.collateral_amount - updated.collateral_amount
        custody = self._name
        steps: List[FundStep] = []
        if released:
            steps.append((lambda: self._vault.transfer(custody, caller, released), None))
        self._commit(caller, account, updated, steps)

        self._emit(
            EventType.WITHDRAW, caller,
            {'amount': released, 'collateral': updated.collateral_amount},
        )
        return updated.collateral_amount

    def _debt_with_interest(self, account: Account) -> int:
        return calculator.total_debt(account, self._vault.interest_rate(), self._current_time)

    def _commit(
        self,
        account_id: str,
        previous: Account,
        updated: Account,
        steps: List[FundStep],
    ) -> None:
        """
        Store updated, then run fund movements.

        On any failure, the previous account record is restored and completed
        movements are compensated in reverse order before the original error
        is re-raised. Each compensation runs even if an earlier one fails;
        failures are attached to the original error as notes. A step without
        a compensation must come last.
        """
        existed = account_id in self._accounts
        self._accounts[account_id] = updated

        compensations: List[Callable[[], None]] = []
        try:
            for apply, compensate in steps:
                apply()
                if compensate is not None:
                    compensations.append(compensate)
        except Exception as error:
            if existed:
                self._accounts[account_id] = previous
            else:
                del self._accounts[account_id]
            for compensate in reversed(compensations):
                try:
                    compensate()
                except Exception as failure:
                    error.add_note(f"rollback step failed: {type(failure).__name__}: {failure}")
            raise

    def _emit(
        self,
        event_type: EventType,
        actor: str,
        amounts: Mapping[str, int],
        detail: Optional[Mapping[str, str]] = None,
    ) -> LedgerEvent:
        sequence = self._next_sequence
        self._next_sequence += 1
        micros = (self._current_time - EPOCH) // timedelta(microseconds=1)
        event = LedgerEvent(
            event_type=event_type,
            actor=actor,
            timestamp=self._current_time,
            amounts=dict(amounts),
            sequence_number=sequence,
            event_id=f"evt:{self._name}:{sequence:012d}:{micros}",
            ledger_name=self._name,
            detail=dict(detail or {}),
        )
        self.event_log.append(event)
        if self.verbose:
            print(repr(event))
        return event

    def _require_owner(self, caller: str) -> None:
        if caller != self._owner:
            raise NotAuthorized(f"{caller} is not the owner of ledger {self._name}")

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitialized(f"ledger {self._name} is not initialized")

    def _check_fee_rate(self, rate: int) -> None:
        require_amount(rate, "borrow_fee_rate")
        # Nonzero rates stay strictly below the ceiling.
        if rate > 0 and rate >= self._config.max_borrow_fee_rate:
            raise FeeCapExceeded(
                f"fee rate {rate}/1000 not below ceiling {self._config.max_borrow_fee_rate}/1000"
            )

    @contextmanager
    def _exclusive(self, operation: str, caller: str) -> Iterator[None]:
        """
        Hold the ledger-wide lock for one state-changing call.

        Raises:
            ReentrantCall: If the current thread is already inside the ledger.
        """
        me = threading.get_ident()
        if self._lock_holder == me:
            raise ReentrantCall(
                f"{operation} by {caller} re-entered ledger {self._name}"
            )
        with self._lock:
            self._lock_holder = me
            try:
                yield
            except (LedgerError, ValueError) as e:
                if self.verbose:
                    print(f"✗ REJECTED {operation} ({caller}): {type(e).__name__}: {e}")
                raise
            finally:
                self._lock_holder = None

    def __repr__(self) -> str:
        policy = self._policy.policy_id if self._policy is not None else "none"
        return (
            f"DebtLedger({self._name}, accounts={len(self._accounts)}, "
            f"policy={policy}, time={self._current_time})"
        )
