#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Debt Ledger Step by Step

This is a pedagogical demonstration that teaches how the collateralized debt
ledger works. Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Foundation    - Vault, debt token, ledger wiring
  4-6:  Borrowing     - First loan, fee routing, rejected over-LTV borrow
  7-8:  Time          - Interest accrual, repay_all
  9:    Collateral    - withdraw_all and the safety margin
  10:   Governance    - Timelocked policy upgrade

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from debtledger import (
    DebtLedger, StandardBorrowPolicy, InMemoryVault, InMemoryDebtToken,
    LedgerError, DelayNotElapsed,
    from_fixed, to_fixed,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    # Timing
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)
    approval_delay: timedelta = timedelta(days=2)

    # Vault quotes
    price_per_share: str = "1.00"
    interest_rate: str = "0.10"     # 10% per year, simple
    ltv_cap: str = "0.80"

    # Fees (parts per thousand)
    borrow_fee_rate: int = 5

    # Loan
    alice_shares: int = 1000
    collateral: int = 100
    borrow_amount: int = 70
    greedy_top_up: int = 15          # would push LTV to 85%


CONFIG = DemoConfig()

# Global state for interactive mode
QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    """Print a section header within a step."""
    print(f"\n--- {text} ---\n")


def show_account(ledger: DebtLedger, account: str):
    info = ledger.account_info(account)
    print(f"  {account}:")
    print(f"    principal   : {from_fixed(info.borrowed_amount)}")
    print(f"    total debt  : {from_fixed(info.total_debt)}")
    print(f"    collateral  : {from_fixed(info.collateral_amount)} shares")
    print(f"    LTV         : {from_fixed(info.loan_to_value) * 100:.4f}%")
    print(f"    can borrow  : {from_fixed(info.max_borrow)}")


# ============================================================================
# PHASE 1: FOUNDATION (Steps 1-3)
# ============================================================================

def step_01_collaborators():
    """Create the vault and the debt token."""
    step_header(1, "Vault and Debt Token",
        "Meet the two external collaborators the ledger moves funds through.")

    print("""
    The ledger never holds "money" of its own. It moves:

    1. VAULT SHARES - yield-bearing shares posted as collateral. The vault
                      quotes a share price, a borrow rate and an LTV cap.
    2. DEBT TOKENS  - a pegged token the ledger mints on borrow and burns
                      on repay. Only allow-listed issuers may mint.

    All amounts are integers scaled by 1e18: to_fixed("0.80") is 80%.
    """)

    wait_for_enter()

    vault = InMemoryVault(
        "yvUSD",
        price_per_share=to_fixed(CONFIG.price_per_share),
        interest_rate=to_fixed(CONFIG.interest_rate),
        ltv_cap=to_fixed(CONFIG.ltv_cap),
    )
    token = InMemoryDebtToken("dUSD", owner="gov")
    token.set_valid_issuer("gov", "main", to_fixed(1_000_000))

    section_header("Quotes")
    print(f"  share price   : {from_fixed(vault.price_per_share())}")
    print(f"  interest rate : {from_fixed(vault.interest_rate())} per year")
    print(f"  LTV cap       : {from_fixed(vault.ltv_cap())}")
    print(f"  'main' may mint up to {from_fixed(token.available_to_mint('main'))} dUSD")

    return vault, token


def step_02_create_ledger():
    """Create an uninitialized ledger."""
    step_header(2, "The Empty Ledger",
        "A ledger starts with only a name, an owner, a clock and a timelock.")

    print(">>> ledger = DebtLedger('main', owner='gov', approval_delay=timedelta(days=2))")
    ledger = DebtLedger(
        "main",
        owner="gov",
        approval_delay=CONFIG.approval_delay,
        initial_time=CONFIG.start_time,
        verbose=True,
    )

    section_header("Initial State")
    print(f"  {ledger!r}")
    print(f"  initialized : {ledger.is_initialized}")
    print(f"  fee ceiling : {ledger.config.max_borrow_fee_rate}/1000")
    return ledger


def step_03_initialize(ledger: DebtLedger, vault, token):
    """Wire the ledger to its collaborators."""
    step_header(3, "Initialize",
        "initialize() is owner-only and one-shot.")

    ledger.initialize("gov", vault, token, StandardBorrowPolicy(),
                      treasury="treasury", borrow_fee_rate=CONFIG.borrow_fee_rate)
    print(f"  {ledger!r}")

    section_header("Try It Again")
    try:
        ledger.initialize("gov", vault, token, StandardBorrowPolicy(), treasury="treasury")
    except LedgerError as e:
        print(f"  -> {type(e).__name__} (as expected)")

    vault.issue("alice", to_fixed(CONFIG.alice_shares))
    vault.approve("alice", "main", to_fixed(CONFIG.alice_shares))
    print(f"\n  alice holds {from_fixed(vault.balance_of('alice'))} yvUSD, approved for 'main'")
    return ledger


# ============================================================================
# PHASE 2: BORROWING (Steps 4-6)
# ============================================================================

def step_04_first_loan(ledger: DebtLedger):
    """Borrow against posted collateral."""
    step_header(4, "First Loan",
        "Post collateral and borrow in one atomic call.")

    ledger.advance_time(ledger.current_time + timedelta(seconds=1))
    print(f">>> ledger.borrow('alice', to_fixed({CONFIG.borrow_amount}), "
          f"collateral_delta=to_fixed({CONFIG.collateral}))")
    received = ledger.borrow("alice", to_fixed(CONFIG.borrow_amount),
                             collateral_delta=to_fixed(CONFIG.collateral))

    section_header("Result")
    print(f"  alice received : {from_fixed(received)} dUSD")
    show_account(ledger, "alice")
    return ledger


def step_05_fee_routing(ledger: DebtLedger):
    """See where the fee went."""
    step_header(5, "Fee Routing",
        "The borrow fee is withheld from the loan and paid to the treasury.")

    token = ledger.debt_token
    fee = token.balance_of("treasury")
    print(f"  fee rate       : {ledger.config.borrow_fee_rate}/1000")
    print(f"  treasury       : {from_fixed(fee)} dUSD")
    print(f"  alice          : {from_fixed(token.balance_of('alice'))} dUSD")
    print(f"  sum            : {from_fixed(fee + token.balance_of('alice'))} dUSD = amount borrowed")

    section_header("Key Insight")
    print("""
    Debt is recorded on the FULL amount. The fee is a cost of borrowing,
    not a discount on the debt.
    """)
    return ledger


def step_06_rejected_borrow(ledger: DebtLedger):
    """Try to borrow past the LTV cap."""
    step_header(6, "Rejected Borrow",
        "A borrow that would exceed the LTV cap changes nothing.")

    ledger.advance_time(ledger.current_time + timedelta(seconds=1))
    before = ledger.snapshot()
    try:
        ledger.borrow("alice", to_fixed(CONFIG.greedy_top_up))
    except LedgerError:
        pass

    section_header("Result")
    print(f"  state unchanged: {ledger.snapshot() == before}")
    show_account(ledger, "alice")
    return ledger


# ============================================================================
# PHASE 3: TIME (Steps 7-8)
# ============================================================================

def step_07_interest(ledger: DebtLedger):
    """Let a year pass."""
    step_header(7, "Interest Accrual",
        "Interest is simple and computed on read from the last update time.")

    ledger.advance_time(ledger.current_time + timedelta(days=365))
    print(f"  now: {ledger.current_time}")
    show_account(ledger, "alice")
    return ledger


def step_08_repay_all(ledger: DebtLedger):
    """Close the loan."""
    step_header(8, "Repay All",
        "Repaying the full debt burns principal and interest.")

    token = ledger.debt_token
    shortfall = ledger.total_debt("alice") - token.balance_of("alice")
    print(f"  alice is short {from_fixed(shortfall)} dUSD (the fee plus interest)")
    token.issue("alice", shortfall)
    token.approve("alice", "main", token.balance_of("alice"))

    repaid = ledger.repay_all("alice")
    section_header("Result")
    print(f"  repaid        : {from_fixed(repaid)} dUSD")
    print(f"  dUSD supply   : {from_fixed(token.total_supply())} (the treasury's fee)")
    show_account(ledger, "alice")
    return ledger


# ============================================================================
# PHASE 4: COLLATERAL AND GOVERNANCE (Steps 9-10)
# ============================================================================

def step_09_withdraw_all(ledger: DebtLedger):
    """Take the collateral back."""
    step_header(9, "Withdraw All",
        "Debt-free accounts withdraw everything; indebted ones keep a 0.1% margin.")

    ledger.advance_time(ledger.current_time + timedelta(seconds=1))
    shares = ledger.withdraw_all("alice")
    print(f"  withdrawn       : {from_fixed(shares)} shares")
    print(f"  alice's shares  : {from_fixed(ledger.vault.balance_of('alice'))}")
    return ledger


def step_10_policy_upgrade(ledger: DebtLedger):
    """Swap the borrow policy through the timelock."""
    step_header(10, "Timelocked Policy Upgrade",
        "A new policy only takes effect after the approval delay.")

    strict = StandardBorrowPolicy(ltv_buffer=to_fixed("0.05"), policy_id="buffered-v2")
    ledger.propose_implementation("gov", strict)

    section_header("Too Early")
    try:
        ledger.upgrade_implementation("gov")
    except DelayNotElapsed:
        print("  -> DelayNotElapsed")

    section_header("After The Delay")
    ledger.advance_time(ledger.current_time + ledger.approval_delay)
    ledger.upgrade_implementation("gov")
    print(f"  active policy : {ledger.policy!r}")
    print(f"  max LTV       : {from_fixed(ledger.policy.max_ltv(ledger.vault))}")
    return ledger


def main():
    """Run the complete tutorial."""
    print("=" * 70)
    print("       DEBT LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    vault, token = step_01_collaborators()
    wait_for_enter()

    ledger = step_02_create_ledger()
    wait_for_enter()

    ledger = step_03_initialize(ledger, vault, token)
    wait_for_enter()

    ledger = step_04_first_loan(ledger)
    wait_for_enter()

    ledger = step_05_fee_routing(ledger)
    wait_for_enter()

    ledger = step_06_rejected_borrow(ledger)
    wait_for_enter()

    ledger = step_07_interest(ledger)
    wait_for_enter()

    ledger = step_08_repay_all(ledger)
    wait_for_enter()

    ledger = step_09_withdraw_all(ledger)
    wait_for_enter()

    step_10_policy_upgrade(ledger)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    You've learned:

    BORROWING
      - Collateral in, debt tokens out, in one atomic call
      - Fees are withheld and routed to the treasury
      - Over-LTV requests are rejected with no side effects

    TIME
      - Interest is simple and accrues per whole second
      - Every operation folds accrued interest into principal

    GOVERNANCE
      - initialize() is one-shot
      - Policies change only through a timelock

    Next steps:
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
