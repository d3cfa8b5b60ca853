"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the DebtLedger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. atomicity.py - All-or-nothing operations, compensation and reentrancy
2. conservation.py - Fee routing and debt token supply accounting
3. ltv.py - No committed borrow or withdraw exceeds the LTV ceiling
4. temporal.py - Monotonic account time and the policy timelock
5. determinism.py - Reproducible behavior

These tests use hypothesis for property-based testing.
"""
