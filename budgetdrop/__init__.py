"""
BudgetDrop - Allocation Ledger

Mint value chips in any supported currency and drop them onto funds and
debt accounts.

DESIGN PRINCIPLES:
1. The engine is a pure function: (state, action) -> (state, events)
2. Bad references are no-ops, never errors
3. Value is conserved: what does not fit comes back as a remainder chip
4. Every settled allocation can be reversed or amended
5. Rates and storage are injected, never global
"""

__version__ = "1.0.0"
__author__ = "BudgetDrop Team"
