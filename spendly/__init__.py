"""
Spendly - Ledger Core

Personal and shared-expense ledger: record spending, split bills among
friends, track EMIs, and roll everything into a monthly budget view.

DESIGN PRINCIPLES:
1. The month being worked on is always passed in, never guessed
2. Validate before writing; nothing is written for invalid input
3. Multi-step writes undo themselves or say exactly what was left behind
4. Derived numbers are recomputed from the store on every read
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Spendly Team"
