"""
Lendbook

Private lending ledger: loans, the payments applied against them, and
fixed-income assets, with interval-based interest accrual and
Decimal-precise payment allocation.
"""

__version__ = "1.0.0"
