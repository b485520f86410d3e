"""
Personal Ledger - Source Package

A personal finance ledger that tracks income and expenses across several
accounts, spreads installment purchases over future months, rolls a month's
net balance into the next month and settles outstanding entries partially.

DESIGN PRINCIPLES:
1. Every write is scoped to an explicit owner
2. Fail early, fail visibly
3. One user action = one storage transaction
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Personal Ledger Team"
