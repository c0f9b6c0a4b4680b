"""
Loan Ledger

Loan lifecycle and amortization engine: request, approval, disbursement,
scheduled payments and extraordinary principal prepayments (abonos), with
Decimal money math and a hash-chained audit trail.
"""

__version__ = "1.0.0"
