"""
Loan Module

Loan, scheduled payment and abono records, plus the aggregate returned by every
lifecycle operation. Payments and abonos reference their loan by id only.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from enum import Enum

from .storage import StorageRecord
from .amortization import AmortizationType, ZERO


class LoanStatus(Enum):
    """Loan lifecycle states"""
    PENDING = "PENDING"        # Requested, awaiting decision
    APPROVED = "APPROVED"      # Decision value only; approval disburses immediately
    REJECTED = "REJECTED"      # Terminal
    DISBURSED = "DISBURSED"    # Funds released, accepting payments and abonos
    PAID = "PAID"              # Terminal, balance fully repaid


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value:
        return datetime.fromisoformat(value)
    return None


@dataclass
class Loan(StorageRecord):
    """Loan request with its terms and current running state"""
    user_id: str
    amount: Decimal                     # Original principal
    term_months: int
    interest_rate: Decimal              # Annual rate in percent, e.g. 12 for 12%
    amortization_type: AmortizationType
    status: LoanStatus = LoanStatus.PENDING
    remaining_balance: Optional[Decimal] = None
    monthly_payment: Decimal = ZERO
    rejection_reason: Optional[str] = None
    approved_at: Optional[datetime] = None
    disbursed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.remaining_balance is None:
            self.remaining_balance = self.amount

    @property
    def is_disbursed(self) -> bool:
        """Check if loan accepts payments and abonos"""
        return self.status == LoanStatus.DISBURSED

    @property
    def is_closed(self) -> bool:
        """Check if loan can no longer change"""
        return self.status in (LoanStatus.PAID, LoanStatus.REJECTED)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            user_id=data['user_id'],
            amount=Decimal(data['amount']),
            term_months=int(data['term_months']),
            interest_rate=Decimal(data['interest_rate']),
            amortization_type=AmortizationType(data['amortization_type']),
            status=LoanStatus(data['status']),
            remaining_balance=Decimal(data['remaining_balance']),
            monthly_payment=Decimal(data['monthly_payment']),
            rejection_reason=data.get('rejection_reason'),
            approved_at=_parse_datetime(data.get('approved_at')),
            disbursed_at=_parse_datetime(data.get('disbursed_at'))
        )


@dataclass
class LoanPayment(StorageRecord):
    """Record of a scheduled installment payment"""
    loan_id: str
    payment_number: int
    amount: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal
    payment_date: datetime

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanPayment':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            payment_number=int(data['payment_number']),
            amount=Decimal(data['amount']),
            principal=Decimal(data['principal']),
            interest=Decimal(data['interest']),
            remaining_balance=Decimal(data['remaining_balance']),
            payment_date=datetime.fromisoformat(data['payment_date'])
        )


@dataclass
class LoanAbono(StorageRecord):
    """Record of an extraordinary principal prepayment"""
    loan_id: str
    amount: Decimal
    remaining_balance_before: Decimal
    remaining_balance_after: Decimal
    abono_date: datetime
    notes: Optional[str] = None

    def __post_init__(self):
        if self.remaining_balance_after != self.remaining_balance_before - self.amount:
            raise ValueError("Balance after abono must equal balance before minus amount")
        if self.remaining_balance_after < ZERO:
            raise ValueError("Balance after abono cannot be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LoanAbono':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            loan_id=data['loan_id'],
            amount=Decimal(data['amount']),
            remaining_balance_before=Decimal(data['remaining_balance_before']),
            remaining_balance_after=Decimal(data['remaining_balance_after']),
            abono_date=datetime.fromisoformat(data['abono_date']),
            notes=data.get('notes')
        )


@dataclass
class LoanAggregate:
    """A loan with its payments (by number) and abonos (by date)"""
    loan: Loan
    payments: List[LoanPayment] = field(default_factory=list)
    abonos: List[LoanAbono] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result = self.loan.to_dict()
        result['payments'] = [payment.to_dict() for payment in self.payments]
        result['abonos'] = [abono.to_dict() for abono in self.abonos]
        return result
