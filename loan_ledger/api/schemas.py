"""
Pydantic schemas for API requests and responses
"""

from decimal import Decimal
from typing import List, Optional
from pydantic import BaseModel, Field


class CreateLoanRequest(BaseModel):
    amount: Decimal = Field(..., description="Requested principal")
    term_months: int = Field(..., description="Term in months (1-360)")
    interest_rate: Decimal = Field(..., description="Annual interest rate in percent")
    amortization_type: str = Field(..., description="FIXED (constant installment) or VARIABLE (constant principal)")


class ApproveLoanRequest(BaseModel):
    loan_id: str
    status: str = Field(..., description="APPROVED or REJECTED")
    rejection_reason: Optional[str] = Field(None, description="Reason for rejecting the loan")


class AmortizationRequest(BaseModel):
    loan_id: str


class PaymentRequest(BaseModel):
    loan_id: str
    payment_number: int = Field(..., description="Installment number to pay")
    amount: Decimal = Field(..., description="Amount paid")


class AbonoRequest(BaseModel):
    loan_id: str
    amount: Decimal = Field(..., description="Principal prepayment amount")
    notes: Optional[str] = None


class ScheduleItemModel(BaseModel):
    payment_number: int
    payment_amount: str
    principal: str
    interest: str
    remaining_balance: str


class AmortizationResponse(BaseModel):
    loan_id: str
    amount: str
    interest_rate: str
    term_months: int
    amortization_type: str
    monthly_payment: str
    amortization_schedule: List[ScheduleItemModel]
