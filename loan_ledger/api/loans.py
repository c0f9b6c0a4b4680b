"""
Loan endpoints
"""

from fastapi import APIRouter, Depends, status

from ..system import LoanSystem
from .dependencies import get_current_user_id, get_loan_system
from .schemas import (
    AbonoRequest, AmortizationRequest, AmortizationResponse, ApproveLoanRequest,
    CreateLoanRequest, PaymentRequest, ScheduleItemModel
)


router = APIRouter()
router_v2 = APIRouter()


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_loan(
    request: CreateLoanRequest,
    user_id: str = Depends(get_current_user_id),
    system: LoanSystem = Depends(get_loan_system)
):
    """Register a new loan request"""
    loan = system.loan_service.create_loan(
        user_id=user_id,
        amount=request.amount,
        term_months=request.term_months,
        interest_rate=request.interest_rate,
        amortization_type=request.amortization_type
    )
    return loan.to_dict()


@router.get("")
async def list_loans(
    user_id: str = Depends(get_current_user_id),
    system: LoanSystem = Depends(get_loan_system)
):
    """List the caller's loans, newest first"""
    return [loan.to_dict() for loan in system.loan_service.list_loans(user_id)]


@router.post("/approval")
async def approve_loan(
    request: ApproveLoanRequest,
    system: LoanSystem = Depends(get_loan_system)
):
    """Approve (and disburse) or reject a loan"""
    loan = system.loan_service.approve(
        loan_id=request.loan_id,
        status=request.status,
        rejection_reason=request.rejection_reason
    )
    return loan.to_dict()


@router.post("/amor", response_model=AmortizationResponse)
async def calculate_amortization(
    request: AmortizationRequest,
    user_id: str = Depends(get_current_user_id),
    system: LoanSystem = Depends(get_loan_system)
):
    """Get the amortization schedule of a disbursed loan"""
    summary = system.loan_service.calculate_amortization(request.loan_id, user_id)
    return AmortizationResponse(
        loan_id=summary['loan_id'],
        amount=str(summary['amount']),
        interest_rate=str(summary['interest_rate']),
        term_months=summary['term_months'],
        amortization_type=summary['amortization_type'],
        monthly_payment=str(summary['monthly_payment']),
        amortization_schedule=[
            ScheduleItemModel(**item.to_dict()) for item in summary['amortization_schedule']
        ]
    )


@router.post("/payment", status_code=status.HTTP_201_CREATED)
async def register_payment(
    request: PaymentRequest,
    user_id: str = Depends(get_current_user_id),
    system: LoanSystem = Depends(get_loan_system)
):
    """Pay one installment"""
    aggregate = system.payment_ledger.register_payment(
        loan_id=request.loan_id,
        payment_number=request.payment_number,
        amount=request.amount,
        user_id=user_id
    )
    return aggregate.to_dict()


@router.post("/abono", status_code=status.HTTP_201_CREATED)
async def register_abono(
    request: AbonoRequest,
    user_id: str = Depends(get_current_user_id),
    system: LoanSystem = Depends(get_loan_system)
):
    """Make an extraordinary principal payment"""
    aggregate = system.abono_ledger.register_abono(
        loan_id=request.loan_id,
        amount=request.amount,
        notes=request.notes,
        user_id=user_id
    )
    return aggregate.to_dict()


@router.get("/{loan_id}")
async def get_loan(
    loan_id: str,
    user_id: str = Depends(get_current_user_id),
    system: LoanSystem = Depends(get_loan_system)
):
    """Get a loan with its payments and abonos"""
    return system.loan_service.get_loan(loan_id, user_id).to_dict()


@router_v2.get("/{loan_id}")
async def get_loan_with_amortization(
    loan_id: str,
    user_id: str = Depends(get_current_user_id),
    system: LoanSystem = Depends(get_loan_system)
):
    """Get a loan with payments, abonos and its amortization schedule"""
    return system.loan_service.get_loan_with_amortization(loan_id, user_id)
