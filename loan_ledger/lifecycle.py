"""
Loan Lifecycle Module

Loan state machine: request, approval/rejection (approval disburses in the
same step), and the implicit move to PAID once the balance is settled. Also
hosts the read side of the lifecycle (listing, aggregates, schedules).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union
import uuid

from .amortization import (
    AmortizationEngine, AmortizationType, AmortizationScheduleItem,
    round_money, to_decimal, ZERO
)
from .audit import AuditTrail, AuditEventType
from .config import LoanLedgerConfig, get_config
from .errors import NotFoundError, InvalidStateError
from .loans import Loan, LoanAggregate, LoanStatus
from .logging_config import get_logger, log_action
from .repository import LoanRepository
from .validation import validate_create_loan, validate_approve_loan


TRANSITIONS = {
    LoanStatus.PENDING: {LoanStatus.DISBURSED, LoanStatus.REJECTED},
    LoanStatus.APPROVED: {LoanStatus.DISBURSED},
    LoanStatus.DISBURSED: {LoanStatus.PAID},
    LoanStatus.REJECTED: set(),
    LoanStatus.PAID: set(),
}


def can_transition(current: LoanStatus, target: LoanStatus) -> bool:
    """Check whether a status change is legal"""
    return target in TRANSITIONS[current]


def transition(loan: Loan, target: LoanStatus) -> None:
    """Move a loan to a new status or raise InvalidStateError"""
    if not can_transition(loan.status, target):
        raise InvalidStateError(
            f"Cannot move loan {loan.id} from {loan.status.value} to {target.value}"
        )
    loan.status = target


def settle_if_paid(loan: Loan) -> bool:
    """
    Mark a disbursed loan PAID when its balance has reached zero

    Returns:
        True if the loan was settled by this call
    """
    if loan.remaining_balance <= ZERO:
        loan.remaining_balance = round_money(ZERO)
        transition(loan, LoanStatus.PAID)
        return True
    return False


def require_loan(repository: LoanRepository, loan_id: str, user_id: Optional[str] = None) -> Loan:
    """
    Load a loan, optionally scoped to its owner

    Raises:
        NotFoundError: loan is absent or belongs to another owner
    """
    loan = repository.get_loan(loan_id)
    if not loan or (user_id is not None and loan.user_id != user_id):
        raise NotFoundError("Loan not found")
    return loan


def record_audit(
    audit_trail: Optional[AuditTrail],
    config: LoanLedgerConfig,
    event_type: AuditEventType,
    loan: Loan,
    metadata: Dict[str, Any],
    user_id: Optional[str] = None
) -> None:
    """Append a loan event to the audit trail when auditing is enabled"""
    if audit_trail and config.enable_audit_logging:
        audit_trail.log_event(
            event_type=event_type,
            entity_type="loan",
            entity_id=loan.id,
            metadata=metadata,
            user_id=user_id
        )


def require_disbursed(loan: Loan, action: str) -> None:
    if loan.status != LoanStatus.DISBURSED:
        raise InvalidStateError(f"Loan must be disbursed to register {action}")


class LoanService:
    """
    Manages loan requests and decisions
    """

    def __init__(
        self,
        repository: LoanRepository,
        engine: Optional[AmortizationEngine] = None,
        audit_trail: Optional[AuditTrail] = None,
        config: Optional[LoanLedgerConfig] = None
    ):
        self.repository = repository
        self.engine = engine or AmortizationEngine()
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.logger = get_logger("loan_ledger.lifecycle")

    def create_loan(
        self,
        user_id: str,
        amount: Union[Decimal, int, str],
        term_months: int,
        interest_rate: Union[Decimal, int, str],
        amortization_type: Union[AmortizationType, str]
    ) -> Loan:
        """
        Register a new loan request in PENDING status

        Args:
            user_id: Owner of the loan
            amount: Requested principal
            term_months: Term in months
            interest_rate: Annual interest rate in percent
            amortization_type: FIXED or VARIABLE

        Returns:
            Created Loan
        """
        validate_create_loan(
            {
                'amount': amount,
                'term_months': term_months,
                'interest_rate': interest_rate,
                'amortization_type': amortization_type,
            },
            min_amount=Decimal(self.config.min_loan_amount),
            max_amount=Decimal(self.config.max_loan_amount),
            max_term_months=self.config.max_term_months,
            max_interest_rate=Decimal(self.config.max_interest_rate)
        ).raise_for_errors()

        amount = round_money(amount)
        interest_rate = to_decimal(interest_rate)
        amortization_type = AmortizationType(getattr(amortization_type, 'value', amortization_type))

        if amortization_type == AmortizationType.FIXED:
            monthly_payment = self.engine.calculate_monthly_payment(amount, interest_rate, term_months)
        else:
            # Constant-principal installments decline; show the first (largest) one
            schedule = self.engine.calculate_amortization(amount, interest_rate, term_months, amortization_type)
            monthly_payment = schedule[0].payment_amount

        now = datetime.now(timezone.utc)
        loan = Loan(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            user_id=user_id,
            amount=amount,
            term_months=term_months,
            interest_rate=interest_rate,
            amortization_type=amortization_type,
            status=LoanStatus.PENDING,
            remaining_balance=amount,
            monthly_payment=monthly_payment
        )

        with self.repository.locked(loan.id):
            self.repository.save_loan(loan)
            self._audit(AuditEventType.LOAN_CREATED, loan, {
                "amount": amount,
                "term_months": term_months,
                "interest_rate": interest_rate,
                "amortization_type": amortization_type,
            }, user_id=user_id)

        log_action(
            self.logger, "info", "Loan requested",
            user_id=user_id, action="create_loan", resource=f"loan:{loan.id}",
            extra={
                "amount": str(amount),
                "term_months": term_months,
                "interest_rate": str(interest_rate),
                "amortization_type": amortization_type.value,
                "monthly_payment": str(monthly_payment)
            }
        )

        return loan

    def approve(
        self,
        loan_id: str,
        status: Union[LoanStatus, str],
        rejection_reason: Optional[str] = None
    ) -> Loan:
        """
        Approve or reject a pending loan

        Approval disburses the loan immediately. A rejection without a reason
        is recorded with the configured placeholder reason.

        Args:
            loan_id: Loan to decide on
            status: APPROVED or REJECTED
            rejection_reason: Reason for a rejection

        Returns:
            Updated Loan
        """
        validate_approve_loan({
            'loan_id': loan_id,
            'status': status,
            'rejection_reason': rejection_reason,
        }).raise_for_errors()
        decision = LoanStatus(getattr(status, 'value', status))

        with self.repository.locked(loan_id):
            with self.repository.atomic():
                loan = require_loan(self.repository, loan_id)
                if loan.status != LoanStatus.PENDING:
                    raise InvalidStateError("Loan is not in pending status")

                now = datetime.now(timezone.utc)
                loan.approved_at = now
                if decision == LoanStatus.REJECTED:
                    transition(loan, LoanStatus.REJECTED)
                    reason = (rejection_reason or "").strip()
                    loan.rejection_reason = reason or self.config.default_rejection_reason
                else:
                    transition(loan, LoanStatus.DISBURSED)
                    loan.disbursed_at = now
                loan.updated_at = now
                self.repository.save_loan(loan)

            if decision == LoanStatus.REJECTED:
                self._audit(AuditEventType.LOAN_REJECTED, loan, {"reason": loan.rejection_reason})
            else:
                self._audit(AuditEventType.LOAN_APPROVED, loan, {"approved_at": loan.approved_at})
                self._audit(AuditEventType.LOAN_DISBURSED, loan, {
                    "amount": loan.amount,
                    "disbursed_at": loan.disbursed_at
                })

        log_action(
            self.logger, "info", f"Loan {decision.value.lower()}",
            action="approve_loan", resource=f"loan:{loan.id}",
            extra={"status": loan.status.value, "rejection_reason": loan.rejection_reason}
        )

        return loan

    def list_loans(self, user_id: str) -> List[Loan]:
        """Loans of an owner, newest first"""
        return self.repository.list_loans_by_owner(user_id)

    def get_loan(self, loan_id: str, user_id: Optional[str] = None) -> LoanAggregate:
        """Loan with its payments and abonos"""
        require_loan(self.repository, loan_id, user_id)
        return self.repository.get_loan_aggregate(loan_id)

    def get_loan_with_amortization(self, loan_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Loan aggregate plus the schedule derived from its original terms"""
        aggregate = self.get_loan(loan_id, user_id)
        result = aggregate.to_dict()
        result['amortization_schedule'] = [
            item.to_dict() for item in self._original_schedule(aggregate.loan)
        ]
        return result

    def calculate_amortization(self, loan_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Repayment schedule of a disbursed or paid loan

        Raises:
            InvalidStateError: loan has not been disbursed
        """
        loan = require_loan(self.repository, loan_id, user_id)
        if loan.status not in (LoanStatus.DISBURSED, LoanStatus.PAID):
            raise InvalidStateError("Loan must be disbursed to calculate amortization")

        return {
            'loan_id': loan.id,
            'amount': loan.amount,
            'interest_rate': loan.interest_rate,
            'term_months': loan.term_months,
            'amortization_type': loan.amortization_type.value,
            'monthly_payment': loan.monthly_payment,
            'amortization_schedule': self._original_schedule(loan),
        }

    def delete_loan(self, loan_id: str) -> None:
        """Delete a loan and every payment and abono it owns"""
        with self.repository.locked(loan_id):
            with self.repository.atomic():
                loan = require_loan(self.repository, loan_id)
                self.repository.delete_loan(loan_id)

            self._audit(AuditEventType.LOAN_DELETED, loan, {"status": loan.status})

        log_action(
            self.logger, "info", "Loan deleted",
            action="delete_loan", resource=f"loan:{loan_id}"
        )

    def _original_schedule(self, loan: Loan) -> List[AmortizationScheduleItem]:
        return self.engine.calculate_amortization(
            loan.amount, loan.interest_rate, loan.term_months, loan.amortization_type
        )

    def _audit(self, event_type: AuditEventType, loan: Loan, metadata: Dict[str, Any],
               user_id: Optional[str] = None) -> None:
        record_audit(self.audit_trail, self.config, event_type, loan, metadata, user_id)
