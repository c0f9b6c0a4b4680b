"""
Payment Ledger Module

Registers scheduled installment payments against disbursed loans. The amount
due for a period is derived from the loan's current balance and current
installment, so abonos made earlier are taken into account.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union
import uuid

from .amortization import AmortizationType, monthly_rate, round_money, to_decimal, ZERO
from .audit import AuditTrail, AuditEventType
from .config import LoanLedgerConfig, get_config
from .errors import ConflictError, LoanValidationError
from .lifecycle import require_loan, require_disbursed, settle_if_paid, record_audit
from .loans import Loan, LoanAggregate, LoanPayment
from .logging_config import get_logger, log_action
from .repository import LoanRepository
from .validation import validate_payment


@dataclass(frozen=True)
class InstallmentDue:
    """Split of the installment due for one period"""
    payment_amount: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal


def calculate_due_installment(loan: Loan, payment_number: int) -> InstallmentDue:
    """
    Installment due for a period, from the loan's current state

    Interest accrues on the current balance. The principal portion is the
    current installment minus interest (FIXED) or the constant share of the
    original principal (VARIABLE), capped at the balance. The last scheduled
    period clears whatever balance is left.
    """
    balance = loan.remaining_balance
    interest = round_money(balance * monthly_rate(loan.interest_rate))

    if loan.amortization_type == AmortizationType.FIXED:
        principal = loan.monthly_payment - interest
    else:
        principal = round_money(loan.amount / Decimal(loan.term_months))

    if principal > balance or payment_number >= loan.term_months:
        principal = balance
    principal = max(ZERO, round_money(principal))

    return InstallmentDue(
        payment_amount=principal + interest,
        principal=principal,
        interest=interest,
        remaining_balance=balance - principal
    )


class PaymentLedger:
    """
    Records scheduled payments in strict 1..n order
    """

    def __init__(
        self,
        repository: LoanRepository,
        audit_trail: Optional[AuditTrail] = None,
        config: Optional[LoanLedgerConfig] = None
    ):
        self.repository = repository
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.logger = get_logger("loan_ledger.payments")

    def register_payment(
        self,
        loan_id: str,
        payment_number: int,
        amount: Union[Decimal, int, str],
        user_id: Optional[str] = None
    ) -> LoanAggregate:
        """
        Register the payment of one installment

        Args:
            loan_id: Loan being paid
            payment_number: Installment number, must be the next unpaid one
            amount: Amount offered, must cover the installment due
            user_id: Owner scope; None skips the ownership check

        Returns:
            Loan aggregate reloaded with all payments and abonos

        Raises:
            NotFoundError: loan does not exist for this owner
            InvalidStateError: loan is not DISBURSED
            ConflictError: installment already paid
            LoanValidationError: unknown or out-of-order number, or insufficient amount
        """
        validate_payment({
            'loan_id': loan_id,
            'payment_number': payment_number,
            'amount': amount,
        }).raise_for_errors()
        amount = to_decimal(amount)

        with self.repository.locked(loan_id):
            with self.repository.atomic():
                loan = require_loan(self.repository, loan_id, user_id)
                require_disbursed(loan, "payments")

                if self.repository.get_payment_by_number(loan_id, payment_number):
                    raise ConflictError("Payment for this period already exists")

                if payment_number > loan.term_months:
                    raise LoanValidationError("Invalid payment number")

                expected = self.repository.count_payments(loan_id) + 1
                if payment_number != expected:
                    raise LoanValidationError(
                        f"Must pay installments in order. Next payment should be number {expected}"
                    )

                due = calculate_due_installment(loan, payment_number)
                if amount < due.payment_amount:
                    raise LoanValidationError(
                        f"Payment amount must be at least {due.payment_amount}"
                    )

                now = datetime.now(timezone.utc)
                payment = LoanPayment(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    loan_id=loan.id,
                    payment_number=payment_number,
                    amount=due.payment_amount,
                    principal=due.principal,
                    interest=due.interest,
                    remaining_balance=max(ZERO, due.remaining_balance),
                    payment_date=now
                )
                self.repository.save_payment(payment)

                loan.remaining_balance = due.remaining_balance
                paid_off = settle_if_paid(loan)
                loan.updated_at = now
                self.repository.save_loan(loan)

                aggregate = self.repository.get_loan_aggregate(loan_id)

            record_audit(self.audit_trail, self.config, AuditEventType.LOAN_PAYMENT_MADE, loan, {
                "payment_id": payment.id,
                "payment_number": payment_number,
                "payment_amount": payment.amount,
                "principal": payment.principal,
                "interest": payment.interest,
                "remaining_balance": loan.remaining_balance
            }, user_id=user_id)
            if paid_off:
                record_audit(self.audit_trail, self.config, AuditEventType.LOAN_PAID_OFF, loan,
                             {"final_payment_number": payment_number}, user_id=user_id)

        log_action(
            self.logger, "info", f"Installment {payment_number} paid",
            user_id=user_id, action="register_payment", resource=f"loan:{loan.id}",
            extra={
                "payment_id": payment.id,
                "amount_offered": str(amount),
                "payment_amount": str(payment.amount),
                "principal": str(payment.principal),
                "interest": str(payment.interest),
                "remaining_balance": str(loan.remaining_balance),
                "paid_off": paid_off
            }
        )

        return aggregate
