"""
Abono Ledger Module

Registers extraordinary principal prepayments (abonos). For constant-installment
loans the monthly installment is recomputed over the remaining term so the
loan still finishes on schedule with smaller payments.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union
import uuid

from .amortization import AmortizationEngine, AmortizationType, round_money
from .audit import AuditTrail, AuditEventType
from .config import LoanLedgerConfig, get_config
from .errors import LoanValidationError
from .lifecycle import require_loan, require_disbursed, settle_if_paid, record_audit
from .loans import LoanAbono, LoanAggregate
from .logging_config import get_logger, log_action
from .repository import LoanRepository
from .validation import validate_abono


class AbonoLedger:
    """
    Records principal prepayments and keeps the installment consistent
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
        self.logger = get_logger("loan_ledger.abonos")

    def register_abono(
        self,
        loan_id: str,
        amount: Union[Decimal, int, str],
        notes: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> LoanAggregate:
        """
        Register an abono against a disbursed loan

        Args:
            loan_id: Loan receiving the prepayment
            amount: Principal to prepay, at most the remaining balance
            notes: Optional free-text note
            user_id: Owner scope; None skips the ownership check

        Returns:
            Loan aggregate reloaded with all payments and abonos
        """
        validate_abono({
            'loan_id': loan_id,
            'amount': amount,
            'notes': notes,
        }).raise_for_errors()
        # Exact: the validator rejects sub-cent amounts
        amount = round_money(amount)

        with self.repository.locked(loan_id):
            with self.repository.atomic():
                loan = require_loan(self.repository, loan_id, user_id)
                require_disbursed(loan, "abonos")

                if amount > loan.remaining_balance:
                    raise LoanValidationError("Abono amount cannot exceed remaining balance")

                balance_before = loan.remaining_balance
                balance_after = balance_before - amount
                previous_installment = loan.monthly_payment

                now = datetime.now(timezone.utc)
                abono = LoanAbono(
                    id=str(uuid.uuid4()),
                    created_at=now,
                    updated_at=now,
                    loan_id=loan.id,
                    amount=amount,
                    remaining_balance_before=balance_before,
                    remaining_balance_after=balance_after,
                    abono_date=now,
                    notes=notes
                )
                self.repository.save_abono(abono)

                loan.remaining_balance = balance_after

                if loan.amortization_type == AmortizationType.FIXED:
                    remaining_months = loan.term_months - self.repository.count_payments(loan.id)
                    if remaining_months > 0:
                        loan.monthly_payment = self.engine.calculate_monthly_payment(
                            balance_after, loan.interest_rate, remaining_months
                        )

                paid_off = settle_if_paid(loan)
                loan.updated_at = now
                self.repository.save_loan(loan)

                aggregate = self.repository.get_loan_aggregate(loan_id)

            record_audit(self.audit_trail, self.config, AuditEventType.LOAN_ABONO_MADE, loan, {
                "abono_id": abono.id,
                "amount": amount,
                "balance_before": balance_before,
                "balance_after": balance_after,
                "monthly_payment": loan.monthly_payment
            }, user_id=user_id)
            if paid_off:
                record_audit(self.audit_trail, self.config, AuditEventType.LOAN_PAID_OFF, loan,
                             {"settled_by_abono": abono.id}, user_id=user_id)

        log_action(
            self.logger, "info", "Abono registered",
            user_id=user_id, action="register_abono", resource=f"loan:{loan.id}",
            extra={
                "abono_id": abono.id,
                "amount": str(amount),
                "balance_before": str(balance_before),
                "balance_after": str(balance_after),
                "previous_installment": str(previous_installment),
                "monthly_payment": str(loan.monthly_payment),
                "paid_off": paid_off
            }
        )

        return aggregate
