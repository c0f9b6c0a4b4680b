"""
Amortization Module

Pure repayment-schedule math for constant-installment (French) and
constant-principal (German) loans. Nothing here touches storage; all amounts
are Decimal and every emitted figure is rounded to cents with ROUND_HALF_UP.
"""

from decimal import Decimal, ROUND_HALF_UP
from dataclasses import dataclass
from typing import Dict, List, Union
from enum import Enum

from .errors import LoanValidationError


TWO_PLACES = Decimal('0.01')
ZERO = Decimal('0')

Number = Union[Decimal, int, str, float]


class AmortizationType(Enum):
    """Methods for loan amortization"""
    FIXED = "FIXED"        # French method - equal installments
    VARIABLE = "VARIABLE"  # German method - equal principal + declining interest


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without float artifacts"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    """Round to 2 decimal places, half-up"""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def monthly_rate(annual_rate: Number) -> Decimal:
    """Convert an annual percentage rate (e.g. 12 for 12%) to a monthly rate"""
    return to_decimal(annual_rate) / Decimal('100') / Decimal('12')


@dataclass(frozen=True)
class AmortizationScheduleItem:
    """Single period of a repayment schedule"""
    payment_number: int
    payment_amount: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal

    def to_dict(self) -> Dict[str, object]:
        return {
            'payment_number': self.payment_number,
            'payment_amount': str(self.payment_amount),
            'principal': str(self.principal),
            'interest': str(self.interest),
            'remaining_balance': str(self.remaining_balance),
        }


class AmortizationEngine:
    """
    Computes repayment schedules and fixed installments.

    The engine is stateless; one instance can be shared across threads.
    """

    def calculate_amortization(
        self,
        principal: Number,
        annual_rate: Number,
        term_months: int,
        amortization_type: AmortizationType,
        abono_amount: Number = ZERO,
        abono_after_payment: int = 0
    ) -> List[AmortizationScheduleItem]:
        """
        Generate the repayment schedule for a loan

        Args:
            principal: Original principal amount
            annual_rate: Annual interest rate in percent
            term_months: Number of monthly periods
            amortization_type: FIXED (French) or VARIABLE (German)
            abono_amount: Extraordinary principal reduction to inject
            abono_after_payment: 0 applies the abono before the first period,
                k > 0 applies it right after period k

        Returns:
            Schedule items ordered by payment number. Generation stops at the
            first period whose balance reaches zero.
        """
        principal = to_decimal(principal)
        annual_rate = to_decimal(annual_rate)
        abono_amount = to_decimal(abono_amount)
        self._validate_inputs(principal, annual_rate, term_months)

        if abono_amount < ZERO:
            raise LoanValidationError("Abono amount cannot be negative")
        if abono_amount > principal:
            raise LoanValidationError("Abono amount cannot exceed principal")
        if abono_after_payment < 0:
            raise LoanValidationError("Abono period cannot be negative")

        rate = monthly_rate(annual_rate)
        balance = principal - (abono_amount if abono_after_payment == 0 else ZERO)
        if balance <= ZERO:
            return []

        if amortization_type == AmortizationType.FIXED:
            installment = self._installment(balance, rate, term_months)
            constant_principal = None
        elif amortization_type == AmortizationType.VARIABLE:
            installment = None
            constant_principal = balance / Decimal(term_months)
        else:
            raise LoanValidationError(f"Unsupported amortization type: {amortization_type}")

        schedule = []
        for payment_number in range(1, term_months + 1):
            interest = balance * rate
            if installment is not None:
                principal_part = installment - interest
            else:
                principal_part = constant_principal

            # Never amortize more than is owed; the last period clears the balance
            if principal_part > balance or payment_number == term_months:
                principal_part = balance

            payment_amount = principal_part + interest
            balance -= principal_part

            if payment_number == abono_after_payment and abono_amount > ZERO:
                balance -= abono_amount

            schedule.append(AmortizationScheduleItem(
                payment_number=payment_number,
                payment_amount=round_money(payment_amount),
                principal=round_money(principal_part),
                interest=round_money(interest),
                remaining_balance=round_money(max(ZERO, balance))
            ))

            if balance <= ZERO:
                break

        return schedule

    def calculate_monthly_payment(
        self,
        principal: Number,
        annual_rate: Number,
        term_months: int
    ) -> Decimal:
        """
        Fixed monthly installment for the constant-installment method

        Uses A = P * r(1+r)^n / ((1+r)^n - 1), or P / n when the rate is zero.
        """
        principal = to_decimal(principal)
        annual_rate = to_decimal(annual_rate)
        if principal < ZERO:
            raise LoanValidationError("Principal cannot be negative")
        if annual_rate < ZERO:
            raise LoanValidationError("Interest rate cannot be negative")
        if term_months < 1:
            raise LoanValidationError("Term must be at least 1 month")

        return round_money(self._installment(principal, monthly_rate(annual_rate), term_months))

    def _installment(self, balance: Decimal, rate: Decimal, term_months: int) -> Decimal:
        """Unrounded annuity installment"""
        if rate == ZERO:
            return balance / Decimal(term_months)
        factor = (Decimal('1') + rate) ** term_months
        return balance * rate * factor / (factor - Decimal('1'))

    def _validate_inputs(self, principal: Decimal, annual_rate: Decimal, term_months: int) -> None:
        if principal <= ZERO:
            raise LoanValidationError("Principal must be positive")
        if annual_rate < ZERO:
            raise LoanValidationError("Interest rate cannot be negative")
        if not isinstance(term_months, int) or term_months < 1:
            raise LoanValidationError("Term must be at least 1 month")
