"""
Request Validation Module

Explicit validation for each loan request. Every constraint is an independent
rule; a validator runs all of its rules and returns a ValidationResult listing
every failure instead of stopping at the first one.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from .amortization import TWO_PLACES
from .errors import LoanValidationError


Rule = Callable[[Dict[str, Any]], Optional[str]]


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one request"""
    errors: Tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def raise_for_errors(self) -> None:
        """Raise LoanValidationError carrying every failure"""
        if self.errors:
            raise LoanValidationError("; ".join(self.errors), list(self.errors))


def _as_decimal(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def required(field: str) -> Rule:
    def rule(data: Dict[str, Any]) -> Optional[str]:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            return f"{field} is required"
        return None
    return rule


def decimal_range(field: str, minimum: Optional[Decimal] = None,
                  maximum: Optional[Decimal] = None) -> Rule:
    def rule(data: Dict[str, Any]) -> Optional[str]:
        if data.get(field) is None:
            return None
        value = _as_decimal(data[field])
        if value is None or not value.is_finite():
            return f"{field} must be a number"
        if minimum is not None and value < minimum:
            return f"{field} must be at least {minimum}"
        if maximum is not None and value > maximum:
            return f"{field} must be at most {maximum}"
        return None
    return rule


def cents(field: str) -> Rule:
    """Money amounts carry at most two decimal places"""
    def rule(data: Dict[str, Any]) -> Optional[str]:
        value = _as_decimal(data.get(field))
        if value is None or not value.is_finite():
            return None
        if value != value.quantize(TWO_PLACES):
            return f"{field} cannot have more than 2 decimal places"
        return None
    return rule


def integer_range(field: str, minimum: Optional[int] = None,
                  maximum: Optional[int] = None) -> Rule:
    def rule(data: Dict[str, Any]) -> Optional[str]:
        value = data.get(field)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            return f"{field} must be an integer"
        if minimum is not None and value < minimum:
            return f"{field} must be at least {minimum}"
        if maximum is not None and value > maximum:
            return f"{field} must be at most {maximum}"
        return None
    return rule


def one_of(field: str, allowed: Iterable[str]) -> Rule:
    allowed = tuple(allowed)

    def rule(data: Dict[str, Any]) -> Optional[str]:
        value = data.get(field)
        if value is None:
            return None
        value = getattr(value, 'value', value)
        if value not in allowed:
            return f"{field} must be one of: {', '.join(allowed)}"
        return None
    return rule


def optional_string(field: str) -> Rule:
    def rule(data: Dict[str, Any]) -> Optional[str]:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            return f"{field} must be a string"
        return None
    return rule


def run_rules(data: Dict[str, Any], rules: Iterable[Rule]) -> ValidationResult:
    errors = []
    for rule in rules:
        error = rule(data)
        if error:
            errors.append(error)
    return ValidationResult(tuple(errors))


def validate_create_loan(
    data: Dict[str, Any],
    min_amount: Decimal = Decimal('1000'),
    max_amount: Decimal = Decimal('1000000'),
    max_term_months: int = 360,
    max_interest_rate: Decimal = Decimal('100')
) -> ValidationResult:
    """Validate a new loan request"""
    return run_rules(data, [
        required('amount'),
        decimal_range('amount', min_amount, max_amount),
        cents('amount'),
        required('term_months'),
        integer_range('term_months', 1, max_term_months),
        required('interest_rate'),
        decimal_range('interest_rate', Decimal('0'), max_interest_rate),
        required('amortization_type'),
        one_of('amortization_type', ('FIXED', 'VARIABLE')),
    ])


def validate_approve_loan(data: Dict[str, Any]) -> ValidationResult:
    """Validate an approval decision; a missing rejection reason is allowed"""
    return run_rules(data, [
        required('loan_id'),
        required('status'),
        one_of('status', ('APPROVED', 'REJECTED')),
        optional_string('rejection_reason'),
    ])


def validate_payment(data: Dict[str, Any]) -> ValidationResult:
    """Validate a scheduled payment request"""
    return run_rules(data, [
        required('loan_id'),
        required('payment_number'),
        integer_range('payment_number', 1),
        required('amount'),
        decimal_range('amount', Decimal('0.01')),
        cents('amount'),
    ])


def validate_abono(data: Dict[str, Any]) -> ValidationResult:
    """Validate an abono request"""
    return run_rules(data, [
        required('loan_id'),
        required('amount'),
        decimal_range('amount', Decimal('0.01')),
        cents('amount'),
        optional_string('notes'),
    ])
