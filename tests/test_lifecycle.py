"""
Tests for the loan lifecycle: requests, decisions and queries
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from loan_ledger.amortization import AmortizationType
from loan_ledger.config import LoanLedgerConfig
from loan_ledger.errors import InvalidStateError, LoanValidationError, NotFoundError
from loan_ledger.lifecycle import TRANSITIONS, can_transition, transition, settle_if_paid
from loan_ledger.loans import Loan, LoanStatus
from loan_ledger.storage import InMemoryStorage
from loan_ledger.system import LoanSystem


def make_loan(status=LoanStatus.DISBURSED, balance=Decimal('500.00')):
    now = datetime.now(timezone.utc)
    return Loan(
        id="LOAN001", created_at=now, updated_at=now,
        user_id="user-1", amount=Decimal('1000.00'), term_months=12,
        interest_rate=Decimal('12'), amortization_type=AmortizationType.FIXED,
        status=status, remaining_balance=balance
    )


class TestStateMachine:
    """Test the transition table"""

    def test_allowed_transitions(self):
        assert can_transition(LoanStatus.PENDING, LoanStatus.DISBURSED)
        assert can_transition(LoanStatus.PENDING, LoanStatus.REJECTED)
        assert can_transition(LoanStatus.DISBURSED, LoanStatus.PAID)

    def test_terminal_states(self):
        """PAID and REJECTED never change"""
        for target in LoanStatus:
            assert not can_transition(LoanStatus.PAID, target)
            assert not can_transition(LoanStatus.REJECTED, target)
        assert TRANSITIONS[LoanStatus.PAID] == set()

    def test_illegal_transition_raises(self):
        loan = make_loan(status=LoanStatus.PENDING)
        with pytest.raises(InvalidStateError):
            transition(loan, LoanStatus.PAID)
        assert loan.status == LoanStatus.PENDING

    def test_settle_if_paid(self):
        loan = make_loan(balance=Decimal('0'))
        assert settle_if_paid(loan)
        assert loan.status == LoanStatus.PAID
        assert loan.remaining_balance == Decimal('0.00')

        open_loan = make_loan(balance=Decimal('0.01'))
        assert not settle_if_paid(open_loan)
        assert open_loan.status == LoanStatus.DISBURSED


class TestLoanRequests:
    """Test loan creation"""

    def setup_method(self):
        """Set up test fixtures"""
        self.system = LoanSystem(storage=InMemoryStorage(), config=LoanLedgerConfig())
        self.service = self.system.loan_service

    def test_create_fixed_loan(self):
        loan = self.service.create_loan(
            user_id="user-1",
            amount=Decimal('12000'),
            term_months=12,
            interest_rate=Decimal('12'),
            amortization_type=AmortizationType.FIXED
        )

        assert loan.status == LoanStatus.PENDING
        assert loan.user_id == "user-1"
        assert loan.amount == Decimal('12000.00')
        assert loan.remaining_balance == Decimal('12000.00')
        assert loan.monthly_payment == Decimal('1066.19')
        assert loan.rejection_reason is None
        assert loan.approved_at is None

        stored = self.system.repository.get_loan(loan.id)
        assert stored == loan

    def test_create_variable_loan_shows_first_installment(self):
        loan = self.service.create_loan("user-1", "12000", 12, "12", "VARIABLE")

        assert loan.amortization_type == AmortizationType.VARIABLE
        assert loan.monthly_payment == Decimal('1120.00')

    def test_create_zero_rate_loan(self):
        loan = self.service.create_loan("user-1", Decimal('1200'), 12, Decimal('0'), "FIXED")
        assert loan.monthly_payment == Decimal('100.00')

    def test_validation_collects_every_error(self):
        with pytest.raises(LoanValidationError) as exc_info:
            self.service.create_loan("user-1", Decimal('500'), 0, Decimal('12'), "BALLOON")

        errors = exc_info.value.errors
        assert len(errors) == 3
        assert any("amount" in error for error in errors)
        assert any("term_months" in error for error in errors)
        assert any("amortization_type" in error for error in errors)
        assert self.system.storage.count("loans") == 0

    @pytest.mark.parametrize("amount,term,rate", [
        (Decimal('1000001'), 12, Decimal('12')),
        (Decimal('5000'), 361, Decimal('12')),
        (Decimal('5000'), 12, Decimal('-1')),
        (Decimal('5000'), 12, Decimal('100.5')),
    ])
    def test_out_of_range_requests(self, amount, term, rate):
        with pytest.raises(LoanValidationError):
            self.service.create_loan("user-1", amount, term, rate, "FIXED")

    def test_limits_follow_configuration(self):
        config = LoanLedgerConfig(min_loan_amount="100", max_term_months=24)
        system = LoanSystem(storage=InMemoryStorage(), config=config)

        loan = system.loan_service.create_loan("user-1", Decimal('100'), 24, Decimal('5'), "FIXED")
        assert loan.amount == Decimal('100.00')

        with pytest.raises(LoanValidationError):
            system.loan_service.create_loan("user-1", Decimal('100'), 36, Decimal('5'), "FIXED")


class TestLoanDecisions:
    """Test approval and rejection"""

    def setup_method(self):
        """Set up test fixtures"""
        self.system = LoanSystem(storage=InMemoryStorage(), config=LoanLedgerConfig())
        self.service = self.system.loan_service
        self.loan = self.service.create_loan("user-1", Decimal('12000'), 12, Decimal('12'), "FIXED")

    def test_approval_disburses(self):
        loan = self.service.approve(self.loan.id, LoanStatus.APPROVED)

        assert loan.status == LoanStatus.DISBURSED
        assert loan.approved_at is not None
        assert loan.disbursed_at is not None
        assert loan.rejection_reason is None
        assert loan.remaining_balance == Decimal('12000.00')
        assert self.system.repository.get_loan(self.loan.id).status == LoanStatus.DISBURSED

    def test_rejection_with_reason(self):
        loan = self.service.approve(self.loan.id, "REJECTED", "Insufficient income")

        assert loan.status == LoanStatus.REJECTED
        assert loan.rejection_reason == "Insufficient income"
        assert loan.disbursed_at is None

    @pytest.mark.parametrize("reason", [None, "", "   "])
    def test_rejection_without_reason_uses_placeholder(self, reason):
        loan = self.service.approve(self.loan.id, "REJECTED", reason)
        assert loan.rejection_reason == "No reason provided"

    def test_placeholder_reason_is_configurable(self):
        config = LoanLedgerConfig(default_rejection_reason="Declined")
        system = LoanSystem(storage=InMemoryStorage(), config=config)
        loan = system.loan_service.create_loan("user-1", Decimal('5000'), 6, Decimal('10'), "FIXED")

        assert system.loan_service.approve(loan.id, "REJECTED").rejection_reason == "Declined"

    @pytest.mark.parametrize("first", ["APPROVED", "REJECTED"])
    def test_decision_only_once(self, first):
        self.service.approve(self.loan.id, first)

        with pytest.raises(InvalidStateError, match="not in pending status"):
            self.service.approve(self.loan.id, "APPROVED")

    def test_unknown_loan(self):
        with pytest.raises(NotFoundError):
            self.service.approve("missing", "APPROVED")

    def test_invalid_decision_value(self):
        with pytest.raises(LoanValidationError):
            self.service.approve(self.loan.id, "PAID")
        assert self.system.repository.get_loan(self.loan.id).status == LoanStatus.PENDING


class TestLoanQueries:
    """Test listing, aggregates and schedules"""

    def setup_method(self):
        """Set up test fixtures"""
        self.system = LoanSystem(storage=InMemoryStorage(), config=LoanLedgerConfig())
        self.service = self.system.loan_service
        self.loan = self.service.create_loan("user-1", Decimal('12000'), 12, Decimal('12'), "FIXED")

    def test_list_is_owner_scoped(self):
        second = self.service.create_loan("user-1", Decimal('3000'), 6, Decimal('8'), "VARIABLE")
        self.service.create_loan("user-2", Decimal('4000'), 6, Decimal('8'), "FIXED")

        loans = self.service.list_loans("user-1")
        assert {loan.id for loan in loans} == {self.loan.id, second.id}
        assert self.service.list_loans("nobody") == []

    def test_get_loan_aggregate(self):
        aggregate = self.service.get_loan(self.loan.id, "user-1")

        assert aggregate.loan.id == self.loan.id
        assert aggregate.payments == []
        assert aggregate.abonos == []

    def test_other_owner_sees_not_found(self):
        with pytest.raises(NotFoundError):
            self.service.get_loan(self.loan.id, "user-2")
        with pytest.raises(NotFoundError):
            self.service.calculate_amortization(self.loan.id, "user-2")

    def test_schedule_requires_disbursement(self):
        with pytest.raises(InvalidStateError):
            self.service.calculate_amortization(self.loan.id, "user-1")

        self.service.approve(self.loan.id, "APPROVED")
        summary = self.service.calculate_amortization(self.loan.id, "user-1")

        assert summary['loan_id'] == self.loan.id
        assert summary['monthly_payment'] == Decimal('1066.19')
        assert summary['amortization_type'] == "FIXED"
        assert len(summary['amortization_schedule']) == 12

    def test_schedule_refused_for_rejected_loan(self):
        self.service.approve(self.loan.id, "REJECTED")
        with pytest.raises(InvalidStateError):
            self.service.calculate_amortization(self.loan.id)

    def test_loan_with_amortization_for_any_status(self):
        result = self.service.get_loan_with_amortization(self.loan.id, "user-1")

        assert result['id'] == self.loan.id
        assert result['status'] == "PENDING"
        assert result['payments'] == []
        assert len(result['amortization_schedule']) == 12
        assert result['amortization_schedule'][0]['payment_amount'] == '1066.19'

    def test_delete_cascades(self):
        self.service.approve(self.loan.id, "APPROVED")
        self.system.payment_ledger.register_payment(self.loan.id, 1, Decimal('1066.19'))
        self.system.abono_ledger.register_abono(self.loan.id, Decimal('500'))

        self.service.delete_loan(self.loan.id)

        assert self.system.repository.get_loan(self.loan.id) is None
        assert self.system.repository.count_payments(self.loan.id) == 0
        assert self.system.repository.count_abonos(self.loan.id) == 0
        with pytest.raises(NotFoundError):
            self.service.delete_loan(self.loan.id)
        assert self.loan.id not in self.system.repository.locks
