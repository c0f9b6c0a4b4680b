"""
Tests for extraordinary principal prepayments (abonos)
"""

import pytest
from decimal import Decimal

from loan_ledger.config import LoanLedgerConfig
from loan_ledger.errors import InvalidStateError, LoanValidationError, NotFoundError
from loan_ledger.loans import LoanStatus
from loan_ledger.storage import InMemoryStorage
from loan_ledger.system import LoanSystem


class TestFixedLoanAbonos:
    """Test abonos on a constant-installment loan"""

    def setup_method(self):
        """Set up test fixtures"""
        self.system = LoanSystem(storage=InMemoryStorage(), config=LoanLedgerConfig())
        self.ledger = self.system.abono_ledger
        self.engine = self.system.engine
        loan = self.system.loan_service.create_loan("user-1", Decimal('12000'), 12, Decimal('12'), "FIXED")
        self.loan = self.system.loan_service.approve(loan.id, "APPROVED")

    def test_abono_reduces_balance_and_installment(self):
        aggregate = self.ledger.register_abono(
            self.loan.id, Decimal('2000'), notes="Bonus", user_id="user-1"
        )

        assert aggregate.loan.remaining_balance == Decimal('10000.00')
        assert aggregate.loan.monthly_payment == Decimal('888.49')
        assert aggregate.loan.status == LoanStatus.DISBURSED

        assert len(aggregate.abonos) == 1
        abono = aggregate.abonos[0]
        assert abono.amount == Decimal('2000.00')
        assert abono.remaining_balance_before == Decimal('12000.00')
        assert abono.remaining_balance_after == Decimal('10000.00')
        assert abono.notes == "Bonus"

    def test_installment_recomputed_over_remaining_term(self):
        self.system.payment_ledger.register_payment(self.loan.id, 1, Decimal('1066.19'))
        self.system.payment_ledger.register_payment(self.loan.id, 2, Decimal('1066.19'))
        balance = self.system.repository.get_loan(self.loan.id).remaining_balance

        aggregate = self.ledger.register_abono(self.loan.id, Decimal('1000'))

        expected = self.engine.calculate_monthly_payment(balance - Decimal('1000'), Decimal('12'), 10)
        assert aggregate.loan.monthly_payment == expected
        assert aggregate.loan.remaining_balance == balance - Decimal('1000')

    def test_abono_cannot_exceed_balance(self):
        with pytest.raises(LoanValidationError, match="cannot exceed remaining balance"):
            self.ledger.register_abono(self.loan.id, Decimal('12000.01'))

        loan = self.system.repository.get_loan(self.loan.id)
        assert loan.remaining_balance == Decimal('12000.00')
        assert self.system.repository.count_abonos(self.loan.id) == 0

    def test_sub_cent_excess_is_rejected(self):
        with pytest.raises(LoanValidationError, match="2 decimal places"):
            self.ledger.register_abono(self.loan.id, Decimal('12000.004'))

        loan = self.system.repository.get_loan(self.loan.id)
        assert loan.status == LoanStatus.DISBURSED
        assert loan.remaining_balance == Decimal('12000.00')
        assert self.system.repository.count_abonos(self.loan.id) == 0

    def test_full_abono_pays_off(self):
        aggregate = self.ledger.register_abono(self.loan.id, Decimal('12000'))

        assert aggregate.loan.status == LoanStatus.PAID
        assert aggregate.loan.remaining_balance == Decimal('0.00')
        assert aggregate.loan.monthly_payment == Decimal('0.00')

        with pytest.raises(InvalidStateError):
            self.ledger.register_abono(self.loan.id, Decimal('1'))
        with pytest.raises(InvalidStateError):
            self.system.payment_ledger.register_payment(self.loan.id, 1, Decimal('1066.19'))

    def test_abono_after_payments_then_finish(self):
        self.system.payment_ledger.register_payment(self.loan.id, 1, Decimal('2000'))
        self.ledger.register_abono(self.loan.id, Decimal('3000'))

        aggregate = None
        for number in range(2, 13):
            aggregate = self.system.payment_ledger.register_payment(self.loan.id, number, Decimal('2000'))

        assert aggregate.loan.status == LoanStatus.PAID
        assert aggregate.loan.remaining_balance == Decimal('0.00')
        repaid = sum(p.principal for p in aggregate.payments) + sum(a.amount for a in aggregate.abonos)
        assert repaid == Decimal('12000.00')

    @pytest.mark.parametrize("amount", [Decimal('0'), Decimal('-10'), "abc"])
    def test_malformed_amount(self, amount):
        with pytest.raises(LoanValidationError):
            self.ledger.register_abono(self.loan.id, amount)

    def test_other_owner(self):
        with pytest.raises(NotFoundError):
            self.ledger.register_abono(self.loan.id, Decimal('100'), user_id="user-2")

    def test_multiple_abonos_accumulate(self):
        self.ledger.register_abono(self.loan.id, Decimal('1000'))
        aggregate = self.ledger.register_abono(self.loan.id, Decimal('500.50'))

        assert len(aggregate.abonos) == 2
        assert aggregate.loan.remaining_balance == Decimal('10499.50')
        assert {a.remaining_balance_after for a in aggregate.abonos} == {
            Decimal('11000.00'), Decimal('10499.50')
        }


class TestVariableLoanAbonos:
    """Test abonos on a constant-principal loan"""

    def setup_method(self):
        """Set up test fixtures"""
        self.system = LoanSystem(storage=InMemoryStorage(), config=LoanLedgerConfig())
        loan = self.system.loan_service.create_loan("user-1", Decimal('12000'), 12, Decimal('12'), "VARIABLE")
        self.loan = self.system.loan_service.approve(loan.id, "APPROVED")

    def test_installment_unchanged(self):
        aggregate = self.system.abono_ledger.register_abono(self.loan.id, Decimal('4000'))

        assert aggregate.loan.remaining_balance == Decimal('8000.00')
        assert aggregate.loan.monthly_payment == Decimal('1120.00')


class TestAbonoPreconditions:
    """Abonos are only accepted on disbursed loans"""

    def setup_method(self):
        """Set up test fixtures"""
        self.system = LoanSystem(storage=InMemoryStorage(), config=LoanLedgerConfig())
        self.loan = self.system.loan_service.create_loan("user-1", Decimal('5000'), 6, Decimal('10'), "FIXED")

    def test_pending_loan(self):
        with pytest.raises(InvalidStateError, match="must be disbursed"):
            self.system.abono_ledger.register_abono(self.loan.id, Decimal('100'))

    def test_rejected_loan(self):
        self.system.loan_service.approve(self.loan.id, "REJECTED", "Too risky")
        with pytest.raises(InvalidStateError):
            self.system.abono_ledger.register_abono(self.loan.id, Decimal('100'))

    def test_unknown_loan(self):
        with pytest.raises(NotFoundError):
            self.system.abono_ledger.register_abono("missing", Decimal('100'))
