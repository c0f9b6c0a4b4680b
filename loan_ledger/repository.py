"""
Loan Repository Module

Persistence collaborator for the loan lifecycle. Stores loans, payments and
abonos in separate tables of a StorageInterface backend and serializes
mutations per loan.
"""

from contextlib import contextmanager
from typing import Iterator, List, Optional
import threading
import weakref

from .storage import StorageInterface
from .loans import Loan, LoanPayment, LoanAbono, LoanAggregate


class LoanLockRegistry:
    """
    Hands out one lock per loan id

    Entries are weak: a lock lives only while some thread holds or waits on
    it, so ids of deleted or unknown loans do not accumulate.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()
        self._guard = threading.Lock()

    def get(self, loan_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(loan_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[loan_id] = lock
            return lock

    def __contains__(self, loan_id: str) -> bool:
        with self._guard:
            return loan_id in self._locks

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class LoanRepository:
    """
    Reads and writes loan aggregates

    Every state-changing operation on a loan holds ``locked(loan_id)`` for
    the whole read-validate-write cycle and does its writes inside
    ``atomic()``. Audit events are appended after ``atomic()`` commits but
    before the loan lock is released, so they follow mutation order.
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.loans_table = "loans"
        self.payments_table = "loan_payments"
        self.abonos_table = "loan_abonos"
        self.locks = LoanLockRegistry()

    @contextmanager
    def locked(self, loan_id: str) -> Iterator[None]:
        """Serialize operations on one loan"""
        with self.locks.get(loan_id):
            yield

    def atomic(self):
        """Storage transaction for a group of writes"""
        return self.storage.atomic()

    # Loans

    def get_loan(self, loan_id: str) -> Optional[Loan]:
        """Get loan by ID"""
        data = self.storage.load(self.loans_table, loan_id)
        if data:
            return Loan.from_dict(data)
        return None

    def list_loans_by_owner(self, user_id: str) -> List[Loan]:
        """Get all loans of an owner, newest first"""
        loans = [Loan.from_dict(data) for data in self.storage.find(self.loans_table, {"user_id": user_id})]
        loans.sort(key=lambda loan: loan.created_at, reverse=True)
        return loans

    def save_loan(self, loan: Loan) -> None:
        self.storage.save(self.loans_table, loan.id, loan.to_dict())

    def delete_loan(self, loan_id: str) -> bool:
        """Delete a loan together with its payments and abonos"""
        for payment in self.storage.find(self.payments_table, {"loan_id": loan_id}):
            self.storage.delete(self.payments_table, payment['id'])
        for abono in self.storage.find(self.abonos_table, {"loan_id": loan_id}):
            self.storage.delete(self.abonos_table, abono['id'])
        return self.storage.delete(self.loans_table, loan_id)

    # Payments

    def get_payment_by_number(self, loan_id: str, payment_number: int) -> Optional[LoanPayment]:
        found = self.storage.find(
            self.payments_table,
            {"loan_id": loan_id, "payment_number": payment_number}
        )
        if found:
            return LoanPayment.from_dict(found[0])
        return None

    def count_payments(self, loan_id: str) -> int:
        return len(self.storage.find(self.payments_table, {"loan_id": loan_id}))

    def save_payment(self, payment: LoanPayment) -> None:
        self.storage.save(self.payments_table, payment.id, payment.to_dict())

    def get_payments(self, loan_id: str) -> List[LoanPayment]:
        """Payment history ordered by payment number"""
        payments = [LoanPayment.from_dict(data) for data in self.storage.find(self.payments_table, {"loan_id": loan_id})]
        payments.sort(key=lambda payment: payment.payment_number)
        return payments

    # Abonos

    def save_abono(self, abono: LoanAbono) -> None:
        self.storage.save(self.abonos_table, abono.id, abono.to_dict())

    def count_abonos(self, loan_id: str) -> int:
        return len(self.storage.find(self.abonos_table, {"loan_id": loan_id}))

    def get_abonos(self, loan_id: str) -> List[LoanAbono]:
        """Abono history ordered by date"""
        abonos = [LoanAbono.from_dict(data) for data in self.storage.find(self.abonos_table, {"loan_id": loan_id})]
        abonos.sort(key=lambda abono: (abono.abono_date, abono.created_at))
        return abonos

    def get_loan_aggregate(self, loan_id: str) -> Optional[LoanAggregate]:
        """Loan with payments by number and abonos by date"""
        loan = self.get_loan(loan_id)
        if not loan:
            return None
        return LoanAggregate(
            loan=loan,
            payments=self.get_payments(loan_id),
            abonos=self.get_abonos(loan_id)
        )
