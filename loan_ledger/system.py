"""
Loan System Wiring

Builds the storage backend, audit trail, repository and the three ledger
services from configuration.
"""

from typing import Optional

from .abonos import AbonoLedger
from .amortization import AmortizationEngine
from .audit import AuditTrail
from .config import LoanLedgerConfig, get_config
from .lifecycle import LoanService
from .payments import PaymentLedger
from .repository import LoanRepository
from .storage import InMemoryStorage, SQLiteStorage, StorageInterface


def create_storage(config: LoanLedgerConfig) -> StorageInterface:
    """Select the storage backend named in configuration"""
    if config.storage_backend == "memory":
        return InMemoryStorage()
    if config.storage_backend == "sqlite":
        return SQLiteStorage(config.sqlite_path)
    raise ValueError(f"Unsupported storage backend: {config.storage_backend}")


class LoanSystem:
    """Loan lifecycle services sharing one storage backend"""
    
    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        config: Optional[LoanLedgerConfig] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config)
        
        self.audit_trail = AuditTrail(self.storage)
        self.engine = AmortizationEngine()
        self.repository = LoanRepository(self.storage)
        
        self.loan_service = LoanService(
            self.repository, self.engine, self.audit_trail, self.config
        )
        self.payment_ledger = PaymentLedger(
            self.repository, self.audit_trail, self.config
        )
        self.abono_ledger = AbonoLedger(
            self.repository, self.engine, self.audit_trail, self.config
        )
    
    def close(self) -> None:
        self.storage.close()
