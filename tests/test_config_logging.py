"""
Tests for configuration, structured logging and system wiring
"""

import json
import logging
from datetime import datetime, timezone

import pytest

from loan_ledger import config as config_module
from loan_ledger.config import LoanLedgerConfig, get_config, reload_config
from loan_ledger.logging_config import JSONFormatter, log_action, setup_logging
from loan_ledger.storage import InMemoryStorage, SQLiteStorage
from loan_ledger.system import LoanSystem, create_storage


class TestConfiguration:
    """Test environment-driven configuration"""

    def test_defaults(self):
        config = LoanLedgerConfig()
        assert config.owner_header == "X-User-Id"
        assert config.min_loan_amount == "1000"
        assert config.max_term_months == 360
        assert config.default_rejection_reason == "No reason provided"
        assert config.enable_audit_logging is True

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("LOAN_LEDGER_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("LOAN_LEDGER_MAX_TERM_MONTHS", "120")

        original = get_config()
        try:
            config = reload_config()
            assert config.storage_backend == "memory"
            assert config.max_term_months == 120
            assert get_config() is config
        finally:
            config_module.config = original


class TestStorageSelection:
    """Test backend selection from configuration"""

    def test_memory_backend(self):
        assert isinstance(create_storage(LoanLedgerConfig(storage_backend="memory")), InMemoryStorage)

    def test_sqlite_backend(self, tmp_path):
        storage = create_storage(LoanLedgerConfig(
            storage_backend="sqlite", sqlite_path=str(tmp_path / "loans.db")
        ))
        assert isinstance(storage, SQLiteStorage)
        storage.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_storage(LoanLedgerConfig(storage_backend="postgres"))

    def test_system_builds_configured_backend(self):
        system = LoanSystem(config=LoanLedgerConfig(storage_backend="memory"))
        assert isinstance(system.storage, InMemoryStorage)
        assert system.payment_ledger.repository is system.repository
        system.close()


class TestStructuredLogging:
    """Test JSON log output"""

    def test_json_formatter(self):
        logger = logging.getLogger("loan_ledger.test")
        record = logger.makeRecord(logger.name, logging.INFO, __name__, 0, "Loan requested", (), None)
        record.user_id = "user-1"
        record.action = "create_loan"
        record.extra = {"amount": "1000.00"}

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Loan requested"
        assert entry["level"] == "INFO"
        assert entry["user_id"] == "user-1"
        assert entry["action"] == "create_loan"
        assert entry["extra"] == {"amount": "1000.00"}
        assert "resource" not in entry
        assert entry["logger"] == "loan_ledger.test"
        assert entry["timestamp"] == datetime.fromtimestamp(record.created, timezone.utc).isoformat()

    def test_log_action_attaches_context(self):
        logger = logging.getLogger("loan_ledger.test_actions")
        logger.setLevel(logging.INFO)
        captured = []

        class Capture(logging.Handler):
            def emit(self, record):
                captured.append(record)

        handler = Capture()
        logger.addHandler(handler)
        try:
            log_action(logger, "info", "Abono registered", user_id="user-1",
                       action="register_abono", resource="loan:L1", extra={"amount": "5.00"})
            log_action(logger, "debug", "suppressed")
        finally:
            logger.removeHandler(handler)

        assert len(captured) == 1
        assert captured[0].action == "register_abono"
        assert captured[0].resource == "loan:L1"
        assert captured[0].extra == {"amount": "5.00"}
        # Records point at the caller rather than the logging helper
        assert captured[0].funcName == "test_log_action_attaches_context"
        assert captured[0].user_id == "user-1"

    def test_setup_logging_replaces_handlers(self):
        logger = setup_logging("DEBUG", "loan_ledger.test_setup")
        logger = setup_logging("WARNING", "loan_ledger.test_setup", log_format="text")

        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)
