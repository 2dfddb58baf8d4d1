"""
Basic Bank

A single-user, single-account toy bank: validated deposits, withdrawals and
outgoing transfers recorded in an append-only ledger, kept in a local
key-value store.
"""

__version__ = "1.0.0"

from .config import BankConfig, get_config, reload_config
from .errors import (
    AuthError, BankError, BusinessRuleError, ConcurrencyRejection, ErrorReason,
    FieldError, ValidationError
)
from .ledger import EntryType, LedgerEngine, LedgerEntry
from .session import SessionManager, SessionState
from .coordinator import ActionCoordinator, ManualScheduler, PendingAction
from .storage import InMemoryStorage, JSONFileStorage, SQLiteStorage, create_storage

__all__ = [
    "BankConfig", "get_config", "reload_config",
    "AuthError", "BankError", "BusinessRuleError", "ConcurrencyRejection",
    "ErrorReason", "FieldError", "ValidationError",
    "EntryType", "LedgerEngine", "LedgerEntry",
    "SessionManager", "SessionState",
    "ActionCoordinator", "ManualScheduler", "PendingAction",
    "InMemoryStorage", "JSONFileStorage", "SQLiteStorage", "create_storage",
]
