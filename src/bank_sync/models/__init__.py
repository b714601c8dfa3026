"""Data models for bank connections, transactions, accounts, and results."""

from bank_sync.models.account import AccountType, LedgerAccount, LinkedAccount
from bank_sync.models.category import DEFAULT_CATEGORY, CategoryRule, MatchMode
from bank_sync.models.requisition import Institution, Requisition, RequisitionStatus
from bank_sync.models.results import (
    FinalizeResult,
    LinkOutcome,
    OperationResult,
    SyncAllResult,
    SyncResult,
)
from bank_sync.models.transaction import (
    BANK_SYNC_SOURCE,
    CanonicalTransaction,
    RawProviderTransaction,
    TransactionType,
)

__all__ = [
    "RawProviderTransaction",
    "CanonicalTransaction",
    "TransactionType",
    "BANK_SYNC_SOURCE",
    "LedgerAccount",
    "LinkedAccount",
    "AccountType",
    "CategoryRule",
    "MatchMode",
    "DEFAULT_CATEGORY",
    "Requisition",
    "RequisitionStatus",
    "Institution",
    "OperationResult",
    "SyncResult",
    "SyncAllResult",
    "LinkOutcome",
    "FinalizeResult",
]
