"""Transaction processing pipeline."""

from bank_sync.processing.balance_calculator import BalanceCalculator, BalanceDiscrepancy
from bank_sync.processing.categorizer import Categorizer
from bank_sync.processing.deduplicator import Deduplicator, dedupe_transactions
from bank_sync.processing.ledger_sync import LedgerSync
from bank_sync.processing.normalizer import (
    TransactionNormalizer,
    clean_title,
    normalize_transactions,
)

__all__ = [
    "TransactionNormalizer",
    "clean_title",
    "normalize_transactions",
    "Categorizer",
    "Deduplicator",
    "dedupe_transactions",
    "LedgerSync",
    "BalanceCalculator",
    "BalanceDiscrepancy",
]
