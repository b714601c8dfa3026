"""Single-writer application of transactions to the ledger."""

import asyncio
from typing import Optional

from bank_sync.errors import LedgerError
from bank_sync.ledger.base import Ledger
from bank_sync.models.results import SyncResult
from bank_sync.models.transaction import CanonicalTransaction
from bank_sync.processing.deduplicator import Deduplicator
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class LedgerSync:
    """Commits deduplicated transactions to the ledger under one lock.

    Every write to the ledger goes through the same instance, so the read
    of existing transactions, the dedupe and the commits of one batch
    cannot interleave with another batch or a manual entry. Replaying a
    batch is therefore safe: already committed transactions are rejected.
    """

    def __init__(self, ledger: Ledger, deduplicator: Optional[Deduplicator] = None):
        """Initialize ledger sync.

        Args:
            ledger: Ledger to write to.
            deduplicator: Duplicate filter (default: a new Deduplicator).
        """
        self.ledger = ledger
        self.deduplicator = deduplicator or Deduplicator()
        self._lock = asyncio.Lock()

    async def apply(
        self,
        candidates: list[CanonicalTransaction],
        total: Optional[int] = None,
    ) -> SyncResult:
        """Dedupe and commit a batch.

        Args:
            candidates: Normalized transactions in commit order.
            total: Size of the normalized batch (default: len(candidates)).

        Returns:
            SyncResult. On a ledger failure mid-batch, success is False and
            imported counts the transactions committed before the failure.
        """
        if total is None:
            total = len(candidates)

        async with self._lock:
            existing = self.ledger.list_transactions()
            accepted, rejected = self.deduplicator.partition(candidates, existing)

            imported = 0
            for txn in accepted:
                try:
                    self.ledger.create_transaction(txn)
                except LedgerError as e:
                    logger.error(
                        f"Ledger rejected transaction {txn.bank_ref}: {e} "
                        f"({imported}/{len(accepted)} committed)"
                    )
                    return SyncResult(
                        success=False,
                        imported=imported,
                        total=total,
                        skipped=len(rejected),
                        error=str(e),
                    )
                imported += 1

        logger.info(f"Imported {imported}/{total} transactions, skipped {total - imported}")
        return SyncResult(success=True, imported=imported, total=total, skipped=total - imported)

    async def add_transaction(self, txn: CanonicalTransaction) -> CanonicalTransaction:
        """Commit a single manual entry without deduplication.

        Raises:
            LedgerError: If the ledger rejects the transaction.
        """
        async with self._lock:
            return self.ledger.create_transaction(txn)
