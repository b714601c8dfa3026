"""Duplicate detection against the ledger."""

from typing import Iterable

from bank_sync.models.transaction import CanonicalTransaction
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


class Deduplicator:
    """Filters out incoming transactions that the ledger already holds.

    A candidate is a duplicate when:
    - Its bank_ref is already in the ledger, or appeared earlier in the batch
    - Its composite key (date, amount, start of lowercased title) matches an
      existing ledger transaction

    The composite key is a heuristic for records without a stable provider
    id. It only compares against the ledger, never within the batch, since
    two genuine same-day purchases at one shop share a key.

    Inputs are never mutated.
    """

    def partition(
        self,
        candidates: Iterable[CanonicalTransaction],
        existing: Iterable[CanonicalTransaction],
    ) -> tuple[list[CanonicalTransaction], list[CanonicalTransaction]]:
        """Split candidates into new and duplicate transactions.

        Args:
            candidates: Incoming normalized transactions.
            existing: Transactions already in the ledger.

        Returns:
            Tuple of (accepted, rejected), each in input order.
        """
        known_refs: set[str] = set()
        known_keys: set[str] = set()
        for txn in existing:
            if txn.bank_ref:
                known_refs.add(txn.bank_ref)
            known_keys.add(txn.dedup_key)

        accepted: list[CanonicalTransaction] = []
        rejected: list[CanonicalTransaction] = []

        for txn in candidates:
            if txn.bank_ref and txn.bank_ref in known_refs:
                logger.debug(f"Duplicate bank_ref {txn.bank_ref}")
                rejected.append(txn)
                continue
            if txn.dedup_key in known_keys:
                logger.debug(f"Duplicate content key {txn.dedup_key!r}")
                rejected.append(txn)
                continue

            if txn.bank_ref:
                known_refs.add(txn.bank_ref)
            accepted.append(txn)

        if rejected:
            logger.info(f"Skipped {len(rejected)} duplicate transactions")
        return accepted, rejected

    def dedupe(
        self,
        candidates: Iterable[CanonicalTransaction],
        existing: Iterable[CanonicalTransaction],
    ) -> list[CanonicalTransaction]:
        """Return the candidates not already present, in input order."""
        accepted, _ = self.partition(candidates, existing)
        return accepted


def dedupe_transactions(
    candidates: Iterable[CanonicalTransaction],
    existing: Iterable[CanonicalTransaction],
) -> list[CanonicalTransaction]:
    """Convenience wrapper around Deduplicator.dedupe()."""
    return Deduplicator().dedupe(candidates, existing)
