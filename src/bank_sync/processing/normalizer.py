"""Normalizer converting aggregator transactions into ledger transactions."""

import re
import uuid
from datetime import date
from typing import Any, Iterable, Optional, Union

from bank_sync.models.transaction import (
    BANK_SYNC_SOURCE,
    CanonicalTransaction,
    RawProviderTransaction,
    TransactionType,
)
from bank_sync.processing.categorizer import Categorizer
from bank_sync.utils.date_utils import date_to_iso, parse_iso_date
from bank_sync.utils.decimal_utils import parse_amount
from bank_sync.utils.logging_config import get_logger

logger = get_logger(__name__)

# Title used when cleaning leaves nothing
UNKNOWN_TITLE = "Unknown Transaction"

# Prefix of bank_ref values generated for records without a provider id
LOCAL_REF_PREFIX = "local-"

# Italian banking boilerplate, matched as whole words
BOILERPLATE_PATTERN = re.compile(
    r"\b(?:SDD\s+CORE|SEPA|POS|PAGAMENTO|BONIFICO|ADDEBITO|ACCREDITO|GIROCONTO)\b"
    r"|\bCRO(?=\d|\b)"
    r"|\bDISP\.\s*N\."
    r"|\bRIF\."
    r"|\bVS\.",
    re.IGNORECASE,
)
LONG_DIGITS_PATTERN = re.compile(r"\d{8,}")
DATE_PATTERN = re.compile(r"\d{2}/\d{2}/\d{4}|\d{2}\.\d{2}\.\d{4}")
MASKED_CARD_PATTERN = re.compile(r"\*{4}\d{4}")
WHITESPACE_PATTERN = re.compile(r"\s+")
EDGE_SEPARATORS_PATTERN = re.compile(r"^[\s\-/]+|[\s\-/]+$")

RawBatch = Union[dict[str, Any], Iterable[Union[dict[str, Any], RawProviderTransaction]]]


def _strip_noise(text: str) -> str:
    text = BOILERPLATE_PATTERN.sub(" ", text)
    text = LONG_DIGITS_PATTERN.sub(" ", text)
    text = DATE_PATTERN.sub(" ", text)
    text = MASKED_CARD_PATTERN.sub(" ", text)
    text = WHITESPACE_PATTERN.sub(" ", text)
    return EDGE_SEPARATORS_PATTERN.sub("", text)


def _title_word(word: str) -> str:
    # Length is judged after lowering; case mapping can change it ("İ", "ß")
    lowered = word.lower()
    if len(lowered) <= 2:
        return lowered
    return lowered.capitalize()


def clean_title(description: Optional[str]) -> str:
    """Turn a raw bank description into a readable title.

    Strips banking boilerplate, long reference numbers, dates and masked
    card numbers, then title-cases each word (words of 1-2 characters are
    lowercased). The strip steps repeat until nothing changes, so the
    result is stable: clean_title(clean_title(x)) == clean_title(x).

    Args:
        description: Raw description text.

    Returns:
        Cleaned title, or "Unknown Transaction" if nothing is left.
    """
    text = description or ""
    while True:
        stripped = _strip_noise(text)
        if stripped == text:
            break
        text = stripped

    if not text:
        return UNKNOWN_TITLE
    return " ".join(_title_word(word) for word in text.split(" "))


def _booked_entries(raw_batch: RawBatch) -> list[Union[dict[str, Any], RawProviderTransaction]]:
    """Extract booked entries from a provider response or a plain list."""
    if isinstance(raw_batch, dict):
        transactions = raw_batch.get("transactions", raw_batch)
        if not isinstance(transactions, dict):
            logger.warning("Transactions response has no transactions object")
            return []
        booked = transactions.get("booked") or []
        pending = transactions.get("pending") or []
        if pending:
            logger.debug(f"Ignoring {len(pending)} pending transactions")
        return list(booked)
    return list(raw_batch)


class TransactionNormalizer:
    """Normalizes raw aggregator transactions into CanonicalTransaction records.

    The normalizer:
    - Consumes booked transactions only
    - Parses signed Decimal amounts and derives income/expense
    - Builds a clean title from the first non-empty description field
    - Categorizes on the raw description
    - Uses the provider id as bank_ref, or generates a local one
    """

    def __init__(self, categorizer: Categorizer):
        """Initialize normalizer.

        Args:
            categorizer: Categorizer applied to each raw description.
        """
        self.categorizer = categorizer

    def normalize(
        self,
        raw_batch: RawBatch,
        account_label: Optional[str] = None,
        ledger_account_id: Optional[str] = None,
        today: Optional[date] = None,
    ) -> list[CanonicalTransaction]:
        """Normalize a batch of provider transactions.

        Args:
            raw_batch: Provider ``/transactions/`` response, or an iterable of
                raw dicts or RawProviderTransaction objects.
            account_label: Account name stored on each transaction.
            ledger_account_id: Ledger account the transactions belong to.
            today: Date used when a record has no booking or value date.

        Returns:
            Normalized transactions in input order.
        """
        entries = _booked_entries(raw_batch)
        fallback_date = date_to_iso(today or date.today())

        transactions = []
        for entry in entries:
            raw = entry if isinstance(entry, RawProviderTransaction) else RawProviderTransaction.from_dict(entry)
            txn = self._normalize_transaction(raw, account_label, ledger_account_id, fallback_date)
            if txn is not None:
                transactions.append(txn)

        logger.info(
            f"Normalized {len(transactions)}/{len(entries)} transactions"
            + (f" for {account_label}" if account_label else "")
        )
        return transactions

    def _normalize_transaction(
        self,
        raw: RawProviderTransaction,
        account_label: Optional[str],
        ledger_account_id: Optional[str],
        fallback_date: str,
    ) -> Optional[CanonicalTransaction]:
        try:
            amount = parse_amount(raw.amount)
        except ValueError as e:
            logger.warning(f"Skipping transaction {raw.provider_reference or '?'}: {e}")
            return None

        description = raw.description
        booked = parse_iso_date(raw.booking_date) or parse_iso_date(raw.value_date)

        return CanonicalTransaction(
            title=clean_title(description),
            date=date_to_iso(booked) if booked else fallback_date,
            amount=amount,
            transaction_type=TransactionType.for_amount(amount),
            category=self.categorizer.categorize(description),
            account_id=ledger_account_id,
            account_name=account_label,
            bank_ref=raw.provider_reference or f"{LOCAL_REF_PREFIX}{uuid.uuid4().hex}",
            source=BANK_SYNC_SOURCE,
            raw_description=description,
        )


def normalize_transactions(
    raw_batch: RawBatch,
    categorizer: Categorizer,
    account_label: Optional[str] = None,
    ledger_account_id: Optional[str] = None,
) -> list[CanonicalTransaction]:
    """Convenience wrapper around TransactionNormalizer.normalize()."""
    return TransactionNormalizer(categorizer).normalize(raw_batch, account_label, ledger_account_id)
