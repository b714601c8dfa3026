"""Transaction data models for provider and ledger records."""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from bank_sync.utils.decimal_utils import parse_amount, quantize_amount
from bank_sync.utils.date_utils import utc_now_iso

# Marks transactions imported by the sync pipeline (vs. manual entries)
BANK_SYNC_SOURCE = "bank-sync"

# Fallback description when a provider record carries no usable text
GENERIC_DESCRIPTION = "Movimento"

# Characters of the lowercased title used by the composite duplicate key
DEDUP_TITLE_CHARS = 20


class TransactionType(Enum):
    """Direction of a ledger transaction."""

    INCOME = "income"  # Money in (amount >= 0)
    EXPENSE = "expense"  # Money out (amount < 0)
    INVESTMENT = "investment"  # Manual entries only, never produced by bank sync

    @classmethod
    def for_amount(cls, amount: Decimal) -> "TransactionType":
        """Type implied by the sign of an amount."""
        return cls.INCOME if amount >= 0 else cls.EXPENSE


@dataclass
class RawProviderTransaction:
    """Unmodified booked transaction as returned by the aggregator.

    Field names vary per bank, so every attribute is optional. The original
    payload is preserved in ``raw`` for audit.
    """

    amount: Optional[str] = None
    currency: Optional[str] = None
    transaction_id: Optional[str] = None
    internal_transaction_id: Optional[str] = None
    booking_date: Optional[str] = None
    value_date: Optional[str] = None
    remittance_unstructured: Optional[str] = None
    remittance_unstructured_array: list[str] = field(default_factory=list)
    creditor_name: Optional[str] = None
    debtor_name: Optional[str] = None
    additional_information: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def description(self) -> str:
        """First non-empty free-text field, in provider precedence order."""
        candidates = [
            self.remittance_unstructured,
            " ".join(part for part in self.remittance_unstructured_array if part),
            self.creditor_name,
            self.debtor_name,
            self.additional_information,
        ]
        for candidate in candidates:
            if candidate and candidate.strip():
                return candidate.strip()
        return GENERIC_DESCRIPTION

    @property
    def provider_reference(self) -> Optional[str]:
        """Provider-assigned transaction id, if any."""
        return self.transaction_id or self.internal_transaction_id or None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RawProviderTransaction":
        """Create from an aggregator transaction object.

        Args:
            data: One entry of ``transactions.booked``.

        Returns:
            A new RawProviderTransaction.
        """
        amount_info = data.get("transactionAmount") or {}
        lines = data.get("remittanceInformationUnstructuredArray") or []
        if isinstance(lines, str):
            lines = [lines]

        def _text(key: str) -> Optional[str]:
            value = data.get(key)
            return str(value) if value not in (None, "") else None

        amount = amount_info.get("amount")
        return cls(
            amount=str(amount) if amount is not None else None,
            currency=amount_info.get("currency"),
            transaction_id=_text("transactionId"),
            internal_transaction_id=_text("internalTransactionId"),
            booking_date=_text("bookingDate"),
            value_date=_text("valueDate"),
            remittance_unstructured=_text("remittanceInformationUnstructured"),
            remittance_unstructured_array=[str(line) for line in lines],
            creditor_name=_text("creditorName"),
            debtor_name=_text("debtorName"),
            additional_information=_text("additionalInformation"),
            raw=dict(data),
        )


@dataclass
class CanonicalTransaction:
    """Normalized transaction ready for the ledger.

    Attributes:
        title: Cleaned, human-readable title.
        date: Booking date in ISO format (YYYY-MM-DD).
        amount: Signed amount (positive=income, negative=expense).
        transaction_type: Income or expense.
        category: Assigned spending category.
        account_id: Ledger account this transaction belongs to (None if unassigned).
        account_name: Human-readable account label.
        bank_ref: Provider transaction id (or synthetic local id) used for dedup.
        source: Origin marker ("bank-sync" for automated imports).
        raw_description: Uncleaned provider text kept for audit and categorization.
        id: Unique identifier (UUID).
        created_at: ISO timestamp of creation.
    """

    title: str
    date: str
    amount: Decimal
    transaction_type: TransactionType
    category: str
    account_id: Optional[str] = None
    account_name: Optional[str] = None
    bank_ref: Optional[str] = None
    source: Optional[str] = BANK_SYNC_SOURCE
    raw_description: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def dedup_key(self) -> str:
        """Composite content key: date|amount|first 20 chars of lowercased title.

        This is a heuristic. Two distinct transactions with the same date,
        amount and a similar short title share a key.
        """
        title_prefix = (self.title or "").lower()[:DEDUP_TITLE_CHARS]
        return f"{self.date}|{quantize_amount(self.amount)}|{title_prefix}"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the ledger's record shape."""
        data: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "date": self.date,
            "amount": str(self.amount),
            "type": self.transaction_type.value,
            "category": self.category,
            "accountId": self.account_id,
            "account": self.account_name,
            "source": self.source,
            "bankRef": self.bank_ref,
            "createdAt": self.created_at,
        }
        if self.raw_description is not None:
            data["rawDescription"] = self.raw_description
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CanonicalTransaction":
        """Create from a ledger record (bank-synced or manual).

        Args:
            data: Dictionary containing the ledger record.

        Returns:
            A new CanonicalTransaction instance.
        """
        amount = parse_amount(data.get("amount", "0"))

        type_str = str(data.get("type") or TransactionType.for_amount(amount).value)
        try:
            transaction_type = TransactionType(type_str)
        except ValueError:
            transaction_type = TransactionType.for_amount(amount)

        return cls(
            id=str(data.get("id") or uuid.uuid4()),
            title=str(data.get("title") or ""),
            date=str(data.get("date") or ""),
            amount=amount,
            transaction_type=transaction_type,
            category=str(data.get("category") or ""),
            account_id=data.get("accountId"),
            account_name=data.get("account"),
            bank_ref=data.get("bankRef") or None,
            source=data.get("source"),
            raw_description=data.get("rawDescription"),
            created_at=str(data.get("createdAt") or utc_now_iso()),
        )

    def __repr__(self) -> str:
        return (
            f"CanonicalTransaction(date={self.date}, "
            f"title={self.title[:30]!r}, "
            f"amount={self.amount}, "
            f"bank_ref={self.bank_ref!r})"
        )
